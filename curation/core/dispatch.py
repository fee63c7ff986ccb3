"""
Fire-and-forget side effects (validator notification, report dispatch).

Side effects run on a worker pool after the record mutation has committed.
The caller waits at most the configured timeout; a failure or timeout is
logged and returned as a warning string, never raised and never retried
here. Redelivery belongs to the collaborator behind the callable.
"""

import concurrent.futures
from typing import Any, Callable, Optional

from .config import DISPATCH_WORKERS, get_dispatch_timeout
from ..util.logging import logger


class SideEffectDispatcher:
    """Runs collaborator calls off the mutation path with a bounded wait."""

    def __init__(self, max_workers: int = None, timeout_sec: float = None):
        self.timeout_sec = timeout_sec if timeout_sec is not None else get_dispatch_timeout()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers or DISPATCH_WORKERS,
            thread_name_prefix="curation-dispatch",
        )

    def run(self, channel: str, curation_id: str, func: Callable[..., Any], *args) -> Optional[str]:
        """
        Dispatch func(*args) and wait up to the timeout.

        Returns:
            None on success, otherwise a warning message describing the failure
        """
        try:
            future = self._executor.submit(func, *args)
        except RuntimeError as e:
            # Executor already shut down
            logger.log_dispatch_failure(channel, curation_id, str(e))
            return f"{channel} dispatch failed: {e}"

        try:
            future.result(timeout=self.timeout_sec)
            return None
        except concurrent.futures.TimeoutError:
            future.add_done_callback(lambda f: self._log_late_failure(channel, curation_id, f))
            logger.log_dispatch_failure(channel, curation_id, f"timed out after {self.timeout_sec}s")
            return f"{channel} dispatch timed out after {self.timeout_sec}s"
        except Exception as e:
            logger.log_dispatch_failure(channel, curation_id, str(e))
            return f"{channel} dispatch failed: {e}"

    @staticmethod
    def _log_late_failure(channel: str, curation_id: str, future: concurrent.futures.Future):
        if not future.cancelled() and future.exception() is not None:
            logger.log_dispatch_failure(channel, curation_id, f"late failure: {future.exception()}")

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
