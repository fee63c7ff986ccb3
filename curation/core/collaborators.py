"""
External collaborators consumed by the curation pipeline.

None of these are owned by the pipeline: the content store and membership
resolver are read-only, the validator directory and report sink receive
fire-and-forget notifications. The Null* implementations are the defaults
when a host wires nothing in.
"""

from typing import Any, Dict, List, Optional, Protocol

from .schema import ValidationRequest, ValidatorRole


class ContentStore(Protocol):
    """Supplies immutable metadata for a subject id; None when the subject is unknown."""

    def get_subject(self, subject_id: str) -> Optional[Dict[str, Any]]:
        ...


class MembershipResolver(Protocol):
    """Decides whether a reviewer belongs to the cultural community of a subject."""

    def is_cultural_community_member(self, reviewer_id: str, subject_id: str, cultural_context: str) -> bool:
        ...


class ValidatorDirectory(Protocol):
    """Finds validators for a role and receives validation-request broadcasts."""

    def lookup(self, role: ValidatorRole) -> Optional[str]:
        ...

    def notify(self, requests: List[ValidationRequest]) -> None:
        ...


class ReportSink(Protocol):
    """Receives publication events for downstream reporting."""

    def publish(self, event: Dict[str, Any]) -> None:
        ...


class NullValidatorDirectory:
    def lookup(self, role: ValidatorRole) -> Optional[str]:
        return None

    def notify(self, requests: List[ValidationRequest]) -> None:
        return None


class NullReportSink:
    def publish(self, event: Dict[str, Any]) -> None:
        return None


class StaticValidatorDirectory:
    """In-process directory backed by a role -> validator ids mapping.

    Picks the first registered validator per role. Notified requests are
    kept for inspection.
    """

    def __init__(self, validators: Dict[str, List[str]] = None):
        self._validators = {ValidatorRole(role): list(ids) for role, ids in (validators or {}).items()}
        self.notified: List[ValidationRequest] = []

    def lookup(self, role: ValidatorRole) -> Optional[str]:
        ids = self._validators.get(ValidatorRole(role), [])
        return ids[0] if ids else None

    def notify(self, requests: List[ValidationRequest]) -> None:
        self.notified.extend(requests)
