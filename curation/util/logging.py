"""
Structured logging for curation operations.
Audit-style messages with free-text fields (findings, feedback, notes) truncated or redacted.
"""

import logging
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for curation lifecycle, evidence and dispatch operations."""

    def __init__(self, name: str = "curation"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_curation_submitted(self, curation_id: str, submitter_id: str, sensitivity_level: str, status: str):
        """Log creation of a curation record."""
        self.log_operation("curation.submitted", "success", {
            "curation_id": curation_id,
            "submitter_id": submitter_id,
            "sensitivity_level": sensitivity_level,
            "status": status
        })

    def log_evidence_appended(self, curation_id: str, evidence_type: str, details: Dict[str, Any] = None):
        """Log an evidence append (source, keeper, expert, review) with the recomputed scores."""
        log_details = {"curation_id": curation_id, "evidence_type": evidence_type}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation(f"evidence.{evidence_type}", "appended", log_details)

    def log_evidence_rejected(self, curation_id: str, evidence_type: str, error_type: str, reason: str):
        """Log an evidence append that failed validation."""
        self.log_operation(f"evidence.{evidence_type}", "rejected", {
            "curation_id": curation_id,
            "error_type": error_type,
            "reason": reason[:100]
        }, level=logging.WARNING)

    def log_transition(self, curation_id: str, from_status: str, event: str, to_status: str):
        """Log an accepted lifecycle transition."""
        self.log_operation("publication.transition", "applied", {
            "curation_id": curation_id,
            "from": from_status,
            "event": event,
            "to": to_status
        })

    def log_transition_rejected(self, curation_id: str, from_status: str, event: str, error_type: str):
        """Log a lifecycle transition refused by the state machine."""
        self.log_operation("publication.transition", "rejected", {
            "curation_id": curation_id,
            "from": from_status,
            "event": event,
            "error_type": error_type
        }, level=logging.WARNING)

    def log_validation_requests(self, curation_id: str, roles: List[str], outstanding: int):
        """Log validator assignment."""
        self.log_operation("assignment.requests_created", "pending", {
            "curation_id": curation_id,
            "roles": roles,
            "outstanding": outstanding
        })

    def log_dispatch_failure(self, channel: str, curation_id: str, error: str):
        """Log a failed or timed-out fire-and-forget side effect."""
        self.log_operation(f"dispatch.{channel}", "failed", {
            "curation_id": curation_id,
            "error": error[:200]
        }, level=logging.ERROR)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


SENSITIVE_FIELDS = ['findings', 'feedback', 'notes', 'recommendations', 'validation']


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    # Determine operation type from event_type
    if event_type.startswith("publication"):
        operation = "publication"
    elif event_type.startswith("sensitivity"):
        operation = "sensitivity"
    elif event_type.startswith("assignment"):
        operation = "assignment"
    else:
        operation = event_type.replace(".", "_")

    logger.log_operation(operation, "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
