"""
Curation pipeline error taxonomy.

Exception Hierarchy:
    CurationError
    ├── CurationValidationError - caller mistakes, record unchanged
    │   ├── InvalidScoreRange
    │   ├── InvalidSensitivityLevel
    │   └── DuplicateReview
    ├── CurationStateError - the record's lifecycle forbids the operation
    │   ├── TerminalState
    │   ├── SensitivityGateUnmet
    │   └── InvalidTransition
    ├── RecordNotFound
    └── CurationStorageError - durable store failed, mutation not applied

Every class carries an ``error_type`` discriminant so callers (and the HTTP
layer) can branch without string matching on messages.

Collaborator failures (validator notification, report dispatch) are never
raised; they are logged and returned as warnings on the result.
"""

from typing import Any, Dict, Optional


class CurationError(Exception):
    """Base class for every error raised by the curation pipeline."""

    error_type = "curation_error"

    def __init__(self, message: str, curation_id: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.curation_id = curation_id
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        data = {"error_type": self.error_type, "message": self.message}
        if self.curation_id:
            data["curation_id"] = self.curation_id
        if self.context:
            data["context"] = self.context
        return data


class CurationValidationError(CurationError):
    error_type = "validation_error"


class InvalidScoreRange(CurationValidationError):
    """A confidence, reliability or rating fell outside its allowed range."""

    error_type = "InvalidScoreRange"


class InvalidSensitivityLevel(CurationValidationError):
    error_type = "InvalidSensitivityLevel"


class DuplicateReview(CurationValidationError):
    """The reviewer already has a review on this record."""

    error_type = "DuplicateReview"


class CurationStateError(CurationError):
    error_type = "state_error"


class TerminalState(CurationStateError):
    """The record is published or archived and accepts no further mutation."""

    error_type = "TerminalState"


class SensitivityGateUnmet(CurationStateError):
    """Publication attempted before the sensitivity level's evidence requirements were met."""

    error_type = "SensitivityGateUnmet"


class InvalidTransition(CurationStateError):
    """The (status, event) pair has no edge in the publication transition table."""

    error_type = "InvalidTransition"


class RecordNotFound(CurationError):
    error_type = "RecordNotFound"


class CurationStorageError(CurationError):
    error_type = "StorageError"
