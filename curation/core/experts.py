"""
Expert consultation ledger - append-only expert findings and the derived validation score.
"""

import math
from typing import List

from .errors import CurationValidationError, InvalidScoreRange
from .schema import CurationRecord, ExpertConsultation, ValidatorRole


def validation_score_of(consultations: List[ExpertConsultation]) -> float:
    """Arithmetic mean of consultation confidences, 0.0 when there are none."""
    if not consultations:
        return 0.0
    return sum(c.confidence for c in consultations) / len(consultations)


def check_confidence(confidence) -> float:
    """Validate an expert confidence value, returning it as a float."""
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise InvalidScoreRange(f"confidence must be a number in [0, 100], got {confidence!r}")
    if math.isnan(confidence) or confidence < 0 or confidence > 100:
        raise InvalidScoreRange(f"confidence must be in [0, 100], got {confidence}")
    return float(confidence)


class ExpertConsultationLedger:
    """Accumulates expert findings for one record and keeps validation_score in step."""

    def add_consultation(self, record: CurationRecord, consultation: ExpertConsultation) -> float:
        """
        Append an expert consultation and recompute the validation score.

        Raises:
            InvalidScoreRange: confidence outside [0, 100]; the record is left unchanged

        Returns:
            The new validation score
        """
        consultation.confidence = check_confidence(consultation.confidence)
        try:
            consultation.expert_type = ValidatorRole(consultation.expert_type)
        except ValueError:
            raise CurationValidationError(f"unknown expert type {consultation.expert_type!r}",
                                          curation_id=record.id)

        record.expert_consultations.append(consultation)
        self.recompute(record)
        return record.validation_score

    def recompute(self, record: CurationRecord) -> None:
        record.validation_score = validation_score_of(record.expert_consultations)
        # Mirrors the score; kept apart from the historical accuracy_confidence
        record.cultural_accuracy_rating = record.validation_score
