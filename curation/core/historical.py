"""
Historical verification tracking - sources and knowledge-keeper consultations for one record.

Derives two values after every evidence append:
- verification_level: a one-way upgrade path, never downgraded
- accuracy_confidence: bounded 0-100, independent of the expert validation_score
"""

import math

from .errors import InvalidScoreRange
from .schema import (
    CurationRecord,
    HistoricalSource,
    KnowledgeKeeperConsultation,
    VerificationLevel,
    PRIMARY_SOURCE_RELIABILITY,
)

KEEPER_CONFIDENCE_BONUS = 20
MAX_CONFIDENCE = 100.0

# Per-item weights used when confidence is recomputed from the full evidence set
PRIMARY_WEIGHT = 20
SECONDARY_WEIGHT = 10
EXPERT_WEIGHT = 15
KEEPER_WEIGHT = 25


def derive_verification_level(primary: int, secondary: int, experts: int, keepers: int) -> VerificationLevel:
    """Classify evidence counts; thresholds are strict (e.g. culturally_endorsed needs 3+ primary sources)."""
    if keepers >= 1 and primary > 2 and experts > 1:
        return VerificationLevel.CULTURALLY_ENDORSED
    if primary > 1 and experts > 0:
        return VerificationLevel.EXPERT_VERIFIED
    if primary > 0 or secondary > 1:
        return VerificationLevel.VALIDATED
    return VerificationLevel.PRELIMINARY


def compute_accuracy_confidence(primary: int, secondary: int, experts: int, keepers: int) -> float:
    total = (primary * PRIMARY_WEIGHT) + (secondary * SECONDARY_WEIGHT) + \
            (experts * EXPERT_WEIGHT) + (keepers * KEEPER_WEIGHT)
    return float(min(total, MAX_CONFIDENCE))


def classify_source(reliability: float) -> bool:
    """True when a source of this reliability counts as primary."""
    return reliability >= PRIMARY_SOURCE_RELIABILITY


class HistoricalVerificationTracker:
    """Accumulates historical evidence and keeps verification level and confidence current."""

    def add_source(self, record: CurationRecord, source: HistoricalSource) -> HistoricalSource:
        """
        Append a historical source, classifying it by reliability.

        Raises:
            InvalidScoreRange: reliability outside [0, 10]
        """
        reliability = source.reliability
        if isinstance(reliability, bool) or not isinstance(reliability, (int, float)) \
                or math.isnan(reliability) or reliability < 0 or reliability > 10:
            raise InvalidScoreRange(f"reliability must be in [0, 10], got {reliability!r}")

        source.is_primary = classify_source(reliability)
        record.historical_sources.append(source)
        self.recompute_confidence(record)
        self.refresh_level(record)
        return source

    def add_knowledge_keeper(self, record: CurationRecord, keeper: KnowledgeKeeperConsultation) -> float:
        """Append a knowledge-keeper consultation; each one adds a fixed bonus to confidence, capped at 100."""
        record.knowledge_keeper_consultations.append(keeper)
        record.accuracy_confidence = min(record.accuracy_confidence + KEEPER_CONFIDENCE_BONUS, MAX_CONFIDENCE)
        self.refresh_level(record)
        return record.accuracy_confidence

    def record_expert_evidence(self, record: CurationRecord) -> None:
        """Re-derive after an expert consultation was appended by the ledger."""
        self.recompute_confidence(record)
        self.refresh_level(record)

    def recompute_confidence(self, record: CurationRecord) -> float:
        primary, secondary, experts, keepers = self._counts(record)
        record.accuracy_confidence = compute_accuracy_confidence(primary, secondary, experts, keepers)
        return record.accuracy_confidence

    def refresh_level(self, record: CurationRecord) -> VerificationLevel:
        derived = derive_verification_level(*self._counts(record))
        current = VerificationLevel(record.verification_level)
        if derived.rank > current.rank:
            record.verification_level = derived
        return record.verification_level

    @staticmethod
    def _counts(record: CurationRecord):
        primary = len(record.primary_sources)
        return (
            primary,
            len(record.historical_sources) - primary,
            len(record.expert_consultations),
            len(record.knowledge_keeper_consultations),
        )
