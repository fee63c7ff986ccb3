"""
Publication state machine - owns a record's lifecycle status.

The transition table is the only source of legal edges:

    draft --submit_with_consultation--> pending_validation
    draft --submit_without_consultation--> community_review
    pending_validation --validators_satisfied--> community_review
    community_review --approve--> published      (sensitivity gate)
    community_review --reject--> archived
    pending_validation | community_review --request_revision--> draft

published and archived are terminal: every event on them raises TerminalState.
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .errors import InvalidTransition, SensitivityGateUnmet, TerminalState
from .schema import CurationRecord, CurationStatus, Decision, ImpactMetrics, Visibility
from .sensitivity import requires_knowledge_keeper
from ..util.logging import logger


class CurationEvent(str, Enum):
    SUBMIT_WITH_CONSULTATION = "submit_with_consultation"
    SUBMIT_WITHOUT_CONSULTATION = "submit_without_consultation"
    VALIDATORS_SATISFIED = "validators_satisfied"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"


DECISION_EVENTS = {
    Decision.APPROVE: CurationEvent.APPROVE,
    Decision.REJECT: CurationEvent.REJECT,
    Decision.REQUEST_REVISION: CurationEvent.REQUEST_REVISION,
}


def check_sensitivity_gate(record: CurationRecord) -> None:
    """Raise SensitivityGateUnmet unless the record may be published at its sensitivity level."""
    if requires_knowledge_keeper(record.sensitivity_level) and not record.knowledge_keeper_consultations:
        raise SensitivityGateUnmet(
            f"{record.sensitivity_level.value} content requires at least one knowledge keeper "
            f"consultation before publication",
            curation_id=record.id,
            sensitivity_level=record.sensitivity_level.value,
        )


Guard = Optional[Callable[[CurationRecord], None]]

TRANSITIONS: Dict[Tuple[CurationStatus, CurationEvent], Tuple[CurationStatus, Guard]] = {
    (CurationStatus.DRAFT, CurationEvent.SUBMIT_WITH_CONSULTATION): (CurationStatus.PENDING_VALIDATION, None),
    (CurationStatus.DRAFT, CurationEvent.SUBMIT_WITHOUT_CONSULTATION): (CurationStatus.COMMUNITY_REVIEW, None),
    (CurationStatus.PENDING_VALIDATION, CurationEvent.VALIDATORS_SATISFIED): (CurationStatus.COMMUNITY_REVIEW, None),
    (CurationStatus.COMMUNITY_REVIEW, CurationEvent.APPROVE): (CurationStatus.PUBLISHED, check_sensitivity_gate),
    (CurationStatus.COMMUNITY_REVIEW, CurationEvent.REJECT): (CurationStatus.ARCHIVED, None),
    (CurationStatus.COMMUNITY_REVIEW, CurationEvent.REQUEST_REVISION): (CurationStatus.DRAFT, None),
    (CurationStatus.PENDING_VALIDATION, CurationEvent.REQUEST_REVISION): (CurationStatus.DRAFT, None),
}


def ensure_mutable(record: CurationRecord) -> None:
    """Raise TerminalState if the record is published or archived."""
    if CurationStatus(record.status).is_terminal:
        raise TerminalState(
            f"curation {record.id} is {record.status.value} and cannot be modified",
            curation_id=record.id,
            status=record.status.value,
        )


def freeze_impact_metrics(record: CurationRecord) -> ImpactMetrics:
    reviews = record.community_reviews.values()
    return ImpactMetrics(
        community_engagement=len(record.community_reviews),
        cultural_community_engagement=len([r for r in reviews if r.is_cultural_community_member]),
        historical_preservation=record.accuracy_confidence,
        validation_score=record.validation_score,
        verification_level=record.verification_level.value,
    )


class PublicationStateMachine:
    """Applies lifecycle events to a record, rejecting edges the table does not contain."""

    def apply(self, record: CurationRecord, event: CurationEvent) -> CurationStatus:
        """
        Move the record along one edge.

        Raises:
            TerminalState: record is published or archived
            InvalidTransition: no edge for (status, event)
            SensitivityGateUnmet: approve attempted without the required evidence
        """
        event = CurationEvent(event)
        from_status = CurationStatus(record.status)

        try:
            ensure_mutable(record)
            edge = TRANSITIONS.get((from_status, event))
            if edge is None:
                raise InvalidTransition(
                    f"cannot apply {event.value} to curation {record.id} in status {from_status.value}",
                    curation_id=record.id,
                    status=from_status.value,
                    event=event.value,
                )
            to_status, guard = edge
            if guard is not None:
                guard(record)
        except (TerminalState, InvalidTransition, SensitivityGateUnmet) as e:
            logger.log_transition_rejected(record.id, from_status.value, event.value, e.error_type)
            raise

        record.status = to_status
        logger.log_transition(record.id, from_status.value, event.value, to_status.value)
        return to_status

    def submit(self, record: CurationRecord, requires_consultation: bool) -> CurationStatus:
        event = CurationEvent.SUBMIT_WITH_CONSULTATION if requires_consultation \
            else CurationEvent.SUBMIT_WITHOUT_CONSULTATION
        return self.apply(record, event)

    def decide(self, record: CurationRecord, decision: Decision, visibility: Optional[Visibility] = None,
               notes: str = "", conditions=None, now: datetime = None) -> CurationStatus:
        """Apply a publication decision; on approve, stamp publication fields and freeze impact metrics."""
        decision = Decision(decision)
        status = self.apply(record, DECISION_EVENTS[decision])

        record.decision_notes = notes or ""
        record.conditions = list(conditions or [])
        if decision == Decision.APPROVE:
            record.published_at = now or datetime.now()
            if visibility is not None:
                record.visibility = Visibility(visibility)
            record.impact_metrics = freeze_impact_metrics(record)
        return status
