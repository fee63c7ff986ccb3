"""
Curation registry - the aggregate root of the pipeline.

Holds one committed CurationRecord per id and composes the policy,
assignment, evidence and publication components around it.

Concurrency model:
- At most one in-flight mutation per record id (per-id threading.Lock,
  dropped once idle).
- Mutations run on a deep copy of the committed version, which is persisted
  and then swapped in. Readers never lock and always see a whole version;
  a mutation that raises leaves the committed version untouched.
- Only non-terminal records are cached; published and archived records
  are read from the store.
- Validator notification and report dispatch run after the lock is released
  and only ever produce warnings.
"""

import copy
import threading
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .assignment import PENDING, ValidatorAssignmentEngine
from .collaborators import (
    ContentStore,
    MembershipResolver,
    NullReportSink,
    NullValidatorDirectory,
    ReportSink,
    ValidatorDirectory,
)
from .community import CommunityReviewAggregator, ConsensusResult
from .dao import CurationStore, InMemoryCurationStore
from .dispatch import SideEffectDispatcher
from .errors import CurationValidationError, InvalidTransition, RecordNotFound
from .experts import ExpertConsultationLedger
from .historical import HistoricalVerificationTracker
from .publication import CurationEvent, PublicationStateMachine, ensure_mutable
from .reporting import CurationReport, generate_curation_report, query_published
from .schema import (
    CommunityReview,
    CurationRecord,
    CurationRequest,
    CurationStatus,
    Decision,
    ExpertConsultation,
    HistoricalSource,
    KnowledgeKeeperConsultation,
    TraditionalElement,
    ValidationRequest,
    ValidatorRole,
    Visibility,
)
from .sensitivity import SensitivityPolicy, parse_sensitivity_level, resolve_sensitivity_policy
from ..util.logging import audit_event, logger


@dataclass
class CurationResult:
    """Outcome of a mutating operation: a snapshot of the committed record plus non-fatal warnings."""
    record: CurationRecord
    warnings: List[str] = field(default_factory=list)
    validation_requests: List[ValidationRequest] = field(default_factory=list)


def _apply_policy(record: CurationRecord, policy: SensitivityPolicy) -> None:
    record.sensitivity_level = policy.level
    record.access_restrictions = list(policy.access_restrictions)
    record.access_requirements = list(policy.access_requirements)
    record.sharing_restrictions = [dict(r) for r in policy.sharing_restrictions]


def _coerce_elements(elements) -> List[TraditionalElement]:
    coerced = []
    for element in elements:
        if isinstance(element, TraditionalElement):
            coerced.append(copy.deepcopy(element))
        elif isinstance(element, dict):
            coerced.append(TraditionalElement(**element))
        else:
            coerced.append(TraditionalElement(element=str(element)))
    return coerced


# Fields a submitter may correct after submission; sensitivity_level is draft-only
METADATA_FIELDS = (
    'curation_reason',
    'proposed_significance',
    'cultural_context',
    'cultural_protocols',
    'traditional_elements',
    'sensitivity_level',
)


def _parse_decision(decision) -> Decision:
    try:
        return Decision(decision)
    except ValueError:
        raise CurationValidationError(
            f"decision must be one of: {[d.value for d in Decision]}, got {decision!r}"
        )


class CurationRegistry:
    """Owns curation records and serializes every mutation per record id."""

    def __init__(self,
                 store: Optional[CurationStore] = None,
                 validator_directory: Optional[ValidatorDirectory] = None,
                 membership_resolver: Optional[MembershipResolver] = None,
                 content_store: Optional[ContentStore] = None,
                 report_sink: Optional[ReportSink] = None,
                 dispatcher: Optional[SideEffectDispatcher] = None):
        self._store = store if store is not None else InMemoryCurationStore()
        self._validator_directory = validator_directory or NullValidatorDirectory()
        self._membership_resolver = membership_resolver
        self._content_store = content_store
        self._report_sink = report_sink or NullReportSink()
        self._dispatcher = dispatcher or SideEffectDispatcher()

        self._records: Dict[str, CurationRecord] = {}
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

        self.assignment = ValidatorAssignmentEngine(self._validator_directory)
        self.experts = ExpertConsultationLedger()
        self.historical = HistoricalVerificationTracker()
        self.community = CommunityReviewAggregator()
        self.publication = PublicationStateMachine()

    # ------------------------------------------------------------------
    # Record access and commit plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, curation_id: str):
        """Hold the record's lock; the lock entry is dropped once no thread holds or waits on it."""
        with self._locks_guard:
            entry = self._locks.get(curation_id)
            if entry is None:
                entry = self._locks[curation_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[curation_id]

    def _current(self, curation_id: str, cache: bool = False) -> CurationRecord:
        """
        Committed version of a record, loading it from the store when it is not cached.

        Only callers holding the record lock may pass cache=True; an unlocked
        reader could otherwise cache a version a concurrent commit has replaced.
        """
        record = self._records.get(curation_id)
        if record is not None:
            return record

        loaded = self._store.load(curation_id)
        if loaded is None:
            raise RecordNotFound(f"curation {curation_id} not found", curation_id=curation_id)
        # Terminal records never change again; the store is their only copy
        if cache and not CurationStatus(loaded.status).is_terminal:
            with self._locks_guard:
                self._records[curation_id] = loaded
        return loaded

    def _commit(self, record: CurationRecord) -> CurationRecord:
        record.version += 1
        record.updated_at = datetime.now()
        self._store.save(record)
        with self._locks_guard:
            if CurationStatus(record.status).is_terminal:
                self._records.pop(record.id, None)
            else:
                self._records[record.id] = record
        return record

    def _mutate(self, curation_id: str, operation: Callable[[CurationRecord], None]) -> CurationRecord:
        """Run operation on a private copy under the record lock and commit it if anything changed."""
        with self._locked(curation_id):
            current = self._current(curation_id, cache=True)
            working = copy.deepcopy(current)
            operation(working)
            if working.to_dict() == current.to_dict():
                return copy.deepcopy(current)
            return copy.deepcopy(self._commit(working))

    def _advance_validation(self, record: CurationRecord) -> None:
        """Mark satisfied requests fulfilled and leave pending_validation once every required role is covered."""
        self.assignment.sync_fulfilled(record)
        if record.status == CurationStatus.PENDING_VALIDATION and self.assignment.all_roles_satisfied(record):
            self.publication.apply(record, CurationEvent.VALIDATORS_SATISFIED)

    def _enter_review(self, record: CurationRecord, requires_consultation: bool) -> Tuple[List[ValidationRequest], List[str]]:
        self.publication.submit(record, requires_consultation)
        if record.status != CurationStatus.PENDING_VALIDATION:
            return [], []

        outcome = self.assignment.assign_validators(record)
        # Evidence gathered before a revision may already cover every role
        self._advance_validation(record)
        return outcome.created, outcome.warnings

    def _notify_validators(self, curation_id: str, requests: List[ValidationRequest]) -> List[str]:
        if not requests:
            return []
        warning = self._dispatcher.run(
            "validator_notification", curation_id,
            self._validator_directory.notify, copy.deepcopy(requests),
        )
        return [warning] if warning else []

    def _append_evidence(self, curation_id: str, evidence_type: str,
                         operation: Callable[[CurationRecord], None]) -> CurationRecord:
        def guarded(record: CurationRecord):
            ensure_mutable(record)
            operation(record)

        try:
            snapshot = self._mutate(curation_id, guarded)
        except CurationValidationError as e:
            logger.log_evidence_rejected(curation_id, evidence_type, e.error_type, e.message)
            raise

        logger.log_evidence_appended(curation_id, evidence_type, {
            "validation_score": snapshot.validation_score,
            "accuracy_confidence": snapshot.accuracy_confidence,
            "verification_level": snapshot.verification_level.value,
            "status": snapshot.status.value,
        })
        return snapshot

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit_curation_request(self, request: CurationRequest) -> CurationResult:
        """
        Create a curation record and submit it.

        requires_consultation=True sends the record to pending_validation and
        issues validation requests; otherwise it goes straight to community_review.

        Raises:
            InvalidSensitivityLevel: unknown sensitivity level
            RecordNotFound: the content store does not know the subject
        """
        policy = resolve_sensitivity_policy(request.sensitivity_level)
        warnings = []

        if self._content_store is not None:
            try:
                subject = self._content_store.get_subject(request.subject_id)
            except Exception as e:
                logger.log_dispatch_failure("content_lookup", request.subject_id, str(e))
                warnings.append(f"subject lookup failed for {request.subject_id}: {e}")
            else:
                if subject is None:
                    raise RecordNotFound(f"subject {request.subject_id} not found")

        record = CurationRecord(
            id=uuid.uuid4().hex,
            subject_id=request.subject_id,
            submitter_id=request.submitter_id,
            submitted_at=datetime.now(),
            sensitivity_level=policy.level,
            traditional_elements=_coerce_elements(request.traditional_elements),
            cultural_protocols=list(request.cultural_protocols),
            curation_reason=request.curation_reason,
            proposed_significance=request.proposed_significance,
            cultural_context=request.cultural_context,
        )
        _apply_policy(record, policy)

        with self._locked(record.id):
            created, assignment_warnings = self._enter_review(record, request.requires_consultation)
            warnings.extend(assignment_warnings)
            snapshot = copy.deepcopy(self._commit(record))

        logger.log_curation_submitted(record.id, record.submitter_id, policy.level.value, snapshot.status.value)
        warnings.extend(self._notify_validators(record.id, created))
        return CurationResult(record=snapshot, warnings=warnings, validation_requests=created)

    def get_record(self, curation_id: str) -> CurationRecord:
        return copy.deepcopy(self._current(curation_id))

    def add_historical_source(self, curation_id: str, source: HistoricalSource) -> CurationResult:
        source = copy.deepcopy(source)
        snapshot = self._append_evidence(
            curation_id, "historical_source",
            lambda record: self.historical.add_source(record, source),
        )
        return CurationResult(record=snapshot)

    def consult_knowledge_keeper(self, curation_id: str, keeper: KnowledgeKeeperConsultation) -> CurationResult:
        keeper = copy.deepcopy(keeper)

        def operation(record: CurationRecord):
            self.historical.add_knowledge_keeper(record, keeper)
            self._advance_validation(record)

        return CurationResult(record=self._append_evidence(curation_id, "knowledge_keeper", operation))

    def submit_expert_validation(self, curation_id: str, expert_id: str,
                                 consultation: ExpertConsultation) -> CurationResult:
        consultation = copy.deepcopy(consultation)
        consultation.expert_id = expert_id

        def operation(record: CurationRecord):
            self.experts.add_consultation(record, consultation)
            self.historical.record_expert_evidence(record)
            self._advance_validation(record)

        return CurationResult(record=self._append_evidence(curation_id, "expert_consultation", operation))

    def submit_community_review(self, curation_id: str, reviewer_id: str, rating: int, review_type: str,
                                is_cultural_community_member: Optional[bool] = None,
                                feedback: str = "") -> CurationResult:
        """
        Record one community review.

        When the membership flag is omitted it is resolved through the
        membership collaborator; a resolver failure counts the reviewer as a
        general (non-member) reviewer and adds a warning.

        Raises:
            DuplicateReview, InvalidScoreRange, RecordNotFound, TerminalState
        """
        warnings = []
        if is_cultural_community_member is None:
            is_cultural_community_member, warning = self._resolve_membership(curation_id, reviewer_id)
            if warning:
                warnings.append(warning)

        review = CommunityReview(
            reviewer_id=reviewer_id,
            rating=rating,
            review_type=review_type,
            is_cultural_community_member=bool(is_cultural_community_member),
            feedback=feedback,
        )
        snapshot = self._append_evidence(
            curation_id, "community_review",
            lambda record: self.community.submit_review(record, review),
        )
        return CurationResult(record=snapshot, warnings=warnings)

    def _resolve_membership(self, curation_id: str, reviewer_id: str) -> Tuple[bool, Optional[str]]:
        record = self._current(curation_id)
        ensure_mutable(record)
        if self._membership_resolver is None:
            raise CurationValidationError(
                "is_cultural_community_member is required when no membership resolver is configured",
                curation_id=curation_id,
            )
        try:
            return bool(self._membership_resolver.is_cultural_community_member(
                reviewer_id, record.subject_id, record.cultural_context)), None
        except Exception as e:
            logger.log_dispatch_failure("membership_lookup", curation_id, str(e))
            return False, f"membership lookup failed for reviewer {reviewer_id}: {e}"

    def get_community_reviews(self, curation_id: str) -> List[CommunityReview]:
        return copy.deepcopy(list(self._current(curation_id).community_reviews.values()))

    def compute_consensus(self, curation_id: str) -> ConsensusResult:
        return self.community.compute_consensus(self._current(curation_id))

    def assign_validators(self, curation_id: str) -> CurationResult:
        """Issue requests for required roles that are neither satisfied nor pending; safe to repeat."""
        outcomes = []

        def operation(record: CurationRecord):
            ensure_mutable(record)
            outcomes.append(self.assignment.assign_validators(record))

        snapshot = self._mutate(curation_id, operation)
        outcome = outcomes[0]
        warnings = list(outcome.warnings) + self._notify_validators(curation_id, outcome.created)
        return CurationResult(
            record=snapshot,
            warnings=warnings,
            validation_requests=copy.deepcopy(outcome.outstanding),
        )

    def make_publication_decision(self, curation_id: str, decision, visibility=None,
                                  notes: str = "", conditions: Optional[List[str]] = None) -> CurationResult:
        """
        The only path to published or archived.

        The sensitivity gate is re-checked here, at decision time.

        Raises:
            TerminalState, SensitivityGateUnmet, InvalidTransition, RecordNotFound
        """
        decision = _parse_decision(decision)
        if visibility is not None:
            try:
                visibility = Visibility(visibility)
            except ValueError:
                raise CurationValidationError(f"unknown visibility {visibility!r}", curation_id=curation_id)

        snapshot = self._mutate(
            curation_id,
            lambda record: self.publication.decide(record, decision, visibility, notes, conditions),
        )

        audit_event(
            event_type="publication_decision",
            identifiers={"curation_id": curation_id, "decision": decision.value},
            payload={"status": snapshot.status.value, "notes": notes},
        )

        warnings = []
        if snapshot.status == CurationStatus.PUBLISHED:
            event = {
                "event": "curation_published",
                "curation_id": snapshot.id,
                "subject_id": snapshot.subject_id,
                "sensitivity_level": snapshot.sensitivity_level.value,
                "visibility": snapshot.visibility.value,
                "published_at": snapshot.published_at.isoformat(),
                "impact_metrics": asdict(snapshot.impact_metrics),
            }
            warning = self._dispatcher.run("report", curation_id, self._report_sink.publish, event)
            if warning:
                warnings.append(warning)

        return CurationResult(record=snapshot, warnings=warnings)

    def _change_sensitivity(self, record: CurationRecord, policy: SensitivityPolicy) -> None:
        if record.status != CurationStatus.DRAFT:
            raise InvalidTransition(
                f"sensitivity of curation {record.id} is frozen in status {record.status.value}",
                curation_id=record.id,
                status=record.status.value,
            )
        _apply_policy(record, policy)
        required = set(self.assignment.required_roles(record))
        record.validation_requests = [
            r for r in record.validation_requests
            if r.status != PENDING or ValidatorRole(r.role) in required
        ]

    def update_sensitivity(self, curation_id: str, sensitivity_level) -> CurationResult:
        """Change the sensitivity level; only allowed while the record is a draft."""
        policy = resolve_sensitivity_policy(sensitivity_level)

        def operation(record: CurationRecord):
            ensure_mutable(record)
            self._change_sensitivity(record, policy)

        snapshot = self._mutate(curation_id, operation)
        audit_event(
            event_type="sensitivity_changed",
            identifiers={"curation_id": curation_id, "sensitivity_level": policy.level.value},
        )
        return CurationResult(record=snapshot)

    def update_metadata(self, curation_id: str, **fields) -> CurationResult:
        """
        Merge corrected descriptive fields into a record; omitted fields keep their value.

        Accepts curation_reason, proposed_significance, cultural_context,
        cultural_protocols, traditional_elements and sensitivity_level. A
        sensitivity change follows the same draft-only rule as update_sensitivity.

        Raises:
            CurationValidationError: unknown field, or no fields given
            InvalidSensitivityLevel, InvalidTransition, TerminalState, RecordNotFound
        """
        unknown = sorted(set(fields) - set(METADATA_FIELDS))
        if unknown:
            raise CurationValidationError(
                f"cannot update {unknown}; updatable fields are {list(METADATA_FIELDS)}",
                curation_id=curation_id,
            )
        if not fields:
            raise CurationValidationError("no metadata fields to update", curation_id=curation_id)

        policy = None
        if 'sensitivity_level' in fields:
            policy = resolve_sensitivity_policy(fields['sensitivity_level'])

        def operation(record: CurationRecord):
            ensure_mutable(record)
            if policy is not None:
                self._change_sensitivity(record, policy)
            for name in ('curation_reason', 'proposed_significance', 'cultural_context'):
                if name in fields:
                    setattr(record, name, fields[name] or "")
            if 'cultural_protocols' in fields:
                record.cultural_protocols = list(fields['cultural_protocols'] or [])
            if 'traditional_elements' in fields:
                record.traditional_elements = _coerce_elements(fields['traditional_elements'] or [])

        snapshot = self._mutate(curation_id, operation)
        audit_event(
            event_type="metadata_updated",
            identifiers={"curation_id": curation_id, "version": snapshot.version},
            payload={"fields": sorted(fields)},
        )
        return CurationResult(record=snapshot)

    def resubmit(self, curation_id: str, requires_consultation: bool = True) -> CurationResult:
        """Submit a draft (e.g. after request_revision) back into the pipeline."""
        created = []
        warnings = []

        def operation(record: CurationRecord):
            new_requests, assignment_warnings = self._enter_review(record, requires_consultation)
            created.extend(new_requests)
            warnings.extend(assignment_warnings)

        snapshot = self._mutate(curation_id, operation)
        warnings.extend(self._notify_validators(curation_id, created))
        return CurationResult(record=snapshot, warnings=warnings, validation_requests=copy.deepcopy(created))

    # ------------------------------------------------------------------
    # Queries and reporting
    # ------------------------------------------------------------------

    def list_records(self) -> List[CurationRecord]:
        """All records: the store's view overlaid with committed in-process versions."""
        records = {r.id: r for r in self._store.list_all()}
        with self._locks_guard:
            cached = dict(self._records)
        records.update(cached)
        return [copy.deepcopy(r) for r in records.values()]

    def list_by_submitter(self, submitter_id: str) -> List[CurationRecord]:
        return [r for r in self.list_records() if r.submitter_id == submitter_id]

    def get_pending_validations(self, role=None, validator_id: Optional[str] = None) -> List[ValidationRequest]:
        if role is not None:
            try:
                role = ValidatorRole(role)
            except ValueError:
                raise CurationValidationError(
                    f"role must be one of: {[r.value for r in ValidatorRole]}, got {role!r}"
                )
        pending = []
        for record in self.list_records():
            for request in self.assignment.outstanding_requests(record):
                if role is not None and ValidatorRole(request.role) != role:
                    continue
                if validator_id is not None and request.validator_id != validator_id:
                    continue
                pending.append(request)
        return pending

    def query_published(self, sensitivity_level=None, cultural_context: Optional[str] = None) -> List[CurationRecord]:
        level = parse_sensitivity_level(sensitivity_level) if sensitivity_level else None
        return query_published(self.list_records(), level, cultural_context)

    def generate_curation_report(self, start: datetime, end: datetime) -> CurationReport:
        return generate_curation_report(self.list_records(), start, end)

    def close(self):
        self._dispatcher.shutdown(wait=False)
