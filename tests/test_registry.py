"""
Curation registry tests - end-to-end lifecycle, collaborator handling and per-record serialization.
"""

import threading
import pytest
from unittest.mock import MagicMock

from curation.core.dao import InMemoryCurationStore
from curation.core.dispatch import SideEffectDispatcher
from curation.core.errors import (
    CurationValidationError,
    DuplicateReview,
    InvalidScoreRange,
    InvalidSensitivityLevel,
    InvalidTransition,
    RecordNotFound,
    SensitivityGateUnmet,
    TerminalState,
)
from curation.core.registry import CurationRegistry
from curation.core.schema import (
    CurationStatus,
    ExpertConsultation,
    HistoricalSource,
    KnowledgeKeeperConsultation,
    SensitivityLevel,
    ValidatorRole,
    VerificationLevel,
    Visibility,
)


def _expert(expert_type="cultural_expert", confidence=85, expert_id="ce-1"):
    return ExpertConsultation(expert_id=expert_id, expert_type=expert_type, confidence=confidence,
                              findings="Motifs consistent with regional practice")


def _keeper(keeper_id="elder-1"):
    return KnowledgeKeeperConsultation(keeper_id=keeper_id, community="Quechua", notes="Shared with consent")


def _review(registry, curation_id, reviewer_id, rating=8, member=True):
    return registry.submit_community_review(curation_id, reviewer_id, rating, "accuracy",
                                            is_cultural_community_member=member)


class TestSubmitCurationRequest:

    def test_submit_without_consultation_goes_to_community_review(self, registry, make_request):
        result = registry.submit_curation_request(make_request())
        record = result.record

        assert record.status == CurationStatus.COMMUNITY_REVIEW
        assert record.version == 1
        assert record.validation_requests == []
        assert record.traditional_elements[0].element == "backstrap weaving"
        assert record.traditional_elements[0].authenticity == "verified"
        assert result.warnings == []

    def test_submit_with_consultation_assigns_validators(self, registry, make_request, validator_directory):
        result = registry.submit_curation_request(
            make_request(sensitivity_level="sacred", requires_consultation=True)
        )

        assert result.record.status == CurationStatus.PENDING_VALIDATION
        assert {r.role for r in result.validation_requests} == {
            ValidatorRole.CULTURAL_EXPERT,
            ValidatorRole.HISTORIAN,
            ValidatorRole.TRADITIONAL_KNOWLEDGE_KEEPER,
        }
        assert len(validator_directory.notified) == 3

    def test_policy_applied_to_record(self, registry, make_request):
        record = registry.submit_curation_request(make_request(sensitivity_level="sacred")).record

        assert record.sensitivity_level == SensitivityLevel.SACRED
        assert 'Cultural protocols required' in record.access_restrictions
        assert 'sacred_content' in [r['restriction_type'] for r in record.sharing_restrictions]

    def test_invalid_sensitivity_creates_nothing(self, registry, make_request):
        with pytest.raises(InvalidSensitivityLevel):
            registry.submit_curation_request(make_request(sensitivity_level="top_secret"))

        assert registry.list_records() == []

    def test_unknown_subject_rejected(self, make_request):
        content_store = MagicMock()
        content_store.get_subject.return_value = None
        registry = CurationRegistry(content_store=content_store)

        with pytest.raises(RecordNotFound):
            registry.submit_curation_request(make_request())
        registry.close()

    def test_content_store_outage_is_a_warning(self, make_request):
        content_store = MagicMock()
        content_store.get_subject.side_effect = ConnectionError("content service down")
        registry = CurationRegistry(content_store=content_store)

        result = registry.submit_curation_request(make_request())

        assert result.record.status == CurationStatus.COMMUNITY_REVIEW
        assert "content service down" in result.warnings[0]
        registry.close()

    def test_notification_failure_is_a_warning(self, make_request):
        directory = MagicMock()
        directory.lookup.return_value = "ce-9"
        directory.notify.side_effect = RuntimeError("mail relay refused")
        registry = CurationRegistry(validator_directory=directory)

        result = registry.submit_curation_request(make_request(requires_consultation=True))

        assert result.record.status == CurationStatus.PENDING_VALIDATION
        assert any("mail relay refused" in w for w in result.warnings)
        assert registry.get_record(result.record.id).validation_requests[0].validator_id == "ce-9"
        registry.close()


class TestEvidence:

    def test_two_experts_average(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        registry.submit_expert_validation(curation_id, "ce-1", _expert(confidence=80))
        record = registry.submit_expert_validation(curation_id, "hist-1", _expert("historian", 92)).record

        assert record.validation_score == 86.0
        assert [c.expert_id for c in record.expert_consultations] == ["ce-1", "hist-1"]

    def test_expert_id_argument_wins(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        record = registry.submit_expert_validation(curation_id, "ce-2", _expert(expert_id="someone-else")).record

        assert record.expert_consultations[0].expert_id == "ce-2"

    def test_invalid_confidence_leaves_record_unchanged(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        before = registry.get_record(curation_id)

        with pytest.raises(InvalidScoreRange):
            registry.submit_expert_validation(curation_id, "ce-1", _expert(confidence=150))

        after = registry.get_record(curation_id)
        assert after.to_dict() == before.to_dict()

    def test_mixed_evidence_resolves_to_validated(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        registry.add_historical_source(curation_id, HistoricalSource(source_id="p", reliability=9))
        registry.add_historical_source(curation_id, HistoricalSource(source_id="s", reliability=5))
        registry.submit_expert_validation(curation_id, "ce-1", _expert())
        record = registry.consult_knowledge_keeper(curation_id, _keeper()).record

        assert record.verification_level == VerificationLevel.VALIDATED
        assert len(record.primary_sources) == 1
        assert len(record.secondary_sources) == 1

    def test_source_confidence_and_keeper_bonus(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        record = registry.add_historical_source(curation_id, HistoricalSource(source_id="p", reliability=9)).record
        assert record.accuracy_confidence == 20.0

        record = registry.consult_knowledge_keeper(curation_id, _keeper()).record
        assert record.accuracy_confidence == 40.0

    def test_version_increments_per_mutation(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        registry.add_historical_source(curation_id, HistoricalSource(source_id="p", reliability=9))
        record = registry.consult_knowledge_keeper(curation_id, _keeper()).record

        assert record.version == 3
        assert record.updated_at is not None

    def test_snapshots_are_isolated(self, registry, make_request):
        snapshot = registry.submit_curation_request(make_request()).record
        snapshot.status = CurationStatus.PUBLISHED
        snapshot.historical_sources.append(HistoricalSource(source_id="x", reliability=1))

        stored = registry.get_record(snapshot.id)
        assert stored.status == CurationStatus.COMMUNITY_REVIEW
        assert stored.historical_sources == []

    def test_unknown_record(self, registry):
        with pytest.raises(RecordNotFound):
            registry.add_historical_source("missing", HistoricalSource(source_id="p", reliability=9))
        with pytest.raises(RecordNotFound):
            registry.get_record("missing")


class TestValidationFlow:

    def test_required_expert_advances_to_community_review(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request(requires_consultation=True)).record.id

        record = registry.submit_expert_validation(curation_id, "ce-1", _expert()).record

        assert record.status == CurationStatus.COMMUNITY_REVIEW
        assert registry.get_pending_validations() == []

    def test_sacred_needs_every_role(self, registry, make_request):
        curation_id = registry.submit_curation_request(
            make_request(sensitivity_level="sacred", requires_consultation=True)
        ).record.id

        record = registry.submit_expert_validation(curation_id, "ce-1", _expert()).record
        assert record.status == CurationStatus.PENDING_VALIDATION

        record = registry.submit_expert_validation(curation_id, "hist-1", _expert("historian", 70)).record
        assert record.status == CurationStatus.PENDING_VALIDATION

        record = registry.consult_knowledge_keeper(curation_id, _keeper()).record
        assert record.status == CurationStatus.COMMUNITY_REVIEW
        assert all(r.status == "fulfilled" for r in record.validation_requests)

    def test_assign_validators_twice_is_idempotent(self, registry, make_request):
        curation_id = registry.submit_curation_request(
            make_request(sensitivity_level="restricted", requires_consultation=True)
        ).record.id

        first = registry.assign_validators(curation_id)
        second = registry.assign_validators(curation_id)

        assert {r.request_id for r in first.validation_requests} == \
            {r.request_id for r in second.validation_requests}
        assert len(second.validation_requests) == 2
        assert registry.get_record(curation_id).version == 1

    def test_pending_validations_filter(self, registry, make_request):
        registry.submit_curation_request(make_request(sensitivity_level="restricted", requires_consultation=True))

        assert len(registry.get_pending_validations()) == 2
        assert [r.validator_id for r in registry.get_pending_validations(role="historian")] == ["hist-1"]
        assert len(registry.get_pending_validations(validator_id="ce-1")) == 1

        with pytest.raises(CurationValidationError):
            registry.get_pending_validations(role="astronomer")

    def test_revision_then_resubmit_with_new_sensitivity(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request(requires_consultation=True)).record.id

        record = registry.make_publication_decision(curation_id, "request_revision", notes="Add provenance").record
        assert record.status == CurationStatus.DRAFT

        record = registry.update_sensitivity(curation_id, "restricted").record
        assert record.sensitivity_level == SensitivityLevel.RESTRICTED

        result = registry.resubmit(curation_id, requires_consultation=True)
        assert result.record.status == CurationStatus.PENDING_VALIDATION
        assert [r.role for r in result.validation_requests] == [ValidatorRole.HISTORIAN]

    def test_sensitivity_frozen_outside_draft(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        with pytest.raises(InvalidTransition):
            registry.update_sensitivity(curation_id, "sacred")
        assert registry.get_record(curation_id).sensitivity_level == SensitivityLevel.PUBLIC


class TestUpdateMetadata:

    def test_partial_update_keeps_other_fields(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        record = registry.update_metadata(
            curation_id,
            curation_reason="Museum loan",
            traditional_elements=["backstrap weaving", {"element": "cochineal dye", "authenticity": "disputed"}],
        ).record

        assert record.curation_reason == "Museum loan"
        assert [e.element for e in record.traditional_elements] == ["backstrap weaving", "cochineal dye"]
        assert record.traditional_elements[1].authenticity == "disputed"
        assert record.proposed_significance == "Regional textile tradition"
        assert record.cultural_context == "Andean textiles"
        assert record.cultural_protocols == ["attribution"]
        assert record.status == CurationStatus.COMMUNITY_REVIEW
        assert record.version == 2

    def test_same_values_do_not_bump_version(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        record = registry.update_metadata(curation_id, cultural_context="Andean textiles").record

        assert record.version == 1

    def test_terminal_record_rejected(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        registry.make_publication_decision(curation_id, "approve")

        with pytest.raises(TerminalState):
            registry.update_metadata(curation_id, proposed_significance="Rewritten")
        assert registry.get_record(curation_id).proposed_significance == "Regional textile tradition"

    def test_sensitivity_frozen_outside_draft(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        with pytest.raises(InvalidTransition):
            registry.update_metadata(curation_id, sensitivity_level="sacred", curation_reason="Elder request")

        record = registry.get_record(curation_id)
        assert record.sensitivity_level == SensitivityLevel.PUBLIC
        assert record.curation_reason == "Community exhibition"

    def test_sensitivity_changes_in_draft(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        registry.make_publication_decision(curation_id, "request_revision")

        record = registry.update_metadata(curation_id, sensitivity_level="restricted",
                                          cultural_protocols=[]).record

        assert record.sensitivity_level == SensitivityLevel.RESTRICTED
        assert 'Limited sharing' in record.access_restrictions
        assert record.cultural_protocols == []

    def test_invalid_sensitivity(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        with pytest.raises(InvalidSensitivityLevel):
            registry.update_metadata(curation_id, sensitivity_level="secret")

    def test_unknown_or_missing_fields(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        with pytest.raises(CurationValidationError):
            registry.update_metadata(curation_id, submitter_id="curator-9")
        with pytest.raises(CurationValidationError):
            registry.update_metadata(curation_id)
        assert registry.get_record(curation_id).submitter_id == "curator-1"

    def test_unknown_record(self, registry):
        with pytest.raises(RecordNotFound):
            registry.update_metadata("missing", curation_reason="x")


class TestCommunityReviews:

    def test_five_review_consensus(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        for i, rating in enumerate([9, 8, 7, 6, 5]):
            _review(registry, curation_id, f"r-{i}", rating, member=i < 2)

        consensus = registry.compute_consensus(curation_id)

        assert consensus.overall_average == 7.0
        assert consensus.cultural_average == 8.5
        assert consensus.verdict == "approved"
        assert consensus.confidence == 50

    def test_duplicate_review(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        _review(registry, curation_id, "r-1")

        with pytest.raises(DuplicateReview):
            _review(registry, curation_id, "r-1", rating=2)

        reviews = registry.get_community_reviews(curation_id)
        assert len(reviews) == 1
        assert reviews[0].rating == 8

    def test_membership_resolved_by_collaborator(self, make_request):
        resolver = MagicMock()
        resolver.is_cultural_community_member.return_value = True
        registry = CurationRegistry(membership_resolver=resolver)
        record = registry.submit_curation_request(make_request()).record

        registry.submit_community_review(record.id, "r-1", 9, "accuracy")

        resolver.is_cultural_community_member.assert_called_once_with("r-1", "artifact-001", "Andean textiles")
        assert registry.get_community_reviews(record.id)[0].is_cultural_community_member is True
        registry.close()

    def test_membership_lookup_failure_counts_as_general(self, make_request):
        resolver = MagicMock()
        resolver.is_cultural_community_member.side_effect = TimeoutError("identity service slow")
        registry = CurationRegistry(membership_resolver=resolver)
        curation_id = registry.submit_curation_request(make_request()).record.id

        result = registry.submit_community_review(curation_id, "r-1", 9, "accuracy")

        assert "identity service slow" in result.warnings[0]
        assert registry.get_community_reviews(curation_id)[0].is_cultural_community_member is False
        registry.close()

    def test_membership_required_without_resolver(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        with pytest.raises(CurationValidationError):
            registry.submit_community_review(curation_id, "r-1", 9, "accuracy")
        assert registry.get_community_reviews(curation_id) == []

    def test_review_without_flag_on_terminal_record(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        registry.make_publication_decision(curation_id, "reject")

        with pytest.raises(TerminalState):
            registry.submit_community_review(curation_id, "r-1", 9, "accuracy")

    def test_terminal_record_skips_membership_lookup(self, make_request):
        resolver = MagicMock()
        registry = CurationRegistry(membership_resolver=resolver)
        curation_id = registry.submit_curation_request(make_request()).record.id
        registry.make_publication_decision(curation_id, "approve")

        with pytest.raises(TerminalState):
            registry.submit_community_review(curation_id, "r-1", 9, "accuracy")
        resolver.is_cultural_community_member.assert_not_called()
        registry.close()


class TestPublicationDecision:

    def test_sacred_gate_then_publish(self, registry, make_request, report_sink):
        curation_id = registry.submit_curation_request(make_request(sensitivity_level="sacred")).record.id
        assert registry.get_record(curation_id).status == CurationStatus.COMMUNITY_REVIEW

        with pytest.raises(SensitivityGateUnmet):
            registry.make_publication_decision(curation_id, "approve")
        assert registry.get_record(curation_id).status == CurationStatus.COMMUNITY_REVIEW
        assert report_sink.events == []

        registry.consult_knowledge_keeper(curation_id, _keeper())
        _review(registry, curation_id, "r-1", 9)
        result = registry.make_publication_decision(curation_id, "approve", visibility="community_only")

        record = result.record
        assert record.status == CurationStatus.PUBLISHED
        assert record.visibility == Visibility.COMMUNITY_ONLY
        assert record.published_at is not None
        assert record.impact_metrics.community_engagement == 1
        assert result.warnings == []
        assert report_sink.events[0]["event"] == "curation_published"
        assert report_sink.events[0]["curation_id"] == curation_id

    def test_reject_archives_and_freezes(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        record = registry.make_publication_decision(curation_id, "reject").record
        assert record.status == CurationStatus.ARCHIVED

        operations = [
            lambda: registry.add_historical_source(curation_id, HistoricalSource(source_id="p", reliability=9)),
            lambda: registry.consult_knowledge_keeper(curation_id, _keeper()),
            lambda: registry.submit_expert_validation(curation_id, "ce-1", _expert()),
            lambda: _review(registry, curation_id, "r-1"),
            lambda: registry.make_publication_decision(curation_id, "approve"),
            lambda: registry.make_publication_decision(curation_id, "request_revision"),
            lambda: registry.assign_validators(curation_id),
            lambda: registry.update_sensitivity(curation_id, "sacred"),
            lambda: registry.resubmit(curation_id),
        ]
        for operation in operations:
            with pytest.raises(TerminalState):
                operation()

        assert registry.get_record(curation_id).status == CurationStatus.ARCHIVED
        assert registry.get_record(curation_id).version == record.version

    def test_published_record_cannot_leave_published(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        registry.make_publication_decision(curation_id, "approve")

        for decision in ["approve", "reject", "request_revision"]:
            with pytest.raises(TerminalState):
                registry.make_publication_decision(curation_id, decision)
        assert registry.get_record(curation_id).status == CurationStatus.PUBLISHED

    def test_report_sink_failure_is_a_warning(self, make_request):
        sink = MagicMock()
        sink.publish.side_effect = RuntimeError("analytics unavailable")
        registry = CurationRegistry(report_sink=sink)
        curation_id = registry.submit_curation_request(make_request()).record.id

        result = registry.make_publication_decision(curation_id, "approve")

        assert result.record.status == CurationStatus.PUBLISHED
        assert "analytics unavailable" in result.warnings[0]
        registry.close()

    def test_unknown_decision(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        with pytest.raises(CurationValidationError):
            registry.make_publication_decision(curation_id, "maybe")


class TestConcurrency:

    def test_parallel_reviews_all_recorded(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        errors = []

        def submit(i):
            try:
                _review(registry, curation_id, f"r-{i}", rating=(i % 10) + 1)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=submit, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        record = registry.get_record(curation_id)
        assert errors == []
        assert len(record.community_reviews) == 20
        assert record.version == 21

    def test_same_reviewer_race_accepts_one(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        outcomes = []
        barrier = threading.Barrier(8)

        def submit():
            barrier.wait()
            try:
                _review(registry, curation_id, "r-same")
                outcomes.append("ok")
            except DuplicateReview:
                outcomes.append("duplicate")

        threads = [threading.Thread(target=submit) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == 7
        assert len(registry.get_community_reviews(curation_id)) == 1

    def test_mixed_evidence_in_parallel(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id
        confidences = [60, 70, 80, 90]

        threads = [
            threading.Thread(target=registry.submit_expert_validation,
                             args=(curation_id, f"e-{i}", _expert(confidence=c)))
            for i, c in enumerate(confidences)
        ] + [
            threading.Thread(target=registry.add_historical_source,
                             args=(curation_id, HistoricalSource(source_id=f"s-{i}", reliability=9)))
            for i in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        record = registry.get_record(curation_id)
        assert record.validation_score == 75.0
        assert len(record.historical_sources) == 4
        assert record.verification_level == VerificationLevel.EXPERT_VERIFIED


class TestRegistryQueries:

    def test_list_by_submitter(self, registry, make_request):
        registry.submit_curation_request(make_request(submitter_id="curator-1"))
        registry.submit_curation_request(make_request(submitter_id="curator-2"))
        registry.submit_curation_request(make_request(submitter_id="curator-1"))

        assert len(registry.list_by_submitter("curator-1")) == 2
        assert registry.list_by_submitter("nobody") == []

    def test_records_reload_from_store(self, make_request):
        store = InMemoryCurationStore()
        first = CurationRegistry(store=store)
        curation_id = first.submit_curation_request(make_request()).record.id
        first.add_historical_source(curation_id, HistoricalSource(source_id="p", reliability=9))
        first.close()

        second = CurationRegistry(store=store, dispatcher=SideEffectDispatcher(max_workers=1))
        record = second.get_record(curation_id)

        assert record.version == 2
        assert record.primary_sources[0].source_id == "p"
        second.close()


class TestCacheAndLocks:

    def test_terminal_records_leave_the_cache(self, registry, make_request):
        published = registry.submit_curation_request(make_request()).record.id
        archived = registry.submit_curation_request(make_request()).record.id
        open_id = registry.submit_curation_request(make_request()).record.id

        registry.make_publication_decision(published, "approve")
        registry.make_publication_decision(archived, "reject")

        assert set(registry._records) == {open_id}
        assert registry.get_record(published).status == CurationStatus.PUBLISHED
        assert registry.get_record(archived).status == CurationStatus.ARCHIVED
        assert {r.id for r in registry.list_records()} == {published, archived, open_id}
        assert [r.id for r in registry.query_published()] == [published]

    def test_reads_do_not_populate_cache(self, make_request):
        store = InMemoryCurationStore()
        writer = CurationRegistry(store=store)
        curation_id = writer.submit_curation_request(make_request()).record.id
        writer.close()

        reader = CurationRegistry(store=store)
        reader.get_record(curation_id)
        assert reader._records == {}

        reader.add_historical_source(curation_id, HistoricalSource(source_id="p", reliability=9))
        assert set(reader._records) == {curation_id}
        reader.close()

    def test_lock_entries_released(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        threads = [
            threading.Thread(target=_review, args=(registry, curation_id, f"r-{i}"))
            for i in range(10)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert registry._locks == {}
        assert registry.get_record(curation_id).version == 11

    def test_lock_entry_released_after_failure(self, registry, make_request):
        curation_id = registry.submit_curation_request(make_request()).record.id

        with pytest.raises(InvalidScoreRange):
            registry.submit_expert_validation(curation_id, "ce-1", _expert(confidence=140))

        assert registry._locks == {}
