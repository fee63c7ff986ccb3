"""
Shared fixtures for curation tests.
"""

import pytest

from curation.core.collaborators import StaticValidatorDirectory
from curation.core.dao import InMemoryCurationStore
from curation.core.dispatch import SideEffectDispatcher
from curation.core.registry import CurationRegistry
from curation.core.schema import CurationRequest


class RecordingReportSink:
    """Report sink that keeps every published event."""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)


@pytest.fixture
def validator_directory():
    return StaticValidatorDirectory({
        "cultural_expert": ["ce-1", "ce-2"],
        "historian": ["hist-1"],
        "traditional_knowledge_keeper": ["tkk-1"],
        "academic": ["acad-1"],
    })


@pytest.fixture
def report_sink():
    return RecordingReportSink()


@pytest.fixture
def registry(validator_directory, report_sink):
    """Fresh in-memory registry for each test."""
    reg = CurationRegistry(
        store=InMemoryCurationStore(),
        validator_directory=validator_directory,
        report_sink=report_sink,
        dispatcher=SideEffectDispatcher(max_workers=2, timeout_sec=2.0),
    )
    yield reg
    reg.close()


@pytest.fixture
def make_request():
    """Factory for curation requests with sensible defaults."""
    def _make(**overrides):
        fields = dict(
            subject_id="artifact-001",
            submitter_id="curator-1",
            sensitivity_level="public",
            traditional_elements=["backstrap weaving"],
            requires_consultation=False,
            cultural_protocols=["attribution"],
            curation_reason="Community exhibition",
            proposed_significance="Regional textile tradition",
            cultural_context="Andean textiles",
        )
        fields.update(overrides)
        return CurationRequest(**fields)
    return _make
