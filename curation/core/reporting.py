"""
Read-side queries over curation records: published listings and period reports.
Pure functions over record snapshots; nothing here mutates a record.
"""

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .config import REPORT_TOP_N
from .schema import CurationRecord, CurationStatus, SensitivityLevel


@dataclass
class CurationReport:
    start: datetime
    end: datetime
    total_curations: int = 0
    published_curations: int = 0
    archived_curations: int = 0
    publication_rate: float = 0.0
    average_validation_score: float = 0.0
    cultural_distribution: Dict[str, int] = field(default_factory=dict)
    sensitivity_distribution: Dict[str, int] = field(default_factory=dict)
    verification_distribution: Dict[str, int] = field(default_factory=dict)
    top_curations: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['start'] = self.start.isoformat()
        data['end'] = self.end.isoformat()
        return data


def to_naive_local(value: datetime) -> datetime:
    """Records carry naive local timestamps; convert aware bounds before comparing."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def engagement_of(record: CurationRecord) -> int:
    return record.impact_metrics.community_engagement if record.impact_metrics else 0


def _matches_culture(record: CurationRecord, needle: str) -> bool:
    if needle in (record.cultural_context or "").lower():
        return True
    return any(needle in element.element.lower() for element in record.traditional_elements)


def query_published(records: Iterable[CurationRecord],
                    sensitivity_level: Optional[SensitivityLevel] = None,
                    cultural_context: Optional[str] = None) -> List[CurationRecord]:
    """
    Published records, optionally filtered, most engaged first.

    Args:
        sensitivity_level: exact sensitivity match
        cultural_context: case-insensitive substring of the record's cultural
            context or of any traditional element
    """
    results = [r for r in records if r.status == CurationStatus.PUBLISHED]

    if sensitivity_level is not None:
        level = SensitivityLevel(sensitivity_level)
        results = [r for r in results if r.sensitivity_level == level]

    if cultural_context:
        needle = cultural_context.lower()
        results = [r for r in results if _matches_culture(r, needle)]

    return sorted(results, key=engagement_of, reverse=True)


def _in_window(record: CurationRecord, start: datetime, end: datetime) -> bool:
    if record.status == CurationStatus.PUBLISHED and record.published_at:
        return start <= record.published_at <= end
    if record.status == CurationStatus.ARCHIVED and record.updated_at:
        return start <= record.updated_at <= end
    return False


def generate_curation_report(records: Iterable[CurationRecord], start: datetime, end: datetime,
                             top_n: int = None) -> CurationReport:
    """Summarize curations that reached a terminal status (published or archived) inside [start, end]."""
    start, end = to_naive_local(start), to_naive_local(end)
    top_n = REPORT_TOP_N if top_n is None else top_n

    in_window = [r for r in records if _in_window(r, start, end)]
    report = CurationReport(start=start, end=end)
    if not in_window:
        return report

    published = [r for r in in_window if r.status == CurationStatus.PUBLISHED]

    report.total_curations = len(in_window)
    report.published_curations = len(published)
    report.archived_curations = len(in_window) - len(published)
    report.publication_rate = (len(published) / len(in_window)) * 100
    report.average_validation_score = sum(r.validation_score for r in in_window) / len(in_window)
    report.cultural_distribution = dict(Counter(r.cultural_context or "unspecified" for r in in_window))
    report.sensitivity_distribution = dict(Counter(SensitivityLevel(r.sensitivity_level).value for r in in_window))
    report.verification_distribution = dict(Counter(r.verification_level.value for r in in_window))
    report.top_curations = [
        {
            'id': r.id,
            'cultural_significance': r.proposed_significance,
            'engagement': engagement_of(r),
        }
        for r in sorted(published, key=engagement_of, reverse=True)[:top_n]
    ]
    return report
