"""
Curation domain core: the registry aggregate root and the components it composes.
"""

from .registry import CurationRegistry, CurationResult
from .schema import (
    CurationRecord,
    CurationRequest,
    CurationStatus,
    ExpertConsultation,
    HistoricalSource,
    KnowledgeKeeperConsultation,
    SensitivityLevel,
    ValidatorRole,
)
from .errors import CurationError

__all__ = [
    'CurationRegistry',
    'CurationResult',
    'CurationRecord',
    'CurationRequest',
    'CurationStatus',
    'ExpertConsultation',
    'HistoricalSource',
    'KnowledgeKeeperConsultation',
    'SensitivityLevel',
    'ValidatorRole',
    'CurationError'
]
