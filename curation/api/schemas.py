"""
Request/response models for the curation HTTP API.
Enum-valued fields are checked here so bad input is rejected before it reaches the registry.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..core.schema import (
    Decision,
    ReviewType,
    SensitivityLevel,
    ValidatorRole,
    Visibility,
    SOURCE_TYPES,
)


def _one_of(value, enum_cls, field_name):
    valid = [e.value for e in enum_cls]
    if value not in valid:
        raise ValueError(f'{field_name} must be one of: {valid}')
    return value


def _not_blank(value, field_name):
    if not value.strip():
        raise ValueError(f'{field_name} cannot be empty')
    return value


class CurationCreateRequest(BaseModel):
    subject_id: str
    submitter_id: str
    sensitivity_level: str
    traditional_elements: List[str] = []
    requires_consultation: bool = True
    cultural_protocols: List[str] = []
    curation_reason: str = ""
    proposed_significance: str = ""
    cultural_context: str = ""

    @field_validator('subject_id')
    @classmethod
    def subject_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'subject_id')

    @field_validator('submitter_id')
    @classmethod
    def submitter_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'submitter_id')

    @field_validator('sensitivity_level')
    @classmethod
    def sensitivity_level_must_be_valid(cls, v):
        return _one_of(v, SensitivityLevel, 'sensitivity_level')


class HistoricalSourceRequest(BaseModel):
    source_id: str
    reliability: float
    source_type: str = "document"
    title: str = ""
    cultural_context: str = ""

    @field_validator('source_id')
    @classmethod
    def source_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'source_id')

    @field_validator('source_type')
    @classmethod
    def source_type_must_be_valid(cls, v):
        if v not in SOURCE_TYPES:
            raise ValueError(f'source_type must be one of: {SOURCE_TYPES}')
        return v


class KnowledgeKeeperRequest(BaseModel):
    keeper_id: str
    community: str
    notes: str = ""
    cultural_role: str = ""

    @field_validator('keeper_id')
    @classmethod
    def keeper_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'keeper_id')


class ExpertValidationRequest(BaseModel):
    expert_id: str
    expert_type: str
    confidence: float
    findings: str = ""
    recommendations: List[str] = []

    @field_validator('expert_id')
    @classmethod
    def expert_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'expert_id')

    @field_validator('expert_type')
    @classmethod
    def expert_type_must_be_valid(cls, v):
        return _one_of(v, ValidatorRole, 'expert_type')


class CommunityReviewRequest(BaseModel):
    reviewer_id: str
    rating: int
    review_type: str
    is_cultural_community_member: Optional[bool] = None
    feedback: str = ""

    @field_validator('reviewer_id')
    @classmethod
    def reviewer_id_must_not_be_empty(cls, v):
        return _not_blank(v, 'reviewer_id')

    @field_validator('review_type')
    @classmethod
    def review_type_must_be_valid(cls, v):
        return _one_of(v, ReviewType, 'review_type')


class PublicationDecisionRequest(BaseModel):
    decision: str
    visibility: Optional[str] = None
    notes: str = ""
    conditions: List[str] = []

    @field_validator('decision')
    @classmethod
    def decision_must_be_valid(cls, v):
        return _one_of(v, Decision, 'decision')

    @field_validator('visibility')
    @classmethod
    def visibility_must_be_valid(cls, v):
        if v is None:
            return v
        return _one_of(v, Visibility, 'visibility')


class SensitivityUpdateRequest(BaseModel):
    sensitivity_level: str

    @field_validator('sensitivity_level')
    @classmethod
    def sensitivity_level_must_be_valid(cls, v):
        return _one_of(v, SensitivityLevel, 'sensitivity_level')


class MetadataUpdateRequest(BaseModel):
    """Partial update; only the fields present in the body are changed."""
    curation_reason: Optional[str] = None
    proposed_significance: Optional[str] = None
    cultural_context: Optional[str] = None
    cultural_protocols: Optional[List[str]] = None
    traditional_elements: Optional[List[str]] = None
    sensitivity_level: Optional[str] = None

    @field_validator('sensitivity_level')
    @classmethod
    def sensitivity_level_must_be_valid(cls, v):
        if v is None:
            return v
        return _one_of(v, SensitivityLevel, 'sensitivity_level')


class ResubmitRequest(BaseModel):
    requires_consultation: bool = True


class HealthResponse(BaseModel):
    status: str
    version: str
    store: str
    db_health: bool


class CurationResponse(BaseModel):
    record: Dict[str, Any]
    warnings: List[str] = []


class ValidationRequestListResponse(BaseModel):
    requests: List[Dict[str, Any]]
    warnings: List[str] = []


class CommunityReviewListResponse(BaseModel):
    reviews: List[Dict[str, Any]]


class ConsensusResponse(BaseModel):
    verdict: str
    confidence: int
    overall_average: float
    cultural_average: float
    total_reviews: int
    cultural_community_reviews: int
    general_community_reviews: int
    approval_percentage: float


class PublishedListResponse(BaseModel):
    curations: List[Dict[str, Any]]


class CurationReportResponse(BaseModel):
    start: datetime
    end: datetime
    total_curations: int
    published_curations: int
    archived_curations: int
    publication_rate: float
    average_validation_score: float
    cultural_distribution: Dict[str, int]
    sensitivity_distribution: Dict[str, int]
    verification_distribution: Dict[str, int]
    top_curations: List[Dict[str, Any]]


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    curation_id: Optional[str] = None
