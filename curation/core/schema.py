"""
Curation record data model.
Dataclasses for the aggregate root and its evidence, with dict round-tripping for the durable store.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SensitivityLevel(str, Enum):
    PUBLIC = "public"
    COMMUNITY_ONLY = "community_only"
    RESTRICTED = "restricted"
    SACRED = "sacred"


class CurationStatus(str, Enum):
    DRAFT = "draft"
    PENDING_VALIDATION = "pending_validation"
    COMMUNITY_REVIEW = "community_review"
    PUBLISHED = "published"
    ARCHIVED = "archived"

    @property
    def is_terminal(self) -> bool:
        return self in (CurationStatus.PUBLISHED, CurationStatus.ARCHIVED)


class VerificationLevel(str, Enum):
    PRELIMINARY = "preliminary"
    VALIDATED = "validated"
    EXPERT_VERIFIED = "expert_verified"
    CULTURALLY_ENDORSED = "culturally_endorsed"

    @property
    def rank(self) -> int:
        return VERIFICATION_ORDER.index(self)


VERIFICATION_ORDER = [
    VerificationLevel.PRELIMINARY,
    VerificationLevel.VALIDATED,
    VerificationLevel.EXPERT_VERIFIED,
    VerificationLevel.CULTURALLY_ENDORSED,
]


class ValidatorRole(str, Enum):
    CULTURAL_EXPERT = "cultural_expert"
    HISTORIAN = "historian"
    TRADITIONAL_KNOWLEDGE_KEEPER = "traditional_knowledge_keeper"
    ACADEMIC = "academic"


class ReviewType(str, Enum):
    ACCURACY = "accuracy"
    CULTURAL_APPROPRIATENESS = "cultural_appropriateness"
    COMPLETENESS = "completeness"
    SENSITIVITY = "sensitivity"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"


class Visibility(str, Enum):
    PUBLIC = "public"
    COMMUNITY_ONLY = "community_only"
    CULTURAL_REPRESENTATIVES_ONLY = "cultural_representatives_only"


AUTHENTICITY_TAGS = ['verified', 'traditional', 'adapted', 'modern_interpretation']
SOURCE_TYPES = ['document', 'oral_tradition', 'artifact', 'photograph', 'recording']

# Sources at or above this reliability are classified primary
PRIMARY_SOURCE_RELIABILITY = 8


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class TraditionalElement:
    element: str
    authenticity: str = "verified"


@dataclass
class HistoricalSource:
    source_id: str
    reliability: float  # 0-10
    source_type: str = "document"
    title: str = ""
    cultural_context: str = ""
    is_primary: bool = False  # derived from reliability by the tracker, never by callers

    @classmethod
    def from_dict(cls, data: Dict) -> 'HistoricalSource':
        return cls(**data)


@dataclass
class KnowledgeKeeperConsultation:
    keeper_id: str
    community: str
    notes: str = ""
    cultural_role: str = ""
    consulted_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['consulted_at'] = _dt(self.consulted_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'KnowledgeKeeperConsultation':
        data = dict(data)
        data['consulted_at'] = _parse_dt(data.get('consulted_at'))
        return cls(**data)


@dataclass
class ExpertConsultation:
    expert_id: str
    expert_type: ValidatorRole
    confidence: float  # 0-100
    findings: str = ""
    recommendations: List[str] = field(default_factory=list)
    consulted_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['expert_type'] = ValidatorRole(self.expert_type).value
        data['consulted_at'] = _dt(self.consulted_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'ExpertConsultation':
        data = dict(data)
        data['expert_type'] = ValidatorRole(data['expert_type'])
        data['consulted_at'] = _parse_dt(data.get('consulted_at'))
        return cls(**data)


@dataclass
class CommunityReview:
    reviewer_id: str
    rating: int  # 1-10
    review_type: ReviewType
    is_cultural_community_member: bool
    feedback: str = ""
    submitted_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['review_type'] = ReviewType(self.review_type).value
        data['submitted_at'] = _dt(self.submitted_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'CommunityReview':
        data = dict(data)
        data['review_type'] = ReviewType(data['review_type'])
        data['submitted_at'] = _parse_dt(data.get('submitted_at'))
        return cls(**data)


@dataclass
class ValidationRequest:
    request_id: str
    curation_id: str
    role: ValidatorRole
    criteria: List[str]
    status: str  # pending, fulfilled
    created_at: datetime
    validator_id: Optional[str] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['role'] = ValidatorRole(self.role).value
        data['created_at'] = _dt(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'ValidationRequest':
        data = dict(data)
        data['role'] = ValidatorRole(data['role'])
        data['created_at'] = _parse_dt(data['created_at'])
        return cls(**data)


@dataclass
class ImpactMetrics:
    """Counters frozen at publication time for downstream reporting."""
    community_engagement: int = 0
    cultural_community_engagement: int = 0
    historical_preservation: float = 0.0
    validation_score: float = 0.0
    verification_level: str = VerificationLevel.PRELIMINARY.value


@dataclass
class CurationRequest:
    """Input to submit_curation_request."""
    subject_id: str
    submitter_id: str
    sensitivity_level: str
    traditional_elements: List[str] = field(default_factory=list)
    requires_consultation: bool = True
    cultural_protocols: List[str] = field(default_factory=list)
    curation_reason: str = ""
    proposed_significance: str = ""
    cultural_context: str = ""


@dataclass
class CurationRecord:
    id: str
    subject_id: str
    submitter_id: str
    submitted_at: datetime
    sensitivity_level: SensitivityLevel
    status: CurationStatus = CurationStatus.DRAFT
    traditional_elements: List[TraditionalElement] = field(default_factory=list)
    cultural_protocols: List[str] = field(default_factory=list)
    curation_reason: str = ""
    proposed_significance: str = ""
    cultural_context: str = ""
    access_restrictions: List[str] = field(default_factory=list)
    access_requirements: List[str] = field(default_factory=list)
    sharing_restrictions: List[Dict[str, str]] = field(default_factory=list)
    historical_sources: List[HistoricalSource] = field(default_factory=list)
    knowledge_keeper_consultations: List[KnowledgeKeeperConsultation] = field(default_factory=list)
    expert_consultations: List[ExpertConsultation] = field(default_factory=list)
    community_reviews: Dict[str, CommunityReview] = field(default_factory=dict)
    validation_requests: List[ValidationRequest] = field(default_factory=list)
    validation_score: float = 0.0
    cultural_accuracy_rating: float = 0.0
    accuracy_confidence: float = 0.0
    verification_level: VerificationLevel = VerificationLevel.PRELIMINARY
    visibility: Visibility = Visibility.CULTURAL_REPRESENTATIVES_ONLY
    published_at: Optional[datetime] = None
    decision_notes: str = ""
    conditions: List[str] = field(default_factory=list)
    impact_metrics: Optional[ImpactMetrics] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    @property
    def primary_sources(self) -> List[HistoricalSource]:
        return [s for s in self.historical_sources if s.is_primary]

    @property
    def secondary_sources(self) -> List[HistoricalSource]:
        return [s for s in self.historical_sources if not s.is_primary]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            'id': self.id,
            'subject_id': self.subject_id,
            'submitter_id': self.submitter_id,
            'submitted_at': _dt(self.submitted_at),
            'sensitivity_level': SensitivityLevel(self.sensitivity_level).value,
            'status': CurationStatus(self.status).value,
            'traditional_elements': [asdict(e) for e in self.traditional_elements],
            'cultural_protocols': list(self.cultural_protocols),
            'curation_reason': self.curation_reason,
            'proposed_significance': self.proposed_significance,
            'cultural_context': self.cultural_context,
            'access_restrictions': list(self.access_restrictions),
            'access_requirements': list(self.access_requirements),
            'sharing_restrictions': [dict(r) for r in self.sharing_restrictions],
            'historical_sources': [asdict(s) for s in self.historical_sources],
            'knowledge_keeper_consultations': [k.to_dict() for k in self.knowledge_keeper_consultations],
            'expert_consultations': [c.to_dict() for c in self.expert_consultations],
            'community_reviews': {rid: r.to_dict() for rid, r in self.community_reviews.items()},
            'validation_requests': [r.to_dict() for r in self.validation_requests],
            'validation_score': self.validation_score,
            'cultural_accuracy_rating': self.cultural_accuracy_rating,
            'accuracy_confidence': self.accuracy_confidence,
            'verification_level': VerificationLevel(self.verification_level).value,
            'visibility': Visibility(self.visibility).value,
            'published_at': _dt(self.published_at),
            'decision_notes': self.decision_notes,
            'conditions': list(self.conditions),
            'impact_metrics': asdict(self.impact_metrics) if self.impact_metrics else None,
            'updated_at': _dt(self.updated_at),
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CurationRecord':
        """Create from dictionary (for loading from storage)."""
        metrics = data.get('impact_metrics')
        return cls(
            id=data['id'],
            subject_id=data['subject_id'],
            submitter_id=data['submitter_id'],
            submitted_at=_parse_dt(data['submitted_at']),
            sensitivity_level=SensitivityLevel(data['sensitivity_level']),
            status=CurationStatus(data['status']),
            traditional_elements=[TraditionalElement(**e) for e in data.get('traditional_elements', [])],
            cultural_protocols=list(data.get('cultural_protocols', [])),
            curation_reason=data.get('curation_reason', ""),
            proposed_significance=data.get('proposed_significance', ""),
            cultural_context=data.get('cultural_context', ""),
            access_restrictions=list(data.get('access_restrictions', [])),
            access_requirements=list(data.get('access_requirements', [])),
            sharing_restrictions=[dict(r) for r in data.get('sharing_restrictions', [])],
            historical_sources=[HistoricalSource.from_dict(s) for s in data.get('historical_sources', [])],
            knowledge_keeper_consultations=[
                KnowledgeKeeperConsultation.from_dict(k) for k in data.get('knowledge_keeper_consultations', [])
            ],
            expert_consultations=[ExpertConsultation.from_dict(c) for c in data.get('expert_consultations', [])],
            community_reviews={
                rid: CommunityReview.from_dict(r) for rid, r in data.get('community_reviews', {}).items()
            },
            validation_requests=[ValidationRequest.from_dict(r) for r in data.get('validation_requests', [])],
            validation_score=data.get('validation_score', 0.0),
            cultural_accuracy_rating=data.get('cultural_accuracy_rating', 0.0),
            accuracy_confidence=data.get('accuracy_confidence', 0.0),
            verification_level=VerificationLevel(data.get('verification_level', 'preliminary')),
            visibility=Visibility(data.get('visibility', 'cultural_representatives_only')),
            published_at=_parse_dt(data.get('published_at')),
            decision_notes=data.get('decision_notes', ""),
            conditions=list(data.get('conditions', [])),
            impact_metrics=ImpactMetrics(**metrics) if metrics else None,
            updated_at=_parse_dt(data.get('updated_at')),
            version=data.get('version', 0),
        )
