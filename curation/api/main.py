"""
HTTP surface for the curation pipeline.

Thin FastAPI layer over CurationRegistry: request models validate shape,
the registry enforces every domain rule, and CurationError subclasses are
mapped onto status codes by a single exception handler.
"""

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Optional
from datetime import datetime

from .schemas import (
    CurationCreateRequest,
    HistoricalSourceRequest,
    KnowledgeKeeperRequest,
    ExpertValidationRequest,
    CommunityReviewRequest,
    PublicationDecisionRequest,
    SensitivityUpdateRequest,
    MetadataUpdateRequest,
    ResubmitRequest,
    HealthResponse,
    CurationResponse,
    ValidationRequestListResponse,
    CommunityReviewListResponse,
    ConsensusResponse,
    PublishedListResponse,
    CurationReportResponse,
)
from ..core.config import VERSION, debug_enabled, get_store_backend
from ..core.dao import get_curation_store
from ..core.db import health_check
from ..core.errors import (
    CurationError,
    CurationStateError,
    CurationStorageError,
    CurationValidationError,
    DuplicateReview,
    RecordNotFound,
)
from ..core.registry import CurationRegistry, CurationResult
from ..core.reporting import to_naive_local
from ..core.schema import (
    CurationRequest,
    ExpertConsultation,
    HistoricalSource,
    KnowledgeKeeperConsultation,
)
from ..util.logging import logger

app = FastAPI(
    title="Cultural Curation API",
    version=VERSION,
    description="Curation and multi-party validation of cultural heritage content",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

_registry: Optional[CurationRegistry] = None


def get_registry() -> CurationRegistry:
    """Process-wide registry, built on first use from the configured store."""
    global _registry
    if _registry is None:
        _registry = CurationRegistry(store=get_curation_store())
    return _registry


def status_code_for(error: CurationError) -> int:
    if isinstance(error, RecordNotFound):
        return 404
    if isinstance(error, DuplicateReview):
        return 409
    if isinstance(error, CurationValidationError):
        return 422
    if isinstance(error, CurationStateError):
        return 409
    if isinstance(error, CurationStorageError):
        return 503
    return 500


@app.exception_handler(CurationError)
async def curation_error_handler(request: Request, exc: CurationError):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error_type}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content={"error_type": CurationValidationError.error_type, "message": message},
    )


def _curation_response(result: CurationResult) -> CurationResponse:
    return CurationResponse(record=result.record.to_dict(), warnings=result.warnings)


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    store = get_store_backend()
    db_health = health_check() if store == "sqlite" else True

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        store=store,
        db_health=db_health
    )


@app.post("/curations", response_model=CurationResponse, status_code=201)
def submit_curation_endpoint(req: CurationCreateRequest, registry: CurationRegistry = Depends(get_registry)):
    """Create a curation record and submit it for validation or community review."""
    result = registry.submit_curation_request(CurationRequest(**req.model_dump()))
    return _curation_response(result)


@app.get("/curations/{curation_id}", response_model=CurationResponse)
def get_curation_endpoint(curation_id: str, registry: CurationRegistry = Depends(get_registry)):
    return CurationResponse(record=registry.get_record(curation_id).to_dict())


@app.post("/curations/{curation_id}/sources", response_model=CurationResponse)
def add_source_endpoint(curation_id: str, req: HistoricalSourceRequest,
                        registry: CurationRegistry = Depends(get_registry)):
    result = registry.add_historical_source(curation_id, HistoricalSource(**req.model_dump()))
    return _curation_response(result)


@app.post("/curations/{curation_id}/knowledge-keepers", response_model=CurationResponse)
def consult_keeper_endpoint(curation_id: str, req: KnowledgeKeeperRequest,
                            registry: CurationRegistry = Depends(get_registry)):
    result = registry.consult_knowledge_keeper(curation_id, KnowledgeKeeperConsultation(**req.model_dump()))
    return _curation_response(result)


@app.post("/curations/{curation_id}/expert-validations", response_model=CurationResponse)
def expert_validation_endpoint(curation_id: str, req: ExpertValidationRequest,
                               registry: CurationRegistry = Depends(get_registry)):
    consultation = ExpertConsultation(**req.model_dump())
    result = registry.submit_expert_validation(curation_id, req.expert_id, consultation)
    return _curation_response(result)


@app.post("/curations/{curation_id}/reviews", response_model=CurationResponse)
def community_review_endpoint(curation_id: str, req: CommunityReviewRequest,
                              registry: CurationRegistry = Depends(get_registry)):
    result = registry.submit_community_review(
        curation_id,
        reviewer_id=req.reviewer_id,
        rating=req.rating,
        review_type=req.review_type,
        is_cultural_community_member=req.is_cultural_community_member,
        feedback=req.feedback,
    )
    return _curation_response(result)


@app.get("/curations/{curation_id}/reviews", response_model=CommunityReviewListResponse)
def list_reviews_endpoint(curation_id: str, registry: CurationRegistry = Depends(get_registry)):
    reviews = registry.get_community_reviews(curation_id)
    return CommunityReviewListResponse(reviews=[r.to_dict() for r in reviews])


@app.get("/curations/{curation_id}/consensus", response_model=ConsensusResponse)
def consensus_endpoint(curation_id: str, registry: CurationRegistry = Depends(get_registry)):
    return ConsensusResponse(**registry.compute_consensus(curation_id).to_dict())


@app.post("/curations/{curation_id}/validators", response_model=ValidationRequestListResponse)
def assign_validators_endpoint(curation_id: str, registry: CurationRegistry = Depends(get_registry)):
    """Issue validation requests for any required role still uncovered; repeat calls are no-ops."""
    result = registry.assign_validators(curation_id)
    return ValidationRequestListResponse(
        requests=[r.to_dict() for r in result.validation_requests],
        warnings=result.warnings,
    )


@app.post("/curations/{curation_id}/decision", response_model=CurationResponse)
def publication_decision_endpoint(curation_id: str, req: PublicationDecisionRequest,
                                  registry: CurationRegistry = Depends(get_registry)):
    result = registry.make_publication_decision(
        curation_id,
        decision=req.decision,
        visibility=req.visibility,
        notes=req.notes,
        conditions=req.conditions,
    )
    return _curation_response(result)


@app.patch("/curations/{curation_id}", response_model=CurationResponse)
def update_metadata_endpoint(curation_id: str, req: MetadataUpdateRequest,
                             registry: CurationRegistry = Depends(get_registry)):
    """Correct descriptive fields; sensitivity_level may only change while the record is a draft."""
    fields = req.model_dump(exclude_unset=True)
    return _curation_response(registry.update_metadata(curation_id, **fields))


@app.put("/curations/{curation_id}/sensitivity", response_model=CurationResponse)
def update_sensitivity_endpoint(curation_id: str, req: SensitivityUpdateRequest,
                                registry: CurationRegistry = Depends(get_registry)):
    return _curation_response(registry.update_sensitivity(curation_id, req.sensitivity_level))


@app.post("/curations/{curation_id}/resubmit", response_model=CurationResponse)
def resubmit_endpoint(curation_id: str, req: ResubmitRequest,
                      registry: CurationRegistry = Depends(get_registry)):
    return _curation_response(registry.resubmit(curation_id, req.requires_consultation))


@app.get("/published", response_model=PublishedListResponse)
def published_endpoint(sensitivity_level: Optional[str] = None, cultural_context: Optional[str] = None,
                       registry: CurationRegistry = Depends(get_registry)):
    records = registry.query_published(sensitivity_level, cultural_context)
    return PublishedListResponse(curations=[r.to_dict() for r in records])


@app.get("/validations/pending", response_model=ValidationRequestListResponse)
def pending_validations_endpoint(role: Optional[str] = None, validator_id: Optional[str] = None,
                                 registry: CurationRegistry = Depends(get_registry)):
    requests = registry.get_pending_validations(role, validator_id)
    return ValidationRequestListResponse(requests=[r.to_dict() for r in requests])


@app.get("/reports/curation", response_model=CurationReportResponse)
def curation_report_endpoint(start: datetime, end: datetime, registry: CurationRegistry = Depends(get_registry)):
    start, end = to_naive_local(start), to_naive_local(end)
    if start > end:
        raise CurationValidationError("start must not be after end")
    return CurationReportResponse(**registry.generate_curation_report(start, end).to_dict())
