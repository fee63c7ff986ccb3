"""
Community review aggregation - one review per reviewer per record, consensus computed on demand.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List

from .errors import CurationValidationError, DuplicateReview, InvalidScoreRange
from .schema import CommunityReview, CurationRecord, ReviewType

APPROVAL_THRESHOLD = 7
REJECTION_THRESHOLD = 4
CONFIDENCE_PER_REVIEW = 10
MAX_CONFIDENCE = 100


@dataclass(frozen=True)
class ConsensusResult:
    verdict: str  # approved, rejected, mixed, insufficient_data
    confidence: int
    overall_average: float = 0.0
    cultural_average: float = 0.0
    total_reviews: int = 0
    cultural_community_reviews: int = 0
    general_community_reviews: int = 0
    approval_percentage: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)


def _mean(values: List[int]) -> float:
    return sum(values) / len(values) if values else 0.0


def consensus_confidence(review_count: int) -> int:
    """Sample-size proxy: 10 points per review, capped at 100."""
    return min(review_count * CONFIDENCE_PER_REVIEW, MAX_CONFIDENCE)


def classify_verdict(overall_average: float, cultural_average: float) -> str:
    if overall_average >= APPROVAL_THRESHOLD and cultural_average >= APPROVAL_THRESHOLD:
        return "approved"
    if overall_average <= REJECTION_THRESHOLD or cultural_average <= REJECTION_THRESHOLD:
        return "rejected"
    return "mixed"


class CommunityReviewAggregator:
    """Accepts community ratings and derives an approve/reject/mixed verdict."""

    def submit_review(self, record: CurationRecord, review: CommunityReview) -> CommunityReview:
        """
        Append a review.

        Raises:
            InvalidScoreRange: rating is not an integer in [1, 10]
            DuplicateReview: reviewer already has a review on this record
        """
        rating = review.rating
        if isinstance(rating, bool) or not isinstance(rating, int) or rating < 1 or rating > 10:
            raise InvalidScoreRange(f"rating must be an integer in [1, 10], got {rating!r}",
                                    curation_id=record.id)

        if review.reviewer_id in record.community_reviews:
            raise DuplicateReview(
                f"reviewer {review.reviewer_id} already reviewed curation {record.id}",
                curation_id=record.id,
                reviewer_id=review.reviewer_id,
            )

        try:
            review.review_type = ReviewType(review.review_type)
        except ValueError:
            raise CurationValidationError(f"unknown review type {review.review_type!r}",
                                          curation_id=record.id)
        record.community_reviews[review.reviewer_id] = review
        return review

    def compute_consensus(self, record: CurationRecord) -> ConsensusResult:
        reviews = list(record.community_reviews.values())
        if not reviews:
            return ConsensusResult(verdict="insufficient_data", confidence=0)

        ratings = [r.rating for r in reviews]
        cultural_ratings = [r.rating for r in reviews if r.is_cultural_community_member]

        overall_average = _mean(ratings)
        cultural_average = _mean(cultural_ratings)
        approvals = len([r for r in ratings if r >= APPROVAL_THRESHOLD])

        return ConsensusResult(
            verdict=classify_verdict(overall_average, cultural_average),
            confidence=consensus_confidence(len(reviews)),
            overall_average=overall_average,
            cultural_average=cultural_average,
            total_reviews=len(reviews),
            cultural_community_reviews=len(cultural_ratings),
            general_community_reviews=len(reviews) - len(cultural_ratings),
            approval_percentage=(approvals / len(reviews)) * 100,
        )
