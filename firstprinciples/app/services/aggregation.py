"""
Case scoring from submitted expert reviews.

Scoring runs in two gates before any numbers are computed:
- Gate A: any review stopped for insufficient data puts the case in
  NEEDS_MORE_INFO and collects the missing items the reviewers listed
- Gate B: fewer than MIN_VALID_REVIEWS submitted reviews leaves the case
  AWAITING_REVIEWS

Past both gates each agree/disagree question gets a concordance tier and the
appropriateness and necessity scores (1-9) get a RAND/UCLA class from their
mean. A case whose result is uncertain or contested on a key question is
flagged for secondary review; otherwise it is final and yields a CaseResult
row.
"""

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from firstprinciples.app.models.database import (
    BINARY_QUESTION_KEYS,
    AggregationStatus,
    Case,
    ConcordanceTier,
    FinalClass,
    Review,
    ReviewStatus,
)

logger = logging.getLogger(__name__)

MIN_VALID_REVIEWS = 5
LIKERT_MIN = 1
LIKERT_MAX = 9

POTENTIAL_CONTROVERSY = "POTENTIAL_CONTROVERSY_OR_EQUIPOISE"
INSUFFICIENT_REVIEWS = "INSUFFICIENT_REVIEWS"
UNCERTAIN_APPROPRIATENESS_MEAN = "UNCERTAIN_APPROPRIATENESS_MEAN"

DEFAULT_KEY_BINARY_QUESTIONS = (
    "agree_justification",
    "agree_overall_plan_acceptable",
    "agree_need_any_surgery_now",
)

# CPT/HCPCS codes used when a case has no per-segment plan
_DECOMPRESSION_CODES = re.compile(r"63047|63048|63042|63044|63045|63046|0274T|62287|62380", re.IGNORECASE)
_FUSION_CODES = re.compile(
    r"22612|22614|22558|22585|22842|22843|22844|22845|22630|22632|22633|22634"
    r"|20930|20931|20936|20937|21110|21299|22551|22552|22840|22841",
    re.IGNORECASE,
)

_DEFICIENCY_SEPARATORS = re.compile(r"[\n;,:]")


class BinaryResult(BaseModel):
    agree_count: int
    valid_count: int
    agree_fraction: float
    concordance_tier: ConcordanceTier
    flags: List[str] = Field(default_factory=list)


class SecondaryReviewPolicy(BaseModel):
    """
    Which conditions send a scored case to secondary review.

    ``key_binary_questions`` of None means the questions are derived from the
    case's procedure (see get_key_binary_questions).
    """

    trigger_on_uncertain_appropriateness: bool = True
    trigger_on_intermediate_concordance_on_key: bool = True
    trigger_on_insufficient_reviews: bool = True
    key_binary_questions: Optional[List[str]] = None


class CaseAggregate(BaseModel):
    n_assigned: int
    n_valid: int
    n_stopped_insufficient: int
    aggregation_status: AggregationStatus
    missing_items: List[str] = Field(default_factory=list)
    binary_results: Dict[str, BinaryResult] = Field(default_factory=dict)
    appropriateness_mean: Optional[float] = None
    appropriateness_class: Optional[FinalClass] = None
    necessity_mean: Optional[float] = None
    necessity_class: Optional[FinalClass] = None
    secondary_review_triggered: bool = False
    secondary_review_reasons: List[str] = Field(default_factory=list)

    @property
    def is_final_primary(self) -> bool:
        return self.aggregation_status == AggregationStatus.SCORED_PRIMARY and not self.secondary_review_triggered


def get_likert_class(mean: float) -> FinalClass:
    """RAND/UCLA class of a 1-9 score: 1-3 inappropriate, 4-6 uncertain, 7-9 appropriate."""
    if mean >= 7:
        return FinalClass.APPROPRIATE
    if mean >= 4:
        return FinalClass.UNCERTAIN
    return FinalClass.INAPPROPRIATE


def get_concordance_tier(agree_count: int, valid_count: int) -> ConcordanceTier:
    """
    Tier of agreement among ``valid_count`` answers.

    HIGH when at least ceil(2N/3) agree, LOW when at most floor(N/3) agree,
    INTERMEDIATE otherwise (and for N <= 0).
    """
    if valid_count <= 0:
        return ConcordanceTier.INTERMEDIATE
    if agree_count >= math.ceil(2 * valid_count / 3):
        return ConcordanceTier.HIGH
    if agree_count <= valid_count // 3:
        return ConcordanceTier.LOW
    return ConcordanceTier.INTERMEDIATE


def _segments(case: Case) -> List[Dict[str, Any]]:
    section = (case.clinical_data or {}).get("section10") or {}
    return section.get("segments") or []


def case_has_fusion(case: Case) -> bool:
    if any(segment.get("fusion") for segment in _segments(case)):
        return True
    return any(_FUSION_CODES.search(str(code)) for code in case.proposed_procedure_codes)


def case_has_decompression_plus_fusion(case: Case) -> bool:
    segments = _segments(case)
    if segments:
        decompression = any(s.get("direct_decompression") or s.get("indirect_decompression") for s in segments)
        return decompression and any(s.get("fusion") for s in segments)
    codes = [str(code) for code in case.proposed_procedure_codes]
    return any(_DECOMPRESSION_CODES.search(c) for c in codes) and any(_FUSION_CODES.search(c) for c in codes)


def get_key_binary_questions(has_decompression_plus_fusion: bool, has_fusion: bool) -> List[str]:
    keys = list(DEFAULT_KEY_BINARY_QUESTIONS)
    if has_decompression_plus_fusion:
        keys += ["agree_decompression_plan_acceptable", "agree_fusion_plan_acceptable"]
    elif has_fusion:
        keys.append("agree_fusion_plan_acceptable")
    return list(dict.fromkeys(keys))


def parse_info_deficiencies(raw: Optional[str]) -> List[str]:
    """Split a reviewer's free-text deficiency list into unique items, in order."""
    if not raw:
        return []
    items = [part.strip() for part in _DEFICIENCY_SEPARATORS.split(raw)]
    return list(dict.fromkeys(item for item in items if item))


def union_missing_items(reviews: Iterable[Review]) -> List[str]:
    items: List[str] = []
    for review in reviews:
        if review.status == ReviewStatus.STOPPED_INSUFFICIENT_DATA:
            items.extend(parse_info_deficiencies(review.info_deficiencies))
    return list(dict.fromkeys(items))


def compute_binary_result(reviews: Sequence[Review], question: str) -> Optional[BinaryResult]:
    """Concordance of one question; None when no review answered it."""
    answers = [getattr(review, question) for review in reviews]
    answers = [answer for answer in answers if answer is not None]
    if not answers:
        return None

    agree_count = sum(1 for answer in answers if answer)
    tier = get_concordance_tier(agree_count, len(answers))
    return BinaryResult(
        agree_count=agree_count,
        valid_count=len(answers),
        agree_fraction=agree_count / len(answers),
        concordance_tier=tier,
        flags=[POTENTIAL_CONTROVERSY] if tier == ConcordanceTier.INTERMEDIATE else [],
    )


def _scores(reviews: Sequence[Review], field: str) -> List[int]:
    values = [getattr(review, field) for review in reviews]
    return [value for value in values if value is not None and LIKERT_MIN <= value <= LIKERT_MAX]


def likert_mean(reviews: Sequence[Review], field: str) -> Optional[float]:
    """Mean of the in-range 1-9 scores in ``field``; None when there are none."""
    scores = _scores(reviews, field)
    if not scores:
        return None
    return sum(scores) / len(scores)


def intermediate_reason(question: str) -> str:
    return f"INTERMEDIATE_CONCORDANCE_ON_{question.upper()}"


def evaluate_secondary_review_triggers(
    n_valid: int,
    appropriateness_class: Optional[FinalClass],
    binary_results: Dict[str, BinaryResult],
    key_binary_questions: Sequence[str],
    policy: SecondaryReviewPolicy,
) -> List[str]:
    """Reasons a scored case needs secondary review; empty when it does not."""
    reasons = []
    if policy.trigger_on_insufficient_reviews and n_valid < MIN_VALID_REVIEWS:
        reasons.append(INSUFFICIENT_REVIEWS)
    if policy.trigger_on_uncertain_appropriateness and appropriateness_class == FinalClass.UNCERTAIN:
        reasons.append(UNCERTAIN_APPROPRIATENESS_MEAN)
    if policy.trigger_on_intermediate_concordance_on_key:
        for question in key_binary_questions:
            result = binary_results.get(question)
            if result is not None and result.concordance_tier == ConcordanceTier.INTERMEDIATE:
                reasons.append(intermediate_reason(question))
    return list(dict.fromkeys(reasons))


def compute_case_aggregate(
    reviews: Sequence[Review],
    has_decompression_plus_fusion: bool = False,
    has_fusion: bool = False,
    policy: Optional[SecondaryReviewPolicy] = None,
) -> CaseAggregate:
    """
    Score a case from all of its assigned reviews.

    Only SUBMITTED reviews count as valid. Reviews in any other state only
    add to ``n_assigned``, except STOPPED_INSUFFICIENT_DATA which stops
    scoring (Gate A).
    """
    policy = policy or SecondaryReviewPolicy()
    key_questions = policy.key_binary_questions
    if key_questions is None:
        key_questions = get_key_binary_questions(has_decompression_plus_fusion, has_fusion)

    valid = [review for review in reviews if review.status == ReviewStatus.SUBMITTED]
    n_stopped = sum(1 for review in reviews if review.status == ReviewStatus.STOPPED_INSUFFICIENT_DATA)

    if n_stopped:
        return CaseAggregate(
            n_assigned=len(reviews),
            n_valid=len(valid),
            n_stopped_insufficient=n_stopped,
            aggregation_status=AggregationStatus.NEEDS_MORE_INFO,
            missing_items=union_missing_items(reviews),
        )

    if len(valid) < MIN_VALID_REVIEWS:
        # nothing to flag until the first review is in
        triggered = policy.trigger_on_insufficient_reviews and len(valid) > 0
        return CaseAggregate(
            n_assigned=len(reviews),
            n_valid=len(valid),
            n_stopped_insufficient=0,
            aggregation_status=AggregationStatus.AWAITING_REVIEWS,
            secondary_review_triggered=triggered,
            secondary_review_reasons=[INSUFFICIENT_REVIEWS] if triggered else [],
        )

    binary_results = {}
    for question in BINARY_QUESTION_KEYS:
        result = compute_binary_result(valid, question)
        if result is not None:
            binary_results[question] = result

    appropriateness_mean = likert_mean(valid, "appropriateness_score")
    appropriateness_class = get_likert_class(appropriateness_mean) if appropriateness_mean is not None else None
    necessity_mean = likert_mean(valid, "necessity_score")

    reasons = evaluate_secondary_review_triggers(
        len(valid), appropriateness_class, binary_results, key_questions, policy
    )
    if reasons:
        logger.info("Secondary review triggered: %s", ", ".join(reasons))

    return CaseAggregate(
        n_assigned=len(reviews),
        n_valid=len(valid),
        n_stopped_insufficient=0,
        aggregation_status=(
            AggregationStatus.SECONDARY_REVIEW_REQUIRED if reasons else AggregationStatus.SCORED_PRIMARY
        ),
        binary_results=binary_results,
        appropriateness_mean=appropriateness_mean,
        appropriateness_class=appropriateness_class,
        necessity_mean=necessity_mean,
        necessity_class=get_likert_class(necessity_mean) if necessity_mean is not None else None,
        secondary_review_triggered=bool(reasons),
        secondary_review_reasons=reasons,
    )


def aggregate_case(case: Case, reviews: Sequence[Review], policy: Optional[SecondaryReviewPolicy] = None) -> CaseAggregate:
    return compute_case_aggregate(
        reviews,
        has_decompression_plus_fusion=case_has_decompression_plus_fusion(case),
        has_fusion=case_has_fusion(case),
        policy=policy,
    )


def build_case_result(case_id: str, reviews: Sequence[Review], aggregate: CaseAggregate) -> Optional[Dict[str, Any]]:
    """
    Row for ``case_results`` when the aggregate is a final primary score.

    The standard deviation is the population deviation of the valid
    appropriateness scores. Agreement with the proposed plan is taken from
    ``agree_overall_plan_acceptable``.

    Returns:
        The insert row, or None while the case is not final
    """
    if not aggregate.is_final_primary:
        return None

    valid = [review for review in reviews if review.status == ReviewStatus.SUBMITTED]
    scores = [review.appropriateness_score for review in valid if review.appropriateness_score is not None]
    n = len(scores)
    mean = aggregate.appropriateness_mean
    if mean is None:
        mean = sum(scores) / n if n else 0.0
    std_dev = math.sqrt(sum((score - mean) ** 2 for score in scores) / n) if n else 0.0

    plan = aggregate.binary_results.get("agree_overall_plan_acceptable")
    percent_agreed = plan.agree_count / plan.valid_count * 100 if plan and plan.valid_count else 0.0

    return {
        "case_id": case_id,
        "final_class": (aggregate.appropriateness_class or FinalClass.UNCERTAIN).value,
        "mean_score": mean,
        "score_std_dev": std_dev,
        "num_reviews": n,
        "percent_agreed_with_proposed": percent_agreed,
        "percent_recommended_alternative": 100 - percent_agreed,
    }
