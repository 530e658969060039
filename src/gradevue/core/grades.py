import math
from typing import Callable, Dict, Iterable, Optional, Tuple

from gradevue.core.policy import (
    Assignment,
    GradingPolicy,
    PolicyLookupError,
    PolicyVariant,
    ReportCardScoreType,
    parse_float,
)
from gradevue.core.weights import compute_weight

NOT_AVAILABLE = "N/A"

STYLE_FG = "fg"
STYLE_TIERS: Tuple[str, ...] = tuple(f"scale-{i}" for i in range(7))

# (low ratio, mark) pairs, highest first
MARK_THRESHOLDS: Dict[PolicyVariant, Tuple[Tuple[float, str], ...]] = {
    PolicyVariant.MCPS: (
        (0.895, "A"),
        (0.795, "B"),
        (0.695, "C"),
        (0.595, "D"),
    ),
}
FALLBACK_MARKS: Dict[PolicyVariant, str] = {
    PolicyVariant.MCPS: "E",
}

Adjustments = Dict[int, Tuple[float, float]]


def _counts_toward_grade(assignment: Assignment, category_id: Optional[int]) -> bool:
    return (
        assignment.is_for_grading
        and assignment.score is not None
        and (category_id is None or assignment.measure_type_id == category_id)
    )


def total_assignment_points_by(
    transform: Callable[[Assignment], float],
    assignments: Iterable[Assignment],
    category_id: Optional[int] = None,
) -> float:
    return sum(
        (transform(a) for a in assignments if _counts_toward_grade(a, category_id)),
        0.0,
    )


def total_assignment_points(assignments: Iterable[Assignment], category_id: Optional[int] = None) -> float:
    return total_assignment_points_by(lambda a: parse_float(a.score), assignments, category_id)


def max_assignment_points(assignments: Iterable[Assignment], category_id: Optional[int] = None) -> float:
    return total_assignment_points_by(lambda a: parse_float(a.max_score), assignments, category_id)


def _divide(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return math.nan
    return numerator / denominator


def calculate_weighted_point_ratio(
    policy: GradingPolicy,
    assignments: Iterable[Assignment],
    adjustments: Optional[Adjustments] = None,
    variant: PolicyVariant = PolicyVariant.GENERIC,
) -> float:
    """
    Weighted earned/possible ratio over the policy's measure types.

    Categories without possible points are left out, and the result is
    normalized against the weights that did contribute. Adjustments map a
    measure type id to (extra earned, extra possible) for what-if projections.
    Returns NaN when no category contributes.
    """
    assignments = list(assignments)
    adjustments = adjustments or {}

    total_weight = 0.0
    total_ratio = 0.0
    for measure_type in policy.measure_types:
        weight = compute_weight(measure_type, variant)
        possible = max_assignment_points(assignments, measure_type.id)
        if not possible or math.isnan(possible):
            continue

        extra_earned, extra_possible = adjustments.get(measure_type.id, (0, 0))
        earned = total_assignment_points(assignments, measure_type.id)
        ratio = _divide(earned + extra_earned, possible + extra_possible) * weight
        if math.isnan(ratio):
            continue

        total_weight += weight
        total_ratio += ratio

    return _divide(total_ratio, total_weight)


def _find_score_type(policy: GradingPolicy, score_type_id: int) -> Optional[ReportCardScoreType]:
    try:
        return policy.score_type(score_type_id)
    except PolicyLookupError:
        return None


def calculate_mark(
    policy: GradingPolicy,
    score_type_id: int,
    ratio: float,
    variant: PolicyVariant = PolicyVariant.GENERIC,
) -> str:
    score_type = _find_score_type(policy, score_type_id)
    if score_type is None or math.isnan(ratio) or score_type.is_unscored:
        return NOT_AVAILABLE

    if variant in MARK_THRESHOLDS:
        for low, mark in MARK_THRESHOLDS[variant]:
            if ratio >= low:
                return mark
        return FALLBACK_MARKS[variant]

    for boundary in sorted(score_type.details, key=lambda b: b.low_score, reverse=True):
        if ratio >= _divide(boundary.low_score, score_type.max):
            return boundary.score
    return NOT_AVAILABLE


def _round_half_up(value: float, places: int) -> float:
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def calculate_score_style(
    policy: GradingPolicy,
    score_type_id: int,
    ratio: float,
    variant: PolicyVariant = PolicyVariant.GENERIC,
) -> str:
    score_type = policy.score_type(score_type_id)
    if score_type.is_unscored:
        return STYLE_FG
    if ratio >= 1.0:
        return STYLE_TIERS[6]
    if ratio <= 0.0:
        return STYLE_TIERS[0]
    if math.isnan(ratio):
        return STYLE_FG

    if variant in MARK_THRESHOLDS:
        tier = 5
        for low, _mark in MARK_THRESHOLDS[variant]:
            if ratio >= low:
                return STYLE_TIERS[tier]
            tier -= 1
        return STYLE_TIERS[tier]

    # Synergy boundaries are expressed in hundredths of a percent
    ratio = _round_half_up(ratio, 4)

    tier = 5
    for boundary in score_type.details:
        if ratio >= _divide(boundary.low_score, score_type.max):
            return STYLE_TIERS[tier]
        tier = max(1, tier - 1)
    return STYLE_FG
