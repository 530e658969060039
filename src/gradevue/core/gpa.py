import math
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

WEIGHTED_COURSE_TERMS: Tuple[str, ...] = ("AP", "Hon", "Honors", "Adv", "Advanced", "Mag", "Magnet", "IB")

MCPS_GRADE_POINTS = {
    "A": 4,
    "B": 3,
    "C": 2,
    "D": 1,
    "E": 0,
}
# Only passing marks earn the extra point in weighted courses
MCPS_WEIGHTED_MARKS = frozenset({"A", "B", "C"})

_DIGIT = re.compile(r"\d")


@dataclass(frozen=True)
class GpaResult:
    weighted: float
    unweighted: float


def is_mcps_course_weighted(name: str) -> bool:
    return any(term in name for term in WEIGHTED_COURSE_TERMS)


def mcps_gpa_value(mark: str, weighted: bool) -> Optional[int]:
    if mark not in MCPS_GRADE_POINTS:
        return None
    extra = 1 if weighted and mark in MCPS_WEIGHTED_MARKS else 0
    return MCPS_GRADE_POINTS[mark] + extra


def preview_has_ratio(mark_preview: str) -> bool:
    return bool(_DIGIT.search(mark_preview))


def calculate_mcps_gpa(course_marks: Iterable[Tuple[str, str]]) -> GpaResult:
    """
    course_marks: iterable of (course name, mark)
    Courses with marks outside A-E are skipped. NaN when nothing counted.
    """
    total_weighted = 0
    total_unweighted = 0
    count = 0

    for name, mark in course_marks:
        weighted = mcps_gpa_value(mark, is_mcps_course_weighted(name))
        if weighted is None:
            continue
        total_weighted += weighted
        total_unweighted += mcps_gpa_value(mark, False) or 0
        count += 1

    if count == 0:
        return GpaResult(weighted=math.nan, unweighted=math.nan)

    return GpaResult(weighted=total_weighted / count, unweighted=total_unweighted / count)
