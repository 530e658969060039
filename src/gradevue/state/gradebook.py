from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from gradevue.app_logger import get_logger
from gradevue.core import gpa, grades
from gradevue.core.grades import Adjustments
from gradevue.core.policy import (
    Assignment,
    Course,
    CourseMetadata,
    CustomAssignment,
    GradingPeriod,
    GradingPolicy,
    ModifiedCourse,
    PolicyVariant,
    create_assignment,
    parse_due_date,
    parse_float,
)
from gradevue.services.portal_service import GradebookResponse, PortalClient, PortalServiceError

logger = get_logger("gradebook")

Listener = Callable[[str, str], None]

EVENT_COURSE = "course"
EVENT_MODIFIED_COURSE = "modified_course"
EVENT_COURSE_ORDER = "course_order"

# Passed as a score to leave the existing score in place.
UNCHANGED = object()


class CourseLookupError(LookupError):
    pass


def course_key(grading_period: str, course_id: int) -> str:
    return f"{grading_period}:{course_id}"


def _due_date_sort_key(assignment: Assignment) -> datetime:
    return parse_due_date(assignment.due_date) or datetime.min


class Gradebook:
    """
    Live and shadow copies of every course, keyed by "<period>:<class id>".

    `courses` holds what the portal last returned. `modified_courses` holds
    the editable copy used for what-if projections; it is rebuilt from the
    live course on every fetch and on rollback.
    """

    def __init__(
        self,
        client: Optional[PortalClient],
        policy: GradingPolicy,
        grading_periods: Dict[str, GradingPeriod],
        default_course_order: List[CourseMetadata],
        variant: PolicyVariant = PolicyVariant.GENERIC,
    ) -> None:
        self.client = client
        self.policy = policy
        self.grading_periods = grading_periods
        self.variant = variant

        self.courses: Dict[str, Course] = {}
        self.modified_courses: Dict[str, ModifiedCourse] = {}
        self.course_orders: Dict[str, List[CourseMetadata]] = {}
        self._listeners: List[Listener] = []

        self.set_course_order(self.default_grading_period, default_course_order)

    @classmethod
    def from_response(
        cls,
        client: Optional[PortalClient],
        response: GradebookResponse,
        variant: PolicyVariant = PolicyVariant.GENERIC,
    ) -> "Gradebook":
        return cls(client, response.policy, response.grading_periods, response.course_order, variant)

    @property
    def default_grading_period(self) -> str:
        for period in self.grading_periods.values():
            if period.default_focus:
                return period.GU
        raise CourseLookupError("No grading period is marked as the default")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str, key: str) -> None:
        for listener in list(self._listeners):
            listener(event, key)

    def set_course_order(self, grading_period: str, order: List[CourseMetadata]) -> None:
        self.course_orders[grading_period] = list(order)
        self._notify(EVENT_COURSE_ORDER, grading_period)

    def update_all_courses(self, grading_period: Optional[str] = None) -> None:
        if self.client is None:
            raise PortalServiceError("Gradebook has no portal client attached")
        grading_period = grading_period or self.default_grading_period
        courses = self.client.fetch_grading_period_courses(grading_period)
        self.populate_all_courses(grading_period, courses)

    def populate_all_courses(self, grading_period: str, courses: List[Course]) -> None:
        # Wholesale replace; a late response for the same period wins.
        for course in courses:
            key = course_key(grading_period, course.class_id)
            self.courses[key] = course
            self._notify(EVENT_COURSE, key)
            self.populate_modified_course(grading_period, course)
        logger.debug("Populated %d course(s) for period %s", len(courses), grading_period)

    def populate_modified_course(self, grading_period: str, course: Course) -> None:
        ordered = sorted(course.assignments, key=_due_date_sort_key, reverse=True)
        key = course_key(grading_period, course.class_id)
        self.modified_courses[key] = ModifiedCourse(
            assignments=[create_assignment(a, False) for a in ordered],
            needs_rollback=False,
        )
        self._notify(EVENT_MODIFIED_COURSE, key)

    def get_course(self, grading_period: str, course_id: int) -> Course:
        try:
            return self.courses[course_key(grading_period, course_id)]
        except KeyError:
            raise CourseLookupError(f"Course {course_id} is not loaded for period {grading_period}") from None

    def get_modified_course(self, grading_period: str, course_id: int) -> ModifiedCourse:
        try:
            return self.modified_courses[course_key(grading_period, course_id)]
        except KeyError:
            raise CourseLookupError(f"Course {course_id} is not loaded for period {grading_period}") from None

    # What-if editing

    def add_custom_assignment(self, grading_period: str, course_id: int, assignment: Assignment) -> CustomAssignment:
        modified = self.get_modified_course(grading_period, course_id)
        custom = create_assignment(assignment, True)
        modified.assignments.insert(0, custom)
        modified.needs_rollback = True
        self._notify(EVENT_MODIFIED_COURSE, course_key(grading_period, course_id))
        return custom

    def update_assignment_score(
        self,
        grading_period: str,
        course_id: int,
        index: int,
        score: Any = UNCHANGED,
        max_score: Optional[str] = None,
    ) -> CustomAssignment:
        modified = self.get_modified_course(grading_period, course_id)
        assignment = self._assignment_at(modified, index, course_id)
        if score is not UNCHANGED:
            assignment.score = score
        if max_score is not None:
            assignment.max_score = max_score
        modified.needs_rollback = True
        self._notify(EVENT_MODIFIED_COURSE, course_key(grading_period, course_id))
        return assignment

    def remove_assignment(self, grading_period: str, course_id: int, index: int) -> CustomAssignment:
        modified = self.get_modified_course(grading_period, course_id)
        assignment = self._assignment_at(modified, index, course_id)
        del modified.assignments[index]
        modified.needs_rollback = True
        self._notify(EVENT_MODIFIED_COURSE, course_key(grading_period, course_id))
        return assignment

    def rollback_course(self, grading_period: str, course_id: int) -> None:
        course = self.get_course(grading_period, course_id)
        self.populate_modified_course(grading_period, course)
        logger.debug("Rolled back course %s for period %s", course_id, grading_period)

    @staticmethod
    def _assignment_at(modified: ModifiedCourse, index: int, course_id: int) -> CustomAssignment:
        if not 0 <= index < len(modified.assignments):
            raise CourseLookupError(f"Course {course_id} has no assignment at index {index}")
        return modified.assignments[index]

    # Calculations

    def _assignments(
        self,
        grading_period: str,
        course_id: int,
        assignments: Optional[List[Assignment]],
    ) -> List[Assignment]:
        if assignments is not None:
            return assignments
        return self.get_modified_course(grading_period, course_id).assignments

    def total_assignment_points(
        self,
        grading_period: str,
        course_id: int,
        category_id: Optional[int] = None,
        assignments: Optional[List[Assignment]] = None,
    ) -> float:
        return grades.total_assignment_points(
            self._assignments(grading_period, course_id, assignments), category_id
        )

    def max_assignment_points(
        self,
        grading_period: str,
        course_id: int,
        category_id: Optional[int] = None,
        assignments: Optional[List[Assignment]] = None,
    ) -> float:
        return grades.max_assignment_points(
            self._assignments(grading_period, course_id, assignments), category_id
        )

    def calculate_weighted_point_ratio(
        self,
        grading_period: str,
        course_id: int,
        adjustments: Optional[Adjustments] = None,
        assignments: Optional[List[Assignment]] = None,
    ) -> float:
        return grades.calculate_weighted_point_ratio(
            self.policy,
            self._assignments(grading_period, course_id, assignments),
            adjustments,
            self.variant,
        )

    def calculate_mark(self, score_type_id: int, ratio: float) -> str:
        return grades.calculate_mark(self.policy, score_type_id, ratio, self.variant)

    def calculate_score_style(self, score_type_id: int, ratio: float) -> str:
        return grades.calculate_score_style(self.policy, score_type_id, ratio, self.variant)

    def _course_mark(self, grading_period: str, course: CourseMetadata) -> str:
        score_type_id = self.policy.default_report_card_score_type_id
        if course_key(grading_period, course.id) in self.modified_courses:
            ratio = self.calculate_weighted_point_ratio(grading_period, course.id)
            return self.calculate_mark(score_type_id, ratio)
        if gpa.preview_has_ratio(course.mark_preview):
            return self.calculate_mark(score_type_id, parse_float(course.mark_preview))
        return course.mark_preview

    def calculate_mcps_gpa(self, grading_period: str) -> gpa.GpaResult:
        try:
            order = self.course_orders[grading_period]
        except KeyError:
            raise CourseLookupError(f"No course order loaded for period {grading_period}") from None
        return gpa.calculate_mcps_gpa(
            (course.name, self._course_mark(grading_period, course)) for course in order
        )
