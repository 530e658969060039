import unittest
from unittest import mock

from gradevue.core import grades
from gradevue.core.policy import (
    Assignment,
    Course,
    CourseMetadata,
    GradingPeriod,
    GradingPolicy,
    MeasureType,
    PolicyVariant,
    ReportCardScoreType,
    ScoreBoundary,
)
from gradevue.services.portal_service import PortalServiceError
from gradevue.state.gradebook import CourseLookupError, Gradebook

POLICY = GradingPolicy(
    measure_types=(
        MeasureType(1, "All Tasks / Assessments", 50),
        MeasureType(2, "Practice / Preparation", 50),
    ),
    report_card_score_types=(
        ReportCardScoreType(
            7, "Letter", 100, (ScoreBoundary(90, "A"), ScoreBoundary(80, "B"), ScoreBoundary(70, "C"))
        ),
    ),
    default_report_card_score_type_id=7,
)

PERIODS = {
    "GU1": GradingPeriod("GU1", "Quarter 1", default_focus=True),
    "GU2": GradingPeriod("GU2", "Quarter 2"),
}

ORDER = [
    CourseMetadata(101, "AP Calculus", "93.1"),
    CourseMetadata(102, "Biology", "B"),
    CourseMetadata(103, "Physical Education", "P"),
]


def assignment(name, score, max_score, measure_type_id, due_date):
    return Assignment(
        id=name,
        name=name,
        score=score,
        max_score=max_score,
        due_date=due_date,
        measure_type_id=measure_type_id,
    )


def calculus_course():
    return Course(
        class_id=101,
        name="AP Calculus",
        assignments=(
            assignment("Quiz 1", "17", "20", 1, "1/5/2024"),
            assignment("Homework 3", "8.5", "10", 2, "2024-02-01T00:00:00Z"),
            assignment("Unit Test", None, "50", 1, ""),
            assignment("Homework 1", "9", "10", 2, "2024-01-10"),
        ),
    )


class GradebookTests(unittest.TestCase):
    def setUp(self):
        self.client = mock.Mock()
        self.gradebook = Gradebook(self.client, POLICY, PERIODS, ORDER, PolicyVariant.MCPS)

    def test_default_grading_period(self):
        self.assertEqual(self.gradebook.default_grading_period, "GU1")
        self.assertEqual(self.gradebook.course_orders["GU1"], ORDER)

    def test_missing_default_period_raises(self):
        with self.assertRaises(CourseLookupError):
            Gradebook(None, POLICY, {"GU2": PERIODS["GU2"]}, ORDER)

    def test_populate_sorts_shadow_by_due_date_descending(self):
        course = calculus_course()
        self.gradebook.populate_all_courses("GU1", [course])

        self.assertIs(self.gradebook.courses["GU1:101"], course)
        modified = self.gradebook.modified_courses["GU1:101"]
        self.assertEqual(
            [a.name for a in modified.assignments],
            ["Homework 3", "Homework 1", "Quiz 1", "Unit Test"],
        )
        self.assertFalse(modified.needs_rollback)
        self.assertFalse(any(a.is_custom for a in modified.assignments))
        self.assertEqual(course.assignments[0].name, "Quiz 1")

    def test_populate_replaces_wholesale(self):
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        replacement = Course(101, "AP Calculus", (assignment("Final", "45", "50", 1, "2024-03-01"),))
        self.gradebook.populate_all_courses("GU1", [replacement])

        modified = self.gradebook.get_modified_course("GU1", 101)
        self.assertEqual([a.name for a in modified.assignments], ["Final"])
        self.assertIs(self.gradebook.get_course("GU1", 101), replacement)

    def test_ratio_round_trip_matches_raw_data(self):
        course = calculus_course()
        self.gradebook.populate_all_courses("GU1", [course])
        expected = grades.calculate_weighted_point_ratio(POLICY, course.assignments, variant=PolicyVariant.MCPS)
        self.assertAlmostEqual(self.gradebook.calculate_weighted_point_ratio("GU1", 101), expected)

    def test_points_use_shadow_or_explicit_list(self):
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        self.assertAlmostEqual(self.gradebook.total_assignment_points("GU1", 101), 34.5)
        self.assertAlmostEqual(self.gradebook.max_assignment_points("GU1", 101, 1), 20)
        explicit = [assignment("Extra", "5", "5", 1, "")]
        self.assertAlmostEqual(self.gradebook.max_assignment_points("GU1", 101, assignments=explicit), 5)

    def test_custom_assignment_and_rollback(self):
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        before = self.gradebook.calculate_weighted_point_ratio("GU1", 101)

        custom = self.gradebook.add_custom_assignment(
            "GU1", 101, assignment("Projected Test", "50", "50", 1, "2024-04-01")
        )
        modified = self.gradebook.get_modified_course("GU1", 101)
        self.assertTrue(custom.is_custom)
        self.assertTrue(modified.needs_rollback)
        self.assertGreater(self.gradebook.calculate_weighted_point_ratio("GU1", 101), before)

        self.gradebook.rollback_course("GU1", 101)
        modified = self.gradebook.get_modified_course("GU1", 101)
        self.assertFalse(modified.needs_rollback)
        self.assertFalse(any(a.is_custom for a in modified.assignments))
        self.assertAlmostEqual(self.gradebook.calculate_weighted_point_ratio("GU1", 101), before)

    def test_editing_shadow_leaves_live_course_untouched(self):
        course = calculus_course()
        self.gradebook.populate_all_courses("GU1", [course])
        self.gradebook.update_assignment_score("GU1", 101, 3, "45", "50")

        self.assertEqual(self.gradebook.get_modified_course("GU1", 101).assignments[3].score, "45")
        self.assertIsNone(course.assignments[2].score)

    def test_updating_max_score_keeps_score(self):
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        updated = self.gradebook.update_assignment_score("GU1", 101, 0, max_score="20")
        self.assertEqual(updated.score, "8.5")
        self.assertEqual(updated.max_score, "20")

        updated = self.gradebook.update_assignment_score("GU1", 101, 0, None)
        self.assertIsNone(updated.score)

    def test_remove_assignment(self):
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        removed = self.gradebook.remove_assignment("GU1", 101, 0)
        self.assertEqual(removed.name, "Homework 3")
        self.assertEqual(len(self.gradebook.get_modified_course("GU1", 101).assignments), 3)

    def test_bad_index_raises(self):
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        with self.assertRaises(CourseLookupError):
            self.gradebook.update_assignment_score("GU1", 101, 9, "1")

    def test_unloaded_course_raises(self):
        with self.assertRaises(CourseLookupError):
            self.gradebook.calculate_weighted_point_ratio("GU1", 555)
        with self.assertRaises(CourseLookupError):
            self.gradebook.rollback_course("GU1", 555)

    def test_subscribers_are_notified(self):
        events = []
        unsubscribe = self.gradebook.subscribe(lambda event, key: events.append((event, key)))
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        self.assertEqual(events, [("course", "GU1:101"), ("modified_course", "GU1:101")])

        unsubscribe()
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        self.assertEqual(len(events), 2)

    def test_update_all_courses_uses_default_period(self):
        self.client.fetch_grading_period_courses.return_value = [calculus_course()]
        self.gradebook.update_all_courses()
        self.client.fetch_grading_period_courses.assert_called_once_with("GU1")
        self.assertIn("GU1:101", self.gradebook.modified_courses)

    def test_update_all_courses_propagates_transport_errors(self):
        self.client.fetch_grading_period_courses.side_effect = PortalServiceError("Session expired")
        with self.assertRaises(PortalServiceError):
            self.gradebook.update_all_courses("GU2")
        self.assertEqual(self.gradebook.courses, {})

    def test_update_without_client_fails(self):
        gradebook = Gradebook(None, POLICY, PERIODS, ORDER)
        with self.assertRaises(PortalServiceError):
            gradebook.update_all_courses()

    def test_mcps_gpa(self):
        # Calculus is loaded (ratio 0.8525 -> B), Biology uses its preview, PE is pass/fail
        self.gradebook.populate_all_courses("GU1", [calculus_course()])
        result = self.gradebook.calculate_mcps_gpa("GU1")
        self.assertAlmostEqual(result.weighted, 3.5)
        self.assertAlmostEqual(result.unweighted, 3.0)

    def test_mcps_gpa_unknown_period(self):
        with self.assertRaises(CourseLookupError):
            self.gradebook.calculate_mcps_gpa("GU9")


if __name__ == "__main__":
    unittest.main()
