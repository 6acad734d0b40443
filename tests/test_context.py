from datetime import date
import unittest

from gradeseer.core.context import (
    SAFETY_GREEN,
    SAFETY_RED,
    SAFETY_YELLOW,
    STATUS_ABOVE_TARGET,
    STATUS_BELOW_TARGET,
    STATUS_UNKNOWN,
    TREND_DECLINING,
    assemble_subject_context,
    component_status,
    days_until,
    safety_zone,
)
from gradeseer.core.models import Subject

TODAY = date(2026, 10, 19)


def mixed_subject(target_grade="3.0"):
    return Subject.from_dict(
        {
            "id": "s1",
            "name": "Calculus",
            "target_grade": target_grade,
            "units": "4",
            "components": [
                {
                    "id": "c1",
                    "name": "Quizzes",
                    "percentage": "30",
                    "priority": 1,
                    "items": [
                        {"id": "i1", "name": "Quiz 1", "score": 18, "max": 20, "date": "2026-10-01"},
                        {"id": "i2", "name": "Quiz 2", "score": None, "max": 20, "date": "2026-10-25"},
                    ],
                },
                {
                    "id": "c2",
                    "name": "Exams",
                    "percentage": "70",
                    "priority": 2,
                    "items": [
                        {"id": "i3", "name": "Midterm Exam", "score": 70, "max": 100},
                        {"id": "i4", "name": "Final Exam", "score": None, "max": 100, "date": "2026-12-10"},
                        {"id": "i5", "name": "Broken", "score": 3, "max": 0},
                    ],
                },
            ],
        }
    )


class SubjectContextTests(unittest.TestCase):
    def test_current_status(self):
        status = assemble_subject_context(mixed_subject(), TODAY)["current_status"]
        self.assertEqual(status["raw_percentage"], 38.0)
        self.assertEqual(status["current_grade"], 5.0)
        self.assertEqual(status["projected_percentage"], 75.5)
        self.assertEqual(status["projected_grade"], 3.0)
        self.assertEqual(status["best_case"], 2.0)
        self.assertEqual(status["worst_case"], 5.0)
        self.assertEqual(status["items_completed"], 2)
        self.assertEqual(status["items_total"], 4)
        self.assertEqual(status["percent_complete"], 50)
        self.assertEqual(status["gap_to_target"], 2.0)
        self.assertEqual(status["safety_zone"], SAFETY_RED)

    def test_subject_block(self):
        subject = assemble_subject_context(mixed_subject(), TODAY)["subject"]
        self.assertEqual(subject["name"], "Calculus")
        self.assertEqual(subject["target_grade"], 3.0)
        self.assertEqual(subject["units"], 4)

    def test_assessments_are_partitioned(self):
        ctx = assemble_subject_context(mixed_subject(), TODAY)
        completed = [a["name"] for a in ctx["completed_assessments"]]
        upcoming = {a["name"]: a for a in ctx["upcoming_assessments"]}
        self.assertEqual(completed, ["Quiz 1", "Midterm Exam"])
        self.assertEqual(sorted(upcoming), ["Final Exam", "Quiz 2"])
        self.assertEqual(upcoming["Quiz 2"]["days_until"], 6)
        self.assertEqual(upcoming["Final Exam"]["days_until"], 52)
        self.assertEqual(upcoming["Final Exam"]["weight"], 70.0)
        self.assertEqual(ctx["completed_assessments"][0]["percentage"], 90.0)

    def test_components(self):
        components = assemble_subject_context(mixed_subject(), TODAY)["components"]
        quizzes, exams = components
        self.assertEqual(quizzes["percentage"], 45.0)
        self.assertEqual(quizzes["progress"], 50)
        self.assertEqual(exams["percentage"], 35.0)
        self.assertEqual(exams["average_score"], 5.0)
        self.assertEqual(exams["status"], STATUS_ABOVE_TARGET)

    def test_insights(self):
        insights = assemble_subject_context(mixed_subject(), TODAY)["performance_insights"]
        self.assertEqual(insights["quiz_average"], 18.0)
        self.assertEqual(insights["exam_average"], 70.0)
        self.assertEqual(insights["trending"], TREND_DECLINING)

    def test_strongest_and_weakest(self):
        subject = Subject.from_dict(
            {
                "id": "s2",
                "name": "Biology",
                "components": [
                    {"id": "a", "name": "Labs", "percentage": 50, "items": [{"id": "x", "name": "Lab", "score": 99, "max": 100}]},
                    {"id": "b", "name": "Tests", "percentage": 50, "items": [{"id": "y", "name": "Test", "score": 60, "max": 100}]},
                ],
            }
        )
        insights = assemble_subject_context(subject, TODAY)["performance_insights"]
        self.assertEqual(insights["strongest_component"], "Tests")
        self.assertEqual(insights["weakest_component"], "Labs")

    def test_on_target_is_green(self):
        subject = Subject.from_dict(
            {
                "id": "s3",
                "name": "History",
                "target_grade": 2.0,
                "components": [
                    {"id": "c", "name": "Essays", "percentage": 100, "items": [{"id": "e", "name": "Essay", "score": 99, "max": 100}]}
                ],
            }
        )
        ctx = assemble_subject_context(subject, TODAY)
        self.assertEqual(ctx["current_status"]["current_grade"], 1.0)
        self.assertEqual(ctx["current_status"]["safety_zone"], SAFETY_GREEN)
        self.assertEqual(ctx["current_status"]["gap_to_target"], -1.0)
        self.assertEqual(ctx["components"][0]["status"], STATUS_BELOW_TARGET)

    def test_empty_subject(self):
        ctx = assemble_subject_context(Subject(id="s4", name="Empty"), TODAY)
        self.assertEqual(ctx["current_status"]["percent_complete"], 0)
        self.assertEqual(ctx["current_status"]["gap_to_target"], 0.0)
        self.assertEqual(ctx["components"], [])
        self.assertEqual(ctx["performance_insights"]["strongest_component"], "")


class ZoneTests(unittest.TestCase):
    def test_with_target(self):
        self.assertEqual(safety_zone(2.0, 40, 3.0), SAFETY_GREEN)
        self.assertEqual(safety_zone(3.5, 72, 3.0), SAFETY_YELLOW)
        self.assertEqual(safety_zone(3.5, 70, 3.0), SAFETY_RED)

    def test_without_target(self):
        self.assertEqual(safety_zone(5.0, 80, 0), SAFETY_GREEN)
        self.assertEqual(safety_zone(5.0, 70, 0), SAFETY_YELLOW)
        self.assertEqual(safety_zone(5.0, 50, 0), SAFETY_RED)

    def test_component_status(self):
        self.assertEqual(component_status(2.0, 0), STATUS_UNKNOWN)
        self.assertEqual(component_status(2.0, 2.0), STATUS_ABOVE_TARGET)
        self.assertEqual(component_status(2.25, 2.0), STATUS_ABOVE_TARGET)
        self.assertEqual(component_status(1.75, 2.0), STATUS_BELOW_TARGET)

    def test_days_until(self):
        self.assertEqual(days_until("2026-10-25T00:00:00Z", TODAY), 6)
        self.assertEqual(days_until("2026-10-18", TODAY), -1)
        self.assertIsNone(days_until(None, TODAY))
        self.assertIsNone(days_until("next week", TODAY))


if __name__ == "__main__":
    unittest.main()
