import unittest

from gradeseer.core.gpa import CourseResult, calc_gwa, calc_subjects_gwa, course_result
from gradeseer.core.grades import SCALE_B, to_grade_point
from gradeseer.core.models import Component, Item, Subject


def single_component_subject(score, units):
    component = Component(
        id="c", name="All", percentage=100, priority=1, items=[Item(id="i", name="Exam", score=score, max=100)]
    )
    return Subject(id="s", name="Subject", components=[component], units=units)


class GWATests(unittest.TestCase):
    def test_gwa(self):
        summary = calc_gwa([CourseResult(3, 4.00), CourseResult(5, 1.50)])
        self.assertEqual(summary.gwa, 2.44)
        self.assertAlmostEqual(summary.total_weighted, 19.5, places=6)
        self.assertEqual(summary.total_units, 8)

    def test_empty(self):
        summary = calc_gwa([])
        self.assertEqual(summary.gwa, 0.0)
        self.assertEqual(summary.total_units, 0.0)

    def test_non_positive_units_use_default(self):
        summary = calc_gwa([CourseResult(0, 2.0), CourseResult(3, 1.0)])
        self.assertEqual(summary.total_units, 6)
        self.assertEqual(summary.gwa, 1.5)

    def test_single_subject_equals_its_grade_point(self):
        for units in (1, 3, 5):
            subject = single_component_subject(88, units)
            summary = calc_subjects_gwa([subject])
            self.assertEqual(summary.gwa, to_grade_point(88, SCALE_B))

    def test_course_result_from_subject(self):
        result = course_result(single_component_subject(95, 4))
        self.assertEqual(result, CourseResult(units=4, grade_point=1.25))


if __name__ == "__main__":
    unittest.main()
