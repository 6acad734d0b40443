from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from gradeseer.core.grades import SCALE_B, scored_subject_percentage, to_grade_point
from gradeseer.core.models import DEFAULT_UNITS, Subject
from gradeseer.core.numbers import round2


@dataclass(frozen=True)
class CourseResult:
    units: float
    grade_point: float


@dataclass(frozen=True)
class GwaSummary:
    gwa: float
    total_weighted: float
    total_units: float


def calc_gwa(courses: Iterable[CourseResult]) -> GwaSummary:
    """
    GWA = Σ(units * grade_point) / Σ(units)
    Units that are unset or not positive count as the default load.
    """
    weighted = 0.0
    total_units = 0.0
    for course in courses:
        units = course.units if course.units > 0 else DEFAULT_UNITS
        weighted += units * course.grade_point
        total_units += units
    if total_units == 0:
        return GwaSummary(gwa=0.0, total_weighted=0.0, total_units=0.0)
    return GwaSummary(gwa=round2(weighted / total_units), total_weighted=weighted, total_units=total_units)


def course_result(subject: Subject, scale: str = SCALE_B) -> CourseResult:
    grade_point = to_grade_point(scored_subject_percentage(subject.components), scale)
    return CourseResult(units=subject.units, grade_point=grade_point)


def calc_subjects_gwa(subjects: Iterable[Subject], scale: str = SCALE_B) -> GwaSummary:
    return calc_gwa(course_result(subject, scale) for subject in subjects)
