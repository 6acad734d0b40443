"""Academic-status snapshot for one subject.

``assemble_subject_context`` is the single entry point used by the subject
page, the advisor chat and its local fallback. It is a pure function of the
subject tree (plus an optional reference date for due-date distances) and
returns plain JSON-serializable dicts.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from statistics import mean
from typing import Any, Dict, List, Optional

from gradeseer.core.grades import (
    BEST_CASE_FILL,
    PROJECTED_FILL,
    SCALE_A,
    WORST_CASE_FILL,
    component_grade,
    filled_subject_percentage,
    to_grade_point,
    valid_completion_percent,
    valid_item_counts,
)
from gradeseer.core.models import Component, Item, Subject
from gradeseer.core.numbers import round2

SAFETY_GREEN = "green"
SAFETY_YELLOW = "yellow"
SAFETY_RED = "red"

STATUS_ABOVE_TARGET = "above_target"
STATUS_BELOW_TARGET = "below_target"
STATUS_UNKNOWN = "unknown"

TREND_IMPROVING = "improving"
TREND_DECLINING = "declining"

GRADE_SCALE_LABEL = "1.00-5.00 (lower is better)"

_QUIZ_PATTERN = re.compile(r"quiz", re.IGNORECASE)
_EXAM_PATTERN = re.compile(r"midterm|final|exam", re.IGNORECASE)


def safety_zone(current_grade: float, raw_percentage: float, target_grade: float) -> str:
    if target_grade > 0:
        if current_grade <= target_grade:
            return SAFETY_GREEN
        return SAFETY_YELLOW if raw_percentage >= 71 else SAFETY_RED
    if raw_percentage >= 75:
        return SAFETY_GREEN
    return SAFETY_YELLOW if raw_percentage >= 65 else SAFETY_RED


def component_status(grade_point: float, target_grade: float) -> str:
    if target_grade <= 0:
        return STATUS_UNKNOWN
    return STATUS_ABOVE_TARGET if grade_point >= target_grade else STATUS_BELOW_TARGET


def days_until(due_date: Optional[str], today: date) -> Optional[int]:
    if not due_date:
        return None
    text = due_date.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text).date()
    except ValueError:
        try:
            parsed = date.fromisoformat(text[:10])
        except ValueError:
            return None
    return (parsed - today).days


def _average(values: List[float]) -> float:
    return round2(mean(values)) if values else 0.0


def _component_context(component: Component, target_grade: float) -> Dict[str, Any]:
    percentage = component_grade(component.items)
    grade_point = to_grade_point(percentage, SCALE_A)
    return {
        "name": component.name,
        "weight": component.percentage,
        "progress": valid_completion_percent(component.items),
        "percentage": percentage,
        "average_score": grade_point,
        "target_score": target_grade if target_grade > 0 else 0.0,
        "status": component_status(grade_point, target_grade),
    }


def _completed_assessment(item: Item, component: Component) -> Dict[str, Any]:
    return {
        "name": item.name,
        "component": component.name,
        "weight": component.percentage,
        "score": item.score,
        "max_score": item.max,
        "percentage": round2(item.score / item.max * 100),
        "date": item.date or "",
    }


def _upcoming_assessment(item: Item, component: Component, today: date) -> Dict[str, Any]:
    return {
        "name": item.name,
        "component": component.name,
        "weight": component.percentage,
        "due_date": item.date or "",
        "days_until": days_until(item.date, today),
    }


def _performance_insights(
    completed: List[Dict[str, Any]],
    components: List[Dict[str, Any]],
    current_grade: float,
    projected_grade: float,
) -> Dict[str, Any]:
    quiz_scores = [a["score"] for a in completed if _QUIZ_PATTERN.search(a["name"])]
    exam_scores = [a["score"] for a in completed if _EXAM_PATTERN.search(a["name"])]

    # Ties keep the first component listed.
    strongest = max(components, key=lambda c: c["average_score"], default=None)
    weakest = min(components, key=lambda c: c["average_score"], default=None)

    return {
        "quiz_average": _average(quiz_scores),
        "exam_average": _average(exam_scores),
        "trending": TREND_IMPROVING if projected_grade >= current_grade else TREND_DECLINING,
        "strongest_component": strongest["name"] if strongest else "",
        "weakest_component": weakest["name"] if weakest else "",
    }


def assemble_subject_context(subject: Subject, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or date.today()
    target_grade = subject.target_grade if subject.has_target else 0.0

    raw_percentage = filled_subject_percentage(subject.components, None)
    projected_percentage = filled_subject_percentage(subject.components, PROJECTED_FILL)
    best_percentage = filled_subject_percentage(subject.components, BEST_CASE_FILL)
    worst_percentage = filled_subject_percentage(subject.components, WORST_CASE_FILL)

    current_grade = to_grade_point(raw_percentage, SCALE_A)
    projected_grade = to_grade_point(projected_percentage, SCALE_A)
    best_case = to_grade_point(best_percentage, SCALE_A)
    worst_case = to_grade_point(worst_percentage, SCALE_A)

    items_completed, items_total = valid_item_counts(subject.items)

    components = [_component_context(c, target_grade) for c in subject.components]
    completed = [
        _completed_assessment(item, c)
        for c in subject.components
        for item in c.items
        if item.is_scored
    ]
    upcoming = [
        _upcoming_assessment(item, c, today)
        for c in subject.components
        for item in c.items
        if item.is_pending
    ]

    return {
        "subject": {
            "id": subject.id,
            "name": subject.name,
            "target_grade": target_grade,
            "units": subject.units,
            "grade_scale": GRADE_SCALE_LABEL,
        },
        "current_status": {
            "current_grade": current_grade,
            "raw_percentage": raw_percentage,
            "projected_grade": projected_grade,
            "projected_percentage": projected_percentage,
            "best_case": best_case,
            "worst_case": worst_case,
            "percent_complete": valid_completion_percent(subject.items),
            "items_completed": items_completed,
            "items_total": items_total,
            "gap_to_target": round2(current_grade - target_grade) if target_grade > 0 else 0.0,
            "safety_zone": safety_zone(current_grade, raw_percentage, target_grade),
        },
        "components": components,
        "completed_assessments": completed,
        "upcoming_assessments": upcoming,
        "performance_insights": _performance_insights(completed, components, current_grade, projected_grade),
    }
