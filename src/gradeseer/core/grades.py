from __future__ import annotations

from typing import Callable, Dict, Iterable, Optional, Tuple

from gradeseer.core.models import Component, Item, Subject
from gradeseer.core.numbers import clamp_0_100, round2, round_int, safe_ratio

SCALE_A = "A"
SCALE_B = "B"

FAILING_GRADE_POINT = 5.0

# (minimum percentage, grade point), highest threshold first.
GRADE_SCALES: Dict[str, Tuple[Tuple[float, float], ...]] = {
    SCALE_A: (
        (98, 1.00),
        (95, 1.25),
        (92, 1.50),
        (89, 1.75),
        (86, 2.00),
        (83, 2.25),
        (80, 2.50),
        (77, 2.75),
        (74, 3.00),
        (71, 3.25),
        (68, 3.50),
        (65, 3.75),
        (60, 4.00),
    ),
    SCALE_B: (
        (97, 1.00),
        (94, 1.25),
        (91, 1.50),
        (88, 1.75),
        (85, 2.00),
        (82, 2.25),
        (79, 2.50),
        (76, 2.75),
        (75, 3.00),
        (72, 4.00),
    ),
}

PROJECTED_FILL = 75.0
BEST_CASE_FILL = 100.0
WORST_CASE_FILL = 0.0

HISTORY_REACHED = "reached"
HISTORY_MISSED = "missed"


def to_grade_point(percentage: float, scale: str = SCALE_A) -> float:
    try:
        thresholds = GRADE_SCALES[scale]
    except KeyError as exc:
        raise ValueError(f"Unsupported grade scale: {scale}") from exc

    for minimum, grade_point in thresholds:
        if percentage >= minimum:
            return grade_point
    return FAILING_GRADE_POINT


def component_grade(items: Iterable[Item], fill_percent: Optional[float] = None) -> float:
    """Percentage earned in one component.

    Items without a usable ``max`` are ignored. Pending items count toward the
    denominator and contribute ``fill_percent`` of their max to the numerator
    (zero when no fill is given).
    """
    fill = None if fill_percent is None else clamp_0_100(fill_percent) / 100
    total_score = 0.0
    total_max = 0.0
    for item in items:
        if not item.has_valid_max:
            continue
        if item.score is not None:
            total_score += item.score
        elif fill is not None:
            total_score += fill * item.max
        total_max += item.max

    if total_max <= 0:
        return 0.0
    return round2(clamp_0_100(total_score / total_max * 100))


def scored_component_grade(items: Iterable[Item]) -> float:
    """Percentage earned in one component, counting scored items only."""
    scored = [item for item in items if item.is_scored]
    return component_grade(scored)


def subject_percentage(
    components: Iterable[Component],
    grade_for: Callable[[Component], float] = lambda c: component_grade(c.items),
) -> float:
    total_weighted = 0.0
    total_weight = 0.0
    for component in components:
        weight = component.weight
        if weight <= 0:
            continue
        total_weighted += grade_for(component) * weight
        total_weight += weight

    if total_weight <= 0:
        return 0.0
    return round2(total_weighted / total_weight)


def filled_subject_percentage(components: Iterable[Component], fill_percent: Optional[float]) -> float:
    return subject_percentage(components, lambda c: component_grade(c.items, fill_percent))


def scored_subject_percentage(components: Iterable[Component]) -> float:
    return subject_percentage(components, lambda c: scored_component_grade(c.items))


def completion_percent(items: Iterable[Item]) -> int:
    completed = 0
    total = 0
    for item in items:
        total += 1
        if item.score is not None:
            completed += 1
    return round_int(safe_ratio(completed, total) * 100)


def valid_item_counts(items: Iterable[Item]) -> Tuple[int, int]:
    """Return ``(completed, total)`` over items with a usable max."""
    completed = 0
    total = 0
    for item in items:
        if not item.has_valid_max:
            continue
        total += 1
        if item.score is not None:
            completed += 1
    return completed, total


def valid_completion_percent(items: Iterable[Item]) -> int:
    completed, total = valid_item_counts(items)
    return round_int(safe_ratio(completed, total) * 100)


def final_grade(subject: Subject) -> float:
    """Grade point recorded when a subject is finished."""
    return to_grade_point(scored_subject_percentage(subject.components), SCALE_A)


def history_status(final_grade_point: float, target_grade: float) -> str:
    return HISTORY_REACHED if final_grade_point <= target_grade else HISTORY_MISSED


def evaluate_subject(subject: Subject, scale: str = SCALE_B) -> Tuple[float, float, int]:
    """Dashboard card values: ``(percentage, grade_point, completion)``."""
    percentage = scored_subject_percentage(subject.components)
    return percentage, to_grade_point(percentage, scale), completion_percent(subject.items)
