"""In-memory shapes consumed by the grade engine.

Every number that reaches the engine goes through ``to_number`` here, so the
grade functions themselves can assume finite floats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from gradeseer.core.numbers import to_number, to_optional_number

DEFAULT_UNITS = 3


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class Item:
    id: str
    name: str
    score: Optional[float] = None
    max: Optional[float] = None
    date: Optional[str] = None
    target: Optional[float] = None
    topic: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.score is None

    @property
    def has_valid_max(self) -> bool:
        return self.max is not None and self.max > 0

    @property
    def is_scored(self) -> bool:
        return self.score is not None and self.has_valid_max

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Item":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            score=to_optional_number(data.get("score")),
            max=to_optional_number(data.get("max")),
            date=_optional_text(data.get("date")),
            target=to_optional_number(data.get("target")),
            topic=_optional_text(data.get("topic")),
        )


@dataclass
class Component:
    id: str
    name: str
    percentage: float = 0.0
    priority: int = 0
    items: List[Item] = field(default_factory=list)

    @property
    def weight(self) -> float:
        return self.percentage / 100

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Component":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            percentage=to_number(data.get("percentage"), 0.0),
            priority=int(to_number(data.get("priority"), 0.0)),
            items=[Item.from_dict(item) for item in data.get("items") or []],
        )


@dataclass
class Subject:
    id: str
    name: str
    components: List[Component] = field(default_factory=list)
    target_grade: float = 0.0
    units: int = DEFAULT_UNITS
    is_major: bool = False
    color: Optional[str] = None
    user_email: Optional[str] = None

    @property
    def has_target(self) -> bool:
        return self.target_grade > 0

    @property
    def items(self) -> List[Item]:
        return [item for component in self.components for item in component.items]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Subject":
        units = int(to_number(data.get("units"), 0.0))
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            components=[Component.from_dict(c) for c in data.get("components") or []],
            target_grade=to_number(data.get("target_grade"), 0.0),
            units=units if units > 0 else DEFAULT_UNITS,
            is_major=bool(data.get("is_major")),
            color=_optional_text(data.get("color")),
            user_email=_optional_text(data.get("user_email")),
        )

