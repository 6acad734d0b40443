from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

_CENTS = Decimal("0.01")
_ONES = Decimal("1")


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce a nullable, numeric or numeric-string value to a finite float.

    Anything that does not parse to a finite number (None, "", "abc", "nan",
    "inf", unrelated objects) yields ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        else:
            number = float(str(value).strip())
    except (ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def to_optional_number(value: Any) -> float | None:
    if value is None:
        return None
    return to_number(value, 0.0)


def round2(value: float) -> float:
    # Half away from zero on the shortest decimal repr, e.g. 2.675 -> 2.68.
    return float(Decimal(repr(float(value))).quantize(_CENTS, rounding=ROUND_HALF_UP))


def round_int(value: float) -> int:
    return int(Decimal(repr(float(value))).quantize(_ONES, rounding=ROUND_HALF_UP))


def clamp_0_100(value: float) -> float:
    return max(0.0, min(100.0, value))


def safe_ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def format_number(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)
