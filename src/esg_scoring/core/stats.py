from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional


def to_float(value: Any) -> Optional[float]:
    """
    Parse a numeric input coming from the REST payload.

    Numbers and numeric strings are accepted. Booleans, NaN, infinities and
    anything unparseable return None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def is_number(value: Any) -> bool:
    """True for real int/float values (not bool, not NaN)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def round_half_up(value: Optional[float], ndigits: int = 0) -> Optional[float]:
    """Round for display only, halves away from zero (44.5 -> 45)."""
    if value is None:
        return None
    try:
        quant = Decimal(1).scaleb(-ndigits)
        return float(Decimal(str(value)).quantize(quant, rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return None


def round_int(value: Optional[float]) -> Optional[int]:
    rounded = round_half_up(value, 0)
    return int(rounded) if rounded is not None else None


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def mean_or_none(values: Iterable[Optional[float]]) -> Optional[float]:
    present: List[float] = [v for v in values if v is not None]
    if not present:
        return None
    return math.fsum(present) / len(present)


def display_percent(value: Optional[float], ndigits: int = 2) -> float:
    """Population figures: rounded to 2 dp, 0 when there is no data."""
    rounded = round_half_up(value, ndigits)
    return rounded if rounded is not None else 0.0
