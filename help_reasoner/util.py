from __future__ import annotations

import math
from numbers import Number
from typing import Any, Optional


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def to_float(value: Any) -> Optional[float]:
    """
    Convert a telemetry value to a finite float.

    Numbers and numeric strings convert; booleans, None, NaN, infinities
    and any other text return None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Number):
        try:
            f = float(value)
        except (TypeError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            f = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f
