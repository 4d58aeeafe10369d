"""Numeric helpers."""

from __future__ import annotations

import math


def _round_half_away(value: float) -> float:
    if not math.isfinite(value):
        return value
    whole = float(math.trunc(value))
    if abs(value - whole) >= 0.5:
        whole += math.copysign(1.0, value)
    return whole


def to_fixed(num: float, precision: int) -> float:
    """Round ``num`` to ``precision`` decimal places, halves away from zero.

    Works on binary floats, so values such as 1.005 round down.
    """
    scale = math.pow(10, precision)
    return _round_half_away(num * scale) / scale