from __future__ import annotations

import math
from typing import Optional

STRIKE_STEP = 50


def round_strike(value: float, step: int = STRIKE_STEP) -> float:
    """Snap a price onto the listed strike grid (ties round up)."""
    return float(math.floor(value / step + 0.5) * step)


def estimate_premium(price: float, iv: float, k: float) -> float:
    """
    Simplified option premium estimate: spot x IV x moneyness factor.

    `iv` is quoted in percent (10.2 means 10.2%). Not a pricing model.
    """
    return price * (iv / 100.0) * k


def round_cents(value: float) -> float:
    return math.floor(value * 100.0 + 0.5) / 100.0


def pct_distance(value: Optional[float], reference: Optional[float]) -> Optional[float]:
    """Absolute distance of `value` from `reference`, as percent of `reference`."""
    if value is None or reference in (None, 0):
        return None
    return abs(value - reference) / reference * 100.0
