from __future__ import annotations

import math
from typing import Optional

from data.models import (
    MarketLevels,
    MarketSnapshot,
    RegimeAnalysis,
    RegimeOutput,
    ValidationError,
    ValueArea,
)

MAX_LEVELS_PER_SIDE = 3


def validate_snapshot(snapshot: MarketSnapshot) -> list[str]:
    """
    Check required fields and ranges.

    Raises ValidationError listing every problem at once; returns the
    non-fatal warnings (missing optional context) otherwise.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not snapshot.symbol:
        errors.append("Missing required field: symbol")
    if snapshot.price is None:
        errors.append("Missing required field: price")
    if snapshot.iv is None:
        errors.append("Missing required field: iv")
    if snapshot.iv_rank is None:
        errors.append("Missing required field: ivRank")
    if snapshot.iv_percentile is None:
        errors.append("Missing required field: ivPercentile")

    if snapshot.price is not None and not (math.isfinite(snapshot.price) and snapshot.price > 0):
        errors.append("price must be a positive number")
    if snapshot.iv is not None and not math.isfinite(snapshot.iv):
        errors.append("iv must be a finite number")
    if snapshot.iv_rank is not None and not 0 <= snapshot.iv_rank <= 100:
        errors.append("ivRank must be between 0 and 100")
    if snapshot.iv_percentile is not None and not 0 <= snapshot.iv_percentile <= 100:
        errors.append("ivPercentile must be between 0 and 100")
    for name, value in (("high52w", snapshot.high_52w), ("low52w", snapshot.low_52w), ("atr", snapshot.atr)):
        if value is not None and not math.isfinite(value):
            errors.append(f"{name} must be a finite number")
    mas = snapshot.moving_averages
    if mas is not None and not all(math.isfinite(v) for v in (mas.ma20, mas.ma50, mas.ma200)):
        errors.append("movingAverages must be finite numbers")

    if errors:
        raise ValidationError(errors, "market snapshot")

    if snapshot.volume_profile is None:
        warnings.append("Volume profile data missing - levels may be less accurate")
    if snapshot.moving_averages is None:
        warnings.append("Moving averages missing - trend detection may be limited")
    return warnings


def classify_volatility(iv_rank: float, iv_percentile: float) -> tuple[str, float]:
    avg = (iv_rank + iv_percentile) / 2.0
    if avg <= 20:
        return "low", 1.0 - (avg / 20.0) * 0.3
    if avg < 50:
        return "normal", 0.8
    if avg < 80:
        return "high", 0.85
    return "extreme", 0.9 + (avg - 80.0) / 200.0


def classify_structure(snapshot: MarketSnapshot) -> tuple[str, float]:
    price = float(snapshot.price)
    mas = snapshot.moving_averages

    if mas is None:
        return _structure_from_52w_range(price, snapshot.high_52w, snapshot.low_52w)

    ma20, ma50, ma200 = mas.ma20, mas.ma50, mas.ma200

    if price > ma20 > ma50 > ma200:
        separation = (ma20 - ma200) / ma200 * 100.0
        return "trending-up", min(0.95, 0.7 + separation * 0.05)

    if price < ma20 < ma50 < ma200:
        separation = (ma200 - ma20) / ma200 * 100.0
        return "trending-down", min(0.95, 0.7 + separation * 0.05)

    spread_pct = (max(ma20, ma50, ma200) - min(ma20, ma50, ma200)) / price * 100.0
    if spread_pct < 2:
        return "range-bound", 0.85

    return "choppy", 0.75


def classify_direction(snapshot: MarketSnapshot) -> tuple[str, float]:
    price = float(snapshot.price)
    mas = snapshot.moving_averages
    if mas is None:
        return "neutral", 0.5

    if price > mas.ma50 * 1.02:
        return "bullish", 0.85
    if price < mas.ma50 * 0.98:
        return "bearish", 0.85
    if price > mas.ma20:
        return "bullish", 0.65
    if price < mas.ma20:
        return "bearish", 0.65
    return "neutral", 0.8


def compute_levels(snapshot: MarketSnapshot) -> MarketLevels:
    price = float(snapshot.price)
    support: list[float] = []
    resistance: list[float] = []

    mas = snapshot.moving_averages
    if mas is not None:
        for level in (mas.ma20, mas.ma50, mas.ma200):
            if level < price:
                support.append(level)
            else:
                resistance.append(level)

    if snapshot.low_52w is not None:
        support.append(snapshot.low_52w)
    if snapshot.high_52w is not None:
        resistance.append(snapshot.high_52w)

    profile = snapshot.volume_profile
    value_area = ValueArea(
        poc=(profile.poc if profile and profile.poc else price),
        high=(profile.value_area_high if profile and profile.value_area_high else price * 1.02),
        low=(profile.value_area_low if profile and profile.value_area_low else price * 0.98),
    )
    if value_area.low < price:
        support.append(value_area.low)
    if value_area.high > price:
        resistance.append(value_area.high)

    nearest_support = sorted({s for s in support if s < price}, reverse=True)[:MAX_LEVELS_PER_SIDE]
    nearest_resistance = sorted({r for r in resistance if r > price})[:MAX_LEVELS_PER_SIDE]
    return MarketLevels(support=nearest_support, resistance=nearest_resistance, value_area=value_area)


def do_not_trade_conditions(snapshot: MarketSnapshot, regime: RegimeAnalysis) -> list[str]:
    conditions: list[str] = []

    if regime.volatility == "extreme":
        conditions.append("Extreme volatility makes pricing unreliable")
    if regime.structure == "choppy" and regime.confidence > 0.7:
        conditions.append("Choppy market structure - high whipsaw risk")
    if regime.confidence < 0.5:
        conditions.append("Low confidence in regime classification - unclear market state")
    if snapshot.dte is not None and snapshot.dte < 3 and snapshot.iv_rank > 70:
        conditions.append("High IV near expiration - gamma risk too high")

    price = float(snapshot.price)
    if snapshot.high_52w:
        distance_from_high = (snapshot.high_52w - price) / snapshot.high_52w * 100.0
        if distance_from_high < 1:
            conditions.append("Price at 52w high - mean reversion risk")
    if snapshot.low_52w:
        distance_from_low = (price - snapshot.low_52w) / snapshot.low_52w * 100.0
        if distance_from_low < 1:
            conditions.append("Price at 52w low - potential breakdown risk")

    return conditions


def analyze_market(snapshot: MarketSnapshot) -> RegimeOutput:
    warnings = validate_snapshot(snapshot)

    volatility, vol_conf = classify_volatility(float(snapshot.iv_rank), float(snapshot.iv_percentile))
    structure, struct_conf = classify_structure(snapshot)
    direction, dir_conf = classify_direction(snapshot)

    regime = RegimeAnalysis(
        volatility=volatility,
        structure=structure,
        direction=direction,
        confidence=min(vol_conf, struct_conf, dir_conf),
    )
    levels = compute_levels(snapshot)

    return RegimeOutput(
        regime=regime,
        levels=levels,
        do_not_trade_conditions=do_not_trade_conditions(snapshot, regime),
        notes=_notes(snapshot, regime, levels),
        warnings=warnings,
        component_confidence={
            "volatility": vol_conf,
            "structure": struct_conf,
            "direction": dir_conf,
        },
    )


def _structure_from_52w_range(
    price: float,
    high_52w: Optional[float],
    low_52w: Optional[float],
) -> tuple[str, float]:
    if high_52w is None or low_52w is None:
        return "range-bound", 0.5
    range_52w = high_52w - low_52w
    if high_52w - price < range_52w * 0.05:
        return "trending-up", 0.6
    if price - low_52w < range_52w * 0.05:
        return "trending-down", 0.6
    return "range-bound", 0.5


def _notes(snapshot: MarketSnapshot, regime: RegimeAnalysis, levels: MarketLevels) -> str:
    parts = [f"IV Rank {_fmt_num(snapshot.iv_rank)} indicates {regime.volatility} volatility environment."]

    if regime.structure == "range-bound":
        low = _fmt_level(levels.support[0] if levels.support else None)
        high = _fmt_level(levels.resistance[0] if levels.resistance else None)
        parts.append(f"Price consolidating between {low} and {high}.")
    elif regime.structure.startswith("trending"):
        parts.append(f"Clear {regime.structure} structure with {regime.confidence:.2f} confidence.")

    if regime.direction != "neutral":
        parts.append(f"Directional bias is {regime.direction}.")

    if regime.confidence < 0.7:
        parts.append("Low confidence - exercise caution.")

    return " ".join(parts)


def _fmt_level(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:.2f}"


def _fmt_num(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if abs(value - round(value)) < 1e-9:
        return f"{int(round(value))}"
    return f"{value:.2f}"
