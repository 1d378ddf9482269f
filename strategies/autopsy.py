from __future__ import annotations

from data.models import TradeAutopsy, TradeLifecycle, ValidationError, parse_date

LOW_IV_STRUCTURES = {"Iron Butterfly", "Iron Condor"}
BULLISH_SINGLE_SIDED = {"Put Credit Spread"}

LESSON_TEMPLATES = {
    "regime-misread": "Regime misread: {detail}. Improve regime detection with additional indicators.",
    "strategy-unsuitable": "Strategy selection error: {detail}. Ensure strategy aligns with regime.",
    "late-adjustment": "Adjustment too late: {detail}. Set tighter stop-loss or thesis-break triggers.",
    "early-adjustment": "Over-managed position: {detail}. Trust the thesis and avoid premature adjustments.",
}


def validate_lifecycle(lifecycle: TradeLifecycle) -> None:
    errors: list[str] = []
    if lifecycle.trade is None:
        errors.append("Missing trade data")
    if lifecycle.entry_regime is None:
        errors.append("Missing entry regime")
    if lifecycle.exit_regime is None:
        errors.append("Missing exit regime")
    if lifecycle.actual_pnl is None:
        errors.append("Missing actual P&L")
    if errors:
        raise ValidationError(errors, "trade lifecycle")


def regime_accuracy(lifecycle: TradeLifecycle) -> dict:
    entry = lifecycle.entry_regime
    exit_ = lifecycle.exit_regime

    if (
        entry.volatility == exit_.volatility
        and entry.structure == exit_.structure
        and entry.direction == exit_.direction
    ):
        return {"correct": True, "error": ""}

    if entry.volatility != exit_.volatility and abs(entry.confidence - exit_.confidence) > 0.3:
        return {
            "correct": False,
            "error": f"Volatility regime shifted from {entry.volatility} to {exit_.volatility}",
        }

    if entry.structure != exit_.structure:
        return {
            "correct": False,
            "error": f"Market structure changed from {entry.structure} to {exit_.structure}",
        }

    # Direction-only or low-conviction volatility drift is tolerated.
    return {"correct": True, "error": ""}


def strategy_suitability(lifecycle: TradeLifecycle, accuracy: dict) -> dict:
    strategy = lifecycle.trade.strategy
    entry = lifecycle.entry_regime
    pnl = lifecycle.actual_pnl

    if strategy in LOW_IV_STRUCTURES and entry.volatility in {"high", "extreme"}:
        return {"suitable": False, "reason": f"{strategy} unsuitable for {entry.volatility} volatility environment"}

    if strategy in BULLISH_SINGLE_SIDED and entry.direction == "bearish" and pnl < 0:
        return {"suitable": False, "reason": "Bullish strategy deployed in bearish environment"}

    if pnl > 0 and not accuracy["correct"]:
        return {"suitable": False, "reason": "Profitable but regime analysis was incorrect - lucky outcome"}

    return {"suitable": True, "reason": "Strategy aligned with regime"}


def adjustment_timing(lifecycle: TradeLifecycle) -> dict:
    adjustments = lifecycle.adjustments
    pnl = lifecycle.actual_pnl

    if not adjustments:
        if pnl < 0:
            return {"timing": "late", "reason": "Should have adjusted but did not - loss incurred"}
        return {"timing": "none", "reason": "No adjustment needed"}

    if pnl > 0 and len(adjustments) >= 3:
        return {"timing": "early", "reason": "Multiple adjustments on profitable trade - over-managed"}

    if _loss_percent(lifecycle) < -75:
        return {"timing": "late", "reason": "Adjustment came too late - significant loss already incurred"}

    return {"timing": "appropriate", "reason": "Adjustment timing was reasonable"}


def classify_mistake(accuracy: dict, suitability: dict, timing: dict) -> str:
    if not accuracy["correct"]:
        return "regime-misread"
    if not suitability["suitable"]:
        return "strategy-unsuitable"
    if timing["timing"] == "late":
        return "late-adjustment"
    if timing["timing"] == "early":
        return "early-adjustment"
    return "none"


def extract_lesson(lifecycle: TradeLifecycle, mistake: str, accuracy: dict, suitability: dict, timing: dict) -> str:
    details = {
        "regime-misread": accuracy["error"],
        "strategy-unsuitable": suitability["reason"],
        "late-adjustment": timing["reason"],
        "early-adjustment": timing["reason"],
    }
    if mistake in LESSON_TEMPLATES:
        return LESSON_TEMPLATES[mistake].format(detail=details[mistake])
    if lifecycle.actual_pnl > 0:
        return "Successful execution: Regime read correctly, strategy suitable, timing appropriate. Repeat this approach."
    return "Minor loss within acceptable range. Execution was correct despite negative outcome."


def expected_pnl(lifecycle: TradeLifecycle) -> float:
    """Probability-weighted P&L from the recorded max profit / max loss / POP."""
    trade = lifecycle.trade
    pop = float(trade.pop or 0.0)
    max_profit = float(trade.max_profit or 0.0)
    max_loss = float(trade.max_loss or 0.0)
    return max_profit * (pop / 100.0) - max_loss * ((100.0 - pop) / 100.0)


def confidence_error(lifecycle: TradeLifecycle) -> float:
    """
    Outcome minus predicted win probability, scaled by entry-regime confidence.

    Positive: the POP estimate was too pessimistic. Negative: too optimistic.
    """
    outcome = 1.0 if lifecycle.actual_pnl > 0 else 0.0
    pop = float(lifecycle.trade.pop or 0.0)
    return (outcome - pop / 100.0) * lifecycle.entry_regime.confidence


def should_repeat(lifecycle: TradeLifecycle, mistake: str, suitability: dict) -> bool:
    if not suitability["suitable"]:
        return False
    if mistake == "regime-misread":
        return False
    if lifecycle.actual_pnl > 0:
        return True
    return _loss_percent(lifecycle) > -50 and mistake == "none"


def hold_time_days(lifecycle: TradeLifecycle) -> int:
    entry = parse_date(lifecycle.trade.entry_date)
    exit_ = parse_date(lifecycle.exit_date)
    if entry is None or exit_ is None:
        return 0
    return int(round((exit_ - entry).total_seconds() / 86400.0))


def analyze_trade(lifecycle: TradeLifecycle) -> TradeAutopsy:
    validate_lifecycle(lifecycle)

    accuracy = regime_accuracy(lifecycle)
    suitability = strategy_suitability(lifecycle, accuracy)
    timing = adjustment_timing(lifecycle)
    mistake = classify_mistake(accuracy, suitability, timing)

    correct: list[str] = []
    incorrect: list[str] = []
    if accuracy["correct"]:
        correct.append("Regime analysis was accurate")
    else:
        incorrect.append(f"Regime misread: {accuracy['error']}")
    if suitability["suitable"]:
        correct.append("Strategy selection was appropriate")
    else:
        incorrect.append(f"Strategy unsuitable: {suitability['reason']}")
    if timing["timing"] in {"appropriate", "none"}:
        correct.append("Adjustment timing was correct")
    else:
        incorrect.append(f"Adjustment issue: {timing['reason']}")

    return TradeAutopsy(
        mistake_type=mistake,
        lesson=extract_lesson(lifecycle, mistake, accuracy, suitability, timing),
        should_repeat_strategy=should_repeat(lifecycle, mistake, suitability),
        confidence_error=confidence_error(lifecycle),
        actual_pnl=float(lifecycle.actual_pnl),
        expected_pnl=expected_pnl(lifecycle),
        hold_time=hold_time_days(lifecycle),
        correct_decisions=correct,
        incorrect_decisions=incorrect,
    )


def _loss_percent(lifecycle: TradeLifecycle) -> float:
    max_loss = lifecycle.trade.max_loss
    if not max_loss:
        return 0.0
    return lifecycle.actual_pnl / max_loss * 100.0
