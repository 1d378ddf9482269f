from __future__ import annotations

import pytest

from data.models import TradeLifecycle, ValidationError
from strategies.autopsy import adjustment_timing, analyze_trade, regime_accuracy

LOW_RANGE = {"volatility": "low", "structure": "range-bound", "direction": "neutral", "confidence": 0.8}


def _lifecycle(**overrides) -> TradeLifecycle:
    payload = {
        "trade": {
            "id": "T-9",
            "symbol": "NIFTY",
            "strategy": "Iron Condor",
            "entryDate": "2025-12-01T09:15:00Z",
            "entryPrice": 25000,
            "legs": [],
            "entryRegime": LOW_RANGE,
            "maxLoss": 1000,
            "maxProfit": 400,
            "breakeven": [24600, 25400],
            "pop": 70,
        },
        "entryRegime": LOW_RANGE,
        "exitRegime": LOW_RANGE,
        "actualPnL": 300,
        "exitDate": "2025-12-11T15:00:00Z",
        "adjustments": [],
        "exitReason": "profit target",
    }
    payload.update(overrides)
    return TradeLifecycle.from_dict(payload)


def _adjustments(n: int) -> list[dict]:
    return [{"date": f"2025-12-0{i + 2}", "action": "roll", "reason": "tested"} for i in range(n)]


def test_clean_winner_is_repeatable() -> None:
    autopsy = analyze_trade(_lifecycle())
    assert autopsy.mistake_type == "none"
    assert autopsy.should_repeat_strategy is True
    assert autopsy.lesson.startswith("Successful execution")
    assert autopsy.hold_time == 10
    assert autopsy.expected_pnl == pytest.approx(400 * 0.7 - 1000 * 0.3)
    assert autopsy.confidence_error == pytest.approx((1.0 - 0.7) * 0.8)
    assert autopsy.incorrect_decisions == []
    assert len(autopsy.correct_decisions) == 3


def test_volatility_shift_with_confidence_jump_is_misread() -> None:
    exit_regime = {**LOW_RANGE, "volatility": "high", "confidence": 0.4}
    autopsy = analyze_trade(_lifecycle(exitRegime=exit_regime, actualPnL=-400))
    assert autopsy.mistake_type == "regime-misread"
    assert "Volatility regime shifted from low to high" in autopsy.lesson
    assert autopsy.should_repeat_strategy is False


def test_small_volatility_drift_is_tolerated() -> None:
    lifecycle = _lifecycle(exitRegime={**LOW_RANGE, "volatility": "normal", "confidence": 0.7})
    assert regime_accuracy(lifecycle)["correct"] is True


def test_structure_change_is_misread() -> None:
    lifecycle = _lifecycle(exitRegime={**LOW_RANGE, "structure": "trending-down"})
    assert regime_accuracy(lifecycle) == {
        "correct": False,
        "error": "Market structure changed from range-bound to trending-down",
    }


def test_lucky_profit_is_unsuitable_and_not_repeated() -> None:
    lifecycle = _lifecycle(exitRegime={**LOW_RANGE, "structure": "choppy"}, actualPnL=350)
    autopsy = analyze_trade(lifecycle)
    assert autopsy.mistake_type == "regime-misread"
    assert autopsy.should_repeat_strategy is False
    assert any("lucky outcome" in line for line in autopsy.incorrect_decisions)


def test_low_iv_structure_in_high_vol_is_unsuitable() -> None:
    high = {**LOW_RANGE, "volatility": "high"}
    autopsy = analyze_trade(_lifecycle(entryRegime=high, exitRegime=high, actualPnL=200))
    assert autopsy.mistake_type == "strategy-unsuitable"
    assert "Iron Condor unsuitable for high volatility environment" in autopsy.lesson
    assert autopsy.should_repeat_strategy is False


def test_bullish_spread_in_bearish_tape_with_loss() -> None:
    bearish = {**LOW_RANGE, "direction": "bearish"}
    lifecycle = _lifecycle(entryRegime=bearish, exitRegime=bearish, actualPnL=-200, adjustments=_adjustments(1))
    lifecycle.trade.strategy = "Put Credit Spread"
    autopsy = analyze_trade(lifecycle)
    assert autopsy.mistake_type == "strategy-unsuitable"
    assert "Bullish strategy deployed in bearish environment" in autopsy.lesson


@pytest.mark.parametrize(
    "adjustments,pnl,timing",
    [
        (0, -100, "late"),
        (0, 0, "none"),
        (3, 200, "early"),
        (1, -800, "late"),
        (1, -300, "appropriate"),
        (2, 200, "appropriate"),
    ],
)
def test_adjustment_timing_table(adjustments: int, pnl: float, timing: str) -> None:
    lifecycle = _lifecycle(actualPnL=pnl, adjustments=_adjustments(adjustments))
    assert adjustment_timing(lifecycle)["timing"] == timing


def test_loss_without_adjustment_is_late() -> None:
    autopsy = analyze_trade(_lifecycle(actualPnL=-300))
    assert autopsy.mistake_type == "late-adjustment"
    assert autopsy.lesson.startswith("Adjustment too late")
    assert autopsy.confidence_error == pytest.approx(-0.7 * 0.8)
    assert autopsy.should_repeat_strategy is False


def test_contained_loss_with_good_process_is_repeatable() -> None:
    autopsy = analyze_trade(_lifecycle(actualPnL=-300, adjustments=_adjustments(1)))
    assert autopsy.mistake_type == "none"
    assert autopsy.should_repeat_strategy is True
    assert autopsy.lesson.startswith("Minor loss")


def test_over_managed_winner() -> None:
    autopsy = analyze_trade(_lifecycle(actualPnL=250, adjustments=_adjustments(3)))
    assert autopsy.mistake_type == "early-adjustment"
    assert autopsy.should_repeat_strategy is True


def test_validation_lists_missing_pieces() -> None:
    with pytest.raises(ValidationError) as exc:
        analyze_trade(TradeLifecycle.from_dict({"exitDate": "2025-12-11"}))
    assert exc.value.errors == [
        "Missing trade data",
        "Missing entry regime",
        "Missing exit regime",
        "Missing actual P&L",
    ]
