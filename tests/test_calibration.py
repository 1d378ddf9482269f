from __future__ import annotations

import pytest

from data.models import TradeLifecycle
from strategies.calibration import summarize_lifecycles

REGIME = {"volatility": "low", "structure": "range-bound", "direction": "neutral", "confidence": 0.8}


def _closed(trade_id: str, strategy: str, pnl: float, pop: float = 70, adjustments: int = 0) -> TradeLifecycle:
    return TradeLifecycle.from_dict(
        {
            "trade": {
                "id": trade_id,
                "strategy": strategy,
                "entryDate": "2025-11-03",
                "entryPrice": 25000,
                "entryRegime": REGIME,
                "maxLoss": 1000,
                "maxProfit": 400,
                "pop": pop,
            },
            "entryRegime": REGIME,
            "exitRegime": REGIME,
            "actualPnL": pnl,
            "exitDate": "2025-11-10",
            "adjustments": [{"date": "2025-11-05", "action": "roll", "reason": "tested"}] * adjustments,
        }
    )


def test_summary_groups_by_strategy() -> None:
    lifecycles = [
        _closed("a", "Iron Condor", 300),
        _closed("b", "Iron Condor", -200),
        _closed("c", "Iron Condor", 150),
        _closed("d", "Put Credit Spread", -500, pop=72, adjustments=1),
    ]
    out = summarize_lifecycles(lifecycles)

    assert out["summary"]["trades"] == 4
    assert out["summary"]["winRatePct"] == 50.0
    assert out["summary"]["netPnl"] == -250.0

    rows = {row["strategy"]: row for row in out["byStrategy"]}
    condor = rows["Iron Condor"]
    assert condor["trades"] == 3
    assert condor["winRatePct"] == pytest.approx(66.67)
    assert condor["netPnl"] == 250.0
    assert condor["topMistake"] == "late-adjustment"
    assert condor["avgHoldDays"] == 7.0

    spread = rows["Put Credit Spread"]
    assert spread["topMistake"] == "none"
    assert spread["repeatRatePct"] == 0.0

    # Sorted by net P&L, best first.
    assert [row["strategy"] for row in out["byStrategy"]] == ["Iron Condor", "Put Credit Spread"]
    assert out["mistakes"] == {"none": 3, "late-adjustment": 1}


def test_confidence_error_averages_per_strategy() -> None:
    out = summarize_lifecycles([_closed("a", "Iron Condor", 100), _closed("b", "Iron Condor", -100)])
    # (0.3 * 0.8 + -0.7 * 0.8) / 2
    assert out["byStrategy"][0]["avgConfidenceError"] == pytest.approx(-0.16)


def test_empty_batch() -> None:
    out = summarize_lifecycles([])
    assert out["summary"]["trades"] == 0
    assert out["byStrategy"] == []
