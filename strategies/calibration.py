from __future__ import annotations

from typing import Sequence

import pandas as pd

from data.models import TradeLifecycle
from strategies.autopsy import analyze_trade


def autopsy_rows(lifecycles: Sequence[TradeLifecycle]) -> list[dict]:
    rows: list[dict] = []
    for lifecycle in lifecycles:
        autopsy = analyze_trade(lifecycle)
        rows.append(
            {
                "trade_id": lifecycle.trade.id,
                "strategy": lifecycle.trade.strategy,
                "actual_pnl": autopsy.actual_pnl,
                "expected_pnl": autopsy.expected_pnl,
                "confidence_error": autopsy.confidence_error,
                "mistake_type": autopsy.mistake_type,
                "should_repeat": autopsy.should_repeat_strategy,
                "hold_time": autopsy.hold_time,
            }
        )
    return rows


def summarize_lifecycles(lifecycles: Sequence[TradeLifecycle]) -> dict:
    """
    Batch autopsy over closed trades, aggregated per strategy.

    Surfaces where the engine's POP estimates drift from realized outcomes
    (avgConfidenceError) and which mistakes recur for each structure.
    """
    rows = autopsy_rows(lifecycles)
    if not rows:
        return {
            "summary": {"trades": 0, "winRatePct": 0.0, "netPnl": 0.0, "expectedPnl": 0.0, "avgConfidenceError": 0.0},
            "byStrategy": [],
            "mistakes": {},
        }

    df = pd.DataFrame(rows)

    by_strategy_rows = []
    for strategy, group in df.groupby("strategy"):
        trades = int(len(group))
        mistakes = group.loc[group["mistake_type"] != "none", "mistake_type"]
        by_strategy_rows.append(
            {
                "strategy": str(strategy),
                "trades": trades,
                "winRatePct": round(float((group["actual_pnl"] > 0).mean() * 100.0), 2),
                "netPnl": round(float(group["actual_pnl"].sum()), 2),
                "expectedPnl": round(float(group["expected_pnl"].sum()), 2),
                "avgConfidenceError": round(float(group["confidence_error"].mean()), 4),
                "repeatRatePct": round(float(group["should_repeat"].mean() * 100.0), 2),
                "avgHoldDays": round(float(group["hold_time"].mean()), 2),
                "topMistake": str(mistakes.value_counts().idxmax()) if not mistakes.empty else "none",
            }
        )

    by_strategy_rows = sorted(by_strategy_rows, key=lambda x: x["netPnl"], reverse=True)
    total = int(len(df))
    return {
        "summary": {
            "trades": total,
            "winRatePct": round(float((df["actual_pnl"] > 0).mean() * 100.0), 2),
            "netPnl": round(float(df["actual_pnl"].sum()), 2),
            "expectedPnl": round(float(df["expected_pnl"].sum()), 2),
            "avgConfidenceError": round(float(df["confidence_error"].mean()), 4),
        },
        "byStrategy": by_strategy_rows,
        "mistakes": {str(k): int(v) for k, v in df["mistake_type"].value_counts().items()},
    }
