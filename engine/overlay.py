from __future__ import annotations

import datetime as dt
from typing import Optional

from data.models import (
    NO_TRADE,
    MarketSnapshot,
    RegimeOutput,
    Strategy,
    StrategyRecommendations,
    Trade,
    TradeLifecycle,
    UserProfile,
)
from signals.filters import pct_distance
from signals.regime import analyze_market
from strategies.autopsy import analyze_trade
from strategies.condor import wing_strikes
from strategies.credit_spreads import short_strike_of
from strategies.generator import MIN_TRADE_CONFIDENCE, generate_strategies
from strategies.monitor import monitor_trade

GAMMA_NOTE_MAX_DTE = 5
NEAR_EXTREME_PCT = 1.0

_STATUS_BY_HEALTH = {
    "thesis-broken": "broken",
    "critical": "stressed",
    "caution": "stressed",
    "healthy": "healthy",
}


def generate_analysis(
    snapshot: MarketSnapshot,
    profile: UserProfile,
    active_trade: Optional[Trade] = None,
    completed_lifecycle: Optional[TradeLifecycle] = None,
    monitor_config: Optional[dict] = None,
    now: Optional[dt.datetime] = None,
) -> dict:
    """
    Compose classifier, generator, monitor and autopsy into one report.

    The monitor runs only for an active trade and the autopsy only for a
    completed lifecycle. Validation errors from any stage propagate.
    """
    regime = analyze_market(snapshot)
    recommendations = generate_strategies(snapshot, regime, profile, now=now)

    market_view = build_market_view(regime, snapshot)
    return {
        "market_view": market_view,
        "strategy_decision": build_strategy_decision(recommendations, market_view),
        "trade_management": build_trade_management(active_trade, snapshot, regime, monitor_config),
        "learning_output": build_learning_output(completed_lifecycle),
        "meta_notes": build_meta_notes(regime, snapshot),
    }


def build_market_view(regime: RegimeOutput, snapshot: MarketSnapshot) -> dict:
    r = regime.regime
    reasons = list(regime.do_not_trade_conditions)
    if snapshot.dte is not None and snapshot.dte <= GAMMA_NOTE_MAX_DTE:
        reasons.append(f"Short DTE ({snapshot.dte} days) introduces elevated gamma risk")
    return {
        "volatility_regime": r.volatility,
        "structure": f"{r.structure}_consolidation",
        "direction": r.direction if r.direction == "neutral" else f"slight_{r.direction}",
        "confidence": r.confidence,
        "do_not_trade_reasons": reasons,
    }


def build_strategy_decision(recommendations: StrategyRecommendations, market_view: dict) -> dict:
    active = [s for s in recommendations.strategies if s.name != NO_TRADE]
    fallback = next((s for s in recommendations.strategies if s.name == NO_TRADE), None)
    rejected = [dict(row) for row in recommendations.rejected]

    if not active and fallback is not None:
        return {
            "recommended_action": "no_trade",
            "ranked_strategies": [],
            "rejected_strategies": rejected,
            "rationale": fallback.description,
        }

    ranked = [
        {
            "name": s.name,
            "rank": i + 1,
            "rationale": strategy_rationale(s, market_view),
            "risk_profile": "defined_risk",
            "invalidation_condition": strategy_invalidation(s),
        }
        for i, s in enumerate(active)
    ]

    blocked = bool(market_view["do_not_trade_reasons"]) and market_view["confidence"] < MIN_TRADE_CONFIDENCE
    lead = ranked[0]["rationale"] if ranked else ""
    return {
        "recommended_action": "no_trade" if blocked else "trade",
        "ranked_strategies": ranked,
        "rejected_strategies": rejected,
        "rationale": (
            f"Market is {market_view['structure']} in a {market_view['volatility_regime']} IV environment. {lead}"
        ).strip(),
    }


def strategy_rationale(strategy: Strategy, market_view: dict) -> str:
    if strategy.name == "Iron Condor":
        return (
            f"Aligned with {market_view['structure']}. Short strikes placed at value area boundaries "
            "to harvest theta with defined risk."
        )
    if strategy.name == "Put Credit Spread":
        return f"Capitalizes on structural support and {market_view['direction']} bias. Defined downside risk."
    if strategy.name == "Iron Butterfly":
        return f"Optimal for {market_view['volatility_regime']} IV and range-bound structure. Max profit at POC."
    if strategy.name == "Calendar Spread":
        return (
            f"Sells front-month decay against a longer-dated hedge in a {market_view['volatility_regime']} "
            "IV environment. Profits if price pins the strike."
        )
    return strategy.description


def strategy_invalidation(strategy: Strategy) -> str:
    if strategy.name in {"Iron Condor", "Iron Butterfly"}:
        low_wing, high_wing = wing_strikes(strategy)
        return f"Sustained price breach below {_fmt_strike(low_wing)} or above {_fmt_strike(high_wing)}"
    if strategy.name == "Put Credit Spread":
        return f"Daily close below short strike ({_fmt_strike(short_strike_of(strategy))})"
    if strategy.name == "Calendar Spread":
        strike = strategy.legs[0].strike if strategy.legs else None
        return f"Price moves decisively away from {_fmt_strike(strike)} or front-month IV collapses"
    return "Thesis invalidation"


def build_trade_management(
    active_trade: Optional[Trade],
    snapshot: MarketSnapshot,
    regime: RegimeOutput,
    monitor_config: Optional[dict] = None,
) -> dict:
    if active_trade is None:
        return {
            "status": "not_applicable",
            "recommended_action": "none",
            "urgency": "low",
            "reason": "No active trade provided for monitoring.",
        }

    health = monitor_trade(active_trade, snapshot, regime.regime, config=monitor_config)
    return {
        "status": _STATUS_BY_HEALTH.get(health.trade_health, "healthy"),
        "recommended_action": health.recommended_action,
        "urgency": health.urgency,
        "reason": health.reason,
    }


def build_learning_output(completed_lifecycle: Optional[TradeLifecycle]) -> dict:
    if completed_lifecycle is None:
        return {"lesson": "", "confidence_error": 0.0, "repeat_strategy": False}

    autopsy = analyze_trade(completed_lifecycle)
    return {
        "lesson": autopsy.lesson,
        "confidence_error": autopsy.confidence_error,
        "repeat_strategy": autopsy.should_repeat_strategy,
    }


def build_meta_notes(regime: RegimeOutput, snapshot: MarketSnapshot) -> dict:
    risks: list[str] = []
    if snapshot.dte is not None and snapshot.dte < GAMMA_NOTE_MAX_DTE:
        risks.append("Gamma risk increases sharply with short DTE.")

    to_high = pct_distance(snapshot.high_52w, snapshot.price)
    if to_high is not None and to_high < NEAR_EXTREME_PCT:
        risks.append("Price is near 52-week high, raising breakout risk.")
    to_low = pct_distance(snapshot.low_52w, snapshot.price)
    if to_low is not None and to_low < NEAR_EXTREME_PCT:
        risks.append("Price is near 52-week low, raising breakdown risk.")

    return {
        "contextual_risks": risks,
        "uncertainty_disclosure": (
            f"Regime confidence is {regime.regime.confidence:.2f}, "
            "execution variance depends on slippage and timing."
        ),
    }


def _fmt_strike(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:.0f}"
