from __future__ import annotations

from typing import Optional

from data.models import (
    HealthMetrics,
    MarketSnapshot,
    RegimeAnalysis,
    Trade,
    TradeHealthCheck,
    ValidationError,
)

DEFAULT_CONFIG: dict = {
    "profit_take_pct": 50.0,
    "expiration_risk_days": 3,
    "early_exit_days": 5,
}

# (pnl% of max loss strictly below, severity, label)
BREACH_LADDER: tuple[tuple[float, float, str], ...] = (
    (-80.0, 1.0, "approaching max loss"),
    (-50.0, 0.75, "exceeds 50% of max loss"),
    (-25.0, 0.5, "exceeds 25% of max loss"),
)
EXPIRATION_RISK_SEVERITY = 0.6

_OPPOSITE_DIRECTION = {"bullish": "bearish", "bearish": "bullish"}


def validate_trade(trade: Trade) -> None:
    errors: list[str] = []
    if not trade.id:
        errors.append("Missing trade.id")
    if not trade.strategy:
        errors.append("Missing trade.strategy")
    if trade.max_loss is None:
        errors.append("Missing trade.maxLoss")
    if trade.entry_regime is None:
        errors.append("Missing trade.entryRegime")
    if errors:
        raise ValidationError(errors, "trade")


def pnl_percent(trade: Trade) -> float:
    """Current P&L as a percent of the trade's max loss (0 when max loss is 0)."""
    if not trade.max_loss:
        return 0.0
    return trade.current_pnl / trade.max_loss * 100.0


def detect_thesis_break(
    trade: Trade,
    current_snapshot: MarketSnapshot,
    current_regime: RegimeAnalysis,
) -> dict:
    entry = trade.entry_regime

    if entry.volatility == "low" and current_regime.volatility in {"high", "extreme"}:
        return _thesis(f"Volatility regime changed from {entry.volatility} to {current_regime.volatility}")

    if entry.structure == "range-bound" and current_regime.structure.startswith("trending"):
        return _thesis(f"Market structure changed from range-bound to {current_regime.structure}")

    if _OPPOSITE_DIRECTION.get(entry.direction) == current_regime.direction:
        return _thesis(f"Directional thesis flipped from {entry.direction} to {current_regime.direction}")

    if _breakeven_crossed(trade.entry_price, current_snapshot.price, trade.breakeven):
        return _thesis("Price breached breakeven level")

    return {"broken": False, "reason": ""}


def detect_breach(trade: Trade, config: Optional[dict] = None) -> dict:
    cfg = _config(config)
    pct = pnl_percent(trade)

    for threshold, severity, label in BREACH_LADDER:
        if pct < threshold:
            return {
                "detected": True,
                "severity": severity,
                "reason": f"Current loss ({pct:.1f}%) {label}",
            }

    expiration_days = int(cfg["expiration_risk_days"])
    if trade.days_remaining < expiration_days and trade.current_pnl < 0:
        return {
            "detected": True,
            "severity": EXPIRATION_RISK_SEVERITY,
            "reason": f"Less than {expiration_days} days to expiration with negative P&L",
        }

    return {"detected": False, "severity": 0.0, "reason": ""}


def recommend_action(trade: Trade, thesis: dict, breach: dict, config: Optional[dict] = None) -> tuple[str, str]:
    cfg = _config(config)
    if thesis["broken"]:
        return "close", "immediate"

    severity = breach["severity"] if breach["detected"] else 0.0
    if severity >= 0.75:
        return "close", "immediate"
    if severity >= 0.5:
        return "adjust", "high"
    if severity >= 0.25:
        return "adjust", "medium"

    if pnl_percent(trade) > float(cfg["profit_take_pct"]):
        return "close", "low"
    # Profit-take near expiry runs after the breach ladder and can override a sub-0.25 breach.
    if trade.days_remaining < int(cfg["early_exit_days"]) and trade.current_pnl > 0:
        return "close", "low"
    return "hold", "low"


def assess_health(thesis: dict, breach: dict) -> str:
    if thesis["broken"]:
        return "thesis-broken"
    severity = breach["severity"] if breach["detected"] else 0.0
    if severity >= 0.75:
        return "critical"
    if severity >= 0.5:
        return "caution"
    return "healthy"


def monitor_trade(
    trade: Trade,
    current_snapshot: MarketSnapshot,
    current_regime: RegimeAnalysis,
    config: Optional[dict] = None,
) -> TradeHealthCheck:
    validate_trade(trade)

    thesis = detect_thesis_break(trade, current_snapshot, current_regime)
    breach = detect_breach(trade, config)
    action, urgency = recommend_action(trade, thesis, breach, config)

    if thesis["broken"]:
        reason = f"THESIS BROKEN: {thesis['reason']}"
    elif breach["detected"]:
        reason = breach["reason"]
    elif action == "close" and urgency == "low":
        reason = "Trade target achieved - consider taking profits"
    else:
        reason = "Trade performing as expected"

    return TradeHealthCheck(
        trade_health=assess_health(thesis, breach),
        breach_detected=bool(breach["detected"] or thesis["broken"]),
        thesis_broken=bool(thesis["broken"]),
        breach_severity=float(breach["severity"]),
        recommended_action=action,
        urgency=urgency,
        reason=reason,
        current_metrics=HealthMetrics(
            pnl_percent=pnl_percent(trade),
            # Greeks and historical IV are not modeled.
            delta_change=0.0,
            iv_change=0.0,
            days_to_expiration=trade.days_remaining,
        ),
    )


def _breakeven_crossed(entry_price: Optional[float], price: Optional[float], breakevens: list[float]) -> bool:
    if entry_price is None or price is None:
        return False
    for level in breakevens:
        if entry_price < level < price:
            return True
        if entry_price > level > price:
            return True
    return False


def _thesis(reason: str) -> dict:
    return {"broken": True, "reason": reason}


def _config(config: Optional[dict]) -> dict:
    merged = dict(DEFAULT_CONFIG)
    if config:
        merged.update({k: v for k, v in config.items() if v is not None})
    return merged
