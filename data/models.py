from __future__ import annotations

import dataclasses
import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

VOLATILITY_REGIMES = ("low", "normal", "high", "extreme")
STRUCTURES = ("trending-up", "trending-down", "range-bound", "choppy")
DIRECTIONS = ("bullish", "bearish", "neutral")
RISK_TOLERANCES = ("conservative", "moderate", "aggressive")

NO_TRADE = "NO_TRADE"


class ValidationError(ValueError):
    """Raised when an input record is missing required fields or is out of range."""

    def __init__(self, errors: Sequence[str], subject: str = "input") -> None:
        self.errors = list(errors)
        self.subject = subject
        super().__init__(f"Invalid {subject}: {', '.join(self.errors)}")


@dataclass
class MovingAverages:
    ma20: float
    ma50: float
    ma200: float


@dataclass
class VolumeProfile:
    poc: float
    value_area_high: float
    value_area_low: float


@dataclass
class MarketSnapshot:
    symbol: Optional[str]
    price: Optional[float]
    iv: Optional[float]
    iv_rank: Optional[float]
    iv_percentile: Optional[float]
    dte: Optional[int] = None
    high_52w: Optional[float] = None
    low_52w: Optional[float] = None
    atr: Optional[float] = None
    moving_averages: Optional[MovingAverages] = None
    volume_profile: Optional[VolumeProfile] = None
    timestamp: Optional[str] = None
    volume: Optional[float] = None

    @classmethod
    def from_dict(cls, payload: dict) -> "MarketSnapshot":
        if not isinstance(payload, dict):
            raise ValidationError(["Market snapshot must be a JSON object"], "market snapshot")
        mas = _pick(payload, "movingAverages", "moving_averages")
        profile = _pick(payload, "volumeProfile", "volume_profile")
        return cls(
            symbol=_pick(payload, "symbol"),
            price=_to_float(_pick(payload, "price")),
            iv=_to_float(_pick(payload, "iv")),
            iv_rank=_to_float(_pick(payload, "ivRank", "iv_rank")),
            iv_percentile=_to_float(_pick(payload, "ivPercentile", "iv_percentile")),
            dte=_to_int(_pick(payload, "dte")),
            high_52w=_to_float(_pick(payload, "high52w", "high_52w")),
            low_52w=_to_float(_pick(payload, "low52w", "low_52w")),
            atr=_to_float(_pick(payload, "atr")),
            moving_averages=_moving_averages(mas),
            volume_profile=_volume_profile(profile),
            timestamp=_pick(payload, "timestamp"),
            volume=_to_float(_pick(payload, "volume")),
        )


@dataclass(frozen=True)
class RegimeAnalysis:
    volatility: str
    structure: str
    direction: str
    confidence: float

    @classmethod
    def from_dict(cls, payload: dict) -> "RegimeAnalysis":
        if not isinstance(payload, dict):
            raise ValidationError(["Regime must be a JSON object"], "regime")
        errors: list[str] = []
        volatility = _pick(payload, "volatility")
        structure = _pick(payload, "structure")
        direction = _pick(payload, "direction")
        confidence = _to_float(_pick(payload, "confidence"))
        if volatility not in VOLATILITY_REGIMES:
            errors.append(f"volatility must be one of {list(VOLATILITY_REGIMES)}")
        if structure not in STRUCTURES:
            errors.append(f"structure must be one of {list(STRUCTURES)}")
        if direction not in DIRECTIONS:
            errors.append(f"direction must be one of {list(DIRECTIONS)}")
        if confidence is None:
            errors.append("Missing required field: confidence")
        elif not 0.0 <= confidence <= 1.0:
            errors.append("confidence must be between 0 and 1")
        if errors:
            raise ValidationError(errors, "regime")
        return cls(volatility=volatility, structure=structure, direction=direction, confidence=confidence)


@dataclass
class ValueArea:
    poc: float
    high: float
    low: float


@dataclass
class MarketLevels:
    support: list[float]
    resistance: list[float]
    value_area: ValueArea


@dataclass
class RegimeOutput:
    regime: RegimeAnalysis
    levels: MarketLevels
    do_not_trade_conditions: list[str]
    notes: str
    warnings: list[str] = field(default_factory=list)
    component_confidence: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class TradeLeg:
    action: str
    type: str
    strike: float
    quantity: int
    premium: float
    current_value: Optional[float] = None

    @classmethod
    def from_dict(cls, payload: dict) -> "TradeLeg":
        action = str(_pick(payload, "action") or "").strip().upper()
        right = str(_pick(payload, "type") or "").strip().upper()
        errors: list[str] = []
        if action not in {"BUY", "SELL"}:
            errors.append("leg action must be BUY or SELL")
        if right not in {"CALL", "PUT"}:
            errors.append("leg type must be CALL or PUT")
        strike = _to_float(_pick(payload, "strike"))
        if strike is None:
            errors.append("Missing required field: leg strike")
        if errors:
            raise ValidationError(errors, "trade leg")
        quantity = _to_int(_pick(payload, "quantity"))
        return cls(
            action=action,
            type=right,
            strike=strike,
            quantity=quantity if quantity is not None else 1,
            premium=_to_float(_pick(payload, "premium")) or 0.0,
            current_value=_to_float(_pick(payload, "currentValue", "current_value")),
        )


@dataclass(frozen=True)
class Strategy:
    name: str
    family: str
    description: str
    max_profit: float
    max_loss: float
    breakeven: list[float]
    pop: float
    risk_level: str
    legs: list[TradeLeg]
    invalid_when: list[str]
    ideal_when: list[str]
    rank: Optional[int] = None


@dataclass
class StrategyRecommendations:
    strategies: list[Strategy]
    market_context: RegimeOutput
    timestamp: str
    constraints_applied: list[str]
    rejected: list[dict] = field(default_factory=list)


@dataclass
class UserProfile:
    risk_tolerance: Optional[str]
    max_loss_per_trade: Optional[float]
    account_size: Optional[float]
    max_portfolio_risk: Optional[float] = None
    min_pop: Optional[float] = None
    allowed_strategies: list[str] = field(default_factory=list)
    banned_strategies: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: dict) -> "UserProfile":
        if not isinstance(payload, dict):
            raise ValidationError(["User profile must be a JSON object"], "user profile")
        return cls(
            risk_tolerance=_pick(payload, "riskTolerance", "risk_tolerance"),
            max_loss_per_trade=_to_float(_pick(payload, "maxLossPerTrade", "max_loss_per_trade")),
            account_size=_to_float(_pick(payload, "accountSize", "account_size")),
            max_portfolio_risk=_to_float(_pick(payload, "maxPortfolioRisk", "max_portfolio_risk")),
            min_pop=_to_float(_pick(payload, "minPOP", "min_pop")),
            allowed_strategies=_name_list(_pick(payload, "allowedStrategies", "allowed_strategies"), "allowedStrategies"),
            banned_strategies=_name_list(_pick(payload, "bannedStrategies", "banned_strategies"), "bannedStrategies"),
        )


@dataclass
class Trade:
    id: Optional[str]
    symbol: Optional[str]
    strategy: Optional[str]
    entry_date: Optional[str]
    entry_price: Optional[float]
    legs: list[TradeLeg]
    entry_regime: Optional[RegimeAnalysis]
    max_loss: Optional[float]
    max_profit: Optional[float]
    breakeven: list[float]
    pop: Optional[float]
    current_price: Optional[float]
    current_pnl: float
    days_remaining: int
    expiration_date: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: dict) -> "Trade":
        if not isinstance(payload, dict):
            raise ValidationError(["Trade must be a JSON object"], "trade")
        regime = _pick(payload, "entryRegime", "entry_regime")
        return cls(
            id=_pick(payload, "id"),
            symbol=_pick(payload, "symbol"),
            strategy=_pick(payload, "strategy"),
            entry_date=_pick(payload, "entryDate", "entry_date"),
            entry_price=_to_float(_pick(payload, "entryPrice", "entry_price")),
            legs=[TradeLeg.from_dict(leg) for leg in (_pick(payload, "legs") or [])],
            entry_regime=_regime_or_none(regime),
            max_loss=_to_float(_pick(payload, "maxLoss", "max_loss")),
            max_profit=_to_float(_pick(payload, "maxProfit", "max_profit")),
            breakeven=_breakevens(_pick(payload, "breakeven")),
            pop=_to_float(_pick(payload, "pop")),
            current_price=_to_float(_pick(payload, "currentPrice", "current_price")),
            current_pnl=_to_float(_pick(payload, "currentPnL", "current_pnl")) or 0.0,
            days_remaining=_to_int(_pick(payload, "daysRemaining", "days_remaining")) or 0,
            expiration_date=_pick(payload, "expirationDate", "expiration_date"),
        )


@dataclass
class TradeAdjustment:
    date: str
    action: str
    reason: str


@dataclass
class TradeLifecycle:
    trade: Optional[Trade]
    entry_regime: Optional[RegimeAnalysis]
    exit_regime: Optional[RegimeAnalysis]
    actual_pnl: Optional[float]
    exit_date: Optional[str]
    entry_snapshot: Optional[MarketSnapshot] = None
    exit_snapshot: Optional[MarketSnapshot] = None
    adjustments: list[TradeAdjustment] = field(default_factory=list)
    exit_reason: str = ""

    @classmethod
    def from_dict(cls, payload: dict) -> "TradeLifecycle":
        if not isinstance(payload, dict):
            raise ValidationError(["Trade lifecycle must be a JSON object"], "trade lifecycle")
        trade = _pick(payload, "trade")
        entry_snapshot = _pick(payload, "entrySnapshot", "entry_snapshot")
        exit_snapshot = _pick(payload, "exitSnapshot", "exit_snapshot")
        adjustments = [
            TradeAdjustment(
                date=str(_pick(row, "date") or ""),
                action=str(_pick(row, "action") or ""),
                reason=str(_pick(row, "reason") or ""),
            )
            for row in (_pick(payload, "adjustments") or [])
            if isinstance(row, dict)
        ]
        return cls(
            trade=Trade.from_dict(trade) if isinstance(trade, dict) else None,
            entry_regime=_regime_or_none(_pick(payload, "entryRegime", "entry_regime")),
            exit_regime=_regime_or_none(_pick(payload, "exitRegime", "exit_regime")),
            actual_pnl=_to_float(_pick(payload, "actualPnL", "actual_pnl")),
            exit_date=_pick(payload, "exitDate", "exit_date"),
            entry_snapshot=MarketSnapshot.from_dict(entry_snapshot) if isinstance(entry_snapshot, dict) else None,
            exit_snapshot=MarketSnapshot.from_dict(exit_snapshot) if isinstance(exit_snapshot, dict) else None,
            adjustments=adjustments,
            exit_reason=str(_pick(payload, "exitReason", "exit_reason") or ""),
        )


@dataclass
class HealthMetrics:
    pnl_percent: float
    delta_change: float
    iv_change: float
    days_to_expiration: int


@dataclass
class TradeHealthCheck:
    trade_health: str
    breach_detected: bool
    thesis_broken: bool
    breach_severity: float
    recommended_action: str
    urgency: str
    reason: str
    current_metrics: HealthMetrics


@dataclass
class TradeAutopsy:
    mistake_type: str
    lesson: str
    should_repeat_strategy: bool
    confidence_error: float
    actual_pnl: float
    expected_pnl: float
    hold_time: int
    correct_decisions: list[str]
    incorrect_decisions: list[str]


def as_payload(record: Any) -> Any:
    """Return a JSON-ready copy of a model record (dataclasses become dicts)."""
    if dataclasses.is_dataclass(record) and not isinstance(record, type):
        return dataclasses.asdict(record)
    if isinstance(record, list):
        return [as_payload(item) for item in record]
    if isinstance(record, dict):
        return {key: as_payload(value) for key, value in record.items()}
    return record


def parse_date(value: object) -> Optional[dt.datetime]:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    # Mixed naive/aware pairs cannot be subtracted; compare wall-clock dates.
    return parsed.replace(tzinfo=None)


def _regime_or_none(value: object) -> Optional[RegimeAnalysis]:
    if isinstance(value, RegimeAnalysis):
        return value
    if isinstance(value, dict):
        return RegimeAnalysis.from_dict(value)
    return None


def _name_list(value: object, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError([f"{field_name} must be a list of strategy names"], "user profile")
    return [str(name) for name in value]


def _breakevens(value: object) -> list[float]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(["breakeven must be a list of prices"], "trade")
    levels = [_to_float(x) for x in value]
    if any(level is None for level in levels):
        raise ValidationError(["breakeven entries must be numbers"], "trade")
    return levels


def _moving_averages(value: object) -> Optional[MovingAverages]:
    if not isinstance(value, dict):
        return None
    ma20 = _to_float(value.get("ma20"))
    ma50 = _to_float(value.get("ma50"))
    ma200 = _to_float(value.get("ma200"))
    if None in (ma20, ma50, ma200):
        return None
    return MovingAverages(ma20=ma20, ma50=ma50, ma200=ma200)


def _volume_profile(value: object) -> Optional[VolumeProfile]:
    if not isinstance(value, dict):
        return None
    poc = _to_float(value.get("poc"))
    high = _to_float(_pick(value, "valueAreaHigh", "value_area_high"))
    low = _to_float(_pick(value, "valueAreaLow", "value_area_low"))
    if None in (poc, high, low):
        return None
    return VolumeProfile(poc=poc, value_area_high=high, value_area_low=low)


def _pick(payload: dict, *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _to_float(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: object) -> Optional[int]:
    number = _to_float(value)
    if number is None:
        return None
    return int(number)
