from __future__ import annotations

import datetime as dt
from typing import Optional, Union

from data.models import (
    MarketSnapshot,
    RegimeAnalysis,
    RegimeOutput,
    StrategyRecommendations,
    Trade,
    TradeAutopsy,
    TradeHealthCheck,
    TradeLifecycle,
    UserProfile,
    ValidationError,
)
from engine import overlay
from signals import regime as regime_classifier
from strategies import autopsy, generator, monitor

SnapshotInput = Union[MarketSnapshot, dict]
ProfileInput = Union[UserProfile, dict]
TradeInput = Union[Trade, dict]
LifecycleInput = Union[TradeLifecycle, dict]


def as_snapshot(value: SnapshotInput) -> MarketSnapshot:
    return value if isinstance(value, MarketSnapshot) else MarketSnapshot.from_dict(value)


def as_profile(value: ProfileInput) -> UserProfile:
    return value if isinstance(value, UserProfile) else UserProfile.from_dict(value)


def as_trade(value: TradeInput) -> Trade:
    return value if isinstance(value, Trade) else Trade.from_dict(value)


def as_lifecycle(value: LifecycleInput) -> TradeLifecycle:
    return value if isinstance(value, TradeLifecycle) else TradeLifecycle.from_dict(value)


def as_regime(value: Union[RegimeAnalysis, RegimeOutput, dict]) -> RegimeAnalysis:
    if isinstance(value, RegimeOutput):
        return value.regime
    if isinstance(value, RegimeAnalysis):
        return value
    if isinstance(value, dict):
        return RegimeAnalysis.from_dict(value)
    raise ValidationError(["Regime must be a JSON object"], "regime")


def analyze_market(snapshot: SnapshotInput) -> RegimeOutput:
    return regime_classifier.analyze_market(as_snapshot(snapshot))


def generate_strategies(
    snapshot: SnapshotInput,
    regime: RegimeOutput,
    profile: ProfileInput,
    now: Optional[dt.datetime] = None,
) -> StrategyRecommendations:
    return generator.generate_strategies(as_snapshot(snapshot), regime, as_profile(profile), now=now)


def get_recommendations(
    snapshot: SnapshotInput,
    profile: ProfileInput,
    now: Optional[dt.datetime] = None,
) -> StrategyRecommendations:
    """Classify the snapshot, then generate and filter strategies for the profile."""
    market = as_snapshot(snapshot)
    return generator.generate_strategies(market, regime_classifier.analyze_market(market), as_profile(profile), now=now)


def monitor_trade(
    trade: TradeInput,
    snapshot: SnapshotInput,
    regime: Union[RegimeAnalysis, RegimeOutput, dict, None] = None,
    config: Optional[dict] = None,
) -> TradeHealthCheck:
    """
    Health-check an open trade against the current market.

    When `regime` is omitted the snapshot is classified first.
    """
    market = as_snapshot(snapshot)
    current = as_regime(regime) if regime is not None else regime_classifier.analyze_market(market).regime
    return monitor.monitor_trade(as_trade(trade), market, current, config=config)


def analyze_trade(lifecycle: LifecycleInput) -> TradeAutopsy:
    return autopsy.analyze_trade(as_lifecycle(lifecycle))


def generate_analysis(
    snapshot: SnapshotInput,
    profile: ProfileInput,
    active_trade: Optional[TradeInput] = None,
    completed_lifecycle: Optional[LifecycleInput] = None,
    monitor_config: Optional[dict] = None,
    now: Optional[dt.datetime] = None,
) -> dict:
    return overlay.generate_analysis(
        as_snapshot(snapshot),
        as_profile(profile),
        active_trade=as_trade(active_trade) if active_trade is not None else None,
        completed_lifecycle=as_lifecycle(completed_lifecycle) if completed_lifecycle is not None else None,
        monitor_config=monitor_config,
        now=now,
    )
