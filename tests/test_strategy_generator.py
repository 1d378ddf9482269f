from __future__ import annotations

import dataclasses
import datetime as dt

import pytest

from data.models import (
    NO_TRADE,
    MarketLevels,
    MarketSnapshot,
    RegimeAnalysis,
    RegimeOutput,
    UserProfile,
    ValidationError,
    ValueArea,
)
from signals.regime import analyze_market
from strategies.calendar_spread import find_calendar_spread_candidate
from strategies.condor import find_iron_condor_candidate
from strategies.credit_spreads import find_put_credit_spread_candidate
from strategies.fly import find_iron_butterfly_candidate
from strategies.generator import (
    apply_constraints,
    build_no_trade,
    fallback_reason,
    generate_strategies,
    rank_strategies,
)

NOW = dt.datetime(2025, 12, 30, 9, 15, tzinfo=dt.timezone.utc)


def _snapshot(**overrides) -> MarketSnapshot:
    payload = {
        "symbol": "NIFTY",
        "price": 25925.95,
        "iv": 10.2,
        "ivRank": 18,
        "ivPercentile": 22,
        "dte": 4,
        "high52w": 26250,
        "low52w": 18250,
        "atr": 110,
        "movingAverages": {"ma20": 25890, "ma50": 25740, "ma200": 25120},
        "volumeProfile": {"poc": 25900, "valueAreaHigh": 26250, "valueAreaLow": 25750},
    }
    payload.update(overrides)
    return MarketSnapshot.from_dict(payload)


def _profile(**overrides) -> UserProfile:
    payload = {
        "riskTolerance": "moderate",
        "maxLossPerTrade": 6000,
        "accountSize": 300000,
    }
    payload.update(overrides)
    return UserProfile.from_dict(payload)


def _regime(
    volatility: str = "low",
    structure: str = "range-bound",
    direction: str = "neutral",
    confidence: float = 0.8,
    support: list[float] | None = None,
    do_not_trade: list[str] | None = None,
) -> RegimeOutput:
    return RegimeOutput(
        regime=RegimeAnalysis(volatility=volatility, structure=structure, direction=direction, confidence=confidence),
        levels=MarketLevels(
            support=support if support is not None else [25700.0],
            resistance=[26200.0],
            value_area=ValueArea(poc=25900.0, high=26100.0, low=25700.0),
        ),
        do_not_trade_conditions=do_not_trade or [],
        notes="",
    )


def test_iron_butterfly_requires_low_vol_and_range() -> None:
    snap = _snapshot(price=25000, iv=10)
    ready = find_iron_butterfly_candidate(snap, _regime())
    assert ready["ready"] is True
    fly = ready["candidate"]
    # unit premium 25000 * 0.10 = 2500; credit = 2*1000 - 2*625
    assert [leg.strike for leg in fly.legs] == [24900, 25000, 25000, 25100]
    assert fly.max_profit == pytest.approx(750.0)
    assert fly.max_loss == pytest.approx(-650.0)
    assert fly.breakeven == pytest.approx([24250.0, 25750.0])
    assert fly.pop == 58

    not_ready = find_iron_butterfly_candidate(snap, _regime(structure="trending-up"))
    assert not_ready["ready"] is False
    assert not_ready["candidate"] is None
    assert "range-bound" in not_ready["reasons"][0]


def test_put_credit_spread_uses_support_or_fallback() -> None:
    snap = _snapshot(price=25000, iv=10)
    with_support = find_put_credit_spread_candidate(snap, _regime(direction="bullish", support=[24730.0]))
    strikes = [leg.strike for leg in with_support["candidate"].legs]
    assert strikes == [24750, 24700]

    no_support = find_put_credit_spread_candidate(snap, _regime(direction="bullish", support=[]))
    assert [leg.strike for leg in no_support["candidate"].legs] == [24500, 24450]


def test_put_credit_spread_blocked_by_bearish_bias() -> None:
    result = find_put_credit_spread_candidate(_snapshot(), _regime(direction="bearish"))
    assert result["ready"] is False


def test_calendar_requires_two_weeks() -> None:
    snap = _snapshot(price=25000, iv=10, dte=21)
    result = find_calendar_spread_candidate(snap, _regime())
    assert result["ready"] is True
    cal = result["candidate"]
    # debit = 2500 * (0.6 - 0.4)
    assert cal.max_loss == pytest.approx(500.0)
    assert cal.max_profit == pytest.approx(750.0)
    assert cal.breakeven == pytest.approx([24750.0, 25250.0])
    assert find_calendar_spread_candidate(_snapshot(dte=13), _regime())["ready"] is False
    assert find_calendar_spread_candidate(_snapshot(dte=None), _regime())["ready"] is False


def test_iron_condor_gates() -> None:
    snap = _snapshot(price=25000, iv=10)
    ok = find_iron_condor_candidate(snap, _regime(volatility="normal", structure="trending-up"))
    assert [leg.strike for leg in ok["candidate"].legs] == [24850, 24900, 25100, 25150]
    assert find_iron_condor_candidate(snap, _regime(volatility="extreme"))["ready"] is False
    assert find_iron_condor_candidate(snap, _regime(structure="choppy"))["ready"] is False


def test_reference_scenario_recommends_spread_then_condor() -> None:
    snap = _snapshot()
    regime = analyze_market(snap)
    recs = generate_strategies(snap, regime, _profile(minPOP=55), now=NOW)
    names = [s.name for s in recs.strategies]
    assert names == ["Put Credit Spread", "Iron Condor"]
    assert [s.rank for s in recs.strategies] == [1, 2]
    assert recs.timestamp == NOW.isoformat()
    assert recs.constraints_applied == []


def test_extreme_volatility_returns_only_fallback() -> None:
    snap = _snapshot(ivRank=85, ivPercentile=92)
    regime = analyze_market(snap)
    loose = _profile(maxLossPerTrade=10_000_000)
    recs = generate_strategies(snap, regime, loose, now=NOW)
    assert len(recs.strategies) == 1
    only = recs.strategies[0]
    assert only.name == NO_TRADE
    assert only.rank == 0
    assert only.legs == []
    assert only.pop == 100
    assert "Extreme volatility" in only.description


def test_no_survivors_triggers_fallback() -> None:
    snap = _snapshot()
    recs = generate_strategies(snap, analyze_market(snap), _profile(minPOP=90), now=NOW)
    assert [s.name for s in recs.strategies] == [NO_TRADE]
    assert "No suitable strategies available" in recs.strategies[0].description
    assert "Removed Put Credit Spread: POP below minimum" in recs.constraints_applied


def test_low_confidence_prepends_fallback_but_keeps_candidates() -> None:
    regime = _regime(volatility="normal", structure="trending-up", direction="bullish", confidence=0.55)
    recs = generate_strategies(_snapshot(), regime, _profile(), now=NOW)
    assert recs.strategies[0].name == NO_TRADE
    assert recs.strategies[0].rank == 0
    assert [s.rank for s in recs.strategies[1:]] == [1, 2]
    assert "Low confidence in market regime" in recs.strategies[0].description


def test_constraints_applied_in_order_with_audit() -> None:
    snap = _snapshot(price=25000, iv=10, dte=30)
    candidates = [
        find_iron_butterfly_candidate(snap, _regime())["candidate"],
        find_calendar_spread_candidate(snap, _regime())["candidate"],
        find_iron_condor_candidate(snap, _regime())["candidate"],
    ]
    profile = _profile(
        maxLossPerTrade=100,
        allowedStrategies=["Iron Butterfly", "Iron Condor"],
        bannedStrategies=["Iron Condor"],
    )
    outcome = apply_constraints(candidates, profile)
    assert [s.name for s in outcome["filtered"]] == ["Iron Butterfly"]
    assert outcome["applied"] == [
        "Removed Calendar Spread: max loss exceeds limit",
        "Removed Iron Condor: in banned list",
    ]
    assert outcome["rejected"][0] == {"name": "Calendar Spread", "reason": "max loss exceeds limit"}


def test_max_loss_limit_never_exceeded() -> None:
    snap = _snapshot(price=25000, iv=10, dte=30)
    regime = _regime(volatility="normal", structure="range-bound", direction="bullish", confidence=0.9)
    for limit in (-1000, 0, 100, 499, 500, 10_000):
        recs = generate_strategies(snap, regime, _profile(maxLossPerTrade=limit), now=NOW)
        assert all(s.max_loss <= limit for s in recs.strategies if s.name != NO_TRADE)
        assert len(recs.strategies) >= 1


def test_rank_sorts_by_pop_and_caps() -> None:
    base = build_no_trade("x")
    pool = [dataclasses.replace(base, name=f"S{i}", pop=float(i), rank=None) for i in range(8)]
    ranked = rank_strategies(pool, build_no_trade("stand aside"))
    assert len(ranked) == 5
    assert ranked[0].name == NO_TRADE
    assert [s.pop for s in ranked[1:]] == [7.0, 6.0, 5.0, 4.0]
    assert [s.rank for s in ranked] == [0, 1, 2, 3, 4]


def test_fallback_reason_prefers_do_not_trade_condition() -> None:
    regime = _regime(confidence=0.3, do_not_trade=["Choppy market structure - high whipsaw risk"])
    assert fallback_reason(regime, []) == "Choppy market structure - high whipsaw risk"
    assert fallback_reason(_regime(confidence=0.9), []) == "No suitable strategies available"
    assert fallback_reason(_regime(confidence=0.9), [build_no_trade("x")]) is None


def test_profile_validation() -> None:
    with pytest.raises(ValidationError) as exc:
        generate_strategies(_snapshot(), _regime(), UserProfile.from_dict({"minPOP": 140}), now=NOW)
    assert "Missing required field: riskTolerance" in exc.value.errors
    assert "Missing required field: maxLossPerTrade" in exc.value.errors
    assert "Missing required field: accountSize" in exc.value.errors
    assert "minPOP must be between 0 and 100" in exc.value.errors
