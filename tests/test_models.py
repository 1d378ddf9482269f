from __future__ import annotations

import datetime as dt

import pytest

from data.models import (
    MarketSnapshot,
    RegimeAnalysis,
    Trade,
    TradeLeg,
    TradeLifecycle,
    UserProfile,
    ValidationError,
    as_payload,
    parse_date,
)


def test_snapshot_accepts_camel_and_snake_case() -> None:
    camel = MarketSnapshot.from_dict({"symbol": "SPX", "price": 5000, "iv": 14, "ivRank": 30, "ivPercentile": 40})
    snake = MarketSnapshot.from_dict({"symbol": "SPX", "price": 5000, "iv": 14, "iv_rank": 30, "iv_percentile": 40})
    assert camel == snake
    assert camel.moving_averages is None


def test_snapshot_requires_mapping() -> None:
    with pytest.raises(ValidationError):
        MarketSnapshot.from_dict(["not", "a", "dict"])


def test_regime_enum_and_range_checks() -> None:
    with pytest.raises(ValidationError) as exc:
        RegimeAnalysis.from_dict({"volatility": "wild", "structure": "range-bound", "direction": "up", "confidence": 2})
    assert len(exc.value.errors) == 3
    assert str(exc.value).startswith("Invalid regime:")


def test_trade_leg_normalizes_case() -> None:
    leg = TradeLeg.from_dict({"action": "sell", "type": "put", "strike": 24900, "premium": 12.5})
    assert (leg.action, leg.type, leg.quantity) == ("SELL", "PUT", 1)
    with pytest.raises(ValidationError):
        TradeLeg.from_dict({"action": "hold", "type": "PUT", "strike": 1})


def test_lifecycle_parses_nested_records() -> None:
    regime = {"volatility": "low", "structure": "range-bound", "direction": "neutral", "confidence": 0.8}
    lifecycle = TradeLifecycle.from_dict(
        {
            "trade": {"id": "x", "strategy": "Iron Condor", "entryRegime": regime, "maxLoss": 100},
            "entryRegime": regime,
            "exitRegime": regime,
            "actualPnL": 0,
            "exitDate": "2025-01-02",
            "adjustments": [{"date": "2025-01-01", "action": "roll", "reason": "tested"}],
        }
    )
    assert lifecycle.actual_pnl == 0.0
    assert lifecycle.adjustments[0].action == "roll"
    assert lifecycle.trade.entry_regime == RegimeAnalysis(**regime)


def test_as_payload_is_json_ready() -> None:
    leg = TradeLeg(action="BUY", type="CALL", strike=1.0, quantity=1, premium=0.5)
    assert as_payload([leg]) == [
        {"action": "BUY", "type": "CALL", "strike": 1.0, "quantity": 1, "premium": 0.5, "current_value": None}
    ]


def test_parse_date_variants() -> None:
    assert parse_date("2025-12-01T09:15:00Z") == dt.datetime(2025, 12, 1, 9, 15)
    assert parse_date(dt.date(2025, 12, 1)) == dt.datetime(2025, 12, 1)
    assert parse_date("not a date") is None
    assert parse_date(None) is None


def test_trade_rejects_non_numeric_breakeven() -> None:
    with pytest.raises(ValidationError) as exc:
        Trade.from_dict({"id": "x", "strategy": "Iron Condor", "breakeven": [24800, "abc"]})
    assert exc.value.errors == ["breakeven entries must be numbers"]
    assert Trade.from_dict({"id": "x", "breakeven": ["24800.5"]}).breakeven == [24800.5]


def test_trade_leg_keeps_explicit_zero_quantity() -> None:
    leg = TradeLeg.from_dict({"action": "BUY", "type": "CALL", "strike": 100, "quantity": 0})
    assert leg.quantity == 0


@pytest.mark.parametrize("key", ["allowedStrategies", "bannedStrategies"])
def test_profile_rejects_bare_string_strategy_list(key: str) -> None:
    payload = {"riskTolerance": "moderate", "maxLossPerTrade": 1000, "accountSize": 10000, key: "Iron Condor"}
    with pytest.raises(ValidationError) as exc:
        UserProfile.from_dict(payload)
    assert exc.value.errors == [f"{key} must be a list of strategy names"]
