from __future__ import annotations

from typing import Optional

from data.models import MarketSnapshot, RegimeOutput, Strategy, TradeLeg
from signals.filters import estimate_premium, round_cents, round_strike

NAME = "Iron Butterfly"
WING_DISTANCE = 100
SHORT_K = 0.4
LONG_K = 0.25
POP = 58


def find_iron_butterfly_candidate(snapshot: MarketSnapshot, regime: RegimeOutput) -> dict:
    criteria: list[dict] = []
    volatility = regime.regime.volatility
    structure = regime.regime.structure

    pass_vol = volatility == "low"
    criteria.append(_criterion("Low volatility regime", pass_vol, volatility))
    if not pass_vol:
        return _not_ready([f"{NAME} requires low volatility (got {volatility})."], criteria)

    pass_structure = structure == "range-bound"
    criteria.append(_criterion("Range-bound structure", pass_structure, structure))
    if not pass_structure:
        return _not_ready([f"{NAME} requires a range-bound market (got {structure})."], criteria)

    price = float(snapshot.price)
    iv = float(snapshot.iv)
    center = round_strike(price)
    lower = center - WING_DISTANCE
    upper = center + WING_DISTANCE

    short_premium = estimate_premium(price, iv, SHORT_K)
    long_premium = estimate_premium(price, iv, LONG_K)
    legs = [
        TradeLeg(action="BUY", type="PUT", strike=lower, quantity=1, premium=long_premium),
        TradeLeg(action="SELL", type="PUT", strike=center, quantity=1, premium=short_premium),
        TradeLeg(action="SELL", type="CALL", strike=center, quantity=1, premium=short_premium),
        TradeLeg(action="BUY", type="CALL", strike=upper, quantity=1, premium=long_premium),
    ]

    credit = 2 * short_premium - 2 * long_premium
    criteria.append(_criterion("Structure priced", True, f"Credit {credit:.2f} on {WING_DISTANCE}-pt wings"))

    candidate = Strategy(
        name=NAME,
        family="Neutral / Income",
        description=(
            f"Optimal for low IV regime with range-bound structure. Maximum profit at {center:.0f} "
            "(current POC). Defined risk with favorable theta decay. Target 50% profit."
        ),
        max_profit=round_cents(credit),
        max_loss=round_cents(WING_DISTANCE - credit),
        breakeven=[center - credit, center + credit],
        pop=POP,
        risk_level="low",
        legs=legs,
        invalid_when=[
            "IV Rank > 30",
            "Market structure is not range-bound",
            "Price moves > 2% from ATM strike",
        ],
        ideal_when=[
            "IV Rank < 20",
            "Strong range-bound structure",
            "Price near POC",
            "No major events in DTE window",
        ],
    )
    return {"ready": True, "reasons": [], "candidate": candidate, "criteria": criteria}


def _not_ready(reasons: list[str], criteria: Optional[list[dict]] = None) -> dict:
    return {"ready": False, "reasons": reasons, "candidate": None, "criteria": criteria or []}


def _criterion(name: str, passed: bool, detail: str) -> dict:
    return {"name": name, "passed": passed, "detail": detail}
