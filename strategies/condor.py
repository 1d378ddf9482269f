from __future__ import annotations

from typing import Optional

from data.models import MarketSnapshot, RegimeOutput, Strategy, TradeLeg
from signals.filters import estimate_premium, round_cents, round_strike

NAME = "Iron Condor"
SHORT_DISTANCE = 100
LONG_DISTANCE = 150
SHORT_K = 0.32
LONG_K = 0.2
POP = 68


def find_iron_condor_candidate(snapshot: MarketSnapshot, regime: RegimeOutput) -> dict:
    criteria: list[dict] = []
    volatility = regime.regime.volatility
    structure = regime.regime.structure

    pass_vol = volatility != "extreme"
    criteria.append(_criterion("Volatility not extreme", pass_vol, volatility))
    pass_structure = structure != "choppy"
    criteria.append(_criterion("Structure not choppy", pass_structure, structure))

    reasons: list[str] = []
    if not pass_vol:
        reasons.append(f"{NAME} not priced in extreme volatility.")
    if not pass_structure:
        reasons.append(f"{NAME} not allowed in choppy structure.")
    if reasons:
        return _not_ready(reasons, criteria)

    price = float(snapshot.price)
    iv = float(snapshot.iv)
    center = round_strike(price)
    short_put = center - SHORT_DISTANCE
    long_put = center - LONG_DISTANCE
    short_call = center + SHORT_DISTANCE
    long_call = center + LONG_DISTANCE
    width = LONG_DISTANCE - SHORT_DISTANCE

    short_premium = estimate_premium(price, iv, SHORT_K)
    long_premium = estimate_premium(price, iv, LONG_K)
    legs = [
        TradeLeg(action="BUY", type="PUT", strike=long_put, quantity=1, premium=long_premium),
        TradeLeg(action="SELL", type="PUT", strike=short_put, quantity=1, premium=short_premium),
        TradeLeg(action="SELL", type="CALL", strike=short_call, quantity=1, premium=short_premium),
        TradeLeg(action="BUY", type="CALL", strike=long_call, quantity=1, premium=long_premium),
    ]

    credit = (legs[1].premium + legs[2].premium) - (legs[0].premium + legs[3].premium)
    criteria.append(_criterion("Structure priced", True, f"Credit {credit:.2f} on {width}-pt wings"))

    candidate = Strategy(
        name=NAME,
        family="Neutral / Income",
        description=(
            f"Wider range than butterfly for stable range-bound market. Profit zone: {short_put:.0f} to "
            f"{short_call:.0f}. High probability of profit with defined risk."
        ),
        max_profit=round_cents(credit),
        max_loss=round_cents(width - credit),
        breakeven=[short_put - credit, short_call + credit],
        pop=POP,
        risk_level="low",
        legs=legs,
        invalid_when=[
            "IV Rank > 50",
            "Market becomes choppy",
            "Expected move > wing width",
        ],
        ideal_when=[
            "Low to normal IV",
            "Range-bound structure",
            "No major catalysts in DTE window",
        ],
    )
    return {"ready": True, "reasons": [], "candidate": candidate, "criteria": criteria}


def wing_strikes(strategy: Strategy) -> tuple[Optional[float], Optional[float]]:
    """Long put / long call strikes of a four-leg neutral structure."""
    low_wing = next((leg.strike for leg in strategy.legs if leg.action == "BUY" and leg.type == "PUT"), None)
    high_wing = next((leg.strike for leg in strategy.legs if leg.action == "BUY" and leg.type == "CALL"), None)
    return low_wing, high_wing


def _not_ready(reasons: list[str], criteria: Optional[list[dict]] = None) -> dict:
    return {"ready": False, "reasons": reasons, "candidate": None, "criteria": criteria or []}


def _criterion(name: str, passed: bool, detail: str) -> dict:
    return {"name": name, "passed": passed, "detail": detail}
