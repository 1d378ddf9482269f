from __future__ import annotations

from typing import Optional

from data.models import MarketSnapshot, RegimeOutput, Strategy, TradeLeg
from signals.filters import estimate_premium, round_cents, round_strike

NAME = "Calendar Spread"
MIN_DTE = 14
FRONT_K = 0.4
BACK_K = 0.6
# Heuristic: no pricing model for the back-month residual value.
PROFIT_TO_DEBIT = 1.5
POP = 55


def find_calendar_spread_candidate(snapshot: MarketSnapshot, regime: RegimeOutput) -> dict:
    criteria: list[dict] = []
    dte = snapshot.dte

    pass_dte = dte is not None and dte >= MIN_DTE
    criteria.append(_criterion(f"DTE >= {MIN_DTE}", pass_dte, f"DTE {dte if dte is not None else '-'}"))
    if not pass_dte:
        return _not_ready([f"{NAME} needs at least {MIN_DTE} days to expiration."], criteria)

    price = float(snapshot.price)
    iv = float(snapshot.iv)
    strike = round_strike(price)
    front_premium = estimate_premium(price, iv, FRONT_K)
    back_premium = estimate_premium(price, iv, BACK_K)
    legs = [
        TradeLeg(action="SELL", type="CALL", strike=strike, quantity=1, premium=front_premium),
        TradeLeg(action="BUY", type="CALL", strike=strike, quantity=1, premium=back_premium),
    ]

    debit = back_premium - front_premium
    criteria.append(_criterion("Structure priced", True, f"Debit {debit:.2f} at {strike:.0f}"))

    candidate = Strategy(
        name=NAME,
        family="Neutral / Volatility",
        description=(
            "Position for IV expansion around upcoming event. Long back-month vega, short front-month theta. "
            "Profits from volatility differential."
        ),
        max_profit=round_cents(debit * PROFIT_TO_DEBIT),
        max_loss=round_cents(debit),
        breakeven=[strike - debit * 0.5, strike + debit * 0.5],
        pop=POP,
        risk_level="medium",
        legs=legs,
        invalid_when=[
            "Large directional move (> 5%)",
            "IV collapses before event",
            "Less than 7 DTE on front month",
        ],
        ideal_when=[
            "Known event in 7-14 days",
            "IV expected to expand",
            "Price stable near ATM strike",
        ],
    )
    return {"ready": True, "reasons": [], "candidate": candidate, "criteria": criteria}


def _not_ready(reasons: list[str], criteria: Optional[list[dict]] = None) -> dict:
    return {"ready": False, "reasons": reasons, "candidate": None, "criteria": criteria or []}


def _criterion(name: str, passed: bool, detail: str) -> dict:
    return {"name": name, "passed": passed, "detail": detail}
