from __future__ import annotations

from typing import Optional

from data.models import MarketSnapshot, RegimeOutput, Strategy, TradeLeg
from signals.filters import estimate_premium, round_cents, round_strike

NAME = "Put Credit Spread"
WIDTH = 50
SHORT_K = 0.35
LONG_K = 0.28
POP = 72


def find_put_credit_spread_candidate(snapshot: MarketSnapshot, regime: RegimeOutput) -> dict:
    criteria: list[dict] = []
    direction = regime.regime.direction

    pass_direction = direction != "bearish"
    criteria.append(_criterion("Directional bias not bearish", pass_direction, direction))
    if not pass_direction:
        return _not_ready([f"{NAME} not allowed with bearish bias."], criteria)

    price = float(snapshot.price)
    iv = float(snapshot.iv)
    support = regime.levels.support[0] if regime.levels.support else None
    anchor = support if support else price * 0.98
    criteria.append(
        _criterion(
            "Support level identified",
            support is not None,
            f"Support {anchor:.2f}" if support is not None else f"Fallback {anchor:.2f} (2% below spot)",
        )
    )

    short_strike = round_strike(anchor)
    long_strike = short_strike - WIDTH
    short_premium = estimate_premium(price, iv, SHORT_K)
    long_premium = estimate_premium(price, iv, LONG_K)
    legs = [
        TradeLeg(action="SELL", type="PUT", strike=short_strike, quantity=1, premium=short_premium),
        TradeLeg(action="BUY", type="PUT", strike=long_strike, quantity=1, premium=long_premium),
    ]

    credit = short_premium - long_premium
    criteria.append(_criterion("Structure priced", True, f"Credit {credit:.2f} on {WIDTH}-pt width"))

    candidate = Strategy(
        name=NAME,
        family="Bullish / Income",
        description=(
            f"Aligned with {direction} bias and support at {anchor:.2f}. Collect theta with defined risk. "
            "Short strike below key support."
        ),
        max_profit=round_cents(credit),
        max_loss=round_cents(WIDTH - credit),
        breakeven=[short_strike - credit],
        pop=POP,
        risk_level="low",
        legs=legs,
        invalid_when=[
            "Directional bias turns bearish",
            "Price breaks below short strike",
            "Support level violated",
        ],
        ideal_when=[
            "Bullish or neutral bias",
            "Strong support level identified",
            "IV Rank < 50",
        ],
    )
    return {"ready": True, "reasons": [], "candidate": candidate, "criteria": criteria}


def short_strike_of(strategy: Strategy) -> Optional[float]:
    for leg in strategy.legs:
        if leg.action == "SELL":
            return leg.strike
    return None


def _not_ready(reasons: list[str], criteria: Optional[list[dict]] = None) -> dict:
    return {"ready": False, "reasons": reasons, "candidate": None, "criteria": criteria or []}


def _criterion(name: str, passed: bool, detail: str) -> dict:
    return {"name": name, "passed": passed, "detail": detail}
