from __future__ import annotations

import dataclasses
import datetime as dt
from typing import Callable, Optional, Sequence

from data.models import (
    NO_TRADE,
    RISK_TOLERANCES,
    MarketSnapshot,
    RegimeOutput,
    Strategy,
    StrategyRecommendations,
    UserProfile,
    ValidationError,
)
from strategies.calendar_spread import find_calendar_spread_candidate
from strategies.condor import find_iron_condor_candidate
from strategies.credit_spreads import find_put_credit_spread_candidate
from strategies.fly import find_iron_butterfly_candidate

MAX_STRATEGIES = 5
MIN_TRADE_CONFIDENCE = 0.6

CandidateBuilder = Callable[[MarketSnapshot, RegimeOutput], dict]

CANDIDATE_BUILDERS: tuple[CandidateBuilder, ...] = (
    find_iron_butterfly_candidate,
    find_put_credit_spread_candidate,
    find_calendar_spread_candidate,
    find_iron_condor_candidate,
)


def validate_profile(profile: UserProfile) -> None:
    errors: list[str] = []
    if not profile.risk_tolerance:
        errors.append("Missing required field: riskTolerance")
    elif profile.risk_tolerance not in RISK_TOLERANCES:
        errors.append(f"riskTolerance must be one of {list(RISK_TOLERANCES)}")
    if profile.max_loss_per_trade is None:
        errors.append("Missing required field: maxLossPerTrade")
    if profile.account_size is None:
        errors.append("Missing required field: accountSize")
    if profile.min_pop is not None and not 0 <= profile.min_pop <= 100:
        errors.append("minPOP must be between 0 and 100")
    if errors:
        raise ValidationError(errors, "user profile")


def build_no_trade(reason: str) -> Strategy:
    return Strategy(
        name=NO_TRADE,
        family="Capital Preservation",
        description=f"Recommended to stay out of the market. Reason: {reason}",
        max_profit=0.0,
        max_loss=0.0,
        breakeven=[],
        pop=100.0,
        risk_level="low",
        legs=[],
        invalid_when=[],
        ideal_when=["Market conditions unclear", "High uncertainty", "Low confidence regime"],
        rank=0,
    )


def collect_candidates(snapshot: MarketSnapshot, regime: RegimeOutput) -> list[Strategy]:
    """Run every structure builder; ineligible structures are simply left out."""
    candidates: list[Strategy] = []
    for builder in CANDIDATE_BUILDERS:
        result = builder(snapshot, regime)
        if result["ready"]:
            candidates.append(result["candidate"])
    return candidates


def apply_constraints(strategies: Sequence[Strategy], profile: UserProfile) -> dict:
    # Applied in order; each rule only sees what earlier rules kept.
    rules: list[tuple[bool, Callable[[Strategy], bool], str]] = [
        (True, lambda s: s.max_loss > profile.max_loss_per_trade, "max loss exceeds limit"),
        (bool(profile.min_pop), lambda s: s.pop < profile.min_pop, "POP below minimum"),
        (bool(profile.allowed_strategies), lambda s: s.name not in profile.allowed_strategies, "not in allowed list"),
        (bool(profile.banned_strategies), lambda s: s.name in profile.banned_strategies, "in banned list"),
    ]

    applied: list[str] = []
    rejected: list[dict] = []
    filtered = list(strategies)
    for active, removes, reason in rules:
        if not active:
            continue
        kept: list[Strategy] = []
        for s in filtered:
            if removes(s):
                applied.append(f"Removed {s.name}: {reason}")
                rejected.append({"name": s.name, "reason": reason})
            else:
                kept.append(s)
        filtered = kept

    return {"filtered": filtered, "applied": applied, "rejected": rejected}


def rank_strategies(strategies: Sequence[Strategy], fallback: Optional[Strategy]) -> list[Strategy]:
    """Fallback first at rank 0, the rest by descending POP, capped at MAX_STRATEGIES."""
    ordered = sorted(strategies, key=lambda s: s.pop, reverse=True)
    ranked: list[Strategy] = []
    if fallback is not None:
        ranked.append(dataclasses.replace(fallback, rank=0))
    for s in ordered:
        if len(ranked) >= MAX_STRATEGIES:
            break
        ranked.append(dataclasses.replace(s, rank=len(ranked) + (1 if fallback is None else 0)))
    return ranked


def fallback_reason(regime: RegimeOutput, survivors: Sequence[Strategy]) -> Optional[str]:
    """Reason to lead with capital preservation, or None when trading is allowed."""
    if regime.do_not_trade_conditions:
        return regime.do_not_trade_conditions[0]
    if regime.regime.confidence < MIN_TRADE_CONFIDENCE:
        return "Low confidence in market regime"
    if not survivors:
        return "No suitable strategies available"
    return None


def generate_strategies(
    snapshot: MarketSnapshot,
    regime: RegimeOutput,
    profile: UserProfile,
    now: Optional[dt.datetime] = None,
) -> StrategyRecommendations:
    validate_profile(profile)
    now = now or dt.datetime.now(dt.timezone.utc)

    skipped: list[str] = []
    if regime.regime.volatility == "extreme":
        candidates: list[Strategy] = []
        skipped.append("Skipped candidate synthesis: extreme volatility makes premium estimates unreliable")
    else:
        candidates = collect_candidates(snapshot, regime)

    outcome = apply_constraints(candidates, profile)
    survivors = outcome["filtered"]

    reason = fallback_reason(regime, survivors)
    fallback = build_no_trade(reason) if reason is not None else None

    return StrategyRecommendations(
        strategies=rank_strategies(survivors, fallback),
        market_context=regime,
        timestamp=now.isoformat(),
        constraints_applied=skipped + outcome["applied"],
        rejected=outcome["rejected"],
    )
