from __future__ import annotations

import datetime as dt
import time
from typing import Any, Optional

import requests

from data.models import NO_TRADE, Strategy, StrategyRecommendations, Trade, TradeHealthCheck, TradeLeg

APP_NAME = "Options Reasoning Engine"

_URGENCY_ICON = {"immediate": "🔴", "high": "🟠", "medium": "🟡", "low": "🟢"}


def format_option_legs(legs: list[TradeLeg]) -> str:
    """Format explicit option legs for Telegram alerts."""
    lines = ["🟢 LEGS:"]
    for leg in legs:
        action = str(leg.action or "-").strip().upper()
        right = str(leg.type or "-").strip().upper()
        action_label = "Sell" if action == "SELL" else "Buy" if action == "BUY" else action.title()
        lines.append(f"{action_label} {leg.quantity} {right} {_fmt_strike(leg.strike)} (prem {_fmt_num(leg.premium)})")
    return "\n".join(lines)


def format_strategy_alert(recommendations: StrategyRecommendations, now: dt.datetime, top_n: int = 1) -> str:
    regime = recommendations.market_context.regime
    tradable = [s for s in recommendations.strategies if s.name != NO_TRADE]
    fallback = next((s for s in recommendations.strategies if s.name == NO_TRADE), None)

    header = "*⚪ NO TRADE*" if fallback is not None else "*🟢 STRATEGY READY*"
    lines = [
        header,
        f"Time: {_escape_markdown(_as_utc(now).strftime('%H:%M:%S UTC'))}",
        f"Regime: {_escape_markdown(regime.volatility)} vol | {_escape_markdown(regime.structure)} | "
        f"{_escape_markdown(regime.direction)}",
        f"Confidence: {_fmt_num(regime.confidence)}",
    ]
    if fallback is not None:
        lines.append(f"Reason: {_escape_markdown(fallback.description)}")

    for strategy in tradable[: max(0, top_n)]:
        lines.extend(["", *_strategy_block(strategy)])

    if recommendations.constraints_applied:
        lines.extend(["", f"Filtered: {len(recommendations.constraints_applied)} rule hit(s)"])

    lines.extend(["", _footer(now)])
    return "\n".join(lines)


def format_health_alert(trade: Trade, health: TradeHealthCheck, now: dt.datetime) -> str:
    icon = _URGENCY_ICON.get(health.urgency, "⚪")
    lines = [
        f"*{icon} TRADE {_escape_markdown(health.recommended_action.upper())} ({_escape_markdown(health.urgency.upper())})*",
        f"Trade: {_escape_markdown(trade.id)} | {_escape_markdown(trade.strategy)}",
        f"Symbol: {_escape_markdown(trade.symbol or '-')}",
        f"Time: {_escape_markdown(_as_utc(now).strftime('%H:%M:%S UTC'))}",
        f"Spot: {_fmt_num(trade.current_price)}",
        "",
        format_option_legs(trade.legs),
        "",
        f"Health: {_escape_markdown(health.trade_health)}",
        f"Severity: {_fmt_num(health.breach_severity)}",
        f"Profit/Loss: {_fmt_num(trade.current_pnl)} ({_fmt_pct_points(health.current_metrics.pnl_percent)} of max loss)",
        f"Max Loss: {_fmt_num(trade.max_loss)}",
        f"DTE: {health.current_metrics.days_to_expiration}",
        f"Reason: {_escape_markdown(health.reason)}",
        "",
        _footer(now),
    ]
    return "\n".join(lines)


def send_telegram_message(
    token: str,
    chat_id: str,
    text: str,
    parse_mode: str = "Markdown",
    timeout_s: float = 10.0,
    max_retries: int = 2,
) -> tuple[bool, Optional[str]]:
    if not token:
        return False, "missing TELEGRAM_BOT_TOKEN (or TELEGRAM_TOKEN)"
    if not chat_id:
        return False, "missing TELEGRAM_CHAT_ID"

    url = f"https://api.telegram.org/bot{token}/sendMessage"
    payload = {
        "chat_id": str(chat_id),
        "text": text,
        "parse_mode": parse_mode,
        "disable_web_page_preview": True,
    }

    attempt = 0
    while attempt <= max_retries:
        try:
            response = requests.post(url, json=payload, timeout=timeout_s)
        except requests.RequestException as exc:
            return False, f"request error: {exc}"

        if response.status_code == 200:
            try:
                data = response.json()
            except ValueError:
                return False, "invalid Telegram JSON response"
            if bool(data.get("ok")):
                return True, None
            return False, str(data.get("description", "Telegram API error"))

        if response.status_code == 429:
            retry_after = _extract_retry_after_seconds(response)
            if attempt >= max_retries:
                return False, f"rate limited (retry_after={retry_after}s)"
            time.sleep(max(1, retry_after))
            attempt += 1
            continue

        body = response.text.strip()
        return False, f"HTTP {response.status_code}: {body[:180]}"

    return False, "unknown Telegram send error"


def _strategy_block(strategy: Strategy) -> list[str]:
    breakevens = ", ".join(_fmt_num(x) for x in strategy.breakeven) or "-"
    return [
        f"*#{strategy.rank} {_escape_markdown(strategy.name.upper())}*",
        format_option_legs(strategy.legs),
        f"Max Profit: {_fmt_num(strategy.max_profit)}",
        f"Max Loss: {_fmt_num(strategy.max_loss)}",
        f"Breakeven: {breakevens}",
        f"POP: {_fmt_pct_points(strategy.pop)}",
        f"Risk: {_escape_markdown(strategy.risk_level.upper())}",
    ]


def _extract_retry_after_seconds(response: requests.Response) -> int:
    try:
        payload = response.json()
    except ValueError:
        return 1

    params = payload.get("parameters") if isinstance(payload, dict) else None
    if isinstance(params, dict):
        retry_after = params.get("retry_after")
        try:
            return max(1, int(retry_after))
        except (TypeError, ValueError):
            return 1
    return 1


def _footer(now: dt.datetime) -> str:
    ts = _as_utc(now).strftime("%Y-%m-%d %H:%M:%S UTC")
    return f"_Generated {ts} | {_escape_markdown(APP_NAME)}_"


def _escape_markdown(value: Any) -> str:
    text = "" if value is None else str(value)
    text = text.replace("\\", "\\\\")
    for ch in ("_", "*", "[", "`"):
        text = text.replace(ch, f"\\{ch}")
    return text


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _fmt_num(value: Any) -> str:
    number = _to_float(value)
    if number is None:
        return "-"
    return f"{number:.2f}"


def _fmt_strike(value: Any) -> str:
    strike = _to_float(value)
    if strike is None:
        return "-"
    if abs(strike - round(strike)) < 1e-9:
        return f"{int(round(strike))}"
    return f"{strike:.2f}"


def _fmt_pct_points(value: Any) -> str:
    number = _to_float(value)
    if number is None:
        return "-"
    return f"{number:.1f}%"


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)
