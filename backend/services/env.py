from __future__ import annotations

import os
from typing import Dict, List, Optional


def _truthy(value: str | None) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _env_int(name: str) -> Optional[int]:
    value = _env_float(name)
    return None if value is None else int(value)


def alerts_enabled() -> bool:
    return _truthy(os.getenv("OPTIONS_ENGINE_ENABLE_TELEGRAM"))


def telegram_token() -> str:
    return os.getenv("TELEGRAM_BOT_TOKEN") or os.getenv("TELEGRAM_TOKEN") or ""


def telegram_chat_id() -> str:
    return os.getenv("TELEGRAM_CHAT_ID") or ""


def telegram_configured() -> bool:
    return bool(telegram_token() and telegram_chat_id())


def monitor_config() -> Dict[str, object]:
    """Monitor threshold overrides; unset or unparsable variables fall back to defaults."""
    return {
        "profit_take_pct": _env_float("MONITOR_PROFIT_TAKE_PCT"),
        "expiration_risk_days": _env_int("MONITOR_EXPIRATION_RISK_DAYS"),
        "early_exit_days": _env_int("MONITOR_EARLY_EXIT_DAYS"),
    }


def required_env_issues() -> List[str]:
    issues: List[str] = []
    if alerts_enabled() and not telegram_configured():
        issues.append(
            "Telegram is enabled but TELEGRAM_BOT_TOKEN (or TELEGRAM_TOKEN) / TELEGRAM_CHAT_ID is missing."
        )
    for name in ("MONITOR_PROFIT_TAKE_PCT", "MONITOR_EXPIRATION_RISK_DAYS", "MONITOR_EARLY_EXIT_DAYS"):
        raw = os.getenv(name)
        if raw is not None and raw.strip() and _env_float(name) is None:
            issues.append(f"{name} must be numeric (got {raw!r}).")
    return issues


def runtime_summary() -> Dict[str, object]:
    return {
        "alertsEnabled": alerts_enabled(),
        "telegramConfigured": telegram_configured(),
        "monitorConfig": {k: v for k, v in monitor_config().items() if v is not None},
        "issues": required_env_issues(),
    }
