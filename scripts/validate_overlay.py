from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from data.models import ValidationError  # noqa: E402
from engine.core import generate_analysis  # noqa: E402

REPORT_SECTIONS = ("market_view", "strategy_decision", "trade_management", "learning_output", "meta_notes")

REFERENCE_SNAPSHOT = {
    "symbol": "NIFTY",
    "timestamp": "2025-12-30T14:45:00+05:30",
    "price": 25925.95,
    "volume": 0,
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

REFERENCE_PROFILE = {
    "accountSize": 300000,
    "riskTolerance": "moderate",
    "maxLossPerTrade": 6000,
    "maxPortfolioRisk": 45000,
    "minPOP": 55,
    "allowedStrategies": ["Iron Butterfly", "Iron Condor", "Put Credit Spread", "Calendar Spread"],
    "bannedStrategies": ["Short Straddle", "Naked Options"],
}


def _response(ok: bool, **kwargs: Any) -> dict[str, Any]:
    out = {"ok": ok}
    out.update(kwargs)
    return out


def missing_sections(report: dict) -> list[str]:
    return [name for name in REPORT_SECTIONS if not report.get(name)]


def main() -> int:
    try:
        report = generate_analysis(REFERENCE_SNAPSHOT, REFERENCE_PROFILE)
    except ValidationError as exc:
        print(json.dumps(_response(False, message=str(exc), errors=exc.errors)))
        return 1

    missing = missing_sections(report)
    print(json.dumps(_response(not missing, missing=missing, analysis=report), indent=2))
    return 0 if not missing else 1


if __name__ == "__main__":
    raise SystemExit(main())
