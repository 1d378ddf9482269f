from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dotenv import load_dotenv
from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse

from alerts.telegram import format_health_alert, format_strategy_alert, send_telegram_message
from backend.services.env import (
    alerts_enabled,
    monitor_config,
    runtime_summary,
    telegram_chat_id,
    telegram_token,
)
from data.models import ValidationError, as_payload
from engine import core
from strategies.calibration import summarize_lifecycles

load_dotenv()

app = FastAPI(title="Options Reasoning Engine", version="1.0.0")


def _log(message: str) -> None:
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    print(f"[{ts}] api {message}", flush=True)


def _response(ok: bool, **kwargs: Any) -> dict[str, Any]:
    out = {"ok": ok}
    out.update(kwargs)
    return out


def _require(payload: dict, key: str) -> Any:
    value = payload.get(key) if isinstance(payload, dict) else None
    if value is None:
        raise ValidationError([f"Missing required field: {key}"], "request")
    return value


def _send_alert(text: str, context: str) -> tuple[bool, Any]:
    sent, error = send_telegram_message(telegram_token(), telegram_chat_id(), text)
    if sent:
        _log(f"alert sent {context}")
    else:
        _log(f"alert failed {context}: {error}")
    return sent, error


@app.exception_handler(ValidationError)
def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    _log(f"{request.url.path} rejected: {exc}")
    return JSONResponse(_response(False, errors=exc.errors), status_code=422)


@app.get("/health")
def health() -> JSONResponse:
    summary = runtime_summary()
    issues = summary.get("issues", [])
    status = "ok" if not issues else "error"
    payload = {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "alertsEnabled": summary["alertsEnabled"],
        "telegramConfigured": summary["telegramConfigured"],
        "monitorConfig": summary["monitorConfig"],
        "issues": issues,
    }
    return JSONResponse(payload, status_code=200 if status == "ok" else 503)


@app.post("/regime")
def regime(payload: dict = Body(...)) -> JSONResponse:
    output = core.analyze_market(_require(payload, "snapshot"))
    return JSONResponse(_response(True, regime=as_payload(output)))


@app.post("/strategies")
def strategies(payload: dict = Body(...)) -> JSONResponse:
    recommendations = core.get_recommendations(_require(payload, "snapshot"), _require(payload, "profile"))

    alert_sent = False
    alert_error = None
    if alerts_enabled():
        text = format_strategy_alert(recommendations, datetime.now(timezone.utc))
        top = recommendations.strategies[0].name if recommendations.strategies else "-"
        alert_sent, alert_error = _send_alert(text, f"strategies top={top}")

    return JSONResponse(
        _response(
            True,
            recommendations=as_payload(recommendations),
            alertSent=alert_sent,
            alertError=alert_error,
        )
    )


@app.post("/monitor")
def monitor(payload: dict = Body(...)) -> JSONResponse:
    trade = core.as_trade(_require(payload, "trade"))
    snapshot = core.as_snapshot(_require(payload, "snapshot"))
    health_check = core.monitor_trade(trade, snapshot, payload.get("regime"), config=monitor_config())

    alert_sent = False
    alert_error = None
    if health_check.urgency == "immediate" and alerts_enabled():
        text = format_health_alert(trade, health_check, datetime.now(timezone.utc))
        alert_sent, alert_error = _send_alert(text, f"trade={trade.id} action={health_check.recommended_action}")

    return JSONResponse(
        _response(True, health=as_payload(health_check), alertSent=alert_sent, alertError=alert_error)
    )


@app.post("/autopsy")
def autopsy(payload: dict = Body(...)) -> JSONResponse:
    result = core.analyze_trade(_require(payload, "lifecycle"))
    return JSONResponse(_response(True, autopsy=as_payload(result)))


@app.post("/autopsy/summary")
def autopsy_summary(payload: dict = Body(...)) -> JSONResponse:
    rows = _require(payload, "lifecycles")
    if not isinstance(rows, list):
        raise ValidationError(["lifecycles must be a list"], "request")
    summary = summarize_lifecycles([core.as_lifecycle(row) for row in rows])
    return JSONResponse(_response(True, **summary))


@app.post("/analysis")
def analysis(payload: dict = Body(...)) -> JSONResponse:
    report = core.generate_analysis(
        _require(payload, "snapshot"),
        _require(payload, "profile"),
        active_trade=payload.get("activeTrade"),
        completed_lifecycle=payload.get("completedLifecycle"),
        monitor_config=monitor_config(),
    )
    return JSONResponse(_response(True, analysis=report))
