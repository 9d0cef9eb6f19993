"""FastAPI local control surface for a running daemon."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from shadow_prompt.capture.presenter import RecordingPresenter, describe_command
from shadow_prompt.core.daemon import Daemon
from shadow_prompt.obs.tracing import RunTrace
from shadow_prompt.types import EventKind, InputEvent, Rect, Success


class RegionBody(BaseModel):
    x: int
    y: int
    width: int
    height: int


class EventBody(BaseModel):
    kind: EventKind
    region: RegionBody | None = None


class ClipboardBody(BaseModel):
    text: str = Field(min_length=1)


def create_app(daemon: Daemon) -> FastAPI:
    """Build the HTTP app; it acts as an input source for `daemon`."""
    app = FastAPI(title="Shadow Prompt", version="0.1.0")

    @app.get("/health")
    def health() -> dict[str, Any]:
        usage = daemon.usage.current()
        return {
            "status": "terminated" if daemon.terminated else "ok",
            "state": daemon.core.state.value,
            "providers": daemon.chain.names,
            "mode": daemon.config.providers.mode.value,
            "usage": {"date": usage.date, "count": usage.count, "limit": usage.limit},
            "hotkey_warnings": daemon.bindings.warnings,
        }

    @app.post("/events", status_code=202)
    def post_event(body: EventBody) -> dict[str, Any]:
        if daemon.terminated:
            raise HTTPException(status_code=409, detail="Daemon has terminated")
        region = None
        if body.region is not None:
            region = Rect(body.region.x, body.region.y, body.region.width, body.region.height)
        daemon.submit(InputEvent(kind=body.kind, region=region))
        return {"accepted": body.kind.value}

    @app.get("/clipboard")
    def read_clipboard() -> dict[str, Any]:
        return {"text": daemon.capture.read_clipboard()}

    @app.put("/clipboard")
    def write_clipboard(body: ClipboardBody) -> dict[str, Any]:
        daemon.capture.write_clipboard(body.text)
        return {"text": body.text}

    @app.get("/overlay")
    def overlay(limit: int = Query(20, ge=1, le=200)) -> dict[str, Any]:
        if not isinstance(daemon.presenter, RecordingPresenter):
            raise HTTPException(status_code=404, detail="Presenter does not record commands")
        commands = daemon.presenter.commands[-limit:]
        return {"items": [describe_command(command) for command in commands]}

    @app.get("/traces")
    def traces(limit: int = Query(20, ge=1, le=500)) -> dict[str, Any]:
        return {"items": [_trace_payload(record) for record in daemon.traces.list_recent(limit=limit)]}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = daemon.traces.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _trace_payload(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return daemon.traces.summary()

    return app


def _trace_payload(record: RunTrace) -> dict[str, Any]:
    payload = asdict(record)
    payload["status"] = record.status.value
    payload["provider_attempts"] = [
        {
            "provider": attempt.provider,
            "outcome": "success" if isinstance(attempt.outcome, Success) else attempt.outcome.kind.value,
            "latency_ms": attempt.latency_ms,
        }
        for attempt in record.provider_attempts
    ]
    return payload
