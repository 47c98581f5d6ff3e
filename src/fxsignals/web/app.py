from __future__ import annotations

import hmac
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, field_validator

from fxsignals import __version__
from fxsignals.config import Settings
from fxsignals.domain.models import SignalResult, SignalStatus
from fxsignals.engine import SignalEngine, generate_mock_market_data
from fxsignals.errors import SignalNotFoundError
from fxsignals.scheduler import SignalScheduler
from fxsignals.storage import SignalStorage

logger = logging.getLogger(__name__)


class SettleRequest(BaseModel):
    result: SignalResult
    status: SignalStatus = SignalStatus.CLOSED
    closed_at: datetime | None = None

    @field_validator("status")
    @classmethod
    def _settled_status(cls, value: SignalStatus) -> SignalStatus:
        if value == SignalStatus.ACTIVE:
            raise ValueError("status must be closed or expired")
        return value


def _request_role(request: Request, settings: Settings) -> str:
    if not settings.api_key and not settings.admin_api_key:
        return "anonymous"
    provided_key = request.headers.get("X-API-Key")
    if not provided_key:
        return ""
    if settings.admin_api_key and hmac.compare_digest(provided_key, settings.admin_api_key):
        return "admin"
    if settings.api_key and hmac.compare_digest(provided_key, settings.api_key):
        return "trader"
    return ""


def _require_role(request: Request, settings: Settings, allowed_roles: set[str]) -> str:
    role = _request_role(request, settings)
    if role == "anonymous":
        return role
    if not role:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if role not in allowed_roles:
        raise HTTPException(status_code=403, detail="Forbidden")
    return role


def _get_storage(settings: Settings) -> SignalStorage | None:
    if not settings.database_url:
        return None
    storage = SignalStorage(settings.database_url, timeout_seconds=settings.io_timeout_seconds)
    storage.init_schema()
    return storage


def create_app(settings: Settings | None = None) -> FastAPI:
    app_settings = settings or Settings()
    storage = _get_storage(app_settings)
    engine = (
        SignalEngine(history=storage, sink=storage, settings=app_settings)
        if storage is not None
        else None
    )
    scheduler = (
        SignalScheduler(
            engine,
            interval_seconds=app_settings.schedule_interval_seconds,
            initial_delay_seconds=app_settings.schedule_initial_delay_seconds,
        )
        if engine is not None and app_settings.scheduler_enabled
        else None
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.stop(timeout=app_settings.io_timeout_seconds)

    app = FastAPI(title=app_settings.app_name, version=__version__, lifespan=lifespan)

    def _storage() -> SignalStorage:
        if storage is None:
            raise HTTPException(status_code=400, detail="Persistence is not configured.")
        return storage

    @app.middleware("http")
    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", uuid4().hex)
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.2f}"
        logger.info(
            "%s %s status=%s request_id=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            request_id,
            elapsed_ms,
        )
        return response

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok", "env": app_settings.env, "app": app_settings.app_name}

    @app.get("/readyz")
    def readyz() -> dict[str, object]:
        return {
            "status": "ready",
            "persistence": storage is not None,
            "scheduler": scheduler is not None and scheduler.running,
        }

    @app.get("/api/signals")
    def signals(request: Request, pair: str | None = None, limit: int = 50) -> dict[str, object]:
        _require_role(request, app_settings, allowed_roles={"trader", "admin"})
        try:
            if pair:
                rows = _storage().list_signals_by_pair(pair.strip().upper(), limit=limit)
            else:
                rows = _storage().list_active_signals(limit=limit)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"signals": [row.to_payload() for row in rows]}

    @app.get("/api/signals/accuracy")
    def accuracy(request: Request) -> dict[str, object]:
        _require_role(request, app_settings, allowed_roles={"trader", "admin"})
        return {
            "pairs": [
                {
                    "pair": stat.pair,
                    "total_signals": stat.total_signals,
                    "accuracy": round(stat.accuracy, 2),
                }
                for stat in _storage().signal_accuracy_stats()
            ],
            "total_generated": _storage().count_signals(),
        }

    @app.post("/api/signals/generate")
    def generate(request: Request) -> dict[str, object]:
        _require_role(request, app_settings, allowed_roles={"admin"})
        if engine is None:
            raise HTTPException(status_code=400, detail="Persistence is not configured.")
        report = engine.generate_signals()
        if report.skipped:
            raise HTTPException(status_code=409, detail="Signal generation already running.")
        return report.to_payload()

    @app.post("/api/signals/{signal_id}/settle")
    def settle(signal_id: int, req: SettleRequest, request: Request) -> dict[str, object]:
        _require_role(request, app_settings, allowed_roles={"admin"})
        try:
            signal = _storage().update_signal_result(
                signal_id,
                req.result,
                closed_at=req.closed_at,
                status=req.status,
            )
        except SignalNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return signal.to_payload()

    @app.post("/api/market-data/seed")
    def seed(request: Request) -> dict[str, object]:
        _require_role(request, app_settings, allowed_roles={"admin"})
        try:
            inserted = generate_mock_market_data(_storage(), app_settings)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"inserted": inserted}

    return app


def run() -> None:
    uvicorn.run("fxsignals.web.app:create_app", factory=True, host="127.0.0.1", port=8000)
