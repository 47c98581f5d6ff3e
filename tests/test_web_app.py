from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import fxsignals.web.app as web_app
from fxsignals.config import Settings
from fxsignals.domain.models import Action, Signal
from fxsignals.storage import SignalStorage


def _db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'web.db'}"


def _client(tmp_path: Path, **overrides: object) -> TestClient:
    settings = Settings(database_url=_db_url(tmp_path), mock_seed=5, **overrides)  # type: ignore[arg-type]
    return TestClient(web_app.create_app(settings))


def _secured(tmp_path: Path) -> TestClient:
    return _client(tmp_path, api_key="trader-key", admin_api_key="admin-key")


def test_health_and_readiness_endpoints(tmp_path: Path) -> None:
    client = _client(tmp_path)
    health = client.get("/healthz")
    ready = client.get("/readyz")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert ready.status_code == 200
    assert ready.json() == {"status": "ready", "persistence": True, "scheduler": False}


def test_request_id_header_roundtrip(tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert "X-Process-Time-Ms" in response.headers


def test_seed_generate_and_list_signals(tmp_path: Path) -> None:
    client = _client(tmp_path)

    seeded = client.post("/api/market-data/seed")
    assert seeded.status_code == 200
    assert len(seeded.json()["inserted"]) == 8

    generated = client.post("/api/signals/generate")
    assert generated.status_code == 200
    report = generated.json()
    assert len(report["outcomes"]) == 8

    listed = client.get("/api/signals")
    assert listed.status_code == 200
    assert len(listed.json()["signals"]) == report["signals_generated"]

    accuracy = client.get("/api/signals/accuracy")
    assert accuracy.status_code == 200
    assert accuracy.json()["total_generated"] == report["signals_generated"]


def test_settle_signal(tmp_path: Path) -> None:
    client = _client(tmp_path)
    saved = SignalStorage(_db_url(tmp_path)).save_signal(
        Signal(
            pair="GBP/USD",
            action=Action.BUY,
            entry_price=Decimal("1.27000"),
            take_profit_price=Decimal("1.27450"),
            stop_loss_price=Decimal("1.26700"),
            confidence=80,
        )
    )

    response = client.post(f"/api/signals/{saved.signal_id}/settle", json={"result": "loss"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "closed"
    assert body["result"] == "loss"
    assert body["closed_at"] is not None
    assert client.get("/api/signals").json()["signals"] == []
    by_pair = client.get("/api/signals", params={"pair": "gbp/usd"}).json()["signals"]
    assert by_pair[0]["signal_id"] == saved.signal_id


def test_settle_unknown_signal_returns_404(tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.post("/api/signals/999/settle", json={"result": "win"})
    assert response.status_code == 404


def test_api_endpoints_require_api_key_when_configured(tmp_path: Path) -> None:
    client = _secured(tmp_path)
    response = client.get("/api/signals")
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized"


def test_trader_key_reads_but_cannot_generate(tmp_path: Path) -> None:
    client = _secured(tmp_path)
    headers = {"X-API-Key": "trader-key"}

    assert client.get("/api/signals", headers=headers).status_code == 200
    forbidden = client.post("/api/signals/generate", headers=headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "Forbidden"


def test_admin_key_can_generate(tmp_path: Path) -> None:
    client = _secured(tmp_path)
    response = client.post("/api/signals/generate", headers={"X-API-Key": "admin-key"})
    assert response.status_code == 200
    assert all(o["status"] == "insufficient_data" for o in response.json()["outcomes"])


def test_endpoints_require_persistence_configuration() -> None:
    client = TestClient(web_app.create_app(Settings(database_url=None)))
    response = client.get("/api/signals")
    assert response.status_code == 400
    assert response.json()["detail"] == "Persistence is not configured."
    assert client.post("/api/signals/generate").status_code == 400
    assert client.get("/readyz").json()["persistence"] is False


def test_lifespan_starts_and_stops_scheduler(tmp_path: Path) -> None:
    app = web_app.create_app(
        Settings(
            database_url=_db_url(tmp_path),
            scheduler_enabled=True,
            schedule_initial_delay_seconds=3600,
        )
    )
    with TestClient(app) as client:
        assert client.get("/readyz").json()["scheduler"] is True


@pytest.mark.parametrize("limit", [0, -1])
def test_signals_rejects_non_positive_limit(tmp_path: Path, limit: int) -> None:
    client = _client(tmp_path)
    response = client.get("/api/signals", params={"limit": limit})
    assert response.status_code == 400


def test_settle_rejects_active_status(tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.post("/api/signals/1/settle", json={"result": "win", "status": "active"})
    assert response.status_code == 422


def test_settle_can_expire_signal(tmp_path: Path) -> None:
    client = _client(tmp_path)
    saved = SignalStorage(_db_url(tmp_path)).save_signal(
        Signal(
            pair="EUR/USD",
            action=Action.SELL,
            entry_price=Decimal("1.10000"),
            take_profit_price=Decimal("1.09550"),
            stop_loss_price=Decimal("1.10300"),
            confidence=75,
        )
    )
    response = client.post(
        f"/api/signals/{saved.signal_id}/settle",
        json={"result": "pending", "status": "expired"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "expired"
