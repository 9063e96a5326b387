from __future__ import annotations

from fastapi.testclient import TestClient

from planner.db.session import dispose_engine
from planner.main import app


def teardown_module() -> None:  # pragma: no cover - test cleanup
    dispose_engine()


def test_health_reports_persistence_mode() -> None:
    response = TestClient(app).get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "persistence_mode": "memory"}


def test_database_health_endpoint_success() -> None:
    response = TestClient(app).get("/healthz/database")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert "pool" in payload
    assert "persistence_mode" in payload


def test_database_health_endpoint_failure(monkeypatch) -> None:
    def raise_runtime_error():
        raise RuntimeError("missing database url")

    monkeypatch.setattr("planner.main.get_engine", raise_runtime_error)
    response = TestClient(app).get("/healthz/database")
    assert response.status_code == 503
    assert response.json()["detail"] == "missing database url"
