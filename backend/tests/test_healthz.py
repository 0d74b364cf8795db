from __future__ import annotations

import os

from fastapi.testclient import TestClient

os.environ.setdefault("STUDYPULSE_DATABASE_URL", "sqlite://")

from studypulse.config import Settings, get_settings  # noqa: E402
from studypulse.db.session import dispose_engine  # noqa: E402
from studypulse.main import app  # noqa: E402


def teardown_module() -> None:  # pragma: no cover - test cleanup
    dispose_engine()


def test_health_endpoint_reports_narrative_mode() -> None:
    app.dependency_overrides[get_settings] = lambda: Settings(STUDYPULSE_NARRATIVE_MODE="off")
    try:
        response = TestClient(app).get("/healthz")
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "narrative_mode": "off"}
