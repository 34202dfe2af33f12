from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.main import create_app

DASHBOARD_ORIGIN = "https://dashboard.example"


@pytest.fixture()
def cors_client(monkeypatch) -> TestClient:
    monkeypatch.setattr(settings, "cors_allowed_origins", [DASHBOARD_ORIGIN])
    monkeypatch.setattr(settings, "cors_allowed_methods", ["GET", "POST", "OPTIONS"])
    monkeypatch.setattr(settings, "cors_allowed_headers", ["Content-Type"])
    monkeypatch.setattr(settings, "cors_allow_credentials", False)
    return TestClient(create_app())


def _preflight(client: TestClient, path: str, *, origin: str, method: str):
    return client.options(path, headers={"Origin": origin, "Access-Control-Request-Method": method})


@pytest.mark.parametrize(
    "path,method",
    [
        ("/api/import-progress", "GET"),
        ("/api/upload-image", "POST"),
        ("/api/properties/00000000-0000-0000-0000-000000000000/import", "POST"),
    ],
)
def test_dashboard_origin_may_call_import_endpoints(cors_client, path, method):
    response = _preflight(cors_client, path, origin=DASHBOARD_ORIGIN, method=method)

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == DASHBOARD_ORIGIN


def test_unconfigured_origin_is_rejected(cors_client):
    response = _preflight(cors_client, "/api/upload-image", origin="https://blocked.example", method="POST")

    assert response.status_code == 400
    assert "access-control-allow-origin" not in response.headers


def test_unlisted_method_is_rejected(cors_client):
    response = _preflight(cors_client, "/api/upload-image", origin=DASHBOARD_ORIGIN, method="DELETE")

    assert response.status_code == 400


def test_simple_request_from_dashboard_gets_cors_headers(cors_client):
    response = cors_client.get(
        "/api/import-progress",
        params={"property_id": "cors-check"},
        headers={"Origin": DASHBOARD_ORIGIN},
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == DASHBOARD_ORIGIN
    assert "access-control-allow-credentials" not in response.headers
