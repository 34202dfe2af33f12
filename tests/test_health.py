from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.api.routers import health


class _Pool:
    def __init__(self, *, checked_out: int, size: int) -> None:
        self._checked_out = checked_out
        self._size = size

    def checkedout(self):
        return self._checked_out

    def size(self):
        return self._size


class _FakeSession:
    def __init__(self, bind=None, *, error: Exception | None = None) -> None:
        self._bind = bind
        self._error = error

    def get_bind(self):
        if self._error is not None:
            raise self._error
        return self._bind


class _PoolBind:
    def __init__(self, pool) -> None:
        self.pool = pool


def test_healthz_is_static(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_readyz_hits_sqlite_database(client):
    r = client.get("/readyz")
    assert r.status_code == 200
    assert r.json() == {"status": "ready", "checks": {"db": {"status": "ok"}}}


def test_health_responses_echo_incoming_request_id(client):
    r = client.get("/healthz", headers={"x-request-id": "req-123"})
    assert r.headers["x-request-id"] == "req-123"

    generated = client.get("/healthz").headers["x-request-id"]
    assert generated and generated != "req-123"


def test_readyz_failure_uses_error_envelope(client, monkeypatch, caplog):
    monkeypatch.setattr(
        health, "_probe_db", lambda *_args, **_kwargs: (False, "db readiness probe failed: OperationalError")
    )

    with caplog.at_level("ERROR"):
        r = client.get("/readyz")

    assert r.status_code == 503
    error = r.json()["error"]
    assert error["code"] == "http_error"
    assert error["details"]["status"] == "not_ready"
    assert error["details"]["checks"]["db"] == {
        "status": "failed",
        "reason": "db readiness probe failed: OperationalError",
    }
    assert any(rec.getMessage() == "health.ready.dependency_failed" for rec in caplog.records)


@pytest.mark.parametrize(
    "error,expected",
    [
        (SQLAlchemyError("boom"), "db readiness probe failed: SQLAlchemyError"),
        (OperationalError("SELECT 1", {}, Exception("down")), "db readiness probe failed: OperationalError"),
    ],
)
def test_db_check_names_the_failing_error_class(error, expected):
    ok, reason = health._probe_db(_FakeSession(error=error), timeout_seconds=0.1)
    assert ok is False
    assert reason == expected


def test_db_check_runs_plain_select_on_sqlite(db_session):
    ok, reason = health._probe_db(db_session, timeout_seconds=0.5)
    assert (ok, reason) == (True, None)


def test_db_check_sets_statement_timeout_on_postgres():
    statements: list[tuple[str, dict[str, str] | None]] = []

    class _Connection:
        def __enter__(self):
            return self

        def __exit__(self, *_args):
            return False

        def begin(self):
            return self

        def execute(self, stmt, params=None):
            statements.append((str(stmt), params))

    class _PostgresBind:
        class dialect:  # noqa: D106
            name = "postgresql"

        def connect(self):
            return _Connection()

    ok, reason = health._probe_db(_FakeSession(_PostgresBind()), timeout_seconds=0.25)

    assert (ok, reason) == (True, None)
    assert statements == [
        ("SET LOCAL statement_timeout = :timeout", {"timeout": "250ms"}),
        ("SELECT 1", None),
    ]


def test_metrics_endpoint_exposes_import_metrics(client):
    client.get("/api/import-progress", params={"property_id": "metrics-check"})

    r = client.get("/metrics")
    assert r.status_code == 200
    assert "text/plain" in r.headers["content-type"]
    for name in (
        "rental_import_request_latency_seconds",
        "rental_import_scrape_fetch_results_total",
        "rental_import_listing_imports_total",
        "rental_import_db_connection_utilization",
    ):
        assert name in r.text
    assert 'path="/api/import-progress"' in r.text


@pytest.mark.parametrize(
    "pool,expected",
    [
        (_Pool(checked_out=3, size=10), [0.3]),
        (_Pool(checked_out=1, size=0), []),
        (object(), []),
    ],
)
def test_record_db_pool_utilization(monkeypatch, pool, expected):
    ratios: list[float] = []
    monkeypatch.setattr(
        health, "set_db_connection_utilization", lambda *, utilization_ratio: ratios.append(utilization_ratio)
    )

    health._record_db_pool_utilization(_FakeSession(_PoolBind(pool)))

    assert ratios == expected


def test_record_db_pool_utilization_ignores_unbound_session(monkeypatch):
    ratios: list[float] = []
    monkeypatch.setattr(
        health, "set_db_connection_utilization", lambda *, utilization_ratio: ratios.append(utilization_ratio)
    )

    health._record_db_pool_utilization(_FakeSession(error=SQLAlchemyError("unbound")))

    assert ratios == []
