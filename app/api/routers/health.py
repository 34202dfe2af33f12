from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import DbSession
from app.core.logging import get_logger
from app.core.metrics import metrics_payload, set_db_connection_utilization

logger = get_logger(__name__)
router = APIRouter(tags=["health"])
READINESS_PROBE_TIMEOUT_SECONDS = 1.0


@router.get("/healthz")
def healthz():
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request, db: DbSession):
    request_id = getattr(request.state, "request_id", "-")

    db_ok, db_reason = _probe_db(db, timeout_seconds=READINESS_PROBE_TIMEOUT_SECONDS)
    checks = {"db": _probe_status(db_ok, db_reason)}
    _record_db_pool_utilization(db)

    if not db_ok:
        logger.error(
            "health.ready.dependency_failed",
            extra={"request_id": request_id, "failed_checks": ["db"], "checks": checks},
        )
        raise HTTPException(
            status_code=503,
            detail={
                "status": "not_ready",
                "reason": "required dependency checks failed",
                "checks": checks,
            },
        )

    return {"status": "ready", "checks": checks}


def _probe_status(ok: bool, reason: str | None) -> dict[str, str]:
    if ok:
        return {"status": "ok"}
    return {"status": "failed", "reason": reason or "probe failed"}


def _probe_db(db: Session, *, timeout_seconds: float) -> tuple[bool, str | None]:
    try:
        bind = db.get_bind()
        if bind.dialect.name == "postgresql":
            with bind.connect() as conn, conn.begin():
                conn.execute(
                    text("SET LOCAL statement_timeout = :timeout"),
                    {"timeout": f"{int(timeout_seconds * 1000)}ms"},
                )
                conn.execute(text("SELECT 1"))
        else:
            # no server-side statement timeout on SQLite
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return False, f"db readiness probe failed: {exc.__class__.__name__}"
    return True, None


def _record_db_pool_utilization(db: Session) -> None:
    try:
        pool = getattr(db.get_bind(), "pool", None)
    except SQLAlchemyError:
        return
    checkedout = getattr(pool, "checkedout", None)
    size = getattr(pool, "size", None)
    if not callable(checkedout) or not callable(size):
        return

    pool_size = size()
    if pool_size <= 0:
        return
    set_db_connection_utilization(utilization_ratio=checkedout() / pool_size)


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    payload, content_type = metrics_payload()
    return Response(content=payload, media_type=content_type)
