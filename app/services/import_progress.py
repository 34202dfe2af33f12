from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import get_logger
from app.db import models
from app.db.base import SessionFactory, SessionLocal, session_scope
from app.providers.base import ProgressCallback

logger = get_logger(__name__)

IDLE_PROGRESS: dict[str, Any] = {
    "stage": "idle",
    "message": "No active import",
    "progress": 0,
    "logs": [],
    "error": None,
    "completed": False,
}


def _aware(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class ImportProgressService:
    """
    Persists the progress record the dashboard polls during an import.

    Every call runs in its own short transaction so updates are visible to
    pollers while the import request is still running. Progress tracking is
    not critical: write failures are logged and swallowed.
    """

    def __init__(self, session_factory: SessionFactory = SessionLocal, *, log_limit: int | None = None) -> None:
        self._session_factory = session_factory
        self._log_limit = log_limit

    @property
    def log_limit(self) -> int:
        return self._log_limit if self._log_limit is not None else settings.import_progress_log_limit

    @staticmethod
    def _latest_open(db: Session, property_id: str) -> models.ImportProgress | None:
        return (
            db.query(models.ImportProgress)
            .filter(models.ImportProgress.property_id == property_id)
            .filter(models.ImportProgress.completed.is_(False))
            .order_by(models.ImportProgress.created_at.desc())
            .first()
        )

    def update(
        self,
        property_id: UUID | str,
        *,
        stage: str,
        message: str,
        progress: int,
        log_message: str | None = None,
        error: str | None = None,
    ) -> UUID | None:
        subject = str(property_id)
        now = datetime.now(timezone.utc)
        try:
            with session_scope(self._session_factory) as db:
                row = self._latest_open(db, subject)
                if row is None:
                    row = models.ImportProgress(
                        property_id=subject,
                        progress=0,
                        logs=[],
                        completed=False,
                        created_at=now,
                    )
                    db.add(row)

                logs = list(row.logs or [])
                if log_message:
                    logs.append({"timestamp": now.isoformat(), "message": log_message})
                    logs = logs[-self.log_limit :]

                row.stage = stage
                row.message = message
                # percent never goes backwards within a run, error reports included
                row.progress = max(row.progress or 0, min(max(int(progress), 0), 100))
                row.logs = logs
                row.error = error
                row.completed = error is not None
                row.updated_at = now
                db.flush()
                return row.id
        except SQLAlchemyError:
            logger.exception(
                "import_progress.update_failed",
                extra={"property_id": subject, "stage": stage, "progress": progress},
            )
            return None

    def get_active(self, property_id: UUID | str) -> models.ImportProgress | None:
        with session_scope(self._session_factory) as db:
            return self._latest_open(db, str(property_id))

    def get_latest(self, property_id: UUID | str) -> models.ImportProgress | None:
        with session_scope(self._session_factory) as db:
            return (
                db.query(models.ImportProgress)
                .filter(models.ImportProgress.property_id == str(property_id))
                .order_by(models.ImportProgress.created_at.desc())
                .first()
            )

    def find_running(
        self, property_id: UUID | str, *, stale_after_seconds: int
    ) -> models.ImportProgress | None:
        row = self.get_active(property_id)
        if row is None:
            return None
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=stale_after_seconds)
        return row if _aware(row.updated_at) >= cutoff else None

    def mark_complete(self, property_id: UUID | str) -> None:
        subject = str(property_id)
        try:
            with session_scope(self._session_factory) as db:
                (
                    db.query(models.ImportProgress)
                    .filter(models.ImportProgress.property_id == subject)
                    .filter(models.ImportProgress.completed.is_(False))
                    .update(
                        {
                            models.ImportProgress.completed: True,
                            models.ImportProgress.progress: 100,
                            models.ImportProgress.updated_at: datetime.now(timezone.utc),
                        },
                        synchronize_session=False,
                    )
                )
        except SQLAlchemyError:
            logger.exception("import_progress.mark_complete_failed", extra={"property_id": subject})

    def close_open(self, property_id: UUID | str, *, error: str) -> int:
        """Close abandoned open runs so a new run starts from a fresh record."""
        subject = str(property_id)
        try:
            with session_scope(self._session_factory) as db:
                closed = (
                    db.query(models.ImportProgress)
                    .filter(models.ImportProgress.property_id == subject)
                    .filter(models.ImportProgress.completed.is_(False))
                    .update(
                        {
                            models.ImportProgress.completed: True,
                            models.ImportProgress.error: error,
                            models.ImportProgress.updated_at: datetime.now(timezone.utc),
                        },
                        synchronize_session=False,
                    )
                )
        except SQLAlchemyError:
            logger.exception("import_progress.close_open_failed", extra={"property_id": subject})
            return 0

        if closed:
            logger.info("import_progress.closed_stale", extra={"property_id": subject, "closed": closed})
        return closed

    def reporter(self, property_id: UUID | str) -> ProgressCallback:
        def _report(stage: str, message: str, progress: int, log: str | None = None) -> None:
            self.update(property_id, stage=stage, message=message, progress=progress, log_message=log)

        return _report


def progress_payload(row: models.ImportProgress | None) -> dict[str, Any]:
    if row is None:
        return dict(IDLE_PROGRESS, logs=[])
    return {
        "stage": row.stage or "idle",
        "message": row.message or "Processing...",
        "progress": row.progress or 0,
        "logs": list(row.logs or []),
        "error": row.error,
        "completed": bool(row.completed),
    }


import_progress_service = ImportProgressService()
