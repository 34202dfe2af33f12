from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.error_reporting import capture_import_failure
from app.core.logging import get_logger
from app.core.metrics import record_listing_import
from app.core.request_context import import_subject
from app.db import models
from app.db.base import SessionFactory, SessionLocal, session_scope
from app.providers.airbnb import AirbnbScraper
from app.providers.base import ListingExtraction
from app.services.import_progress import ImportProgressService, import_progress_service
from app.services.storage import ImageDownloadError, LocalImageStorage, StorageError

logger = get_logger(__name__)

ROOM_IMAGE_FOLDER = "room-images"
MAX_ROOM_NAME_LENGTH = 300
SUPERSEDED_ERROR = "superseded by a new import"


@dataclass(frozen=True)
class ImportResult:
    room_id: UUID
    property_id: UUID
    name: str
    price: float | None
    capacity: int | None
    images_found: int
    images_created: int
    images_skipped: int
    failed_downloads: int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def describe_import_failure(exc: BaseException) -> str:
    """Turn a terminal import error into the message shown to the operator."""
    detail = str(exc) or exc.__class__.__name__
    lowered = detail.lower()

    if isinstance(exc, StorageError) or "storage" in lowered:
        return f"Image storage failed. Check that UPLOAD_ROOT points to a writable directory. Error: {detail}"
    if "timeout" in lowered or "timed out" in lowered:
        return (
            "Request timed out. The Airbnb page may be slow or blocked. "
            f"Try again or provide a gallery URL. Error: {detail}"
        )
    if isinstance(exc, SQLAlchemyError):
        return f"Saving the imported room failed. Error: {detail}"
    return f"Import failed: {detail}"


class ListingImportService:
    def __init__(
        self,
        *,
        scraper: AirbnbScraper | None = None,
        storage: LocalImageStorage | None = None,
        progress: ImportProgressService | None = None,
        session_factory: SessionFactory = SessionLocal,
    ) -> None:
        self._scraper = scraper or AirbnbScraper()
        self._storage = storage or LocalImageStorage()
        self._progress = progress or import_progress_service
        self._session_factory = session_factory

    def import_listing(
        self,
        *,
        property_id: UUID,
        url: str,
        gallery_url: str | None = None,
        ical_url: str | None = None,
    ) -> ImportResult:
        if "airbnb" not in (url or "").lower():
            raise HTTPException(status_code=400, detail="Invalid Airbnb URL")

        subject = str(property_id)
        with import_subject(subject):
            self._ensure_property(property_id)

            running = self._progress.find_running(
                subject, stale_after_seconds=settings.import_stale_after_seconds
            )
            if running is not None:
                raise HTTPException(status_code=409, detail="An import is already running for this property")
            self._progress.close_open(subject, error=SUPERSEDED_ERROR)

            start = time.perf_counter()
            logger.info(
                "import.start",
                extra={"property_id": subject, "url": url, "gallery_url": gallery_url},
            )
            report = self._progress.reporter(subject)
            report("initializing", "Starting import...", 10, f"Starting import from {url}")

            try:
                listing = self._scraper.scrape(url, gallery_url=gallery_url, progress=report)
                report(
                    "saving",
                    "Saving room and images...",
                    90,
                    f"Saving room with {len(listing.images)} images",
                )
                result = self._persist(property_id, url=url, ical_url=ical_url, listing=listing)
            except Exception as exc:
                message = describe_import_failure(exc)
                self._progress.update(
                    subject,
                    stage="error",
                    message=message,
                    progress=0,
                    log_message=f"Error: {message}",
                    error=message,
                )
                record_listing_import(success=False)
                capture_import_failure(exc, url=url)
                logger.error(
                    "import.failed",
                    extra={
                        "property_id": subject,
                        "url": url,
                        "error": message,
                        "duration_ms": int((time.perf_counter() - start) * 1000),
                    },
                    exc_info=True,
                )
                raise HTTPException(status_code=502, detail=message) from exc

            report(
                "complete",
                "Import completed successfully!",
                100,
                f"Imported {result.name} with {result.images_created} images",
            )
            self._progress.mark_complete(subject)
            record_listing_import(success=True)
            logger.info(
                "import.done",
                extra={
                    "property_id": subject,
                    "room_id": str(result.room_id),
                    "images_found": result.images_found,
                    "images_created": result.images_created,
                    "images_skipped": result.images_skipped,
                    "failed_downloads": result.failed_downloads,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                },
            )
            return result

    def _ensure_property(self, property_id: UUID) -> None:
        with session_scope(self._session_factory) as db:
            if db.get(models.Property, property_id) is None:
                raise HTTPException(status_code=404, detail="Property not found")

    @staticmethod
    def _existing_image_urls(db: Session, property_id: UUID) -> set[str]:
        rows = (
            db.query(func.coalesce(models.Image.source_url, models.Image.url))
            .outerjoin(models.Room, models.Image.room_id == models.Room.id)
            .filter(or_(models.Image.property_id == property_id, models.Room.property_id == property_id))
            .all()
        )
        return {row[0] for row in rows}

    def _store_image(self, remote_url: str) -> tuple[str, bool]:
        if not settings.import_download_images:
            return remote_url, False
        try:
            return self._storage.download(remote_url, folder=ROOM_IMAGE_FOLDER), False
        except ImageDownloadError as e:
            logger.warning("import.image.download_failed", extra={"url": remote_url, "error": str(e)})
            return remote_url, True

    def _persist(
        self,
        property_id: UUID,
        *,
        url: str,
        ical_url: str | None,
        listing: ListingExtraction,
    ) -> ImportResult:
        with session_scope(self._session_factory) as db:
            existing = self._existing_image_urls(db, property_id)

        new_urls: list[str] = []
        for image_url in listing.images:
            if image_url not in existing and image_url not in new_urls:
                new_urls.append(image_url)

        # downloads run outside any transaction
        stored: list[tuple[str, str]] = []
        failed = 0
        for remote_url in new_urls:
            stored_url, download_failed = self._store_image(remote_url)
            stored.append((stored_url, remote_url))
            failed += int(download_failed)

        name = (listing.title or "").strip()[:MAX_ROOM_NAME_LENGTH] or "Imported Room"
        with session_scope(self._session_factory) as db:
            max_order = (
                db.query(func.max(models.Room.order)).filter(models.Room.property_id == property_id).scalar()
            )
            room = models.Room(
                property_id=property_id,
                name=name,
                description=listing.description,
                price=listing.price,
                capacity=listing.capacity,
                airbnb_url=url,
                ical_url=ical_url or None,
                amenities=list(listing.amenities),
                order=0 if max_order is None else max_order + 1,
            )
            db.add(room)
            db.flush()
            for index, (image_url, remote_url) in enumerate(stored):
                db.add(models.Image(url=image_url, source_url=remote_url, room_id=room.id, order=index))
            db.flush()
            room_id = room.id

        return ImportResult(
            room_id=room_id,
            property_id=property_id,
            name=name,
            price=listing.price,
            capacity=listing.capacity,
            images_found=len(listing.images),
            images_created=len(stored),
            images_skipped=len(listing.images) - len(new_urls),
            failed_downloads=failed,
        )


listing_import_service = ListingImportService()
