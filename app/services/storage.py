from __future__ import annotations

import re
import secrets
import time
from pathlib import Path

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import record_image_download

logger = get_logger(__name__)

FOLDER_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
URL_EXTENSIONS = {"jpg": "jpg", "jpeg": "jpg", "png": "png", "gif": "gif", "webp": "webp"}


class StorageError(Exception):
    """An image could not be written to storage."""


class ImageDownloadError(StorageError):
    """A remote image could not be fetched; nothing was written."""


def extension_for(content_type: str | None, url: str | None = None) -> str:
    content_type = (content_type or "").lower()
    for ext in ("png", "gif", "webp"):
        if ext in content_type:
            return ext

    if url:
        suffix = url.split("?", 1)[0].rsplit(".", 1)[-1].lower()
        if suffix in URL_EXTENSIONS:
            return URL_EXTENSIONS[suffix]
    return "jpg"


class LocalImageStorage:
    """
    Stores images under ``<upload_root>/<folder>/`` and hands back the public
    path ``<media_url_prefix>/<folder>/<name>`` the app serves them from.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root) if root is not None else None

    @property
    def root(self) -> Path:
        return self._root if self._root is not None else Path(settings.upload_root)

    @staticmethod
    def validate_folder(folder: str) -> str:
        if not FOLDER_PATTERN.match(folder or ""):
            raise StorageError(f"Invalid folder name: {folder!r}")
        return folder

    def save(self, data: bytes, *, content_type: str | None, folder: str, source_url: str | None = None) -> str:
        folder = self.validate_folder(folder)
        filename = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{extension_for(content_type, source_url)}"
        target_dir = self.root / folder

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            (target_dir / filename).write_bytes(data)
        except OSError as e:
            logger.error(
                "storage.save_failed",
                extra={"folder": folder, "root": str(self.root), "error": str(e)},
            )
            raise StorageError(f"Local storage save failed: {e}") from e

        public_url = f"{settings.media_url_prefix}/{folder}/{filename}"
        logger.info("storage.saved", extra={"folder": folder, "bytes": len(data), "url": public_url})
        return public_url

    def download(self, url: str, *, folder: str) -> str:
        try:
            with httpx.Client(timeout=settings.image_download_timeout_seconds, follow_redirects=True) as client:
                resp = client.get(url, headers={"User-Agent": settings.scraper_user_agent})
        except httpx.RequestError as e:
            record_image_download(success=False)
            raise ImageDownloadError(f"Failed to fetch image: {e}") from e

        if not 200 <= resp.status_code < 300:
            record_image_download(success=False)
            raise ImageDownloadError(f"Failed to fetch image: status {resp.status_code}")

        stored = self.save(
            resp.content,
            content_type=resp.headers.get("content-type"),
            folder=folder,
            source_url=url,
        )
        record_image_download(success=True)
        return stored
