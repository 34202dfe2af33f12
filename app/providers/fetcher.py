from __future__ import annotations

import time

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import record_fetch_result
from app.providers.base import FetchError

logger = get_logger(__name__)


def gallery_url_for(url: str) -> str:
    """``/photos`` appended to the listing path; query parameters such as dates are kept."""
    listing = httpx.URL(url)
    return str(listing.copy_with(path=listing.path.rstrip("/") + "/photos"))


class ListingFetcher:
    """Retrieves listing HTML with desktop-browser headers. Never retries."""

    def __init__(self) -> None:
        self._headers = {
            "User-Agent": settings.scraper_user_agent,
            "Accept": settings.scraper_accept,
            "Accept-Language": settings.scraper_accept_language,
        }

    def fetch(self, url: str, *, timeout: float, max_redirects: int, page: str = "listing") -> str:
        start = time.perf_counter()
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True, max_redirects=max_redirects) as client:
                resp = client.get(url, headers=self._headers)
        except httpx.TimeoutException as e:
            duration_ms = self._finish(page=page, start=start, status_code=None, error="timeout")
            raise FetchError(
                f"Request timeout after {timeout:g}s fetching {url}",
                endpoint=url,
                duration_ms=duration_ms,
            ) from e
        except httpx.TooManyRedirects as e:
            duration_ms = self._finish(page=page, start=start, status_code=None, error="too_many_redirects")
            raise FetchError(
                f"Too many redirects (limit {max_redirects}) fetching {url}",
                endpoint=url,
                duration_ms=duration_ms,
            ) from e
        except httpx.RequestError as e:
            duration_ms = self._finish(page=page, start=start, status_code=None, error="network")
            raise FetchError(
                f"Network error fetching {url}: {e}",
                endpoint=url,
                duration_ms=duration_ms,
            ) from e

        if not 200 <= resp.status_code < 300:
            duration_ms = self._finish(page=page, start=start, status_code=resp.status_code, error="status")
            raise FetchError(
                f"Request failed with status code {resp.status_code} fetching {url}",
                status_code=resp.status_code,
                endpoint=url,
                duration_ms=duration_ms,
            )

        duration_ms = self._finish(page=page, start=start, status_code=resp.status_code, error=None)
        html = resp.text
        logger.info(
            "scrape.fetch.ok",
            extra={
                "url": url,
                "page": page,
                "status_code": resp.status_code,
                "bytes": len(html),
                "duration_ms": duration_ms,
            },
        )
        return html

    def fetch_listing(self, url: str) -> str:
        return self.fetch(
            url,
            timeout=settings.scraper_timeout_seconds,
            max_redirects=settings.scraper_max_redirects,
            page="listing",
        )

    def fetch_gallery(self, url: str) -> str | None:
        """Best-effort: a failed gallery fetch is logged and reported as ``None``."""
        try:
            return self.fetch(
                url,
                timeout=settings.gallery_timeout_seconds,
                max_redirects=settings.gallery_max_redirects,
                page="gallery",
            )
        except FetchError as e:
            logger.warning(
                "scrape.gallery.fetch_failed",
                extra={
                    "url": url,
                    "status_code": e.status_code,
                    "error": str(e),
                    "duration_ms": e.duration_ms,
                },
            )
            return None

    @staticmethod
    def _finish(*, page: str, start: float, status_code: int | None, error: str | None) -> int:
        duration_seconds = time.perf_counter() - start
        record_fetch_result(
            page=page, status_code=status_code, error=error, duration_seconds=duration_seconds
        )
        return int(duration_seconds * 1000)
