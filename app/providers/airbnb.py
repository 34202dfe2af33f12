from __future__ import annotations

import time

from app.core.logging import get_logger
from app.providers.base import FetchError, ListingExtraction, ProgressCallback, ScrapeError
from app.providers.extraction import extract_listing
from app.providers.fetcher import ListingFetcher, gallery_url_for

logger = get_logger(__name__)


def _noop_progress(stage: str, message: str, progress: int, log: str | None = None) -> None:
    return None


class AirbnbScraper:
    """
    Fetch + extract for a single Airbnb listing, with progress checkpoints.

    The primary page is required; the gallery page is best-effort and only
    contributes extra images.
    """

    name = "airbnb"

    def __init__(self, *, fetcher: ListingFetcher | None = None) -> None:
        self._fetcher = fetcher or ListingFetcher()

    def scrape(
        self,
        url: str,
        *,
        gallery_url: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> ListingExtraction:
        report = progress or _noop_progress
        start = time.perf_counter()

        report("scraping", "Fetching page HTML...", 20, "Fetching page HTML...")
        try:
            html = self._fetcher.fetch_listing(url)
        except FetchError as e:
            logger.warning(
                "scrape.listing.fetch_failed",
                extra={
                    "url": url,
                    "status_code": e.status_code,
                    "error": str(e),
                    "duration_ms": e.duration_ms,
                },
            )
            raise ScrapeError(
                f"Failed to scrape Airbnb listing: {e}",
                status_code=e.status_code,
                endpoint=e.endpoint,
                duration_ms=e.duration_ms,
            ) from e

        report("scraping", "Parsing HTML...", 40, f"Parsing HTML ({len(html)} bytes)...")

        target_gallery = gallery_url or gallery_url_for(url)
        report(
            "extracting-images",
            "Fetching gallery page...",
            65,
            f"Attempting to fetch gallery page {target_gallery}",
        )
        gallery_html = self._fetcher.fetch_gallery(target_gallery)
        if gallery_html is None:
            report("extracting-images", "Gallery page unavailable", 65, "Could not fetch gallery page")

        report("extracting-images", "Searching page for images...", 70, "Searching scripts for images...")
        try:
            listing = extract_listing(html, gallery_html=gallery_html)
        except Exception as e:
            raise ScrapeError(f"Failed to scrape Airbnb listing: {e}", endpoint=url) from e

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "scrape.listing.done",
            extra={
                "url": url,
                "gallery_fetched": gallery_html is not None,
                "images": len(listing.images),
                "has_price": listing.price is not None,
                "has_capacity": listing.capacity is not None,
                "duration_ms": duration_ms,
            },
        )
        report(
            "scraping",
            "Extraction complete",
            80,
            f"Extracted: {listing.title}, {len(listing.images)} images",
        )
        return listing
