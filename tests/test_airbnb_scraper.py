from __future__ import annotations

import httpx
import pytest

from app.providers.airbnb import AirbnbScraper
from app.providers.base import ScrapeError

LISTING_URL = "https://www.airbnb.com/rooms/12345"
IMAGE_A = "https://a0.muscache.com/im/pictures/hosting/Hosting-12345/original/listing-a.jpeg"
IMAGE_B = "https://a0.muscache.com/im/pictures/hosting/Hosting-12345/original/gallery-b.jpeg"

LISTING_HTML = f"""
<html><head>
<meta property="og:title" content="Sunny flat in the old town">
<meta property="og:description" content="Two bedrooms, balcony, five minutes to the station.">
<meta property="og:image" content="{IMAGE_A}">
<script type="application/ld+json">
{{"@type": "Product", "offers": {{"price": "120.00 EUR"}}, "occupancy": {{"maxOccupancy": 4}}}}
</script>
</head><body><h1>Sunny flat</h1></body></html>
"""
GALLERY_HTML = f'<html><body><img src="{IMAGE_B}"></body></html>'


class _FakeResponse:
    def __init__(self, status_code: int, text: str = ""):
        self.status_code = status_code
        self.text = text


class _FakeClient:
    def __init__(self, routes):
        self._routes = routes

    def __enter__(self):
        return self

    def __exit__(self, *_args):
        return False

    def get(self, url, **_kwargs):
        result = self._routes[url]
        if isinstance(result, Exception):
            raise result
        return result


def _patch_routes(monkeypatch, routes):
    monkeypatch.setattr("app.providers.fetcher.httpx.Client", lambda **_kwargs: _FakeClient(routes))


def _recorder():
    events: list[tuple[str, str, int, str | None]] = []

    def _report(stage, message, progress, log=None):
        events.append((stage, message, progress, log))

    return events, _report


def test_scrape_combines_listing_and_gallery(monkeypatch):
    _patch_routes(
        monkeypatch,
        {
            LISTING_URL: _FakeResponse(200, LISTING_HTML),
            f"{LISTING_URL}/photos": _FakeResponse(200, GALLERY_HTML),
        },
    )

    listing = AirbnbScraper().scrape(LISTING_URL)

    assert listing.title == "Sunny flat in the old town"
    assert listing.description == "Two bedrooms, balcony, five minutes to the station."
    assert listing.price == 120.0
    assert listing.capacity == 4
    assert listing.images == [IMAGE_A, IMAGE_B]


def test_scrape_uses_explicit_gallery_url(monkeypatch):
    gallery_url = "https://www.airbnb.com/rooms/12345/photos?tour=1"
    _patch_routes(
        monkeypatch,
        {LISTING_URL: _FakeResponse(200, LISTING_HTML), gallery_url: _FakeResponse(200, GALLERY_HTML)},
    )

    listing = AirbnbScraper().scrape(LISTING_URL, gallery_url=gallery_url)

    assert IMAGE_B in listing.images


def test_primary_page_timeout_aborts_scrape(monkeypatch):
    _patch_routes(monkeypatch, {LISTING_URL: httpx.ReadTimeout("timed out")})

    with pytest.raises(ScrapeError) as exc_info:
        AirbnbScraper().scrape(LISTING_URL)

    assert "Failed to scrape Airbnb listing" in str(exc_info.value)
    assert "timeout" in str(exc_info.value).lower()


def test_gallery_timeout_does_not_abort_scrape(monkeypatch):
    _patch_routes(
        monkeypatch,
        {
            LISTING_URL: _FakeResponse(200, LISTING_HTML),
            f"{LISTING_URL}/photos": httpx.ReadTimeout("timed out"),
        },
    )
    events, report = _recorder()

    listing = AirbnbScraper().scrape(LISTING_URL, progress=report)

    assert listing.images == [IMAGE_A]
    assert ("extracting-images", "Gallery page unavailable", 65, "Could not fetch gallery page") in events


def test_progress_checkpoints_are_non_decreasing(monkeypatch):
    _patch_routes(
        monkeypatch,
        {
            LISTING_URL: _FakeResponse(200, LISTING_HTML),
            f"{LISTING_URL}/photos": _FakeResponse(200, GALLERY_HTML),
        },
    )
    events, report = _recorder()

    AirbnbScraper().scrape(LISTING_URL, progress=report)

    percents = [progress for _, _, progress, _ in events]
    assert percents == sorted(percents)
    assert [(stage, progress) for stage, _, progress, _ in events] == [
        ("scraping", 20),
        ("scraping", 40),
        ("extracting-images", 65),
        ("extracting-images", 70),
        ("scraping", 80),
    ]
    assert events[-1][1] == "Extraction complete"
    assert events[-1][3] == "Extracted: Sunny flat in the old town, 2 images"


def test_primary_page_error_status_is_reported(monkeypatch):
    _patch_routes(monkeypatch, {LISTING_URL: _FakeResponse(403, "blocked")})

    with pytest.raises(ScrapeError) as exc_info:
        AirbnbScraper().scrape(LISTING_URL)

    assert exc_info.value.status_code == 403
