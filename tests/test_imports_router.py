from __future__ import annotations

import uuid

import pytest

from app.api.routers import imports
from app.providers.base import ListingExtraction, ScrapeError
from app.services.import_progress import ImportProgressService
from app.services.listing_import import ListingImportService

LISTING_URL = "https://www.airbnb.com/rooms/12345"


class _FakeScraper:
    def __init__(self, error: Exception | None = None):
        self.error = error

    def scrape(self, url, *, gallery_url=None, progress=None):
        progress("scraping", "Fetching page HTML...", 20, "Fetching page HTML...")
        if self.error is not None:
            raise self.error
        return ListingExtraction(title="Loft with a view", description="Bright loft.", price=95.5, capacity=2)


class _NoopStorage:
    def download(self, url, *, folder):
        raise AssertionError("no images to download")


@pytest.fixture()
def use_scraper(monkeypatch):
    def _use(scraper):
        service = ListingImportService(scraper=scraper, storage=_NoopStorage(), progress=ImportProgressService())
        monkeypatch.setattr(imports, "listing_import_service", service)
        return service

    return _use


def test_import_listing_creates_room(client, property_row, use_scraper):
    use_scraper(_FakeScraper())

    r = client.post(
        f"/api/properties/{property_row.id}/import",
        json={"url": LISTING_URL, "gallery_url": "  ", "ical_url": None},
    )

    assert r.status_code == 201
    body = r.json()
    assert body["property_id"] == str(property_row.id)
    assert body["name"] == "Loft with a view"
    assert body["price"] == 95.5
    assert body["capacity"] == 2
    assert body["images_found"] == 0
    uuid.UUID(body["room_id"])

    progress = client.get("/api/import-progress", params={"property_id": str(property_row.id)})
    assert progress.json()["stage"] == "idle"


def test_import_listing_rejects_non_airbnb_url(client, property_row, use_scraper):
    use_scraper(_FakeScraper())

    r = client.post(f"/api/properties/{property_row.id}/import", json={"url": "https://example.com/x"})

    assert r.status_code == 400
    assert r.json()["error"] == {"message": "Invalid Airbnb URL", "code": "http_error", "status": 400}


def test_import_listing_unknown_property(client, use_scraper):
    use_scraper(_FakeScraper())

    r = client.post(f"/api/properties/{uuid.uuid4()}/import", json={"url": LISTING_URL})

    assert r.status_code == 404
    assert r.json()["error"]["message"] == "Property not found"


def test_import_listing_scrape_failure_returns_502(client, property_row, use_scraper):
    use_scraper(_FakeScraper(error=ScrapeError("Failed to scrape Airbnb listing: boom")))

    r = client.post(f"/api/properties/{property_row.id}/import", json={"url": LISTING_URL})

    assert r.status_code == 502
    assert r.json()["error"]["message"] == "Import failed: Failed to scrape Airbnb listing: boom"


def test_import_listing_validates_payload(client, property_row):
    r = client.post(f"/api/properties/{property_row.id}/import", json={"url": "   "})
    assert r.status_code == 422

    r = client.post("/api/properties/not-a-uuid/import", json={"url": LISTING_URL})
    assert r.status_code == 422
