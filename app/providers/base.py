from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


class ProviderError(Exception):
    """Raised when a listing provider request fails in a controlled way."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        meta: dict[str, Any] | None = None,
        endpoint: str | None = None,
        method: str = "GET",
        duration_ms: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.meta = meta
        self.endpoint = endpoint
        self.method = method
        self.duration_ms = duration_ms


class FetchError(ProviderError):
    """A listing or gallery page could not be retrieved (timeout, DNS, non-2xx)."""


class ScrapeError(ProviderError):
    """The primary listing page could not be scraped; the whole extraction is aborted."""


@dataclass
class ListingExtraction:
    title: str
    description: str
    price: float | None = None
    capacity: int | None = None
    # never populated by the HTML scraper; kept so callers can map it onto rooms
    amenities: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)


class ProgressCallback(Protocol):
    """
    Receives pipeline checkpoints: stage name, human message, percent (0-100)
    and an optional log line. Implementations must not raise.
    """

    def __call__(self, stage: str, message: str, progress: int, log: str | None = None) -> None: ...
