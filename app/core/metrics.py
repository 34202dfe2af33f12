from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

REQUEST_LATENCY_SECONDS = Histogram(
    "rental_import_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status_code"),
)

SCRAPE_FETCH_RESULTS_TOTAL = Counter(
    "rental_import_scrape_fetch_results_total",
    "Listing page fetch results by page kind and outcome",
    labelnames=("page", "outcome", "status_code"),
)

SCRAPE_FETCH_DURATION_SECONDS = Histogram(
    "rental_import_scrape_fetch_duration_seconds",
    "Listing page fetch duration in seconds",
    labelnames=("page",),
)

SCRAPE_STRATEGY_FAILURES_TOTAL = Counter(
    "rental_import_scrape_strategy_failures_total",
    "Extraction strategies that raised and were skipped",
    labelnames=("strategy",),
)

SCRAPE_IMAGES_FOUND = Histogram(
    "rental_import_scrape_images_found",
    "Images accepted per extraction",
    buckets=(0, 1, 5, 10, 20, 30, 40, 50),
)

LISTING_IMPORTS_TOTAL = Counter(
    "rental_import_listing_imports_total",
    "Listing import runs by outcome",
    labelnames=("outcome",),
)

IMAGE_DOWNLOADS_TOTAL = Counter(
    "rental_import_image_downloads_total",
    "Listing image downloads by outcome",
    labelnames=("outcome",),
)

DB_CONNECTION_UTILIZATION = Gauge(
    "rental_import_db_connection_utilization",
    "Database connection pool utilization ratio",
)


def record_request_latency(*, method: str, path: str, status_code: int, duration_seconds: float) -> None:
    REQUEST_LATENCY_SECONDS.labels(method=method, path=path, status_code=str(status_code)).observe(
        duration_seconds
    )


def record_fetch_result(
    *, page: str, status_code: int | None, error: str | None, duration_seconds: float
) -> None:
    if error:
        outcome = "error"
    elif status_code is not None and 200 <= status_code < 300:
        outcome = "success"
    else:
        outcome = "unknown"

    SCRAPE_FETCH_RESULTS_TOTAL.labels(
        page=page,
        outcome=outcome,
        status_code=str(status_code) if status_code is not None else "none",
    ).inc()
    SCRAPE_FETCH_DURATION_SECONDS.labels(page=page).observe(max(duration_seconds, 0.0))


def record_strategy_failure(*, strategy: str) -> None:
    SCRAPE_STRATEGY_FAILURES_TOTAL.labels(strategy=strategy).inc()


def record_images_found(*, count: int) -> None:
    SCRAPE_IMAGES_FOUND.observe(max(count, 0))


def record_listing_import(*, success: bool) -> None:
    LISTING_IMPORTS_TOTAL.labels(outcome="success" if success else "failed").inc()


def record_image_download(*, success: bool) -> None:
    IMAGE_DOWNLOADS_TOTAL.labels(outcome="success" if success else "failed").inc()


def set_db_connection_utilization(*, utilization_ratio: float) -> None:
    DB_CONNECTION_UTILIZATION.set(min(max(utilization_ratio, 0.0), 1.0))


def metrics_payload() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
