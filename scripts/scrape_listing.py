from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import asdict
from typing import Any

DEFAULT_DATABASE_URL = "sqlite:///./scrape-cli.db"


def _print_progress(stage: str, message: str, progress: int, log: str | None = None) -> None:
    line = f"[{progress:3d}%] {stage}: {message}"
    if log and log != message:
        line += f" ({log})"
    print(line, file=sys.stderr)


def scrape(url: str, *, gallery_url: str | None, quiet: bool) -> dict[str, Any]:
    # settings require a database url even though scraping never touches it
    os.environ.setdefault("DATABASE_URL", DEFAULT_DATABASE_URL)
    os.environ.setdefault("JSON_LOGS", "false")

    from app.core.config import settings
    from app.core.logging import configure_logging
    from app.providers.airbnb import AirbnbScraper

    configure_logging(level="WARNING" if quiet else settings.log_level, json_logs=settings.json_logs)
    listing = AirbnbScraper().scrape(
        url,
        gallery_url=gallery_url,
        progress=None if quiet else _print_progress,
    )
    return asdict(listing)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape one Airbnb listing and print the extraction as JSON")
    parser.add_argument("url", help="Airbnb listing URL.")
    parser.add_argument("--gallery-url", default=None, help="Photo gallery URL (default: <url>/photos).")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output.")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    from app.providers.base import ScrapeError

    try:
        payload = scrape(args.url, gallery_url=args.gallery_url, quiet=args.quiet)
    except ScrapeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
