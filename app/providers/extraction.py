"""Heuristic extraction of listing fields from Airbnb listing HTML.

Everything here is a pure function of the HTML it is given: the same page
always yields the same ``ListingExtraction``. Image candidates from every
strategy go through ``ImageCollector.add``, which normalizes, filters and
de-duplicates them in discovery order, so strategy order decides which
images survive the cap.

Strategies are isolated from each other: one that raises is logged, counted
and skipped, and the remaining strategies still run.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Iterable
from typing import Any

from bs4 import BeautifulSoup

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import record_images_found, record_strategy_failure
from app.providers.base import ListingExtraction

logger = get_logger(__name__)

DEFAULT_TITLE = "Imported Room"
DEFAULT_DESCRIPTION = "Imported from Airbnb"
# a title still carrying the site name has not been replaced by a listing name yet
GENERIC_TITLE_MARKER = "Airbnb"
LISTING_JSON_LD_TYPES = {"Product", "LodgingBusiness", "Place"}

MIN_IMAGE_URL_LENGTH = 50
EXCLUDED_IMAGE_TOKENS = ("icon", "logo", "avatar", "placeholder")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
IMAGE_KEY_MARKERS = ("image", "photo", "picture", "url")
MAX_BLOB_DEPTH = 15

SCRIPT_MIN_LENGTH = 5000
SCRIPT_SCAN_MIN_LENGTH = 10000
SCRIPT_HINTS = ("__NEXT_DATA__", "listing", "pdp", "image", "photo")
LISTING_KEY_MARKERS = ("listing", "pdp", "room")
NEXT_DATA_PATTERNS = (
    re.compile(r"__NEXT_DATA__\s*=\s*(\{.*?\})(?:\s*;|\s*$)", re.DOTALL),
    re.compile(r"__NEXT_DATA__\s*=\s*(\{.*\})", re.DOTALL),
    re.compile(r"\"__NEXT_DATA__\"\s*:\s*(\{.*?\})(?:\s*,|\s*\})", re.DOTALL),
)
# best-effort boundary guess; braces inside strings are not accounted for
LARGE_OBJECT_PATTERN = re.compile(r"\{[\s\S]{1000,500000}\}")

BACKGROUND_URL_PATTERN = re.compile(r"url\([\"']?([^\"')]+)[\"']?\)")
LEADING_NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?|\.\d+")
LEADING_INT_PATTERN = re.compile(r"\s*([+-]?\d+)")


def normalize_image_url(url: str) -> str:
    return url.split("?", 1)[0].split("#", 1)[0].strip()


class ImageCollector:
    """Single gatekeeper for candidate image URLs."""

    def __init__(self, host_markers: Iterable[str] | None = None) -> None:
        markers = host_markers if host_markers is not None else settings.scraper_image_host_markers
        self._host_markers = tuple(marker.lower() for marker in markers)
        self._seen: set[str] = set()
        self.urls: list[str] = []

    def references_cdn(self, url: str) -> bool:
        lowered = url.lower()
        return any(marker in lowered for marker in self._host_markers)

    def add(self, candidate: Any) -> bool:
        if not isinstance(candidate, str):
            return False

        url = normalize_image_url(candidate)
        if len(url) <= MIN_IMAGE_URL_LENGTH or not self.references_cdn(url):
            return False

        lowered = url.lower()
        if any(token in lowered for token in EXCLUDED_IMAGE_TOKENS):
            return False

        if url in self._seen:
            return False

        self._seen.add(url)
        self.urls.append(url)
        return True


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _collapse_whitespace(value: str) -> str:
    return " ".join(value.split())


def _script_text(script) -> str:
    return script.string or script.get_text() or ""


def _meta_content(soup: BeautifulSoup, selector: str) -> str | None:
    tag = soup.select_one(selector)
    if tag is None:
        return None
    content = tag.get("content")
    return content if isinstance(content, str) else None


# -------------------------
# Text fields
# -------------------------


def extract_title(soup: BeautifulSoup) -> str:
    h1 = soup.find("h1")
    candidates = (
        _meta_content(soup, 'meta[property="og:title"]'),
        soup.title.get_text() if soup.title else None,
        h1.get_text() if h1 else None,
    )
    for candidate in candidates:
        if candidate and candidate.strip():
            return _collapse_whitespace(candidate)
    return DEFAULT_TITLE


def extract_description(soup: BeautifulSoup) -> str:
    candidates = (
        _meta_content(soup, 'meta[property="og:description"]'),
        _meta_content(soup, 'meta[name="description"]'),
    )
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return DEFAULT_DESCRIPTION


def parse_json_ld(soup: BeautifulSoup) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for script in soup.select('script[type="application/ld+json"]'):
        try:
            data = json.loads(_script_text(script) or "{}")
        except ValueError:
            logger.debug("scrape.json_ld.malformed")
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                blocks.extend(node for node in graph if isinstance(node, dict))
            else:
                blocks.append(item)
    return blocks


def _is_listing_block(block: dict[str, Any]) -> bool:
    raw_type = block.get("@type")
    types = raw_type if isinstance(raw_type, list) else [raw_type]
    return any(t in LISTING_JSON_LD_TYPES for t in types if isinstance(t, str))


def apply_json_ld_text(
    blocks: list[dict[str, Any]], *, title: str, description: str
) -> tuple[str, str]:
    for block in blocks:
        if not _is_listing_block(block):
            continue

        name = block.get("name")
        if isinstance(name, str) and name.strip() and GENERIC_TITLE_MARKER in title:
            title = _collapse_whitespace(name)

        block_description = block.get("description")
        if isinstance(block_description, str) and len(block_description.strip()) > len(description):
            description = block_description.strip()

    return title, description


def _parse_float_prefix(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else None
    if isinstance(raw, str):
        match = LEADING_NUMBER_PATTERN.match(re.sub(r"[^0-9.]", "", raw))
        return float(match.group(0)) if match else None
    return None


def _parse_int_prefix(raw: Any) -> int | None:
    if isinstance(raw, dict):
        raw = raw.get("value")
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else None
    if isinstance(raw, str):
        match = LEADING_INT_PATTERN.match(raw)
        return int(match.group(1)) if match else None
    return None


def extract_price(blocks: list[dict[str, Any]]) -> float | None:
    for block in blocks:
        offers = block.get("offers")
        if isinstance(offers, list):
            offers = next((offer for offer in offers if isinstance(offer, dict)), None)
        if not isinstance(offers, dict) or not offers.get("price"):
            continue
        price = _parse_float_prefix(offers["price"])
        if price is not None:
            return price
    return None


def extract_capacity(blocks: list[dict[str, Any]]) -> int | None:
    for block in blocks:
        occupancy = block.get("occupancy")
        candidates = (
            occupancy.get("maxOccupancy") if isinstance(occupancy, dict) else None,
            block.get("numberOfRooms"),
        )
        for raw in candidates:
            if not raw:
                continue
            capacity = _parse_int_prefix(raw)
            if capacity is not None:
                return capacity
    return None


# -------------------------
# Image strategies
# -------------------------


def collect_meta_images(soup: BeautifulSoup, collector: ImageCollector) -> None:
    for tag in soup.select('meta[property="og:image"]'):
        collector.add(tag.get("content"))


def collect_json_ld_images(blocks: list[dict[str, Any]], collector: ImageCollector) -> None:
    for block in blocks:
        image = block.get("image")
        if not image:
            continue
        for item in image if isinstance(image, list) else [image]:
            if isinstance(item, str):
                collector.add(item)
            elif isinstance(item, dict):
                collector.add(item.get("url"))


def collect_img_tag_images(soup: BeautifulSoup, collector: ImageCollector) -> None:
    for img in soup.find_all("img"):
        collector.add(img.get("src") or img.get("data-src") or img.get("data-lazy-src"))


def collect_background_images(soup: BeautifulSoup, collector: ImageCollector) -> None:
    for tag in soup.select('[style*="background-image"]'):
        match = BACKGROUND_URL_PATTERN.search(tag.get("style") or "")
        if match:
            collector.add(match.group(1))


def collect_gallery_images(gallery_html: str, collector: ImageCollector) -> None:
    gallery = parse_html(gallery_html)
    collect_img_tag_images(gallery, collector)
    collect_meta_images(gallery, collector)
    collect_json_ld_images(parse_json_ld(gallery), collector)


def _looks_like_listing(data: dict[str, Any]) -> bool:
    keys = [str(key).lower() for key in data]
    if any(marker in key for key in keys for marker in LISTING_KEY_MARKERS):
        return True
    dumped = json.dumps(data)
    return "image" in dumped or "photo" in dumped


def find_listing_blob(content: str) -> Any | None:
    for pattern in NEXT_DATA_PATTERNS:
        match = pattern.search(content)
        if not match:
            continue
        try:
            return json.loads(match.group(1))
        except ValueError:
            continue

    if len(content) <= SCRIPT_SCAN_MIN_LENGTH:
        return None

    for candidate in sorted(LARGE_OBJECT_PATTERN.findall(content), key=len, reverse=True):
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict) and len(parsed) > 5 and _looks_like_listing(parsed):
            return parsed
    return None


def _is_image_key(key: str) -> bool:
    lowered = key.lower()
    return key == "src" or any(marker in lowered for marker in IMAGE_KEY_MARKERS)


def find_images_in_blob(obj: Any, collector: ImageCollector, depth: int = 0) -> None:
    if depth > MAX_BLOB_DEPTH:
        return

    if isinstance(obj, str):
        lowered = obj.lower()
        if (
            collector.references_cdn(obj)
            and len(obj) > MIN_IMAGE_URL_LENGTH
            and any(ext in lowered for ext in IMAGE_EXTENSIONS)
        ):
            collector.add(obj)
    elif isinstance(obj, list):
        for item in obj:
            find_images_in_blob(item, collector, depth + 1)
    elif isinstance(obj, dict):
        for key, value in obj.items():
            if not _is_image_key(str(key)):
                continue
            if isinstance(value, str):
                collector.add(value)
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, str):
                        collector.add(item)
                    elif isinstance(item, dict):
                        collector.add(item.get("url"))
            elif isinstance(value, dict):
                collector.add(value.get("url"))

        for value in obj.values():
            find_images_in_blob(value, collector, depth + 1)


def collect_script_images(soup: BeautifulSoup, collector: ImageCollector) -> None:
    for script in soup.find_all("script"):
        content = _script_text(script)
        if len(content) <= SCRIPT_MIN_LENGTH or not any(hint in content for hint in SCRIPT_HINTS):
            continue
        blob = find_listing_blob(content)
        if blob is not None:
            find_images_in_blob(blob, collector)


# -------------------------
# Entry point
# -------------------------


def _run_strategy(name: str, func: Callable[..., Any], *args: Any, default: Any = None) -> Any:
    try:
        return func(*args)
    except Exception:
        logger.debug("scrape.strategy.failed", extra={"strategy": name}, exc_info=True)
        record_strategy_failure(strategy=name)
        return default


def extract_listing(
    html: str,
    *,
    gallery_html: str | None = None,
    max_images: int | None = None,
    host_markers: Iterable[str] | None = None,
) -> ListingExtraction:
    soup = parse_html(html)
    blocks: list[dict[str, Any]] = _run_strategy("json_ld", parse_json_ld, soup, default=[])

    title = _run_strategy("title", extract_title, soup, default=DEFAULT_TITLE)
    description = _run_strategy("description", extract_description, soup, default=DEFAULT_DESCRIPTION)
    title, description = _run_strategy(
        "json_ld_text",
        lambda: apply_json_ld_text(blocks, title=title, description=description),
        default=(title, description),
    )

    collector = ImageCollector(host_markers)
    _run_strategy("og_image", collect_meta_images, soup, collector)
    _run_strategy("json_ld_image", collect_json_ld_images, blocks, collector)
    if gallery_html:
        _run_strategy("gallery", collect_gallery_images, gallery_html, collector)
    _run_strategy("script_blob", collect_script_images, soup, collector)
    _run_strategy("img_tag", collect_img_tag_images, soup, collector)
    _run_strategy("background_image", collect_background_images, soup, collector)

    price = _run_strategy("price", extract_price, blocks)
    capacity = _run_strategy("capacity", extract_capacity, blocks)

    limit = max_images if max_images is not None else settings.scraper_max_images
    images = collector.urls[:limit]
    record_images_found(count=len(images))

    logger.debug(
        "scrape.extract.done",
        extra={
            "json_ld_blocks": len(blocks),
            "images_seen": len(collector.urls),
            "images_kept": len(images),
            "has_price": price is not None,
            "has_capacity": capacity is not None,
        },
    )

    return ListingExtraction(
        title=title,
        description=description,
        price=price,
        capacity=capacity,
        amenities=[],
        images=images,
    )
