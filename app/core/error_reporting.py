from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from app.core.config import settings
from app.core.logging import get_logger
from app.core.request_context import get_import_subject, get_request_id

logger = get_logger(__name__)

try:
    import sentry_sdk as _sentry_sdk

    sentry_sdk: Any | None = _sentry_sdk
except Exception:  # pragma: no cover - optional dependency
    sentry_sdk = None


def _normalized(values: Sequence[str]) -> set[str]:
    return {value.strip().lower() for value in values if value.strip()}


def _tag_event(event: dict[str, Any], key: str, value: str) -> None:
    event.setdefault("tags", {}).setdefault(key, value)
    event.setdefault("extra", {}).setdefault(key, value)


def _before_send(event: dict[str, Any], _hint: dict[str, Any]) -> dict[str, Any]:
    _tag_event(event, "request_id", get_request_id())

    property_id = get_import_subject()
    if property_id is not None:
        _tag_event(event, "property_id", property_id)
    return event


def _disabled_reason(environment: str) -> tuple[str, dict[str, Any]] | None:
    if not settings.sentry_dsn:
        return "missing_dsn", {}

    enabled_environments = _normalized(settings.sentry_enabled_environments)
    if environment not in enabled_environments:
        return "environment_not_enabled", {"enabled_environments": sorted(enabled_environments)}

    if sentry_sdk is None:
        return "sentry_sdk_not_installed", {}
    return None


def configure_error_reporting() -> None:
    environment = settings.environment.strip().lower()
    disabled = _disabled_reason(environment)
    if disabled is not None:
        reason, details = disabled
        logger.info(
            "error_reporting.disabled",
            extra={"reason": reason, "environment": environment, **details},
        )
        return

    sentry_environment = settings.sentry_environment or settings.environment
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=sentry_environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        before_send=_before_send,
    )
    logger.info(
        "error_reporting.enabled",
        extra={"environment": sentry_environment, "traces_sample_rate": settings.sentry_traces_sample_rate},
    )


def capture_import_failure(exc: BaseException, *, url: str | None = None) -> None:
    """Report a terminal import failure; a no-op until Sentry is initialised."""
    if sentry_sdk is None:
        return
    tags = {"component": "listing_import"}
    if url:
        tags["listing_host"] = url.split("://", 1)[-1].split("/", 1)[0]
    sentry_sdk.capture_exception(exc, tags=tags)
