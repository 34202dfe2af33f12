"""Repository-wide structured logging contract.

- Event names: use stable dotted identifiers as the message (e.g. ``scrape.gallery.fetch_failed``).
- Severity: DEBUG per-strategy parse diagnostics, INFO expected pipeline steps, WARNING
  best-effort steps that were skipped (gallery fetch, image download), ERROR failed imports
  and 5xx responses, CRITICAL process-threatening failures.
- Required ``extra`` fields: include stable request/import context when available
  (``request_id``, ``method``, ``path``, ``status_code``, ``property_id``, ``room_id``,
  ``url``, ``stage`` and counts/durations).
- Sensitive data: never emit raw token/secret/password values; redaction is mandatory.
  Listing and image URLs are logged, so credentials and signed query parameters in
  URLs are masked too.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging import Logger
from typing import Any

from app.core.request_context import get_import_subject, get_request_id

REDACTED_VALUE = "***redacted***"
NO_CONTEXT = "-"
HANDLER_NAME = "rental-import-root-handler"
TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(property_id)s | %(message)s"

SENSITIVE_KEYS = {
    "authorization",
    "cookie",
    "password",
    "secret",
    "sentry_dsn",
    "token",
}
# (pattern, replacement) applied in order to every logged string
REDACTION_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(Bearer\s+)([^\s]+)", flags=re.IGNORECASE), rf"\1{REDACTED_VALUE}"),
    (re.compile(r"(https?://)([^:/@\s]+:[^@/\s]+)(@)", flags=re.IGNORECASE), rf"\1{REDACTED_VALUE}\3"),
    (
        re.compile(r"([?&](?:token|access_token|key|signature|sig)=)([^&#\s]+)", flags=re.IGNORECASE),
        rf"\1{REDACTED_VALUE}",
    ),
]
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "sqlalchemy.engine")

_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}


def _redact_text(value: str) -> str:
    for pattern, replacement in REDACTION_RULES:
        value = pattern.sub(replacement, value)
    return value


def redact_sensitive_data(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: (REDACTED_VALUE if str(k).lower() in SENSITIVE_KEYS else redact_sensitive_data(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact_sensitive_data(item) for item in value)
    if isinstance(value, str):
        return _redact_text(value)
    return value


class RequestContextFilter(logging.Filter):
    """Stamps request and import context onto records that don't carry it explicitly."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id()
        if not hasattr(record, "property_id"):
            record.property_id = get_import_subject() or NO_CONTEXT
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": redact_sensitive_data(record.getMessage()),
            "request_id": getattr(record, "request_id", NO_CONTEXT),
        }

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in payload:
                continue
            if key == "property_id" and value == NO_CONTEXT:
                continue
            payload[key] = REDACTED_VALUE if key.lower() in SENSITIVE_KEYS else redact_sensitive_data(value)

        if record.exc_info:
            payload["exc_info"] = redact_sensitive_data(self.formatException(record.exc_info))

        return json.dumps(payload, default=str)


def _is_pytest_capture_handler(handler: logging.Handler) -> bool:
    return (
        handler.__class__.__module__ == "_pytest.logging"
        and handler.__class__.__name__ == "LogCaptureHandler"
    )


def _build_handler(json_logs: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.name = HANDLER_NAME
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter(TEXT_FORMAT))
    return handler


def configure_logging(
    *,
    level: str = "INFO",
    json_logs: bool = True,
    replace_handlers: bool = True,
) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # pytest's capture handlers survive unless we were asked to replace everything
    for existing in list(root.handlers):
        if getattr(existing, "name", "") == HANDLER_NAME or (
            replace_handlers or not _is_pytest_capture_handler(existing)
        ):
            root.removeHandler(existing)

    root.addHandler(_build_handler(json_logs))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)
