from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import record_request_latency
from app.core.request_context import reset_request_id, set_request_id

logger = get_logger("app.request")

try:
    import sentry_sdk as _sentry_sdk

    sentry_sdk: Any | None = _sentry_sdk
except Exception:  # pragma: no cover - optional dependency
    sentry_sdk = None

REQUEST_ID_HEADER = "x-request-id"


def _route_template(request: Request) -> str:
    # label by route template so property ids and media file names stay out of labels
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    if template:
        return template
    if request.url.path.startswith(f"{settings.media_url_prefix}/"):
        return settings.media_url_prefix
    return request.url.path


def _property_context(request: Request) -> str | None:
    path_params = request.scope.get("path_params") or {}
    return path_params.get("property_id") or request.query_params.get("property_id")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, logs request start/end and records latency per route."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        request_id_token = set_request_id(request_id)
        start = time.perf_counter()

        context = {"request_id": request_id, "method": request.method, "path": request.url.path}
        logger.info("request.start", extra=context)

        if sentry_sdk is not None:
            sentry_sdk.set_tag("request_id", request_id)
            sentry_sdk.set_context(
                "request", {"id": request_id, "path": request.url.path, "method": request.method}
            )

        try:
            response = await call_next(request)
        except Exception:
            self._finish(request, context, start=start, status_code=500, failed=True)
            reset_request_id(request_id_token)
            raise

        self._finish(request, context, start=start, status_code=response.status_code, failed=False)
        response.headers[REQUEST_ID_HEADER] = request_id
        reset_request_id(request_id_token)
        return response

    @staticmethod
    def _finish(
        request: Request,
        context: dict[str, Any],
        *,
        start: float,
        status_code: int,
        failed: bool,
    ) -> None:
        duration_seconds = time.perf_counter() - start
        extra = {**context, "status_code": status_code, "duration_ms": int(duration_seconds * 1000)}
        property_id = _property_context(request)
        if property_id:
            extra["property_id"] = property_id

        if failed:
            logger.exception("request.unhandled_exception", extra=extra)
        else:
            logger.info("request.end", extra=extra)

        record_request_latency(
            method=request.method,
            path=_route_template(request),
            status_code=status_code,
            duration_seconds=duration_seconds,
        )
