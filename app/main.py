# app/main.py
from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException

from app.api.middleware import RequestIDMiddleware
from app.api.routers.health import router as health_router
from app.api.routers.import_progress import router as import_progress_router
from app.api.routers.imports import router as imports_router
from app.api.routers.uploads import router as uploads_router
from app.core.config import settings
from app.core.error_reporting import configure_error_reporting
from app.core.logging import configure_logging, get_logger

logger = get_logger(__name__)

API_PREFIX = "/api"
API_ROUTERS: tuple[APIRouter, ...] = (import_progress_router, uploads_router, imports_router)


def _error_response_payload(
    *,
    message: str,
    code: str,
    status: int,
    details: Any | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {"message": message, "code": code, "status": status}
    if details is not None:
        error["details"] = details
    return {"error": error}


def _request_context(request: Request, *, status_code: int, code: str) -> dict[str, Any]:
    return {
        "request_id": getattr(request.state, "request_id", "-"),
        "method": request.method,
        "path": str(request.url.path),
        "status_code": status_code,
        "internal_error_code": code,
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    message = detail if isinstance(detail, str) else "request failed"
    details = None if isinstance(detail, str) else jsonable_encoder(detail)
    context = _request_context(request, status_code=exc.status_code, code="http_error")

    if exc.status_code >= 500:
        logger.error("http.exception.server", extra={**context, "event_name": "http.exception.server"})
    elif exc.status_code == 409:
        logger.warning("http.exception.conflict", extra={**context, "event_name": "http.exception.conflict"})

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_response_payload(
            message=message, code="http_error", status=exc.status_code, details=details
        ),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    context = _request_context(request, status_code=422, code="validation_error")
    logger.info("request.validation_error", extra={**context, "event_name": "request.validation_error"})
    return JSONResponse(
        status_code=422,
        content=_error_response_payload(
            message="validation error",
            code="validation_error",
            status=422,
            details=jsonable_encoder(exc.errors()),
        ),
    )


def _ensure_upload_root() -> None:
    try:
        Path(settings.upload_root).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # uploads and media requests fail until the directory is writable
        logger.warning("storage.root_unavailable", extra={"upload_root": settings.upload_root, "error": str(e)})


def create_app(*, logging_replace_handlers: bool | None = None) -> FastAPI:
    if logging_replace_handlers is None:
        logging_replace_handlers = settings.environment.lower() != "test"

    configure_logging(
        level=settings.log_level,
        json_logs=settings.json_logs,
        replace_handlers=logging_replace_handlers,
    )
    configure_error_reporting()

    logger.info(
        "app.startup",
        extra={
            "app_name": settings.app_name,
            "environment": settings.environment,
            "json_logs": settings.json_logs,
            "upload_root": settings.upload_root,
            "media_url_prefix": settings.media_url_prefix,
            "import_download_images": settings.import_download_images,
        },
    )

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
        allow_credentials=settings.cors_allow_credentials,
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(health_router)
    for router in API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)
    _ensure_upload_root()
    app.mount(
        settings.media_url_prefix,
        StaticFiles(directory=settings.upload_root, check_dir=False),
        name="media",
    )

    return app


app = create_app()
