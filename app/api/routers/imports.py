from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Request

from app.core.logging import get_logger
from app.schemas.imports import ListingImportOut, ListingImportRequest
from app.services.listing_import import listing_import_service

logger = get_logger(__name__)
router = APIRouter(prefix="/properties", tags=["imports"])


@router.post("/{property_id}/import", response_model=ListingImportOut, status_code=201)
def import_listing(request: Request, property_id: UUID, payload: ListingImportRequest):
    # sync handler: runs in the threadpool so progress polls are served meanwhile
    logger.info(
        "imports.create.call",
        extra={
            "request_id": getattr(request.state, "request_id", "-"),
            "property_id": str(property_id),
            "has_gallery_url": payload.gallery_url is not None,
            "has_ical_url": payload.ical_url is not None,
        },
    )
    result = listing_import_service.import_listing(
        property_id=property_id,
        url=payload.url,
        gallery_url=payload.gallery_url,
        ical_url=payload.ical_url,
    )
    return result.as_dict()
