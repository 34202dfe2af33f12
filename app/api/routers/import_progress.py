from __future__ import annotations

from fastapi import APIRouter, Query

from app.schemas.import_progress import ImportProgressOut
from app.services.import_progress import import_progress_service, progress_payload

router = APIRouter(tags=["imports"])


@router.get("/import-progress", response_model=ImportProgressOut)
def get_import_progress(property_id: str = Query(..., min_length=1, max_length=64)):
    """Current open import run for the property, or the idle record when none is running."""
    return progress_payload(import_progress_service.get_active(property_id))
