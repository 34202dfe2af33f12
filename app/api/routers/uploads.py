from __future__ import annotations

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from app.core.config import settings
from app.core.logging import get_logger
from app.schemas.uploads import ImageUploadOut
from app.services.storage import LocalImageStorage, StorageError

logger = get_logger(__name__)
router = APIRouter(tags=["uploads"])

storage = LocalImageStorage()


@router.post("/upload-image", response_model=ImageUploadOut)
def upload_image(
    request: Request,
    file: UploadFile | None = File(None),
    folder: str = Form("uploads"),
):
    request_id = getattr(request.state, "request_id", "-")
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    data = file.file.read(settings.upload_max_bytes + 1)
    if len(data) > settings.upload_max_bytes:
        raise HTTPException(status_code=400, detail="File size exceeds 2MB limit")

    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Invalid file type. Only images are allowed.")

    try:
        LocalImageStorage.validate_folder(folder)
    except StorageError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        url = storage.save(data, content_type=content_type, folder=folder, source_url=file.filename)
    except StorageError as e:
        logger.error(
            "uploads.image.failed",
            extra={"request_id": request_id, "folder": folder, "error": str(e)},
        )
        raise HTTPException(status_code=500, detail="Failed to upload image") from e

    logger.info(
        "uploads.image.saved",
        extra={"request_id": request_id, "folder": folder, "bytes": len(data), "url": url},
    )
    return {"url": url}
