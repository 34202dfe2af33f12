from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ImageUploadOut(BaseModel):
    url: str

    model_config = ConfigDict(json_schema_extra={"example": {"url": "/uploads/1767607200000-3fa2b9c1.jpg"}})
