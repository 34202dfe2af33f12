from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ListingImportRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    gallery_url: str | None = Field(default=None, max_length=2048)
    ical_url: str | None = Field(default=None, max_length=2048)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "url": "https://www.airbnb.com/rooms/12345",
                "gallery_url": None,
                "ical_url": "https://www.airbnb.com/calendar/ical/12345.ics",
            }
        }
    )

    @field_validator("url")
    @classmethod
    def strip_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("url must not be blank")
        return value

    @field_validator("gallery_url", "ical_url")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class ListingImportOut(BaseModel):
    room_id: UUID
    property_id: UUID
    name: str
    price: float | None = None
    capacity: int | None = None
    images_found: int
    images_created: int
    images_skipped: int
    failed_downloads: int
