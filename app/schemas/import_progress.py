from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ImportLogEntry(BaseModel):
    timestamp: str
    message: str


class ImportProgressOut(BaseModel):
    stage: str
    message: str
    progress: int
    logs: list[ImportLogEntry]
    error: str | None = None
    completed: bool

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "stage": "extracting-images",
                "message": "Searching page for images...",
                "progress": 70,
                "logs": [
                    {"timestamp": "2026-01-05T10:00:00+00:00", "message": "Starting import"},
                    {"timestamp": "2026-01-05T10:00:02+00:00", "message": "Searching scripts for images..."},
                ],
                "error": None,
                "completed": False,
            }
        }
    )
