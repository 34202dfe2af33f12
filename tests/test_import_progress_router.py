from __future__ import annotations

import uuid

from app.services.import_progress import import_progress_service


def test_import_progress_returns_idle_when_nothing_runs(client):
    r = client.get("/api/import-progress", params={"property_id": str(uuid.uuid4())})

    assert r.status_code == 200
    assert r.json() == {
        "stage": "idle",
        "message": "No active import",
        "progress": 0,
        "logs": [],
        "error": None,
        "completed": False,
    }


def test_import_progress_returns_open_run(client):
    property_id = str(uuid.uuid4())
    import_progress_service.update(
        property_id,
        stage="extracting-images",
        message="Searching page for images...",
        progress=70,
        log_message="Searching scripts for images...",
    )

    r = client.get("/api/import-progress", params={"property_id": property_id})

    assert r.status_code == 200
    body = r.json()
    assert body["stage"] == "extracting-images"
    assert body["progress"] == 70
    assert body["completed"] is False
    assert body["logs"][-1]["message"] == "Searching scripts for images..."


def test_import_progress_hides_finished_runs(client):
    property_id = str(uuid.uuid4())
    import_progress_service.update(property_id, stage="saving", message="Saving", progress=90)
    import_progress_service.mark_complete(property_id)

    r = client.get("/api/import-progress", params={"property_id": property_id})

    assert r.json()["stage"] == "idle"


def test_import_progress_requires_property_id(client):
    r = client.get("/api/import-progress")

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "validation_error"
