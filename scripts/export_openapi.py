from __future__ import annotations

import argparse
import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parent.parent
DEFAULT_OUTPUT_PATH = ROOT / "docs" / "openapi.snapshot.json"

# importing the app needs settings, but building the schema never opens a connection
SNAPSHOT_ENV = {
    "DATABASE_URL": "sqlite:///./openapi-snapshot.db",
    "ENVIRONMENT": "prod",
    "JSON_LOGS": "false",
    "LOG_LEVEL": "WARNING",
    "UPLOAD_ROOT": str(Path(tempfile.gettempdir()) / "openapi-snapshot-media"),
}


def build_openapi_schema() -> dict[str, Any]:
    for key, value in SNAPSHOT_ENV.items():
        os.environ.setdefault(key, value)

    from app.main import create_app

    return create_app().openapi()


def render_openapi_json(payload: dict[str, Any]) -> str:
    """Stable rendering so snapshot diffs only show real API changes."""
    return json.dumps(payload, indent=2, sort_keys=True, separators=(",", ": ")) + "\n"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export the import API's OpenAPI schema as stable JSON")
    parser.add_argument(
        "--output",
        default=str(DEFAULT_OUTPUT_PATH),
        help="Output file path (default: docs/openapi.snapshot.json).",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Exit non-zero if the snapshot at --output is out of date instead of writing it.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    output_path = Path(args.output)
    rendered = render_openapi_json(build_openapi_schema())

    if args.check:
        current = output_path.read_text(encoding="utf-8") if output_path.exists() else ""
        if current != rendered:
            print(f"OpenAPI snapshot is stale: {output_path}", file=sys.stderr)
            return 1
        print(f"OpenAPI snapshot is up to date: {output_path}")
        return 0

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(rendered, encoding="utf-8")
    print(f"OpenAPI schema written to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
