#!/usr/bin/env python
"""
Write the Skill Matrix OpenAPI document to disk.

Usage:
    python scripts/export_openapi.py [docs/api/openapi.json]
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

from fastapi import FastAPI
from skillmatrix.api.main import app as api_app

DEFAULT_OUTPUT = Path("docs/api/openapi.json")


def export_openapi(app: FastAPI, destination: Path) -> int:
    """Persist the schema and return how many paths it documents."""
    schema = app.openapi()
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(schema, indent=2, sort_keys=True) + "\n")
    return len(schema.get("paths", {}))


def main() -> None:
    output = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUTPUT
    path_count = export_openapi(api_app, output)
    print(f"Wrote {path_count} paths to {output}")


if __name__ == "__main__":
    main()
