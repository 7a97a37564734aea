"""Packaged resources for the DeesseJS project generator."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Dict

__all__ = ["load_telemetry_schema"]

TELEMETRY_SCHEMA = "telemetry.schema.json"


@lru_cache(maxsize=1)
def load_telemetry_schema() -> Dict[str, Any]:
    """Return the JSON schema every telemetry record must satisfy."""

    schema_resource = resources.files(__name__) / TELEMETRY_SCHEMA
    return json.loads(schema_resource.read_text(encoding="utf-8"))
