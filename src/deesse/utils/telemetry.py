"""Local telemetry events (opt-out) appended as JSON lines under ``log_dir``.

Every record is checked against the packaged ``telemetry.schema.json`` before
it is written, so the log can be read back without defensive parsing of the
fields themselves.
"""

from __future__ import annotations

import json
import os
import time
from collections import Counter
from pathlib import Path
from typing import Any, Iterable, Iterator

import jsonschema

from deesse.resources import load_telemetry_schema
from deesse.settings import RuntimeSettings

LOG_FILENAME = "telemetry.jsonl"
ENV_SWITCH = "DEESSE_TELEMETRY"

_OFF_VALUES = frozenset({"0", "false", "no", "off"})
_validator: jsonschema.Draft202012Validator | None = None


class TelemetryRecordError(ValueError):
    """Raised when an event does not match the telemetry schema."""


def telemetry_enabled() -> bool:
    return os.getenv(ENV_SWITCH, "1").strip().lower() not in _OFF_VALUES


def log_path(settings: RuntimeSettings) -> Path:
    return settings.log_dir / LOG_FILENAME


def record_event(settings: RuntimeSettings, event: str, payload: dict[str, Any] | None = None, **extra: Any) -> None:
    record_structured_event(settings, event, payload=payload, **extra)


def record_structured_event(
    settings: RuntimeSettings,
    event: str,
    *,
    payload: dict[str, Any] | None = None,
    level: str = "info",
    status: str | None = None,
    component: str | None = None,
    duration_ms: float | None = None,
) -> None:
    if not telemetry_enabled():
        return
    record: dict[str, Any] = {
        "ts": time.time(),
        "event": event,
        "level": level,
        "payload": json.loads(json.dumps(payload or {}, default=str)),
        "version": settings.cli_version,
    }
    optional = {"status": status, "component": component, "durationMs": duration_ms}
    record.update({key: value for key, value in optional.items() if value is not None})
    _check(record)

    path = log_path(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(record, ensure_ascii=False) + "\n")


def iter_events(settings: RuntimeSettings, *, event: str | None = None) -> Iterator[dict[str, Any]]:
    """Yield stored records in write order, optionally only those named ``event``.

    Lines that are not valid JSON (for instance a write cut short) are skipped.
    """

    path = log_path(settings)
    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as fh:
        for raw in fh:
            if not raw.strip():
                continue
            try:
                record = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if event is None or record.get("event") == event:
                yield record


def summarize(events: Iterable[dict[str, Any]]) -> dict[str, Any]:
    by_event: Counter[str] = Counter()
    by_status: Counter[str] = Counter()
    by_component: Counter[str] = Counter()
    for record in events:
        by_event[record.get("event", "unknown")] += 1
        by_status[record.get("status", "unknown")] += 1
        if record.get("component"):
            by_component[record["component"]] += 1
    return {
        "total": sum(by_event.values()),
        "failures": by_status.get("failed", 0),
        "by_event": dict(by_event),
        "by_status": dict(by_status),
        "by_component": dict(by_component),
    }


def clear(settings: RuntimeSettings) -> None:
    log_path(settings).unlink(missing_ok=True)


def _check(record: dict[str, Any]) -> None:
    if not record["event"].strip():
        raise TelemetryRecordError("Telemetry event name must not be blank")
    global _validator
    if _validator is None:
        _validator = jsonschema.Draft202012Validator(load_telemetry_schema())
    error = jsonschema.exceptions.best_match(_validator.iter_errors(record))
    if error is not None:
        location = "/".join(str(part) for part in error.absolute_path) or "<record>"
        raise TelemetryRecordError(f"Invalid telemetry record at {location}: {error.message}")
