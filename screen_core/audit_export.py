"""Helpers to export per-user ingestion audit trails in JSON/CSV formats."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
import csv
import io

_FIELDS: tuple[str, ...] = (
    "t",
    "session_id",
    "test_id",
    "stimulus_id",
    "subskill",
    "difficulty",
    "correct",
    "response_ms",
    "mean_before",
    "mean_after",
    "variance_after",
    "fatigue_after",
)

_INT_FIELDS = {"correct"}
_FLOAT_FIELDS = {
    "difficulty",
    "response_ms",
    "mean_before",
    "mean_after",
    "variance_after",
    "fatigue_after",
}


def _normalize_event(event: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in _FIELDS:
        val = event.get(key)
        if key in _INT_FIELDS:
            try:
                out[key] = int(val)
            except (TypeError, ValueError):
                out[key] = 0
        elif key in _FLOAT_FIELDS:
            try:
                out[key] = float(val)
            except (TypeError, ValueError):
                out[key] = 0.0
        else:
            out[key] = "" if val is None else str(val)
    return out


def to_json(events: Iterable[Dict[str, Any]], user_id: Optional[str] = None) -> Dict[str, Any]:
    """Return a JSON-safe payload for audit export."""

    rows: List[Dict[str, Any]] = [_normalize_event(evt or {}) for evt in events]
    payload: Dict[str, Any] = {"count": len(rows), "events": rows}
    if user_id is not None:
        payload["user_id"] = user_id
    return payload


def to_csv(events: Iterable[Dict[str, Any]]) -> str:
    """Render audit events as CSV, header first, one row per ingestion."""

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(_normalize_event(evt or {}) for evt in events)
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]
