"""Export per-response calibration traces as JSON or CSV."""
from __future__ import annotations

from typing import Iterable, List, Dict, Any
import csv
import io

from .config import TRACE_FIELDS

_INT_FIELDS = {"index", "correct"}
_FLOAT_FIELDS = {"user_theta_before", "user_theta_after", "item_theta_before", "item_theta_after"}


def _normalize_event(event: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in TRACE_FIELDS:
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


def to_json(events: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    normalized: List[Dict[str, Any]] = [_normalize_event(evt or {}) for evt in events]
    return {"events": normalized}


def to_csv(events: Iterable[Dict[str, Any]]) -> str:
    """Render trace events as CSV with a fixed header."""

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=TRACE_FIELDS)
    writer.writeheader()
    for evt in events:
        writer.writerow(_normalize_event(evt or {}))
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]
