"""JSON-file persistence for the HTTP host.

The engine never touches the filesystem; this module owns the question bank,
item calibration stats, the cross-session exposure set, the results history
(newest first) and the user-editable scale mapping, each as a JSON file under
``DATA_DIR``.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
BANK_PATH = DATA_ROOT / "bank.json"
STATS_PATH = DATA_ROOT / "item_stats.json"
USED_IDS_PATH = DATA_ROOT / "used_item_ids.json"
HISTORY_PATH = DATA_ROOT / "history.json"
MAPPING_PATH = DATA_ROOT / "scale_mapping.json"

_LOCK = threading.Lock()


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        log.warning("could not read %s: %s", path.name, exc)
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def load_bank_records() -> Optional[List[Dict[str, Any]]]:
    """Raw bank records, or None when no bank has been saved yet."""

    data = _read_json(BANK_PATH, None)
    if data is None:
        return None
    return list(data.get("items") or []) if isinstance(data, dict) else None


def save_bank(payload: Dict[str, Any]) -> None:
    with _LOCK:
        _write_json(BANK_PATH, payload)


def load_item_stats() -> Dict[str, Any]:
    data = _read_json(STATS_PATH, {})
    return data if isinstance(data, dict) else {}


def save_item_stats(stats: Dict[str, Any]) -> None:
    with _LOCK:
        _write_json(STATS_PATH, stats)


def load_used_ids() -> List[str]:
    data = _read_json(USED_IDS_PATH, [])
    return [str(x) for x in data] if isinstance(data, list) else []


def save_used_ids(ids: Any) -> None:
    with _LOCK:
        _write_json(USED_IDS_PATH, sorted(str(x) for x in ids))


def load_history() -> List[Dict[str, Any]]:
    data = _read_json(HISTORY_PATH, [])
    return data if isinstance(data, list) else []


def prepend_history(record: Dict[str, Any]) -> None:
    with _LOCK:
        history = load_history()
        history.insert(0, record)
        _write_json(HISTORY_PATH, history)


def find_history(attempt_id: str) -> Optional[Dict[str, Any]]:
    for rec in load_history():
        if rec.get("attemptId") == attempt_id:
            return rec
    return None


def clear_history() -> int:
    with _LOCK:
        n = len(load_history())
        _write_json(HISTORY_PATH, [])
    return n


def load_mapping() -> Optional[List[Dict[str, float]]]:
    data = _read_json(MAPPING_PATH, None)
    return data if isinstance(data, list) else None


def save_mapping(points: List[Dict[str, float]]) -> None:
    with _LOCK:
        _write_json(MAPPING_PATH, points)
