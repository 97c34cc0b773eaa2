from __future__ import annotations

import csv
import io

from exam_core.audit_export import to_csv, to_json
from exam_core.config import TRACE_FIELDS


def _event(**over):
    evt = {
        "section": "Quant",
        "index": 0,
        "item_id": "Q11",
        "difficulty": "M",
        "correct": 1,
        "user_theta_before": 0.0,
        "user_theta_after": 0.075,
        "item_theta_before": 0.0,
        "item_theta_after": 0.075,
        "route": "M",
    }
    evt.update(over)
    return evt


def test_json_export_normalizes_types():
    payload = to_json([_event(index="3", user_theta_after=None), None])
    first, blank = payload["events"]
    assert first["index"] == 3
    assert first["user_theta_after"] == 0.0
    assert blank["item_id"] == ""
    assert list(first) == list(TRACE_FIELDS)


def test_csv_export_has_fixed_header():
    body = to_csv([_event(), _event(index=1, item_id="Q12", correct=0)])
    rows = list(csv.DictReader(io.StringIO(body)))
    assert body.splitlines()[0] == ",".join(TRACE_FIELDS)
    assert [r["item_id"] for r in rows] == ["Q11", "Q12"]
    assert rows[1]["correct"] == "0"
