"""Question-bank parse/validate boundary.

Every record coming from JSON, CSV or the packaged sample goes through
``parse_item``.  Bad records are rejected one by one with a reason; the rest of
the file still loads.
"""
from __future__ import annotations

import csv
import io
import json
import logging
import importlib.resources as ir
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .config import normalize_difficulty, normalize_section
from .errors import BankFormatError
from .types import Item, TableData

log = logging.getLogger(__name__)

SAMPLE_BANK = "data/questions.sample.json"
EXPORT_SOURCE = "Adaptive Exam Trainer"
CSV_COLUMNS = ("id", "section", "type", "difficulty", "skills", "prompt", "options", "answer", "table_json", "explanation")


@dataclass
class ImportReport:
    items: List[Item] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "accepted": len(self.items),
            "rejected": [{"record": ref, "reason": why} for ref, why in self.rejected],
            "duplicates": list(self.duplicates),
        }


def _split_list(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [p.strip() for p in raw.split("|") if p.strip()]
    if isinstance(raw, (list, tuple, set)):
        return [str(p).strip() for p in raw if str(p).strip()]
    raise BankFormatError(f"expected a list or '|'-separated string, got {type(raw).__name__}")


def _parse_table(raw: Any) -> Optional[TableData]:
    if raw in (None, ""):
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise BankFormatError("table is not valid JSON") from None
    if not isinstance(raw, Mapping):
        raise BankFormatError("table must be an object with headers and rows")
    headers = raw.get("headers")
    rows = raw.get("rows")
    if not isinstance(headers, list) or not isinstance(rows, list):
        raise BankFormatError("table needs list fields 'headers' and 'rows'")
    if any(not isinstance(r, list) for r in rows):
        raise BankFormatError("table rows must be lists")
    return TableData(headers=[str(h) for h in headers], rows=[[str(c) for c in r] for r in rows])


def parse_item(rec: Mapping[str, Any]) -> Item:
    """Build a validated ``Item`` or raise ``BankFormatError``."""

    if not isinstance(rec, Mapping):
        raise BankFormatError("record is not an object")
    iid = str(rec.get("id") or "").strip()
    if not iid:
        raise BankFormatError("missing id")
    section = normalize_section(rec.get("section"))
    if section is None:
        raise BankFormatError(f"unknown section {rec.get('section')!r}")
    tag = normalize_difficulty(rec.get("difficulty", rec.get("difficulty_tag")))
    if tag is None:
        raise BankFormatError(f"unknown difficulty {rec.get('difficulty')!r}")
    prompt = str(rec.get("prompt") or "").strip()
    if not prompt:
        raise BankFormatError("missing prompt")
    options = _split_list(rec.get("options"))
    if not options:
        raise BankFormatError("no options")

    raw_answer = rec.get("answer", rec.get("answerIndex", rec.get("answer_index")))
    if isinstance(raw_answer, bool):
        raise BankFormatError("answer must be an integer index")
    try:
        answer = int(str(raw_answer).strip())
    except (TypeError, ValueError):
        raise BankFormatError(f"answer must be an integer index, got {raw_answer!r}") from None
    if not 0 <= answer < len(options):
        raise BankFormatError(f"answer {answer} out of range for {len(options)} options")

    return Item(
        id=iid,
        section=section,
        type=str(rec.get("type") or "").strip() or "multiple-choice",
        difficulty_tag=tag,
        prompt=prompt,
        options=options,
        answer_index=answer,
        skills={s.lower() for s in _split_list(rec.get("skills"))},
        table=_parse_table(rec.get("table", rec.get("table_json"))),
        explanation=str(rec.get("explanation") or ""),
    )


def parse_items(records: Iterable[Any], existing_ids: Iterable[str] = ()) -> ImportReport:
    report = ImportReport()
    seen = set(existing_ids)
    for n, rec in enumerate(records, start=1):
        ref = str(rec.get("id") or f"#{n}") if isinstance(rec, Mapping) else f"#{n}"
        try:
            item = parse_item(rec)
        except BankFormatError as exc:
            report.rejected.append((ref, str(exc)))
            continue
        if item.id in seen:
            report.duplicates.append(item.id)
            continue
        seen.add(item.id)
        report.items.append(item)
    if report.rejected:
        log.warning("bank import: rejected %d records", len(report.rejected))
    if report.duplicates:
        log.info("bank import: skipped %d duplicate ids", len(report.duplicates))
    return report


def parse_json_bank(text: str, existing_ids: Iterable[str] = ()) -> ImportReport:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise BankFormatError(f"bank is not valid JSON: {exc}") from None
    records = data.get("items") if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise BankFormatError("bank JSON must be {'items': [...]} or a list")
    return parse_items(records, existing_ids)


def parse_csv_bank(text: str, existing_ids: Iterable[str] = ()) -> ImportReport:
    reader = csv.DictReader(io.StringIO(text.strip()))
    missing = {"id", "section", "difficulty", "prompt", "options", "answer"} - set(reader.fieldnames or ())
    if missing:
        raise BankFormatError(f"CSV header is missing columns: {', '.join(sorted(missing))}")
    return parse_items(reader, existing_ids)


def parse_bank_file(path: str | Path, existing_ids: Iterable[str] = ()) -> ImportReport:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() == ".csv":
        return parse_csv_bank(text, existing_ids)
    return parse_json_bank(text, existing_ids)


def load_bank(path: str | Path | None = None) -> List[Item]:
    """Load a bank file, or the packaged sample bank when ``path`` is None."""

    if path is not None:
        report = parse_bank_file(path)
    else:
        text = ir.files(__package__).joinpath(SAMPLE_BANK).read_text(encoding="utf-8")
        report = parse_json_bank(text)
    return report.items


def item_to_dict(it: Item) -> Dict[str, object]:
    out: Dict[str, object] = {
        "id": it.id,
        "section": it.section,
        "type": it.type,
        "difficulty": it.difficulty_tag,
        "skills": sorted(it.skills),
        "prompt": it.prompt,
        "options": list(it.options),
        "answer": it.answer_index,
    }
    if it.table is not None:
        out["table"] = {"headers": list(it.table.headers), "rows": [list(r) for r in it.table.rows]}
    if it.explanation:
        out["explanation"] = it.explanation
    return out


def export_bank(items: Iterable[Item]) -> Dict[str, object]:
    rows = [item_to_dict(it) for it in items]
    return {
        "meta": {
            "version": 1,
            "source": EXPORT_SOURCE,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "totalItems": len(rows),
        },
        "items": rows,
    }
