from __future__ import annotations

import json

import pytest

from exam_core.config import REQUIRED_SKILLS, SECTIONS
from exam_core.errors import BankFormatError
from exam_core.question_bank import (
    CSV_COLUMNS,
    export_bank,
    item_to_dict,
    load_bank,
    parse_csv_bank,
    parse_item,
    parse_json_bank,
)


def _rec(**over):
    rec = {
        "id": "Q100",
        "section": "Quant",
        "type": "problem-solving",
        "difficulty": "Hard",
        "skills": "Algebra|ratio",
        "prompt": "If 2x = 8, what is x?",
        "options": ["2", "4", "6"],
        "answer": 1,
    }
    rec.update(over)
    return rec


def test_parse_item_normalizes_fields():
    it = parse_item(_rec(section="quant"))
    assert it.section == "Quant"
    assert it.difficulty_tag == "H"
    assert it.skills == {"algebra", "ratio"}
    assert it.answer_index == 1


@pytest.mark.parametrize(
    "override, needle",
    [
        ({"id": ""}, "missing id"),
        ({"section": "Chemistry"}, "unknown section"),
        ({"difficulty": "extreme"}, "unknown difficulty"),
        ({"prompt": "  "}, "missing prompt"),
        ({"options": []}, "no options"),
        ({"answer": "two"}, "integer index"),
        ({"answer": 3}, "out of range"),
        ({"table": "{not json"}, "table"),
    ],
)
def test_parse_item_rejects_malformed(override, needle):
    with pytest.raises(BankFormatError) as info:
        parse_item(_rec(**override))
    assert needle in str(info.value)


def test_json_import_rejects_records_individually():
    text = json.dumps({"items": [_rec(), _rec(id="Q101", answer=9), _rec(id="Q102"), _rec()]})
    report = parse_json_bank(text, existing_ids=["Q102"])
    assert [it.id for it in report.items] == ["Q100"]
    assert report.rejected and report.rejected[0][0] == "Q101"
    assert report.duplicates == ["Q102", "Q100"]


def test_invalid_json_is_a_format_error():
    with pytest.raises(BankFormatError):
        parse_json_bank("{oops")


def test_csv_import_with_quoted_table():
    header = ",".join(CSV_COLUMNS)
    good = 'D1,Data Insights,table-analysis,M,table-analysis,"Which, of these?",North|South,0,"{""headers"": [""Region""], ""rows"": [[""North""]]}",'
    bad = "D2,Data Insights,table-analysis,M,,No answer,North|South,x,,"
    report = parse_csv_bank("\n".join([header, good, bad]))
    assert [it.id for it in report.items] == ["D1"]
    item = report.items[0]
    assert item.prompt == "Which, of these?"
    assert item.options == ["North", "South"]
    assert item.table.headers == ["Region"]
    assert report.rejected[0][0] == "D2"


def test_csv_missing_columns():
    with pytest.raises(BankFormatError):
        parse_csv_bank("id,section\nQ1,Quant")


def test_sample_bank_is_balanced():
    items = load_bank()
    assert len({it.id for it in items}) == len(items) == 90
    for section in SECTIONS:
        sec = [it for it in items if it.section == section]
        assert len(sec) == 30
        for lvl in ("E", "M", "H"):
            assert sum(1 for it in sec if it.difficulty_tag == lvl) == 10
        covered = set().union(*(it.skills for it in sec))
        assert set(REQUIRED_SKILLS[section]) <= covered


def test_export_carries_meta_and_reimports():
    items = load_bank()
    payload = export_bank(items)
    assert payload["meta"]["version"] == 1
    assert payload["meta"]["totalItems"] == 90
    table_item = next(it for it in items if it.table is not None)
    assert parse_item(item_to_dict(table_item)) == table_item
