from __future__ import annotations

from exam_core import audit_bank
from exam_core.question_bank import load_bank
from tests.conftest import build_synthetic_bank


def test_sample_bank_audit_has_no_warnings():
    summary = audit_bank.audit_items(load_bank())
    assert summary["warnings"] == []
    assert summary["totals"]["total"] == 90
    assert summary["coverage"]["Quant"]["difficulty"] == {"E": 10, "M": 10, "H": 10}


def test_thin_bank_is_flagged(monkeypatch):
    monkeypatch.setattr(audit_bank.config, "BANK_MIN_PER_BUCKET", 4)
    items = build_synthetic_bank(sections=["Quant"], per_level=3, with_skills=False)
    summary = audit_bank.audit_items(items)
    warnings = summary["warnings"]
    assert any("Quant Easy has 3 (<4)" in w for w in warnings)
    assert any("Quant has 9 items" in w for w in warnings)
    assert any("required skill 'geometry'" in w for w in warnings)
    assert any(w.startswith("Verbal has 0 items") for w in warnings)


def test_main_exit_code(capsys, tmp_path):
    assert audit_bank.main([]) == 0
    out = capsys.readouterr().out
    assert "Bank Coverage" in out and "No warnings." in out

    bank = tmp_path / "thin.json"
    bank.write_text('{"items": [{"id": "Q1", "section": "Quant", "difficulty": "E", "prompt": "p", "options": ["a"], "answer": 0}]}')
    assert audit_bank.main([str(bank), str(tmp_path / "summary.json")]) == 2
    assert (tmp_path / "summary.json").exists()


def test_required_skills_override_from_config():
    cfg = {"required_skills": {"Quant": ["Geometry"]}}
    assert audit_bank.config.required_skills("quant", cfg) == ("geometry",)
    assert audit_bank.config.required_skills("Verbal", cfg) == audit_bank.config.REQUIRED_SKILLS["Verbal"]

    items = build_synthetic_bank(sections=["Quant"], with_skills=False)
    summary = audit_bank.audit_items(items, cfg)
    assert list(summary["coverage"]["Quant"]["skills"]) == ["geometry"]
    assert any("required skill 'geometry'" in w for w in summary["warnings"])
    assert not any("required skill 'algebra'" in w for w in summary["warnings"])
