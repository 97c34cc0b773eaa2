from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Iterable

from . import config
from .question_bank import load_bank
from .types import Item


def _blank_section(section: str, cfg: dict | None = None) -> dict[str, object]:
    return {
        "difficulty": {lvl: 0 for lvl in config.DIFFICULTY_LEVELS},
        "skills": {skill: 0 for skill in config.required_skills(section, cfg)},
        "total": 0,
        "with_table": 0,
    }


def audit_items(items: Iterable[Item], cfg: dict | None = None) -> dict[str, object]:
    """Coverage per section; ``cfg`` may carry a ``required_skills`` override."""

    coverage: dict[str, dict[str, object]] = {s: _blank_section(s, cfg) for s in config.SECTIONS}
    totals = {lvl: 0 for lvl in config.DIFFICULTY_LEVELS}
    totals["total"] = 0

    for item in items:
        data = coverage.setdefault(item.section, _blank_section(item.section, cfg))
        diff = data["difficulty"]  # type: ignore[assignment]
        diff[item.difficulty_tag] = diff.get(item.difficulty_tag, 0) + 1
        skills = data["skills"]  # type: ignore[assignment]
        for skill in item.skills:
            skills[skill] = skills.get(skill, 0) + 1
        data["total"] += 1  # type: ignore[operator]
        if item.table is not None:
            data["with_table"] += 1  # type: ignore[operator]
        totals[item.difficulty_tag] += 1
        totals["total"] += 1

    warnings: list[str] = []
    for section, data in coverage.items():
        size = config.SECTION_SIZES.get(section, 0)
        if data["total"] < size:  # type: ignore[operator]
            warnings.append(f"{section} has {data['total']} items (<{size} for one section)")
        diff = data["difficulty"]  # type: ignore[assignment]
        for lvl in config.DIFFICULTY_LEVELS:
            if diff.get(lvl, 0) < config.BANK_MIN_PER_BUCKET:
                warnings.append(
                    f"{section} {config.DIFFICULTY_NAMES[lvl]} has {diff.get(lvl, 0)} (<{config.BANK_MIN_PER_BUCKET})"
                )
        skills = data["skills"]  # type: ignore[assignment]
        for skill in config.required_skills(section, cfg):
            if not skills.get(skill):
                warnings.append(f"{section} has no items for required skill '{skill}'")

    return {"coverage": coverage, "warnings": warnings, "totals": totals}


def _format_row(label: str, data: dict[str, int]) -> str:
    parts = [label]
    for key, val in data.items():
        parts.append(f"{key}:{val:3d}")
    return "  ".join(parts)


def print_report(summary: dict[str, object]) -> None:
    coverage: dict[str, dict[str, object]] = summary["coverage"]  # type: ignore[assignment]
    print("=== Bank Coverage ===")
    for section in coverage:
        data = coverage[section]
        print(f"\nSection: {section} ({data['total']} items, {data['with_table']} with tables)")
        print("  " + _format_row("difficulty", data["difficulty"]))  # type: ignore[arg-type]
        print("  " + _format_row("skills    ", data["skills"]))  # type: ignore[arg-type]

    warnings: list[str] = summary["warnings"]  # type: ignore[assignment]
    if warnings:
        print("\nWarnings:")
        for msg in warnings:
            print(f" - {msg}")
    else:
        print("\nNo warnings.")

    print("\nTotals:", summary["totals"])


def write_summary(summary: dict[str, object], path: Path) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    return text


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    items = load_bank(args[0] if args else None)
    summary = audit_items(items, config.load_config())
    print_report(summary)
    if len(args) > 1:
        write_summary(summary, Path(args[1]))
    return 2 if summary["warnings"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
