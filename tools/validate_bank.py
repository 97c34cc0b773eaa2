from __future__ import annotations
from collections import Counter
import os, sys
from exam_core.config import DIFFICULTY_LEVELS, SECTIONS, SECTION_SIZES, required_skills
from exam_core.errors import BankFormatError
from exam_core.question_bank import parse_bank_file

# Minimum items per difficulty bucket and section; override via env
MIN_PER_LEVEL = int(os.getenv("TARGET_MIN_PER_LEVEL", 8))

def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("usage: python -m tools.validate_bank BANK.json|BANK.csv"); return 2
    try:
        report = parse_bank_file(argv[0])
    except (OSError, BankFormatError) as exc:
        print(f"Cannot read bank: {exc}"); return 2

    print(f"{len(report.items)} valid items, {len(report.rejected)} rejected, {len(report.duplicates)} duplicate ids\n")
    for ref, why in report.rejected:
        print(f"  rejected {ref}: {why}")
    for iid in report.duplicates:
        print(f"  duplicate {iid}")

    short = False
    for s in SECTIONS:
        sec = [it for it in report.items if it.section == s]
        by_lvl = Counter(it.difficulty_tag for it in sec)
        skills = Counter(sk for it in sec for sk in it.skills)
        print(f"\n{s}: {len(sec)} items (section size {SECTION_SIZES[s]})")
        print("  " + "  ".join(f"{lvl}={by_lvl.get(lvl, 0)}" for lvl in DIFFICULTY_LEVELS))
        missing = [sk for sk in required_skills(s) if not skills.get(sk)]
        need = {lvl: max(0, MIN_PER_LEVEL - by_lvl.get(lvl, 0)) for lvl in DIFFICULTY_LEVELS}
        if missing or any(need.values()) or len(sec) < SECTION_SIZES[s]:
            short = True
            print(f"  → Add: {', '.join(f'{lvl} {n}' for lvl, n in need.items() if n) or 'nothing per level'}"
                  + (f"; skills missing: {', '.join(missing)}" if missing else ""))
        else:
            print("  ✓ Meets targets")
    return 1 if report.rejected or short else 0

if __name__ == "__main__":
    raise SystemExit(main())
