from __future__ import annotations
import argparse, logging, time
from exam_core.config import POLICIES, SECTIONS, load_config, make_rng, required_skills
from exam_core.engine import ExamSession
from exam_core.errors import ExamError
from exam_core.item_store import ItemStore
from exam_core.question_bank import load_bank
from exam_core.timer import format_clock

def ask(prompt: str, options, clock: str) -> str:
    print(f"\n[{clock}] {prompt}")
    for i, opt in enumerate(options): print(f"  [{i}] {opt}")
    while True:
        v = input("Your choice (index, f=flag, r=review, s=submit): ").strip().lower()
        if v.isdigit() or v in ("f", "r", "s"): return v
        print("Enter an option index, f, r or s.")

def show_table(item) -> None:
    if item.table is None: return
    print("  " + " | ".join(item.table.headers))
    for row in item.table.rows: print("  " + " | ".join(row))

def review(session: ExamSession) -> None:
    for cell in session.open_review():
        mark = "x" if cell["answered"] else " "
        flag = "F" if cell["flagged"] else " "
        print(f"  Q{cell['index'] + 1:02d} [{mark}] {flag}")
    if not session.timer.expired: session.return_to_questions()

def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run one timed adaptive section in the terminal.")
    p.add_argument("--section", default="Quant", help=f"one of: {', '.join(SECTIONS)}")
    p.add_argument("--policy", default=None, choices=POLICIES)
    p.add_argument("--minutes", type=float, default=None)
    p.add_argument("--bank", default=None, help="JSON or CSV bank (default: packaged sample)")
    p.add_argument("--verbose", action="store_true")
    return p.parse_args(argv)

def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="[%(levelname)s] %(message)s")
    cfg = load_config()
    store = ItemStore(load_bank(args.bank))
    try:
        session = ExamSession(args.section, store, policy=args.policy or cfg.get("policy"), minutes=args.minutes,
                              skills=required_skills(args.section, cfg), rng=make_rng(cfg))
        session.start()
    except (ExamError, ValueError) as exc:
        print(f"Cannot start section: {exc}"); return 2
    for w in session.warnings: print(f"warning: {w}")
    print(f"{session.section} section, policy={session.policy_name}, {format_clock(session.timer.total)} on the clock")
    idx = 0
    while not session.submitted and idx < len(session.items):
        item = session.items[idx]
        show_table(item)
        t0 = time.monotonic(); v = ask(f"Q{idx + 1}. {item.prompt}", item.options, session.timer.clock())
        if session.tick(int(time.monotonic() - t0)) == "review":
            print("Time is up. Review your answers, then the section is submitted."); review(session); break
        if v == "s": break
        if v == "f": print("flagged" if session.toggle_flag(idx) else "unflagged"); continue
        if v == "r": review(session); continue
        out = session.record_response(idx, int(v)) if int(v) < len(item.options) else None
        if out is None: print("No such option."); continue
        if not out.accepted: print(f"Rejected: {out.reason}"); continue
        if out.new_difficulty_label: print(f"  next block: {out.new_difficulty_label}")
        idx += 1
    res = session.submit()
    print(f"\nDone. {res.correct}/{res.total} correct ({res.percentage}%), scaled {res.scaled_score}")
    if res.mst_route: print("Route: " + " -> ".join(res.mst_route))
    return 0

if __name__ == "__main__": raise SystemExit(main())
