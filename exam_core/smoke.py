"""Simulated candidate run against a synthetic bank.

``python -m exam_core.smoke [section] [policy] [ability]`` answers every served
item with probability ``P(ability, item_theta)`` and logs the route.
"""
from __future__ import annotations

import logging
import random
import sys
from typing import List, Optional

from . import rasch
from .config import DEBUG_SEED, DEBUG_TRACE, DIFFICULTY_LEVELS, SECTIONS, TRACE_FIELDS, required_skills
from .engine import ExamSession
from .item_store import ItemStore
from .types import Item, ResultRecord

log = logging.getLogger(__name__)


def _maybe_enable_trace() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    if DEBUG_TRACE:
        logging.getLogger("exam_core.engine").setLevel(logging.INFO)


def synthetic_bank(per_level: int = 10) -> List[Item]:
    items: List[Item] = []
    for section in SECTIONS:
        skills = required_skills(section)
        prefix = "".join(w[0] for w in section.split()).upper()
        n = 0
        for lvl in DIFFICULTY_LEVELS:
            for _ in range(per_level):
                n += 1
                items.append(
                    Item(
                        id=f"smoke_{prefix}{n}",
                        section=section,
                        type="multiple-choice",
                        difficulty_tag=lvl,
                        prompt=f"{section} {lvl} #{n}",
                        options=["A", "B", "C", "D", "E"],
                        answer_index=n % 5,
                        skills={skills[n % len(skills)]} if skills else set(),
                    )
                )
    return items


def run_smoke_session(
    section: str = "Quant",
    policy: str = "mst",
    ability: float = 0.5,
    seed: Optional[int] = None,
) -> ResultRecord:
    _maybe_enable_trace()
    seed = DEBUG_SEED if seed is None else seed
    rng = random.Random(seed)
    store = ItemStore(synthetic_bank())
    session = ExamSession(section, store, policy=policy, rng=random.Random(seed))
    log.info("Starting synthetic %s run policy=%s ability=%.2f seed=%s", section, policy, ability, seed)
    log.info("Trace fields: %s", ", ".join(TRACE_FIELDS))

    session.start()
    idx = 0
    while idx < len(session.items):
        item = session.items[idx]
        p = rasch.rasch_p(ability, store.item_theta(item))
        right = rng.random() < p
        choice = item.answer_index if right else (item.answer_index + 1) % len(item.options)
        session.record_response(idx, choice)
        idx += 1

    result = session.submit()
    log.info(
        "Run complete: %d/%d (%d%%) scaled=%s theta=%s route=%s",
        result.correct,
        result.total,
        result.percentage,
        result.scaled_score,
        result.final_theta,
        "".join(session.assembler.route),
    )
    for msg in session.warnings:
        log.info("  warning: %s", msg)
    return result


if __name__ == "__main__":  # pragma: no cover
    argv = sys.argv[1:]
    run_smoke_session(
        section=argv[0] if argv else "Quant",
        policy=argv[1] if len(argv) > 1 else "mst",
        ability=float(argv[2]) if len(argv) > 2 else 0.5,
    )
