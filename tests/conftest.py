from __future__ import annotations

import random

import pytest

from exam_core.config import DIFFICULTY_LEVELS, REQUIRED_SKILLS, SECTIONS
from exam_core.item_store import ItemStore
from exam_core.types import CandidateState, Item

PREFIXES = {"Quant": "Q", "Verbal": "V", "Data Insights": "DI"}


def build_synthetic_bank(
    *,
    sections: list[str] | None = None,
    per_level: int = 10,
    with_skills: bool = True,
) -> list[Item]:
    """Deterministic bank: ``Q1..Q30`` style ids, Easy first, then Medium, then Hard.

    Every item's correct option is index 0; skills cycle through the section's
    required skills.
    """

    items: list[Item] = []
    for section in sections or list(SECTIONS):
        skills = REQUIRED_SKILLS[section]
        n = 0
        for lvl in DIFFICULTY_LEVELS:
            for _ in range(per_level):
                n += 1
                items.append(
                    Item(
                        id=f"{PREFIXES[section]}{n}",
                        section=section,
                        type="multiple-choice",
                        difficulty_tag=lvl,
                        prompt=f"{section} {lvl} #{n}",
                        options=["A", "B", "C", "D"],
                        answer_index=0,
                        skills={skills[(n - 1) % len(skills)]} if with_skills else set(),
                    )
                )
    return items


@pytest.fixture
def synthetic_bank() -> list[Item]:
    return build_synthetic_bank()


@pytest.fixture
def quant_store() -> ItemStore:
    return ItemStore(build_synthetic_bank(sections=["Quant"]))


@pytest.fixture
def candidate() -> CandidateState:
    return CandidateState()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
