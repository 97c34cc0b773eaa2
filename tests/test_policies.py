from __future__ import annotations

import random

import pytest

from exam_core.assembler import SectionAssembler
from exam_core.policy import RollingAccuracyPolicy, RouteState, make_policy, rolling_preference
from exam_core.types import CandidateState


@pytest.mark.parametrize("acc, expected", [(1.0, "H"), (0.8, "H"), (0.79, "M"), (0.6, "M"), (0.5, "E"), (0.0, "E")])
def test_rolling_preference_thresholds(acc, expected):
    assert rolling_preference(acc) == expected


def test_recent_accuracy_uses_last_five_answers():
    st = RouteState(section="Quant", size=21, batch_size=1)
    assert st.recent_accuracy() == 0.5
    for idx, credit in enumerate([0, 0, 1, 1, 1, 1, 1]):
        st.credits[idx] = float(credit)
        st.answer_order.append(idx)
    assert st.recent_accuracy() == 1.0


def test_make_policy_names():
    assert make_policy("MST").name == "mst"
    assert make_policy(" theta ").name == "theta"
    assert isinstance(make_policy("rolling"), RollingAccuracyPolicy)


def test_rolling_serves_one_item_and_adapts(quant_store):
    asm = SectionAssembler(quant_store, "rolling", CandidateState(), rng=random.Random(2))
    first = asm.start("Quant", 21)
    assert len(first) == 1
    assert first[0].difficulty_tag == "E", "no answers yet means default accuracy 0.5"

    asm.record(0, 1.0)
    nxt = asm.advance(0.0)
    assert len(nxt) == 1
    assert nxt[0].difficulty_tag == "H"

    asm.record(1, 0.0)
    nxt = asm.advance(0.0)
    assert nxt[0].difficulty_tag == "E"  # 1 of 2 correct


def test_rolling_falls_back_when_bucket_is_empty(quant_store):
    easy_gone = CandidateState()
    asm = SectionAssembler(quant_store, "rolling", easy_gone, rng=random.Random(2))
    easy_gone.session_used_ids = {f"Q{i}" for i in range(1, 11)}
    first = asm.start("Quant", 5)
    assert len(first) == 1
    assert first[0].difficulty_tag == "M"


def test_theta_policy_targets_running_estimate(quant_store):
    cand = CandidateState(user_theta=1.0)
    asm = SectionAssembler(quant_store, "theta", cand, skills=(), rng=random.Random(5))
    first = asm.start("Quant", 21)
    assert len(first) == 4
    assert {it.difficulty_tag for it in first} == {"H"}
    assert asm.state.targets[0] == 1.0

    for idx in range(4):
        asm.record(idx, 0.0)
    nxt = asm.advance(-1.0)
    assert {it.difficulty_tag for it in nxt} == {"E"}
    assert asm.route == ["H", "E"]


def test_theta_policy_uses_calibrated_item_theta(quant_store):
    # an Easy-tagged item calibrated far above its tag
    quant_store.stat_for("Q1").theta = 3.0
    cand = CandidateState(user_theta=3.0)
    asm = SectionAssembler(quant_store, "theta", cand, skills=(), rng=random.Random(5))
    first = asm.start("Quant", 21)
    ids = {it.id for it in first}
    assert "Q1" in ids
    assert {it.difficulty_tag for it in first if it.id != "Q1"} == {"H"}
