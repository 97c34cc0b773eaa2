from __future__ import annotations

import logging
import random

import pytest

from exam_core import engine
from exam_core.engine import ExamSession, reset_exposure
from exam_core.errors import SessionStateError
from exam_core.item_store import ItemStore
from exam_core.timer import Countdown, format_clock
from exam_core.types import CandidateState
from tests.conftest import build_synthetic_bank


def _session(store, candidate=None, **kw) -> ExamSession:
    kw.setdefault("rng", random.Random(42))
    sess = ExamSession("quant", store, candidate or CandidateState(), **kw)
    sess.start()
    return sess


def _answer_all(sess: ExamSession, correct: bool = True) -> None:
    idx = 0
    while idx < len(sess.items):
        item = sess.items[idx]
        option = item.answer_index if correct else (item.answer_index + 1) % len(item.options)
        sess.record_response(idx, option)
        idx += 1


def test_start_serves_first_medium_block(quant_store):
    sess = _session(quant_store)
    assert sess.section == "Quant"
    assert len(sess.items) == 4
    snap = sess.snapshot()
    assert snap["view"] == "questions"
    assert snap["editsRemaining"] == 3
    assert snap["clock"] == "45:00"


def test_start_twice_is_an_error(quant_store):
    sess = _session(quant_store)
    with pytest.raises(SessionStateError):
        sess.start()


def test_unknown_section_is_rejected(quant_store):
    with pytest.raises(ValueError):
        ExamSession("Chemistry", quant_store)


def test_full_section_all_correct(quant_store):
    cand = CandidateState()
    sess = _session(quant_store, cand)
    _answer_all(sess)
    res = sess.submit()

    assert (res.correct, res.total, res.percentage) == (21, 21, 100)
    assert res.scaled_score == 805
    assert res.mst_route[0] == "M"
    assert res.policy == "mst"
    assert res.final_theta > 0
    assert len(set(res.item_ids)) == 21
    assert cand.used_item_ids == set(res.item_ids)
    assert len(res.trace) == 21
    assert sess.submit() is res


def test_first_answer_calibrates_item_and_candidate(quant_store):
    cand = CandidateState()
    sess = _session(quant_store, cand)
    item = sess.items[0]  # Medium, theta 0.0

    out = sess.record_response(0, item.answer_index)
    assert out.accepted and not out.edited
    assert out.new_user_theta == pytest.approx(0.075)
    assert cand.user_theta == pytest.approx(0.075)
    st = quant_store.stat(item.id)
    assert (st.attempts, st.correct) == (1, 1)
    assert st.theta == pytest.approx(0.075)


def test_edit_changes_score_but_not_calibration(quant_store):
    cand = CandidateState()
    sess = _session(quant_store, cand)
    item = sess.items[0]
    sess.record_response(0, item.answer_index)
    theta = cand.user_theta

    out = sess.record_response(0, (item.answer_index + 1) % len(item.options))
    assert out.accepted and out.edited
    assert out.edits_remaining == 2
    assert out.new_user_theta is None
    assert cand.user_theta == theta
    assert quant_store.stat(item.id).attempts == 1
    assert sess.submit().correct == 0


def test_edit_budget_enforced_in_session(quant_store):
    sess = _session(quant_store)
    sess.record_response(0, 0)
    for option in (1, 2, 3):
        assert sess.record_response(0, option).accepted
    out = sess.record_response(0, 0)
    assert not out.accepted
    assert out.reason == "no edits remaining"
    assert sess.responses[0] == 3
    assert sess.submit().edits_used == 3


def test_completed_block_serves_next_block(quant_store):
    sess = _session(quant_store)
    outs = [sess.record_response(i, sess.items[i].answer_index) for i in range(4)]
    assert all(not o.served for o in outs[:3])
    assert len(outs[3].served) == 4
    assert outs[3].new_difficulty_label == "H"
    assert len(sess.items) == 8


def test_unserved_question_and_bad_option(quant_store):
    sess = _session(quant_store)
    with pytest.raises(SessionStateError):
        sess.record_response(10, 0)
    with pytest.raises(ValueError):
        sess.record_response(0, 9)


def test_calibration_can_be_disabled(quant_store):
    cand = CandidateState()
    sess = _session(quant_store, cand, calibration=False)
    out = sess.record_response(0, sess.items[0].answer_index)
    assert out.new_user_theta is None
    assert cand.user_theta == 0.0
    assert quant_store.stats == {}
    assert sess.submit().final_theta is None


def test_early_submit_fills_the_section(quant_store):
    sess = _session(quant_store)
    sess.record_response(0, sess.items[0].answer_index)
    sess.record_response(1, sess.items[1].answer_index)
    res = sess.submit()
    assert res.total == 21
    assert res.correct == 2
    assert res.percentage == 10


def test_no_answers_after_submit(quant_store):
    sess = _session(quant_store)
    sess.submit()
    with pytest.raises(SessionStateError):
        sess.record_response(0, 0)


def test_flags_and_review_grid(quant_store):
    sess = _session(quant_store)
    assert sess.toggle_flag(1) is True
    sess.record_response(0, 0)
    grid = sess.open_review()
    assert grid[0] == {"index": 0, "answered": True, "flagged": False}
    assert grid[1] == {"index": 1, "answered": False, "flagged": True}
    assert sess.view == "review"
    sess.return_to_questions()
    assert sess.toggle_flag(1) is False


def test_second_section_avoids_exposed_items(quant_store):
    cand = CandidateState()
    first = _session(quant_store, cand, size=8)
    _answer_all(first)
    seen = set(first.submit().item_ids)

    second = _session(quant_store, cand, size=8, rng=random.Random(7))
    _answer_all(second)
    assert not seen & set(second.submit().item_ids)
    assert second.warnings == []


def test_reset_exposure_clears_used_ids(quant_store):
    cand = CandidateState()
    sess = _session(quant_store, cand, size=4)
    _answer_all(sess)
    sess.submit()
    assert reset_exposure(cand) == 4
    assert cand.used_item_ids == set()


def test_trace_lines_logged_when_enabled(quant_store, monkeypatch, caplog):
    monkeypatch.setattr(engine, "DEBUG_TRACE", True)
    sess = _session(quant_store)
    with caplog.at_level(logging.INFO, logger="exam_core.engine"):
        sess.record_response(0, sess.items[0].answer_index)
    assert "trace section=Quant index=0" in caplog.text
    assert sess.trace[0]["item_id"] == sess.items[0].id


def test_countdown_expiry_fires_once():
    timer = Countdown(10)
    assert timer.tick(5) is None
    assert timer.remaining == 5
    assert timer.tick(5) == "review"
    assert timer.state == "expired_pending_review"
    assert timer.tick() is None
    assert timer.tick(in_review=True) == "submit"
    assert timer.state == "expired_submitted"
    assert timer.tick(in_review=True) is None


def test_countdown_expiry_in_review_submits_directly():
    timer = Countdown(3)
    assert timer.tick(3, in_review=True) == "submit"


def test_countdown_urgency_and_clock():
    timer = Countdown(400)
    assert timer.urgency == "normal"
    timer.tick(100)
    assert timer.urgency == "warning"
    timer.tick(240)
    assert timer.urgency == "danger"
    assert format_clock(125) == "02:05"
    assert timer.clock() == "01:00"


def test_session_timer_moves_to_review_then_submits(quant_store):
    sess = _session(quant_store, minutes=0.05)  # 3 seconds
    assert sess.tick(3) == "review"
    assert sess.view == "review"
    with pytest.raises(SessionStateError):
        sess.return_to_questions()
    assert sess.tick() == "submit"
    assert sess.submitted
    assert sess.tick() is None


def test_stopped_timer_ignores_ticks(quant_store):
    sess = _session(quant_store)
    sess.submit()
    assert sess.timer.state == "stopped"
    assert sess.tick(10_000) is None


def test_verbal_and_data_insights_sizes():
    store = ItemStore(build_synthetic_bank())
    di = ExamSession("DI", store, rng=random.Random(1))
    assert len(di.start()) == 5
    _answer_all(di)
    assert di.submit().total == 20

    verbal = ExamSession("Verbal", store, rng=random.Random(1))
    verbal.start()
    _answer_all(verbal)
    assert verbal.submit().total == 23


def test_result_record_cannot_be_mutated(quant_store):
    sess = _session(quant_store, size=4)
    _answer_all(sess)
    res = sess.submit()
    assert isinstance(res.item_ids, tuple)
    assert isinstance(res.mst_route, tuple)
    with pytest.raises(TypeError):
        res.responses[0] = 3
    with pytest.raises(TypeError):
        res.trace[0]["correct"] = 0
    sess.responses[0] = 3
    assert res.responses[0] == sess.items[0].answer_index
    assert res.to_dict()["itemIds"] == list(res.item_ids)
