from __future__ import annotations

import logging
import random

import pytest

from exam_core.estimator import AbilityEstimator
from exam_core.item_store import ItemStore
from exam_core.persistence import WriteQueue
from tests.conftest import build_synthetic_bank


def test_item_stat_is_created_from_tag_and_updated(quant_store):
    est = AbilityEstimator(quant_store)
    assert quant_store.stat("Q25") is None

    new_theta = est.update_item_theta("Q25", 0.0, True)  # Hard item, theta 1.0

    # p = sigma(-1) ~= 0.2689, k = 0.15
    assert new_theta == pytest.approx(1.0 + 0.15 * (1 - 0.2689414), rel=1e-6)
    st = quant_store.stat("Q25")
    assert (st.attempts, st.correct) == (1, 1)


def test_item_theta_moves_toward_outcome(quant_store):
    est = AbilityEstimator(quant_store)
    rng = random.Random(7)
    for _ in range(50):
        iid = f"Q{rng.randint(1, 30)}"
        user = rng.uniform(-3, 3)
        correct = rng.random() < 0.5
        before = quant_store.item_theta(quant_store.get(iid))
        after = est.update_item_theta(iid, user, correct)
        if correct:
            assert after >= before
        else:
            assert after <= before


def test_learning_rate_uses_item_attempts(quant_store):
    est = AbilityEstimator(quant_store)
    quant_store.stat_for("Q15").attempts = 30
    before = quant_store.stat("Q15").theta
    est.update_item_theta("Q15", 0.0, False)
    assert quant_store.stat("Q15").theta == pytest.approx(before - 0.05 * 0.5)


def test_inline_persist_receives_snapshot(quant_store):
    seen = []
    est = AbilityEstimator(quant_store, persist=seen.append)
    est.update_item_theta("Q1", 0.0, True)
    assert seen and "Q1" in seen[-1]
    assert seen[-1]["Q1"]["attempts"] == 1


def test_persist_failure_is_logged_not_raised(quant_store, caplog):
    def boom(_snapshot):
        raise OSError("disk full")

    est = AbilityEstimator(quant_store, persist=boom)
    with caplog.at_level(logging.WARNING, logger="exam_core.estimator"):
        theta = est.update_item_theta("Q1", 0.0, True)
    assert theta < -0.5
    assert "disk full" in caplog.text


def test_write_queue_runs_in_background_and_counts_failures():
    store = ItemStore(build_synthetic_bank(sections=["Verbal"]))
    calls = []

    def flaky(snapshot):
        calls.append(snapshot)
        if len(calls) == 1:
            raise OSError("locked")

    writes = WriteQueue("test-writes")
    est = AbilityEstimator(store, persist=flaky, writes=writes)
    est.update_item_theta("V1", 0.0, True)
    est.update_item_theta("V2", 0.0, False)
    writes.flush()
    writes.close()

    assert len(calls) == 2
    assert writes.failures == 1
    assert set(calls[-1]) == {"V1", "V2"}


def test_load_stats_rejects_bad_records_individually(quant_store):
    rejected = quant_store.load_stats(
        {
            "Q1": {"attempts": 4, "correct": 3, "theta": 0.2},
            "Q2": {"attempts": 1, "correct": 2, "theta": 0.0},
            "Q3": {"attempts": "x", "correct": 0, "theta": 0.0},
            "Q4": "nope",
        }
    )
    assert quant_store.stat("Q1").theta == 0.2
    assert sorted(iid for iid, _ in rejected) == ["Q2", "Q3", "Q4"]
