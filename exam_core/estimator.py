"""Elo-style mutual calibration of items and candidates on the Rasch scale."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from . import rasch
from .item_store import ItemStore
from .persistence import WriteQueue

log = logging.getLogger(__name__)

StatsWriter = Callable[[Dict[str, Dict[str, Any]]], None]


class AbilityEstimator:
    """Applies the symmetric online update to item stats and candidate theta.

    ``persist`` receives a snapshot of every item stat after each item update.
    With a ``WriteQueue`` the call runs in the background; without one it runs
    inline but its failures are still only logged.
    """

    def __init__(
        self,
        store: ItemStore,
        persist: Optional[StatsWriter] = None,
        writes: Optional[WriteQueue] = None,
    ):
        self.store = store
        self.persist = persist
        self.writes = writes

    initial_theta = staticmethod(rasch.initial_theta)
    response_probability = staticmethod(rasch.rasch_p)
    learning_rate = staticmethod(rasch.learning_rate)

    def update_item_theta(self, item_id: str, user_theta: float, was_correct: bool) -> float:
        st = self.store.stat_for(item_id)
        p = rasch.rasch_p(user_theta, st.theta)
        k = rasch.learning_rate(st.attempts)
        theta_before = st.theta
        st.theta = rasch.elo_step(st.theta, p, was_correct, k)
        st.attempts += 1
        if was_correct:
            st.correct += 1
        log.debug(
            "item_update item=%s correct=%d p=%.4f k=%.2f theta=%.4f->%.4f attempts=%d",
            item_id,
            int(was_correct),
            p,
            k,
            theta_before,
            st.theta,
            st.attempts,
        )
        self._persist()
        return st.theta

    def update_user_theta(
        self,
        user_theta: float,
        item_theta: float,
        was_correct: bool,
        attempts_so_far: int,
    ) -> float:
        return rasch.update_user_theta(user_theta, item_theta, was_correct, attempts_so_far)

    def _persist(self) -> None:
        if self.persist is None:
            return
        snapshot = self.store.stats_payload()
        if self.writes is not None:
            self.writes.submit(self.persist, snapshot)
            return
        try:
            self.persist(snapshot)
        except Exception as exc:  # logged only
            log.warning("calibration stats write failed: %s", exc)
