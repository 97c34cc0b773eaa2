# exam_core/engine.py
from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

from .assembler import SectionAssembler
from .config import (
    ASSEMBLY_POLICY,
    CALIBRATION_ENABLED,
    DEBUG_TRACE,
    EDIT_BUDGET,
    EXPOSURE_CONTROL,
    SECTION_MINUTES,
    SECTION_SIZES,
    TRACE_FIELDS,
    normalize_section,
)
from .errors import SessionStateError
from .estimator import AbilityEstimator
from .item_store import ItemStore
from .policy import AssemblyPolicy
from .scoring import EditLedger, PointLike, scaled_score, score
from .timer import Countdown
from .types import CandidateState, Item, ResultRecord

log = logging.getLogger(__name__)

QUESTIONS = "questions"
REVIEW = "review"
SUBMITTED = "submitted"


def _emit_trace(**values: object) -> None:
    if not DEBUG_TRACE:
        return
    ordered = []
    for key in TRACE_FIELDS:
        if key in values:
            ordered.append(f"{key}={values[key]}")
    if ordered:
        log.info("trace %s", " ".join(ordered))


@dataclass
class ResponseOutcome:
    accepted: bool
    edited: bool
    edits_remaining: int
    new_user_theta: Optional[float] = None
    new_difficulty_label: Optional[str] = None
    served: List[Item] = field(default_factory=list)
    reason: str = ""


def reset_exposure(candidate: CandidateState) -> int:
    """Forget every item the candidate has seen; returns how many were cleared."""

    n = len(candidate.used_item_ids)
    candidate.used_item_ids.clear()
    candidate.session_used_ids.clear()
    log.info("exposure reset: cleared %d item ids", n)
    return n


class ExamSession:
    """One timed section: assemble, collect answers, calibrate, score.

    The first answer on a question drives calibration of both the item and the
    candidate.  Later edits change the score and the routing credit only.
    """

    def __init__(
        self,
        section: str,
        store: ItemStore,
        candidate: Optional[CandidateState] = None,
        *,
        policy: Union[AssemblyPolicy, str, None] = None,
        size: Optional[int] = None,
        minutes: Optional[float] = None,
        estimator: Optional[AbilityEstimator] = None,
        mapping: Optional[Iterable[PointLike]] = None,
        calibration: bool = CALIBRATION_ENABLED,
        exposure_control: bool = EXPOSURE_CONTROL,
        skills: Optional[Sequence[str]] = None,
        edit_budget: int = EDIT_BUDGET,
        rng: Optional[random.Random] = None,
    ):
        canon = normalize_section(section)
        if canon is None:
            raise ValueError(f"unknown section {section!r}")
        self.section = canon
        self.store = store
        self.candidate = candidate if candidate is not None else CandidateState()
        self.estimator = estimator or AbilityEstimator(store)
        self.mapping = list(mapping) if mapping is not None else None
        self.calibration = calibration
        self.edit_budget = edit_budget
        self.size = int(size) if size is not None else SECTION_SIZES[canon]
        mins = minutes if minutes is not None else SECTION_MINUTES[canon]
        self.timer = Countdown(int(round(float(mins) * 60)))
        self.assembler = SectionAssembler(
            store,
            policy or ASSEMBLY_POLICY,
            self.candidate,
            exposure_control=exposure_control,
            skills=skills,
            rng=rng,
        )
        self.ledger = EditLedger(self.candidate)
        self.responses: Dict[int, int] = {}
        self.flags: Set[int] = set()
        self.view = QUESTIONS
        self.trace: List[Dict[str, object]] = []
        self.result: Optional[ResultRecord] = None
        self._started = False
        self._calibrated: Set[int] = set()

    @property
    def policy_name(self) -> str:
        return self.assembler.policy.name

    @property
    def items(self) -> List[Item]:
        return self.assembler.items

    @property
    def warnings(self) -> List[str]:
        return self.assembler.warnings

    @property
    def submitted(self) -> bool:
        return self.result is not None

    def start(self) -> List[Item]:
        if self._started:
            raise SessionStateError("session already started")
        self.ledger.reset(self.edit_budget)
        self.candidate.session_used_ids = set()
        served = self.assembler.start(self.section, self.size)
        self._started = True
        log.info(
            "section started section=%s policy=%s size=%d first_batch=%d warnings=%d",
            self.section,
            self.policy_name,
            self.size,
            len(served),
            len(self.warnings),
        )
        return served

    def _require_open(self) -> None:
        if not self._started:
            raise SessionStateError("session has not been started")
        if self.submitted:
            raise SessionStateError("section already submitted")

    def _item_at(self, index: int) -> Item:
        items = self.items
        if not 0 <= index < len(items):
            raise SessionStateError(f"question {index} has not been served")
        return items[index]

    def record_response(self, index: int, option: int) -> ResponseOutcome:
        self._require_open()
        index, option = int(index), int(option)
        item = self._item_at(index)
        if not 0 <= option < len(item.options):
            raise ValueError(f"option {option} out of range for question {index}")

        decision = self.ledger.apply(self.responses, index, option)
        if not decision.accepted:
            log.info("edit rejected index=%d: %s", index, decision.reason)
            return ResponseOutcome(
                accepted=False,
                edited=False,
                edits_remaining=self.ledger.remaining,
                reason=decision.reason,
            )

        correct = option == item.answer_index
        self.assembler.record(index, 1.0 if correct else 0.0)

        new_theta: Optional[float] = None
        if self.calibration and index not in self._calibrated:
            new_theta = self._calibrate(index, item, correct)

        served = self.assembler.advance(self.candidate.user_theta)
        label = self.assembler.current_label() if served else None
        return ResponseOutcome(
            accepted=True,
            edited=decision.edited,
            edits_remaining=self.ledger.remaining,
            new_user_theta=new_theta,
            new_difficulty_label=label,
            served=served,
            reason=decision.reason,
        )

    def _calibrate(self, index: int, item: Item, correct: bool) -> float:
        user_before = self.candidate.user_theta
        item_before = self.store.item_theta(item)
        user_after = self.estimator.update_user_theta(
            user_before, item_before, correct, len(self._calibrated)
        )
        item_after = self.estimator.update_item_theta(item.id, user_before, correct)
        self.candidate.user_theta = user_after
        self._calibrated.add(index)

        evt: Dict[str, object] = {
            "section": self.section,
            "index": index,
            "item_id": item.id,
            "difficulty": item.difficulty_tag,
            "correct": int(correct),
            "user_theta_before": round(user_before, 4),
            "user_theta_after": round(user_after, 4),
            "item_theta_before": round(item_before, 4),
            "item_theta_after": round(item_after, 4),
            "route": self.assembler.current_label(),
        }
        self.trace.append(evt)
        _emit_trace(**evt)
        return user_after

    def toggle_flag(self, index: int) -> bool:
        self._require_open()
        index = int(index)
        self._item_at(index)
        if index in self.flags:
            self.flags.discard(index)
            return False
        self.flags.add(index)
        return True

    def review_grid(self) -> List[Dict[str, object]]:
        return [
            {"index": i, "answered": i in self.responses, "flagged": i in self.flags}
            for i in range(len(self.items))
        ]

    def open_review(self) -> List[Dict[str, object]]:
        self._require_open()
        self.view = REVIEW
        return self.review_grid()

    def return_to_questions(self) -> None:
        self._require_open()
        if self.timer.expired:
            raise SessionStateError("time is up; only review and submit remain")
        self.view = QUESTIONS

    def tick(self, seconds: int = 1) -> Optional[str]:
        """Advance the countdown; returns the transition it fired, if any."""

        if not self._started or self.submitted:
            return None
        fired = self.timer.tick(seconds, in_review=self.view == REVIEW)
        if fired == "review":
            self.view = REVIEW
        elif fired == "submit":
            self.submit()
        return fired

    def submit(self) -> ResultRecord:
        """Score the section and commit its items to the exposure set.

        Repeated calls return the same record.
        """

        if self.result is not None:
            return self.result
        if not self._started:
            raise SessionStateError("session has not been started")

        # unanswered batches still count toward the nominal length
        self.assembler.fill(self.candidate.user_theta)
        self.timer.stop()
        items = list(self.items)
        sc = score(items, self.responses)
        scaled = scaled_score(sc.percentage, self.mapping)
        route = list(self.assembler.route)
        self.result = ResultRecord(
            attempt_id=uuid.uuid4().hex,
            section=self.section,
            policy=self.policy_name,
            correct=sc.correct,
            total=sc.total,
            percentage=sc.percentage,
            item_ids=[it.id for it in items],
            responses=dict(self.responses),
            edits_used=self.ledger.edits_used(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            scaled_score=scaled,
            final_theta=round(self.candidate.user_theta, 4) if self.calibration else None,
            mst_route=route if self.policy_name == "mst" else None,
            trace=list(self.trace),
        )
        self.candidate.used_item_ids.update(it.id for it in items)
        self.view = SUBMITTED
        log.info(
            "section submitted section=%s correct=%d/%d pct=%d scaled=%s",
            self.section,
            sc.correct,
            sc.total,
            sc.percentage,
            scaled,
        )
        return self.result

    def snapshot(self) -> Dict[str, object]:
        return {
            "section": self.section,
            "policy": self.policy_name,
            "view": self.view,
            "served": len(self.items),
            "size": self.assembler.goal,
            "answered": len(self.responses),
            "flags": sorted(self.flags),
            "editsRemaining": self.ledger.remaining,
            "userTheta": round(self.candidate.user_theta, 4),
            "route": list(self.assembler.route),
            "remainingSeconds": self.timer.remaining,
            "clock": self.timer.clock(),
            "urgency": self.timer.urgency,
            "timerState": self.timer.state,
            "warnings": list(self.warnings),
        }
