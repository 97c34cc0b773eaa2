# exam_core/policy.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Set, Tuple

from .config import (
    BLOCK_SIZES,
    DIFFICULTY_LEVELS,
    INITIAL_THETA,
    MST_START_LEVEL,
    MST_STEP_DOWN,
    MST_STEP_UP,
    POLICIES,
    ROLLING_DEFAULT_ACCURACY,
    ROLLING_EASY_AT,
    ROLLING_HARD_AT,
    ROLLING_WINDOW,
)
from .rasch import difficulty_label
from .sampler import Sampler
from .types import Item


def _step(level: str, delta: int) -> str:
    idx = DIFFICULTY_LEVELS.index(level) + delta
    idx = max(0, min(len(DIFFICULTY_LEVELS) - 1, idx))
    return DIFFICULTY_LEVELS[idx]


def next_block_difficulty(current: str, block_score: float) -> str:
    """MST routing: step up at >= 75% block accuracy, down at <= 50%."""

    if block_score >= MST_STEP_UP:
        return _step(current, +1)
    if block_score <= MST_STEP_DOWN:
        return _step(current, -1)
    return current


def rolling_preference(accuracy: float) -> str:
    if accuracy >= ROLLING_HARD_AT:
        return "H"
    if accuracy <= ROLLING_EASY_AT:
        return "E"
    return "M"


@dataclass
class RouteState:
    """Everything served so far in one section and the credit earned on it."""

    section: str
    size: int
    batch_size: int
    required_skills: Tuple[str, ...] = ()
    items: List[Item] = field(default_factory=list)
    batches: List[Tuple[int, int]] = field(default_factory=list)
    route: List[str] = field(default_factory=list)
    targets: List[float] = field(default_factory=list)
    credits: Dict[int, float] = field(default_factory=dict)
    answer_order: List[int] = field(default_factory=list)
    covered_skills: Set[str] = field(default_factory=set)

    def batch_score(self, batch_idx: int) -> float:
        """Accuracy over the answered indices of a batch (0.0 when none)."""

        start, end = self.batches[batch_idx]
        answered = [self.credits[i] for i in range(start, end) if i in self.credits]
        if not answered:
            return 0.0
        return sum(answered) / len(answered)

    def batch_answered(self, batch_idx: int) -> bool:
        start, end = self.batches[batch_idx]
        return all(i in self.credits for i in range(start, end))

    def recent_accuracy(self, window: int = ROLLING_WINDOW, default: float = ROLLING_DEFAULT_ACCURACY) -> float:
        recent = self.answer_order[-window:]
        if not recent:
            return default
        return sum(self.credits[i] for i in recent) / len(recent)


ThetaOf = Callable[[Item], float]


class AssemblyPolicy:
    name = ""

    def batch_size(self, section: str) -> int:
        return BLOCK_SIZES.get(section, 4)

    def plan(self, st: RouteState, user_theta: float) -> Tuple[str, float]:
        """Return ``(difficulty label, target theta)`` for the next batch."""
        raise NotImplementedError

    def plan_ahead(self, st: RouteState, user_theta: float) -> Tuple[str, float]:
        """Plan a batch before any answers exist: hold the candidate's theta band."""

        label = difficulty_label(user_theta)
        return label, INITIAL_THETA[label]

    def select(
        self,
        sampler: Sampler,
        pool: Sequence[Item],
        count: int,
        label: str,
        target: float,
        st: RouteState,
        theta_of: ThetaOf,
    ) -> List[Item]:
        return sampler.sample(
            pool,
            count,
            mix={label: 1.0},
            target=label,
            required_skills=st.required_skills,
            covered=st.covered_skills,
        )


class BlockRoutePolicy(AssemblyPolicy):
    """Multi-stage testing: fixed blocks, routed on the previous block's accuracy."""

    name = "mst"

    def plan(self, st: RouteState, user_theta: float) -> Tuple[str, float]:
        if not st.route:
            label = MST_START_LEVEL
        else:
            label = next_block_difficulty(st.route[-1], st.batch_score(len(st.batches) - 1))
        return label, INITIAL_THETA[label]


class ContinuousThetaPolicy(AssemblyPolicy):
    """Blocks of items nearest to the running ability estimate."""

    name = "theta"

    def plan(self, st: RouteState, user_theta: float) -> Tuple[str, float]:
        return difficulty_label(user_theta), float(user_theta)

    plan_ahead = plan

    def select(self, sampler, pool, count, label, target, st, theta_of):
        return sampler.nearest(
            pool,
            count,
            target,
            theta_of,
            required_skills=st.required_skills,
            covered=st.covered_skills,
        )


class RollingAccuracyPolicy(AssemblyPolicy):
    """Per-item adaptation on accuracy over the last few answers."""

    name = "rolling"

    def batch_size(self, section: str) -> int:
        return 1

    def plan(self, st: RouteState, user_theta: float) -> Tuple[str, float]:
        label = rolling_preference(st.recent_accuracy())
        return label, INITIAL_THETA[label]


_POLICY_TYPES = {
    BlockRoutePolicy.name: BlockRoutePolicy,
    ContinuousThetaPolicy.name: ContinuousThetaPolicy,
    RollingAccuracyPolicy.name: RollingAccuracyPolicy,
}


def make_policy(name: str) -> AssemblyPolicy:
    key = (name or "").strip().lower()
    if key not in _POLICY_TYPES:
        raise ValueError(f"unknown assembly policy {name!r}; expected one of {', '.join(POLICIES)}")
    return _POLICY_TYPES[key]()
