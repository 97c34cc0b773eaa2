"""Section assembly in live or precomputed mode.

Live mode serves the next block (or item) once the previous one is fully
answered, routed on the candidate's actual credit.  Precomputed mode builds
the whole section in one pass without answers: every batch is planned from
the candidate's current theta band and the route is only recorded.
"""
from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence, Union

from .config import EXPOSURE_CONTROL, SECTION_SIZES, required_skills
from .errors import EmptyPoolError
from .item_store import ItemStore
from .policy import AssemblyPolicy, RouteState, make_policy
from .sampler import Sampler, ensure_unique
from .types import AssemblyResult, CandidateState, Item

log = logging.getLogger(__name__)


class SectionAssembler:
    def __init__(
        self,
        store: ItemStore,
        policy: Union[AssemblyPolicy, str],
        candidate: CandidateState,
        *,
        sampler: Optional[Sampler] = None,
        exposure_control: bool = EXPOSURE_CONTROL,
        skills: Optional[Sequence[str]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.policy = make_policy(policy) if isinstance(policy, str) else policy
        self.candidate = candidate
        self.sampler = sampler or Sampler(rng)
        self.exposure_control = exposure_control
        self._skills = tuple(skills) if skills is not None else None
        self.state: Optional[RouteState] = None
        self.pool: List[Item] = []
        self.relaxed = False
        self._goal = 0
        self._exhausted = False

    @property
    def warnings(self) -> List[str]:
        return self.sampler.warnings

    @property
    def items(self) -> List[Item]:
        return self.state.items if self.state is not None else []

    @property
    def route(self) -> List[str]:
        return self.state.route if self.state is not None else []

    @property
    def complete(self) -> bool:
        if self.state is None:
            return False
        return self._exhausted or len(self.state.items) >= self._goal

    def start(self, section: str, size: Optional[int] = None, ahead: bool = False) -> List[Item]:
        size = int(size if size is not None else SECTION_SIZES.get(section, 0))
        if size <= 0:
            raise ValueError(f"section size must be positive, got {size}")
        section_pool = self.store.section_pool(section)
        if not section_pool:
            raise EmptyPoolError(f"no items in the bank for section {section!r}")

        self.pool, self.relaxed = self.sampler.exposure_filter(
            section_pool,
            size,
            self.candidate.used_item_ids,
            self.candidate.session_used_ids,
            self.exposure_control,
        )
        if not self.pool:
            raise EmptyPoolError(f"no servable items left for section {section!r}")
        if len(self.pool) < size:
            self.sampler.warn(
                "bank holds %d servable %s items for a %d-item section",
                len(self.pool),
                section,
                size,
            )

        skills = self._skills if self._skills is not None else required_skills(section)
        self.state = RouteState(
            section=section,
            size=size,
            batch_size=self.policy.batch_size(section),
            required_skills=tuple(skills),
        )
        self._goal = min(size, len(self.pool))
        self._exhausted = False
        return self._serve(self.candidate.user_theta, ahead)

    def record(self, index: int, credit: float) -> None:
        st = self._require_state()
        st.credits[index] = float(credit)
        if index not in st.answer_order:
            st.answer_order.append(index)

    def advance(self, user_theta: float) -> List[Item]:
        """Serve the next batch if the current one is fully answered."""

        st = self._require_state()
        if self.complete or not st.batch_answered(len(st.batches) - 1):
            return []
        return self._serve(user_theta)

    @property
    def goal(self) -> int:
        return self._goal

    def fill(self, user_theta: float, ahead: bool = False) -> List[Item]:
        """Serve every remaining batch without waiting for answers."""

        out: List[Item] = []
        while not self.complete:
            picked = self._serve(user_theta, ahead)
            if not picked:
                break
            out.extend(picked)
        return out

    def current_label(self) -> Optional[str]:
        st = self._require_state()
        return st.route[-1] if st.route else None

    def _serve(self, user_theta: float, ahead: bool = False) -> List[Item]:
        st = self._require_state()
        n = min(st.batch_size, self._goal - len(st.items))
        plan = self.policy.plan_ahead if ahead else self.policy.plan
        label, target = plan(st, user_theta)
        served = self.candidate.session_used_ids
        available = [it for it in self.pool if it.id not in served]
        picked = self.policy.select(
            self.sampler, available, n, label, target, st, self.store.item_theta
        )
        if not picked:
            self._exhausted = True
            if not st.items:
                raise EmptyPoolError(f"no servable items left for section {st.section!r}")
            return []

        start = len(st.items)
        ensure_unique(st.items + picked)
        st.items.extend(picked)
        st.batches.append((start, len(st.items)))
        st.route.append(label)
        st.targets.append(target)
        served.update(it.id for it in picked)
        log.debug(
            "served batch=%d section=%s policy=%s label=%s target=%.3f items=%s",
            len(st.batches),
            st.section,
            self.policy.name,
            label,
            target,
            [it.id for it in picked],
        )
        return picked

    def assemble_all(self, section: str, size: Optional[int] = None) -> AssemblyResult:
        """Precompute the whole section at the candidate's current theta band."""

        self.start(section, size, ahead=True)
        st = self._require_state()
        self.fill(self.candidate.user_theta, ahead=True)
        return AssemblyResult(items=list(st.items), route=list(st.route), warnings=list(self.warnings))

    def _require_state(self) -> RouteState:
        if self.state is None:
            raise RuntimeError("assembler has not been started")
        return self.state


def assemble_section(
    section: str,
    size: Optional[int],
    policy: Union[AssemblyPolicy, str],
    candidate: CandidateState,
    store: ItemStore,
    *,
    exposure_control: bool = EXPOSURE_CONTROL,
    skills: Optional[Sequence[str]] = None,
    rng: Optional[random.Random] = None,
) -> AssemblyResult:
    """Build one section up front.

    Starts a fresh section exposure set on ``candidate`` and fills it with the
    served ids; cross-session ``used_item_ids`` is only read.
    """

    candidate.session_used_ids = set()
    assembler = SectionAssembler(
        store, policy, candidate, exposure_control=exposure_control, skills=skills, rng=rng
    )
    return assembler.assemble_all(section, size)
