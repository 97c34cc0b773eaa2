# exam_core/sampler.py
from __future__ import annotations

import logging
import math
import random
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .config import DIFFICULTY_LEVELS, DIFFICULTY_MIX
from .errors import DuplicateItemError
from .rasch import difficulty_label
from .types import Item

log = logging.getLogger(__name__)

_LEVEL_RANK: Dict[str, int] = {lvl: idx for idx, lvl in enumerate(DIFFICULTY_LEVELS)}


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def fisher_yates(items: Iterable[Item], rng: random.Random) -> List[Item]:
    """Uniform random permutation in O(n)."""

    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randint(0, i)
        out[i], out[j] = out[j], out[i]
    return out


def difficulty_targets(count: int, mix: Optional[Mapping[str, float]] = None) -> Dict[str, int]:
    """Split ``count`` across E/M/H; the last level takes the remainder.

    With the default 30/50/20 mix this is ``E=round(0.3n)``, ``M=round(0.5n)``
    and ``H=n-E-M``.
    """

    mix = mix or DIFFICULTY_MIX
    out: Dict[str, int] = {}
    assigned = 0
    for lvl in DIFFICULTY_LEVELS[:-1]:
        n = round_half_up(float(mix.get(lvl, 0.0)) * count)
        n = max(0, min(n, count - assigned))
        out[lvl] = n
        assigned += n
    out[DIFFICULTY_LEVELS[-1]] = count - assigned
    return out


def level_distance(a: str, b: str) -> int:
    return abs(_LEVEL_RANK.get(a, 1) - _LEVEL_RANK.get(b, 1))


def ensure_unique(items: Sequence[Item]) -> None:
    seen: Set[str] = set()
    dups: Set[str] = set()
    for it in items:
        if it.id in seen:
            dups.add(it.id)
        seen.add(it.id)
    if dups:
        raise DuplicateItemError(dups)


def _dedupe(pool: Iterable[Item]) -> List[Item]:
    seen: Set[str] = set()
    out: List[Item] = []
    for it in pool:
        if it.id in seen:
            continue
        seen.add(it.id)
        out.append(it)
    return out


class Sampler:
    """Draws items without replacement under difficulty and skill constraints.

    Every shortfall is recovered locally and recorded in ``warnings`` so the
    host can display it.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.warnings: List[str] = []
        # previously used ids let back in by a relaxed exposure filter
        self.repeat_ids: Set[str] = set()

    def warn(self, msg: str, *args: object) -> None:
        log.warning(msg, *args)
        self.warnings.append(msg % args)

    def exposure_filter(
        self,
        pool: Sequence[Item],
        count: int,
        used_ids: Set[str],
        session_ids: Set[str],
        enabled: bool = True,
    ) -> Tuple[List[Item], bool]:
        """Drop exposed items; relax the cross-session filter if it starves ``count``.

        Items already served in the current section are always excluded.
        After relaxing, ``sample`` and ``nearest`` draw previously used items
        only for the slots unseen ones cannot fill.  Returns ``(pool, relaxed)``.
        """

        self.repeat_ids = set()
        fresh = [it for it in pool if it.id not in session_ids]
        if not enabled:
            return fresh, False
        unseen = [it for it in fresh if it.id not in used_ids]
        if len(unseen) >= count or len(unseen) == len(fresh):
            return unseen, False
        self.warn(
            "exposure control relaxed: %d unseen items for %d slots, previously used items allowed",
            len(unseen),
            count,
        )
        self.repeat_ids = {it.id for it in fresh if it.id in used_ids}
        return fresh, True

    def _split_repeats(self, pool: List[Item], count: int) -> Tuple[List[Item], List[Item]]:
        unseen = [it for it in pool if it.id not in self.repeat_ids]
        if len(unseen) >= count:
            return unseen, []
        return unseen, [it for it in pool if it.id in self.repeat_ids]

    def _unseen_first(
        self,
        pick: Callable[[List[Item], int], List[Item]],
        pool: List[Item],
        count: int,
    ) -> List[Item]:
        if not self.repeat_ids or not pool:
            return pick(pool, count)
        unseen, repeats = self._split_repeats(pool, count)
        if not repeats:
            return pick(unseen, count)
        picked = pick(unseen, len(unseen)) if unseen else []
        if len(picked) < count:
            picked = picked + pick(repeats, count - len(picked))
        result = fisher_yates(picked, self.rng)
        ensure_unique(result)
        return result

    def cover_skills(
        self,
        pool: Sequence[Item],
        required: Sequence[str],
        covered: Set[str],
        limit: int,
        eligible: Optional[Callable[[Item], bool]] = None,
    ) -> List[Item]:
        """Greedy first-match pick of one item per uncovered required skill."""

        picked: List[Item] = []
        picked_ids: Set[str] = set()
        for skill in required:
            if len(picked) >= limit:
                break
            if skill in covered:
                continue
            for it in pool:
                if it.id in picked_ids or skill not in it.skills:
                    continue
                if eligible is not None and not eligible(it):
                    continue
                picked.append(it)
                picked_ids.add(it.id)
                covered.update(it.skills)
                break
        return picked

    def _clip_count(self, pool: Sequence[Item], count: int) -> int:
        if len(pool) < count:
            self.warn("requested %d items but only %d available", count, len(pool))
            return len(pool)
        return count

    def sample(
        self,
        pool: Sequence[Item],
        count: int,
        mix: Optional[Mapping[str, float]] = None,
        target: str = "M",
        required_skills: Sequence[str] = (),
        covered: Optional[Set[str]] = None,
    ) -> List[Item]:
        covered = covered if covered is not None else set()
        return self._unseen_first(
            lambda p, n: self._sample(p, n, mix, target, required_skills, covered),
            _dedupe(pool),
            count,
        )

    def _sample(
        self,
        pool: List[Item],
        count: int,
        mix: Optional[Mapping[str, float]],
        target: str,
        required_skills: Sequence[str],
        covered: Set[str],
    ) -> List[Item]:
        mix = mix or DIFFICULTY_MIX
        if count <= 0 or not pool:
            if count > 0:
                self.warn("requested %d items from an empty pool", count)
            return []
        count = self._clip_count(pool, count)

        shuffled = fisher_yates(pool, self.rng)
        by_nearness = sorted(shuffled, key=lambda it: level_distance(it.difficulty_tag, target))

        levels = {lvl for lvl, weight in mix.items() if weight > 0}
        eligible = (lambda it: it.difficulty_tag in levels) if len(levels) == 1 else None
        selected = self.cover_skills(
            by_nearness,
            required_skills,
            covered,
            count,
            eligible,
        )
        chosen = {it.id for it in selected}

        targets = difficulty_targets(count, mix)
        for it in selected:
            targets[it.difficulty_tag] = max(0, targets.get(it.difficulty_tag, 0) - 1)

        for lvl in DIFFICULTY_LEVELS:
            want = min(targets.get(lvl, 0), count - len(selected))
            if want <= 0:
                continue
            bucket = [it for it in shuffled if it.difficulty_tag == lvl and it.id not in chosen]
            if len(bucket) < want:
                self.warn("only %d %s items for %d slots, backfilling", len(bucket), lvl, want)
            for it in bucket[:want]:
                selected.append(it)
                chosen.add(it.id)

        need = count - len(selected)
        if need > 0:
            rest = [it for it in by_nearness if it.id not in chosen]
            selected.extend(rest[:need])

        result = fisher_yates(selected, self.rng)
        ensure_unique(result)
        return result

    def nearest(
        self,
        pool: Sequence[Item],
        count: int,
        target_theta: float,
        theta_of: Callable[[Item], float],
        required_skills: Sequence[str] = (),
        covered: Optional[Set[str]] = None,
    ) -> List[Item]:
        """Pick the ``count`` items with minimal ``|theta - target_theta|``."""

        covered = covered if covered is not None else set()
        return self._unseen_first(
            lambda p, n: self._nearest(p, n, target_theta, theta_of, required_skills, covered),
            _dedupe(pool),
            count,
        )

    def _nearest(
        self,
        pool: List[Item],
        count: int,
        target_theta: float,
        theta_of: Callable[[Item], float],
        required_skills: Sequence[str],
        covered: Set[str],
    ) -> List[Item]:
        if count <= 0 or not pool:
            if count > 0:
                self.warn("requested %d items from an empty pool", count)
            return []
        count = self._clip_count(pool, count)

        shuffled = fisher_yates(pool, self.rng)
        ranked = sorted(shuffled, key=lambda it: abs(theta_of(it) - target_theta))
        band = difficulty_label(target_theta)
        selected = self.cover_skills(
            ranked,
            required_skills,
            covered,
            count,
            lambda it: difficulty_label(theta_of(it)) == band,
        )
        chosen = {it.id for it in selected}
        selected.extend([it for it in ranked if it.id not in chosen][: count - len(selected)])

        result = fisher_yates(selected, self.rng)
        ensure_unique(result)
        return result
