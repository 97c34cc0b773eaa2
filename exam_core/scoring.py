"""Raw score, heuristic scaled score and the shared edit budget."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import DEFAULT_SCALE_MAPPING, EDIT_BUDGET
from .errors import MappingError
from .sampler import round_half_up
from .types import CandidateState, Item, ScalePoint

log = logging.getLogger(__name__)

PointLike = Union[ScalePoint, Tuple[float, float], Sequence[float]]


@dataclass
class SectionScore:
    correct: int
    total: int
    percentage: int


def score(items: Sequence[Item], responses: Mapping[int, int]) -> SectionScore:
    correct = 0
    for idx, it in enumerate(items):
        chosen = responses.get(idx)
        if chosen is not None and int(chosen) == it.answer_index:
            correct += 1
    total = len(items)
    pct = round_half_up(100.0 * correct / total) if total else 0
    return SectionScore(correct=correct, total=total, percentage=pct)


def _as_point(p: PointLike) -> ScalePoint:
    if isinstance(p, ScalePoint):
        return ScalePoint(pct=float(p.pct), score=float(p.score))
    if isinstance(p, Mapping):
        return ScalePoint(pct=float(p["pct"]), score=float(p["score"]))
    pct, sc = p
    return ScalePoint(pct=float(pct), score=float(sc))


def mapping_from_pairs(pairs: Iterable[PointLike]) -> List[ScalePoint]:
    """Normalize pairs, dicts or points into a pct-sorted list."""

    try:
        points = [_as_point(p) for p in pairs]
    except (KeyError, TypeError, ValueError) as exc:
        raise MappingError(f"mapping points need numeric pct and score: {exc}") from None
    for p in points:
        if not (math.isfinite(p.pct) and math.isfinite(p.score)):
            raise MappingError("mapping points must be finite numbers")
    points.sort(key=lambda p: p.pct)
    if len(points) < 2:
        raise MappingError(f"scale mapping needs at least 2 points, got {len(points)}")
    return points


def default_mapping() -> List[ScalePoint]:
    return mapping_from_pairs(DEFAULT_SCALE_MAPPING)


def scaled_score(percentage: float, mapping: Optional[Iterable[PointLike]] = None) -> int:
    """Piecewise-linear map from percentage to the presentation score.

    Out-of-range percentages clamp to the end scores; unsorted input is sorted.
    """

    points = mapping_from_pairs(mapping if mapping is not None else DEFAULT_SCALE_MAPPING)
    x = float(percentage)
    if x <= points[0].pct:
        return round_half_up(points[0].score)
    if x >= points[-1].pct:
        return round_half_up(points[-1].score)
    for lo, hi in zip(points, points[1:]):
        if hi.pct == lo.pct:
            continue
        if lo.pct <= x <= hi.pct:
            frac = (x - lo.pct) / (hi.pct - lo.pct)
            return round_half_up(lo.score + frac * (hi.score - lo.score))
    return round_half_up(points[-1].score)


def parse_mapping(text: str) -> Tuple[List[ScalePoint], List[Tuple[int, str]]]:
    """Parse ``pct:score`` lines.

    Blank lines and ``#`` comments are ignored.  Malformed lines come back as
    ``(line_no, reason)`` and do not stop the parse; fewer than two valid points
    raises ``MappingError``.
    """

    points: List[ScalePoint] = []
    errors: List[Tuple[int, str]] = []
    for n, raw in enumerate((text or "").splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if ":" not in line:
            errors.append((n, f"expected pct:score, got {line!r}"))
            continue
        left, right = line.split(":", 1)
        try:
            pct, sc = float(left.strip()), float(right.strip())
        except ValueError:
            errors.append((n, f"non-numeric value in {line!r}"))
            continue
        if not (math.isfinite(pct) and math.isfinite(sc)):
            errors.append((n, f"non-finite value in {line!r}"))
            continue
        points.append(ScalePoint(pct=pct, score=sc))
    if errors:
        log.warning("scale mapping: skipped %d malformed lines", len(errors))
    return mapping_from_pairs(points), errors


def format_mapping(points: Iterable[ScalePoint]) -> str:
    def _num(v: float) -> str:
        return str(int(v)) if float(v).is_integer() else str(v)

    return "\n".join(f"{_num(p.pct)}:{_num(p.score)}" for p in points)


@dataclass
class EditDecision:
    accepted: bool
    edited: bool
    reason: str = ""


class EditLedger:
    """Answer bookkeeping for one section.

    The first answer on an index is free.  Changing it spends one edit from the
    shared budget held on ``CandidateState``; with the budget at zero the change
    is rejected and the previous answer stays.
    """

    def __init__(self, candidate: CandidateState):
        self.candidate = candidate

    @property
    def remaining(self) -> int:
        return self.candidate.edits_remaining

    def reset(self, budget: int = EDIT_BUDGET) -> None:
        self.candidate.edits_remaining = max(0, int(budget))
        self.candidate.edit_history = {}

    def apply(self, responses: Dict[int, int], index: int, option: int) -> EditDecision:
        prior = responses.get(index)
        if prior is None:
            responses[index] = option
            return EditDecision(accepted=True, edited=False)
        if prior == option:
            return EditDecision(accepted=True, edited=False, reason="unchanged")
        if self.candidate.edits_remaining <= 0:
            return EditDecision(accepted=False, edited=False, reason="no edits remaining")
        responses[index] = option
        self.candidate.edits_remaining -= 1
        hist = self.candidate.edit_history
        hist[index] = hist.get(index, 0) + 1
        return EditDecision(accepted=True, edited=True)

    def edits_used(self) -> int:
        return sum(self.candidate.edit_history.values())
