from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Literal, Set, Tuple
Section = Literal["Quant", "Verbal", "Data Insights"]
Difficulty = Literal["E", "M", "H"]
@dataclass(frozen=True)
class TableData:
    headers: List[str]
    rows: List[List[str]]
@dataclass
class Item:
    id: str; section: str; type: str; difficulty_tag: str
    prompt: str
    options: List[str]
    answer_index: int
    skills: Set[str] = field(default_factory=set)
    table: Optional[TableData] = None
    explanation: str = ""
@dataclass
class ItemStat:
    attempts: int = 0
    correct: int = 0
    theta: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {"attempts": self.attempts, "correct": self.correct, "theta": self.theta}
@dataclass
class ScalePoint:
    pct: float; score: float
@dataclass
class CandidateState:
    """Per-candidate state owned by the active session.

    ``used_item_ids`` is the cross-session exposure set and survives section
    boundaries; everything else is reset by ``ExamSession.start``.
    """
    user_theta: float = 0.0
    edits_remaining: int = 3
    edit_history: Dict[int, int] = field(default_factory=dict)
    used_item_ids: Set[str] = field(default_factory=set)
    session_used_ids: Set[str] = field(default_factory=set)
@dataclass
class AssemblyResult:
    items: List[Item]
    route: List[str]
    warnings: List[str] = field(default_factory=list)
@dataclass(frozen=True)
class ResultRecord:
    """One submitted section.  Sequences are stored as tuples and mappings as
    read-only proxies, so nothing reachable from a record can be mutated."""

    attempt_id: str
    section: str
    policy: str
    correct: int
    total: int
    percentage: int
    item_ids: Tuple[str, ...]
    responses: Mapping[int, int]
    edits_used: int
    timestamp: str
    scaled_score: Optional[int] = None
    final_theta: Optional[float] = None
    mst_route: Optional[Tuple[str, ...]] = None
    trace: Tuple[Mapping[str, object], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "item_ids", tuple(self.item_ids))
        object.__setattr__(self, "responses", MappingProxyType(dict(self.responses)))
        if self.mst_route is not None:
            object.__setattr__(self, "mst_route", tuple(self.mst_route))
        object.__setattr__(self, "trace", tuple(MappingProxyType(dict(evt)) for evt in self.trace))

    def to_dict(self) -> Dict[str, object]:
        """JSON-friendly representation used for the history log."""

        return {
            "attemptId": self.attempt_id,
            "section": self.section,
            "policy": self.policy,
            "correct": self.correct,
            "total": self.total,
            "percentage": self.percentage,
            "scaledScore": self.scaled_score,
            "finalTheta": self.final_theta,
            "mstRoute": list(self.mst_route) if self.mst_route is not None else None,
            "itemIds": list(self.item_ids),
            "responses": {str(k): v for k, v in self.responses.items()},
            "editsUsed": self.edits_used,
            "timestamp": self.timestamp,
            "trace": [dict(evt) for evt in self.trace],
        }
