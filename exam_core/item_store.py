from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .config import DIFFICULTY_LEVELS, SECTIONS
from .rasch import initial_theta
from .types import Item, ItemStat

log = logging.getLogger(__name__)


class ItemStore:
    """Question bank plus per-item calibration statistics."""

    def __init__(self, items: Iterable[Item] = (), stats: Optional[Mapping[str, ItemStat]] = None):
        self.items: List[Item] = []
        self._by_id: Dict[str, Item] = {}
        self.stats: Dict[str, ItemStat] = dict(stats or {})
        self.add_items(items)

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id

    def add_items(self, items: Iterable[Item]) -> Tuple[List[Item], List[str]]:
        """Append items whose id is new; return ``(added, duplicate_ids)``."""

        added: List[Item] = []
        duplicates: List[str] = []
        for it in items:
            if it.id in self._by_id:
                duplicates.append(it.id)
                continue
            self._by_id[it.id] = it
            self.items.append(it)
            added.append(it)
        if duplicates:
            log.info("skipped %d items with ids already in the bank", len(duplicates))
        return added, duplicates

    def get(self, item_id: str) -> Optional[Item]:
        return self._by_id.get(item_id)

    def section_pool(self, section: str) -> List[Item]:
        return [it for it in self.items if it.section == section]

    def stat(self, item_id: str) -> Optional[ItemStat]:
        return self.stats.get(item_id)

    def stat_for(self, item_id: str) -> ItemStat:
        """Fetch the item's stat, creating it from the difficulty tag on first use."""

        st = self.stats.get(item_id)
        if st is None:
            item = self._by_id.get(item_id)
            tag = item.difficulty_tag if item is not None else "M"
            st = ItemStat(attempts=0, correct=0, theta=initial_theta(tag))
            self.stats[item_id] = st
        return st

    def item_theta(self, item: Item) -> float:
        st = self.stats.get(item.id)
        if st is not None:
            return st.theta
        return initial_theta(item.difficulty_tag)

    def counts(self) -> Dict[str, Dict[str, int]]:
        out: Dict[str, Dict[str, int]] = {
            s: {**{lvl: 0 for lvl in DIFFICULTY_LEVELS}, "total": 0} for s in SECTIONS
        }
        for it in self.items:
            row = out.setdefault(it.section, {**{lvl: 0 for lvl in DIFFICULTY_LEVELS}, "total": 0})
            row[it.difficulty_tag] = row.get(it.difficulty_tag, 0) + 1
            row["total"] += 1
        return out

    def stats_payload(self) -> Dict[str, Dict[str, object]]:
        return {iid: st.to_dict() for iid, st in self.stats.items()}

    def load_stats(self, raw: Mapping[str, object]) -> List[Tuple[str, str]]:
        """Merge persisted stats, rejecting malformed records individually.

        Returns ``[(item_id, reason), ...]`` for every record that was skipped.
        """

        rejected: List[Tuple[str, str]] = []
        for iid, rec in (raw or {}).items():
            try:
                self.stats[str(iid)] = _parse_stat(rec)
            except ValueError as exc:
                rejected.append((str(iid), str(exc)))
        if rejected:
            log.warning("ignored %d malformed calibration records", len(rejected))
        return rejected


def _parse_stat(rec: object) -> ItemStat:
    if not isinstance(rec, Mapping):
        raise ValueError("record is not an object")
    try:
        attempts = int(rec.get("attempts", 0))
        correct = int(rec.get("correct", 0))
        theta = float(rec.get("theta"))
    except (TypeError, ValueError):
        raise ValueError("attempts/correct/theta must be numeric") from None
    if attempts < 0 or not (0 <= correct <= attempts):
        raise ValueError("counts violate 0 <= correct <= attempts")
    if math.isnan(theta) or math.isinf(theta):
        raise ValueError("theta must be finite")
    return ItemStat(attempts=attempts, correct=correct, theta=theta)
