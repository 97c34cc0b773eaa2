"""Countdown for one timed section.

The host calls ``tick()`` once per elapsed second.  Expiry fires exactly once:
from the question view it moves the session to review, from review it forces
submission.  Further ticks after that are no-ops.
"""
from __future__ import annotations

import logging
from typing import Optional

from .config import TIMER_DANGER_SECONDS, TIMER_WARNING_SECONDS

log = logging.getLogger(__name__)

RUNNING = "running"
STOPPED = "stopped"
EXPIRED_PENDING_REVIEW = "expired_pending_review"
EXPIRED_SUBMITTED = "expired_submitted"


def format_clock(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class Countdown:
    def __init__(self, seconds: int):
        self.total = max(0, int(seconds))
        self.remaining = self.total
        self.state = RUNNING

    @property
    def expired(self) -> bool:
        return self.state in (EXPIRED_PENDING_REVIEW, EXPIRED_SUBMITTED)

    @property
    def urgency(self) -> str:
        if self.remaining <= TIMER_DANGER_SECONDS:
            return "danger"
        if self.remaining <= TIMER_WARNING_SECONDS:
            return "warning"
        return "normal"

    def clock(self) -> str:
        return format_clock(self.remaining)

    def stop(self) -> None:
        if self.state == RUNNING:
            self.state = STOPPED

    def tick(self, seconds: int = 1, in_review: bool = False) -> Optional[str]:
        """Advance the clock; return ``"review"`` or ``"submit"`` on the firing tick.

        A session already expired to review escalates to ``"submit"`` only when
        the clock is ticked again while the host is showing review.
        """

        if self.state == EXPIRED_PENDING_REVIEW and in_review:
            self.state = EXPIRED_SUBMITTED
            log.info("time up in review, forcing submit")
            return "submit"
        if self.state != RUNNING:
            return None
        self.remaining = max(0, self.remaining - max(0, int(seconds)))
        if self.remaining > 0:
            return None
        if in_review:
            self.state = EXPIRED_SUBMITTED
            log.info("time up in review, forcing submit")
            return "submit"
        self.state = EXPIRED_PENDING_REVIEW
        log.info("time up, moving to review")
        return "review"
