"""Exception taxonomy for the exam engine.

Shortfalls in the bank are recovered locally and surfaced as warnings; the
classes here are reserved for conditions the host has to display.
"""
from __future__ import annotations


class ExamError(Exception):
    """Base class for engine failures."""


class AssemblyError(ExamError):
    """A section could not be assembled."""


class EmptyPoolError(AssemblyError):
    """No item is left for the section after every relaxation."""


class DuplicateItemError(AssemblyError):
    """An assembled list would serve the same item id twice."""

    def __init__(self, item_ids):
        self.item_ids = sorted(item_ids)
        super().__init__(f"duplicate item ids in assembled section: {', '.join(self.item_ids)}")


class SessionStateError(ExamError):
    """Operation is not valid in the session's current state."""


class BankFormatError(ValueError):
    """A question record failed validation."""


class MappingError(ValueError):
    """A scaled-score mapping is unusable."""
