"""Background write queue for fire-and-forget persistence.

Calibration updates return their new theta immediately and hand the write to
this queue.  A failing write is logged and counted; it never reaches the
caller that produced it.
"""
from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Optional, Tuple

log = logging.getLogger(__name__)

_Task = Tuple[Callable[..., Any], tuple, dict]


class WriteQueue:
    def __init__(self, name: str = "exam-writes"):
        self.name = name
        self.failures = 0
        self._q: "queue.Queue[Optional[_Task]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Schedule ``fn(*args, **kwargs)``; never blocks and never raises."""

        self._ensure_worker()
        self._q.put((fn, args, kwargs))

    def _run(self) -> None:
        while True:
            task = self._q.get()
            try:
                if task is None:
                    return
                fn, args, kwargs = task
                try:
                    fn(*args, **kwargs)
                except Exception as exc:  # logged and counted
                    self.failures += 1
                    log.warning("background write failed in %s: %s", self.name, exc)
            finally:
                self._q.task_done()

    def flush(self) -> None:
        """Block until every queued write has run (tests and shutdown)."""

        if self._thread is None:
            return
        self._q.join()

    def close(self) -> None:
        if self._thread is None:
            return
        self._q.put(None)
        self._thread.join()
        self._thread = None
