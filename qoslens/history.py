"""
Bounded history of recent probe runs
"""

import threading
from collections import deque
from typing import Optional

from .models import HistoryEntry


class ResultHistory:
    """
    Fixed-capacity FIFO buffer of run traces.

    Adding beyond ``max_results`` evicts the oldest entry. Reads return
    most-recent-first. One lock guards the buffer and the id counter.
    """

    def __init__(self, max_results: int = 100):
        if max_results < 1:
            raise ValueError("max_results must be at least 1")
        self.max_results = max_results
        self._results: deque[HistoryEntry] = deque(maxlen=max_results)
        self._next_id = 0
        self._lock = threading.Lock()

    def add(self, module: str, target: str, debug_output: str, success: bool) -> HistoryEntry:
        with self._lock:
            entry = HistoryEntry(
                id=self._next_id,
                module=module,
                target=target,
                debug_output=debug_output,
                success=success
            )
            self._next_id += 1
            self._results.append(entry)
            return entry

    def recent(self, n: Optional[int] = None) -> list[HistoryEntry]:
        """Up to ``n`` entries (all when None), newest first"""
        with self._lock:
            entries = list(reversed(self._results))
        return entries if n is None else entries[:max(n, 0)]

    def get(self, id: int) -> Optional[HistoryEntry]:
        with self._lock:
            for entry in self._results:
                if entry.id == id:
                    return entry
        return None

    def __len__(self):
        with self._lock:
            return len(self._results)
