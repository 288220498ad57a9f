from __future__ import annotations

import itertools
import threading


class IdAllocator:
    """Hands out connection ids: 1, 2, 3, ... for the life of the process."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)


__all__ = ["IdAllocator"]
