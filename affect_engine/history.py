"""
Bounded History Buffers

Fixed-capacity, oldest-evicted buffers used by every analyzer.
Appends and purges are serialized with a lock so input ingestion may run
on a different thread than the analysis tick.
"""

from collections import deque
from threading import Lock
from typing import Callable, Deque, Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class BoundedHistory(Generic[T]):
    """Append-only FIFO window with a hard capacity."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)
        self._lock = Lock()

    def append(self, item: T):
        with self._lock:
            self._items.append(item)

    def extend(self, items):
        with self._lock:
            self._items.extend(items)

    def purge(self, predicate: Callable[[T], bool]) -> int:
        """Remove every item matching predicate. Returns the number removed."""
        with self._lock:
            kept = [item for item in self._items if not predicate(item)]
            removed = len(self._items) - len(kept)
            self._items.clear()
            self._items.extend(kept)
        return removed

    def snapshot(self) -> List[T]:
        """Copy of the buffered items, oldest first."""
        with self._lock:
            return list(self._items)

    def tail(self, count: int) -> List[T]:
        """The most recent `count` items, oldest first."""
        with self._lock:
            if count <= 0:
                return []
            return list(self._items)[-count:]

    def latest(self) -> Optional[T]:
        with self._lock:
            return self._items[-1] if self._items else None

    def clear(self):
        with self._lock:
            self._items.clear()

    @property
    def fill_ratio(self) -> float:
        return len(self) / self.capacity

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())

    def __bool__(self) -> bool:
        return len(self._items) > 0
