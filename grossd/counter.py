"""Thread-safe named counters addressed by integer ids, with id reuse."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

__all__ = ["Counter", "CounterRegistry"]


@dataclass
class Counter:
    """A single counter slot."""

    id: int
    name: str | None = None
    description: str | None = None
    value: int = 0
    active: bool = False
    publish: bool = False
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )


class CounterRegistry:
    """Hands out counters by id; released counters are reused most recent first."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: list[Counter] = []
        self._free: list[Counter] = []

    def _by_id(self, cid: int) -> Counter:
        with self._lock:
            if not 0 <= cid < len(self._counters):
                raise KeyError(cid)
            return self._counters[cid]

    def create(self, name: str | None = None, description: str | None = None) -> int:
        """Return the id of a fresh counter with value zero."""
        with self._lock:
            if self._free:
                counter = self._free.pop()
            else:
                counter = Counter(id=len(self._counters))
                self._counters.append(counter)
        with counter.lock:
            counter.name = name
            counter.description = description
            counter.active = True
        return counter.id

    def release(self, cid: int) -> None:
        """Reset the counter and make its id available for reuse."""
        counter = self._by_id(cid)
        with counter.lock:
            if not counter.active:
                raise ValueError(f"counter {cid} is not active")
            counter.active = False
            counter.publish = False
            counter.name = None
            counter.description = None
            counter.value = 0
        with self._lock:
            self._free.append(counter)

    def read(self, cid: int) -> int:
        """Return the current value."""
        counter = self._by_id(cid)
        with counter.lock:
            return counter.value

    def increment(self, cid: int) -> int:
        """Add one and return the new value."""
        counter = self._by_id(cid)
        with counter.lock:
            counter.value += 1
            return counter.value

    def decrement(self, cid: int) -> int:
        """Subtract one and return the new value."""
        counter = self._by_id(cid)
        with counter.lock:
            counter.value -= 1
            return counter.value

    def restart(self, cid: int) -> int:
        """Reset to zero and return the value it had."""
        counter = self._by_id(cid)
        with counter.lock:
            old, counter.value = counter.value, 0
            return old

    def set(self, cid: int, value: int) -> int:
        """Set a new value and return the one it replaced."""
        counter = self._by_id(cid)
        with counter.lock:
            old, counter.value = counter.value, value
            return old