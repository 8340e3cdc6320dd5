"""In-process message queues, including a queue that delays every delivery."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from queue import Empty
from typing import Any

__all__ = ["Empty", "QueueInactiveError", "MessageQueue", "DelayQueue"]

log = logging.getLogger(__name__)


class QueueInactiveError(RuntimeError):
    """Raised when a queue that has been closed is used."""


@dataclass
class _Entry:
    timestamp: float
    message: Any


class MessageQueue:
    """A thread-safe FIFO queue whose messages carry the time they were queued."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._cond = threading.Condition(self._lock)
        self._items: deque[_Entry] = deque()
        self.active = True

    def _check_active(self) -> None:
        if not self.active:
            raise QueueInactiveError("message queue is marked inactive")

    def _put_entry(self, entry: _Entry) -> None:
        with self._cond:
            self._check_active()
            self._items.append(entry)
            self._cond.notify()

    def _pop_entry(self) -> _Entry | None:
        with self._cond:
            self._check_active()
            return self._items.popleft() if self._items else None

    def _take_entry(self, timeout: float | None) -> _Entry:
        with self._cond:
            self._check_active()
            if timeout is None:
                while not self._items:
                    self._cond.wait()
                    self._check_active()
            else:
                deadline = time.monotonic() + timeout
                while not self._items:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise Empty
                    self._cond.wait(remaining)
                    self._check_active()
            return self._items.popleft()

    def _wait_head(self, timeout: float | None) -> float | None:
        with self._cond:
            self._check_active()
            if not self._cond.wait_for(lambda: self._items or not self.active, timeout):
                return None
            self._check_active()
            return self._items[0].timestamp

    def put(self, message: Any) -> None:
        """Append a message, stamping it with the current monotonic time."""
        self._put_entry(_Entry(time.monotonic(), message))

    def get(self, timeout: float | None = None) -> Any:
        """Remove and return the first message.

        Waits forever when ``timeout`` is None, otherwise up to ``timeout``
        seconds, raising ``queue.Empty`` if nothing arrived.
        """
        return self._take_entry(timeout).message

    def get_nowait(self) -> Any:
        """Remove and return the first message, or raise ``queue.Empty``."""
        entry = self._pop_entry()
        if entry is None:
            raise Empty
        return entry.message

    def peek_timestamp(self) -> float:
        """Wait for a message and return the time the first one was queued."""
        stamp = self._wait_head(None)
        assert stamp is not None
        return stamp

    def close(self) -> None:
        """Mark the queue inactive; it must be empty."""
        with self._cond:
            if self._items:
                raise ValueError("queue not empty")
            self.active = False
            self._cond.notify_all()

    def walk(self, callback: Callable[[Any], Any]) -> int:
        """Call ``callback`` on every queued message in order; return how many."""
        with self._cond:
            self._check_active()
            messages = [entry.message for entry in self._items]
        for message in messages:
            callback(message)
        return len(messages)

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


class DelayQueue:
    """A queue that holds each message for a fixed delay before it can be read.

    Messages go into an inbound queue; a background thread moves each one to
    the outbound queue once its delay has passed.
    """

    def __init__(self, delay: float) -> None:
        if delay is None or delay < 0:
            raise ValueError(f"invalid delay: {delay!r}")
        self._inq = MessageQueue()
        self._outq = MessageQueue()
        self._delay = float(delay)
        self._impose = True
        self._state_lock = threading.Lock()
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="delay-queue", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        log.debug("delay queue manager thread starting")
        while not self._stopped.is_set():
            self._wake.clear()
            try:
                stamp = self._inq._wait_head(0.1)
            except QueueInactiveError:
                return
            if stamp is None:
                continue
            with self._state_lock:
                delay, impose = self._delay, self._impose
            if impose and delay > 0:
                remaining = stamp + delay - time.monotonic()
                if remaining > 0:
                    self._wake.wait(remaining)
                    continue
            entry = self._inq._pop_entry()
            if entry is not None:
                self._outq._put_entry(entry)

    def put(self, message: Any) -> None:
        """Queue a message for delayed delivery."""
        self._inq.put(message)

    def instant(self, message: Any) -> None:
        """Queue a message for immediate delivery, bypassing the delay."""
        self._outq.put(message)

    def get(self, timeout: float | None = None) -> Any:
        """Return the next delivered message; see ``MessageQueue.get``."""
        return self._outq.get(timeout)

    def _set_state(self, *, impose: bool | None = None, delay: float | None = None) -> None:
        with self._state_lock:
            if impose is not None:
                self._impose = impose
            if delay is not None:
                self._delay = delay
        self._wake.set()

    def enable_delay(self) -> None:
        """Hold messages for the configured delay."""
        self._set_state(impose=True)

    def disable_delay(self) -> None:
        """Deliver messages without holding them."""
        self._set_state(impose=False)

    def set_delay(self, delay: float) -> None:
        """Change the delay, in seconds."""
        if delay is None or delay < 0:
            raise ValueError(f"invalid delay: {delay!r}")
        self._set_state(delay=float(delay))

    def freeze(self) -> None:
        """Hold all processing of the queue until ``thaw`` is called."""
        log.error("freeze queue")
        self._inq._lock.acquire()
        self._outq._lock.acquire()

    def thaw(self) -> None:
        """Release a queue held by ``freeze``."""
        log.error("thaw queue")
        self._outq._lock.release()
        self._inq._lock.release()

    def in_len(self) -> int:
        """Number of messages still waiting out their delay."""
        return len(self._inq)

    def out_len(self) -> int:
        """Number of messages ready to be read."""
        return len(self._outq)

    def walk(self, callback: Callable[[Any], Any]) -> int:
        """Call ``callback`` on waiting, then ready, messages; return how many."""
        return self._inq.walk(callback) + self._outq.walk(callback)

    def stop(self) -> None:
        """Stop the background thread."""
        self._stopped.set()
        self._wake.set()
        self._thread.join()

    def __enter__(self) -> DelayQueue:
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()