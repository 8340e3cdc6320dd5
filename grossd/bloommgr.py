"""Owner of the shared bloom ring: applies updates and rotations from a queue."""

from __future__ import annotations

import enum
import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from queue import Empty
from typing import Any

from grossd.bloom import BloomRingQueue
from grossd.msgqueue import QueueInactiveError

__all__ = ["UpdateType", "UpdateMessage", "BloomManager"]

log = logging.getLogger(__name__)


class UpdateType(enum.Enum):
    """Kinds of messages on the update queue."""

    UPDATE = enum.auto()
    UPDATE_OPER = enum.auto()
    ABSOLUTE_UPDATE = enum.auto()
    ROTATE = enum.auto()
    SYNC_AGGREGATE = enum.auto()


@dataclass(frozen=True)
class UpdateMessage:
    """A message for the bloom manager.

    ``digest`` is used by the update kinds; ``words``, ``index`` and
    ``buffer`` carry a block of raw filter words for an absolute update.
    """

    type: UpdateType
    digest: Sequence[int] | None = None
    words: Sequence[int] = ()
    index: int = 0
    buffer: int = 0


class BloomManager:
    """Serialises all changes to a bloom ring behind one lock."""

    def __init__(
        self,
        ring: BloomRingQueue,
        queue: Any,
        rotate_interval: float,
        num_bufs: int,
        last_rotate: float | None = None,
    ) -> None:
        self.ring = ring
        self.queue = queue
        self.rotate_interval = rotate_interval
        self.num_bufs = num_bufs
        self.last_rotate = time.time() if last_rotate is None else last_rotate
        self.synced = threading.Event()
        self._guard = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def handle(self, message: UpdateMessage) -> None:
        """Apply a single update message to the ring."""
        kind = message.type
        if kind in (UpdateType.UPDATE, UpdateType.UPDATE_OPER):
            if message.digest is None:
                raise ValueError("update message without a digest")
            if kind is UpdateType.UPDATE:
                log.debug("received update command")
            with self._guard:
                self.ring.insert(message.digest)
        elif kind is UpdateType.ABSOLUTE_UPDATE:
            with self._guard:
                self.ring.insert_absolute(message.words, message.index, message.buffer)
        elif kind is UpdateType.ROTATE:
            log.debug("received rotate command")
            self.rotate()
        elif kind is UpdateType.SYNC_AGGREGATE:
            with self._guard:
                self.ring.sync_aggregate()
            self.synced.set()
        else:
            log.error("Unknown message type in update queue")

    def rotate(self, now: float | None = None) -> bool:
        """Rotate the ring if the interval has passed; return whether it changed.

        If more than a whole ring's worth of intervals has passed, the ring
        is cleared instead.
        """
        if now is None:
            now = time.time()
        log.debug("starting rotation")
        with self._guard:
            elapsed = now - self.last_rotate
            if elapsed <= self.rotate_interval:
                log.debug("rotation not needed")
                return False
            if elapsed > self.rotate_interval * self.num_bufs:
                self.ring.clear()
                self.last_rotate = now
                log.info("Max timediff exceeded. Zeroing whole bloom ring.")
            else:
                self.last_rotate += self.rotate_interval
                self.ring.rotate()
        log.debug("rotation completed")
        return True

    def contains(self, digest: Sequence[int]) -> bool:
        """Whether the ring holds ``digest``."""
        with self._guard:
            return digest in self.ring

    def run(self) -> None:
        """Handle messages from the queue until stopped or the queue closes."""
        log.info("bloommgr starting...")
        while not self._stop.is_set():
            try:
                message = self.queue.get(timeout=0.2)
            except Empty:
                continue
            except QueueInactiveError:
                break
            self.handle(message)

    def start(self) -> threading.Thread:
        """Run the manager in a background thread and return that thread."""
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="bloommgr", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Stop a manager started with ``start``."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None