import time

import pytest

from grossd.bloom import BloomFilter, BloomRingQueue, sha256_words
from grossd.bloommgr import BloomManager, UpdateMessage, UpdateType
from grossd.msgqueue import MessageQueue


def make_manager(last_rotate=1000.0):
    ring = BloomRingQueue(4, 8)
    return BloomManager(ring, MessageQueue(), 10, 4, last_rotate)


def test_update_inserts_digest():
    mgr = make_manager()
    digest = sha256_words("omena")
    assert not mgr.contains(digest)
    mgr.handle(UpdateMessage(UpdateType.UPDATE, digest=digest))
    assert mgr.contains(digest)
    assert digest in mgr.ring.group[0]


def test_update_oper_inserts_digest():
    mgr = make_manager()
    digest = sha256_words("luumu")
    mgr.handle(UpdateMessage(UpdateType.UPDATE_OPER, digest=digest))
    assert mgr.contains(digest)


def test_update_without_digest_raises():
    mgr = make_manager()
    with pytest.raises(ValueError):
        mgr.handle(UpdateMessage(UpdateType.UPDATE))


def test_rotate_not_needed_within_interval():
    mgr = make_manager(1000.0)
    assert mgr.rotate(now=1005.0) is False
    assert mgr.last_rotate == 1000.0
    assert mgr.ring.current_index == 0


def test_rotate_advances_ring():
    mgr = make_manager(1000.0)
    digest = sha256_words("0")
    mgr.handle(UpdateMessage(UpdateType.UPDATE, digest=digest))
    assert mgr.rotate(now=1015.0) is True
    assert mgr.last_rotate == 1010.0
    assert mgr.ring.current_index == 1
    assert mgr.contains(digest)


def test_rotate_clears_after_whole_ring_elapsed():
    mgr = make_manager(1000.0)
    digest = sha256_words("1")
    mgr.handle(UpdateMessage(UpdateType.UPDATE, digest=digest))
    mgr.ring.advance()
    assert mgr.rotate(now=1100.0) is True
    assert mgr.last_rotate == 1100.0
    assert mgr.ring.current_index == 0
    assert not mgr.contains(digest)


def test_rotate_message_uses_current_time():
    mgr = make_manager(time.time() - 1_000_000)
    digest = sha256_words("2")
    mgr.handle(UpdateMessage(UpdateType.UPDATE, digest=digest))
    mgr.handle(UpdateMessage(UpdateType.ROTATE))
    assert not mgr.contains(digest)
    assert time.time() - mgr.last_rotate < 60


def test_digest_expires_after_full_rotation():
    mgr = make_manager(0.0)
    digest = sha256_words("expiring")
    mgr.handle(UpdateMessage(UpdateType.UPDATE, digest=digest))
    now = 0.0
    for _ in range(3):
        now += 11
        mgr.rotate(now=now)
        assert mgr.contains(digest)
    now += 11
    mgr.rotate(now=now)
    assert not mgr.contains(digest)


def test_absolute_update_and_sync():
    mgr = make_manager()
    digest = sha256_words("appelsiini")
    source = BloomFilter(8)
    source.insert(digest)
    mgr.handle(
        UpdateMessage(
            UpdateType.ABSOLUTE_UPDATE, words=tuple(source.words), index=0, buffer=2
        )
    )
    assert mgr.ring.group[2].words == source.words
    assert not mgr.contains(digest)
    mgr.handle(UpdateMessage(UpdateType.SYNC_AGGREGATE))
    assert mgr.synced.is_set()
    assert mgr.contains(digest)


def test_run_in_background_processes_queue():
    mgr = make_manager()
    digest = sha256_words("threaded")
    thread = mgr.start()
    try:
        mgr.queue.put(UpdateMessage(UpdateType.UPDATE, digest=digest))
        deadline = time.monotonic() + 3
        while not mgr.contains(digest) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert mgr.contains(digest)
    finally:
        mgr.stop()
    assert not thread.is_alive()


def test_run_stops_when_queue_closed():
    mgr = make_manager()
    mgr.queue.close()
    mgr.run()
    assert mgr.ring.current_index == 0
    assert not mgr.synced.is_set()