import threading
import time
from queue import Empty

import pytest

from grossd.msgqueue import DelayQueue, MessageQueue, QueueInactiveError


def test_fifo_order():
    q = MessageQueue()
    for item in ["a", "b", "c"]:
        q.put(item)
    assert [q.get(), q.get(), q.get()] == ["a", "b", "c"]


def test_len_tracks_messages():
    q = MessageQueue()
    q.put(1)
    q.put(2)
    assert len(q) == 2
    q.get()
    assert len(q) == 1


def test_get_timeout_raises_empty():
    q = MessageQueue()
    start = time.monotonic()
    with pytest.raises(Empty):
        q.get(timeout=0.05)
    assert time.monotonic() - start >= 0.04


def test_get_nowait_empty():
    q = MessageQueue()
    with pytest.raises(Empty):
        q.get_nowait()


def test_get_nowait_returns_message():
    q = MessageQueue()
    q.put({"k": 1})
    assert q.get_nowait() == {"k": 1}
    assert len(q) == 0


def test_get_waits_for_message_from_other_thread():
    q = MessageQueue()
    threading.Timer(0.05, q.put, args=("late",)).start()
    assert q.get(timeout=2) == "late"


def test_peek_timestamp_is_first_message_time():
    q = MessageQueue()
    before = time.monotonic()
    q.put("x")
    time.sleep(0.01)
    q.put("y")
    stamp = q.peek_timestamp()
    assert before <= stamp <= time.monotonic()
    assert len(q) == 2
    assert q.get() == "x"
    assert q.peek_timestamp() >= stamp


def test_close_empty_then_use_raises():
    q = MessageQueue()
    q.close()
    with pytest.raises(QueueInactiveError):
        q.put("x")
    with pytest.raises(QueueInactiveError):
        q.get(timeout=0.01)
    with pytest.raises(QueueInactiveError):
        q.walk(print)


def test_close_nonempty_raises():
    q = MessageQueue()
    q.put("x")
    with pytest.raises(ValueError):
        q.close()
    assert q.get() == "x"


def test_walk_visits_in_order_without_removing():
    q = MessageQueue()
    for item in range(4):
        q.put(item)
    seen = []
    assert q.walk(seen.append) == 4
    assert seen == [0, 1, 2, 3]
    assert len(q) == 4


def test_walk_propagates_callback_error():
    q = MessageQueue()
    q.put(1)

    def fail(_):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        q.walk(fail)


def test_chain_letters_through_circular_queues():
    loops = 50
    queues = [MessageQueue() for _ in range(4)]
    balls = [[0] for _ in range(8)]
    errors = []

    def ping(inq, outq):
        try:
            for _ in range(loops):
                counter = inq.get(timeout=5)
                tmp = counter[0] + 1
                time.sleep(0.0005)
                counter[0] = tmp
                outq.put(counter)
        except Empty:
            errors.append("timeout")

    threads = [
        threading.Thread(target=ping, args=(queues[i], queues[(i + 1) % 4]))
        for i in range(4)
    ]
    for t in threads:
        t.start()
    for i, ball in enumerate(balls):
        queues[i % 4].put(ball)
    for t in threads:
        t.join(10)
    assert errors == []
    assert sum(ball[0] for ball in balls) == loops * len(threads)


def test_delay_queue_holds_messages():
    with DelayQueue(0.3) as dq:
        dq.put("m")
        with pytest.raises(Empty):
            dq.get(timeout=0.05)
        assert dq.in_len() == 1
        assert dq.get(timeout=3) == "m"
        assert dq.in_len() == 0


def test_delay_queue_preserves_order():
    with DelayQueue(0.05) as dq:
        for item in range(5):
            dq.put(item)
        assert [dq.get(timeout=3) for _ in range(5)] == [0, 1, 2, 3, 4]


def test_instant_bypasses_delay():
    with DelayQueue(10) as dq:
        dq.put("slow")
        dq.instant("fast")
        assert dq.out_len() == 1
        assert dq.get(timeout=1) == "fast"
        assert dq.in_len() == 1


def test_disable_delay_releases_waiting_message():
    with DelayQueue(10) as dq:
        dq.put("m")
        time.sleep(0.05)
        dq.disable_delay()
        assert dq.get(timeout=2) == "m"


def test_enable_delay_again_holds():
    with DelayQueue(10) as dq:
        dq.disable_delay()
        dq.enable_delay()
        dq.put("m")
        with pytest.raises(Empty):
            dq.get(timeout=0.1)


def test_set_delay_shortens_wait():
    with DelayQueue(10) as dq:
        dq.put("m")
        dq.set_delay(0)
        assert dq.get(timeout=2) == "m"


def test_invalid_delay():
    with pytest.raises(ValueError):
        DelayQueue(-1)
    with DelayQueue(1) as dq:
        with pytest.raises(ValueError):
            dq.set_delay(-0.5)


def test_walk_covers_both_sides():
    with DelayQueue(10) as dq:
        dq.put("waiting")
        dq.instant("ready")
        seen = []
        assert dq.walk(seen.append) == 2
        assert sorted(seen) == ["ready", "waiting"]


def test_freeze_blocks_other_threads_until_thaw():
    with DelayQueue(0) as dq:
        dq.disable_delay()
        dq.freeze()
        try:
            t = threading.Thread(target=dq.put, args=("x",))
            t.start()
            t.join(0.2)
            assert t.is_alive()
        finally:
            dq.thaw()
        t.join(2)
        assert not t.is_alive()
        assert dq.get(timeout=2) == "x"