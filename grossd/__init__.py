"""Greylisting building blocks: Bloom filter rings, message queues, counters, configuration, protocol helpers and check verdicts."""

__version__ = "1.0.0"

__all__ = [
    "addrutils",
    "bloom",
    "bloommgr",
    "checks",
    "conf",
    "counter",
    "msgqueue",
    "sjsms",
]