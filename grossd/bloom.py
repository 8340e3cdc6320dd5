"""Bloom filters keyed by SHA-256 digests, filter groups and rotating rings."""

from __future__ import annotations

import hashlib
import math
import struct
from collections.abc import Iterator, Sequence

__all__ = [
    "BITARRAY_BASE_SIZE",
    "NUM_HASH",
    "sha256_words",
    "bloom_error_rate",
    "bloom_required_size",
    "optimal_size",
    "BloomFilter",
    "BloomFilterGroup",
    "BloomRingQueue",
]

BITARRAY_BASE_SIZE = 32
NUM_HASH = 8
_WORD_MASK = 0xFFFFFFFF

Digest = Sequence[int]


def sha256_words(data: str | bytes) -> tuple[int, ...]:
    """Return the SHA-256 of ``data`` as its eight 32-bit state words h0..h7."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return struct.unpack(">8I", hashlib.sha256(data).digest())


def bloom_error_rate(n: int, k: int, m: int) -> float:
    """Error-rate estimate for ``n`` items, ``k`` hashes and ``m`` bits."""
    return 1.0 - math.exp(-(float(n) * float(k)) / float(m)) * float(k)


def bloom_required_size(c: float, k: int, n: int) -> int:
    """Bits needed for ``n`` items with ``k`` hashes at false-positive rate ``c``."""
    return int((-float(k)) * float(n) / math.log(1.0 - math.pow(c, 1.0 / float(k))))


def optimal_size(n: int, c: float) -> int:
    """Return the smallest filter bit count (as a power of two) that holds ``n`` items."""
    native_size = bloom_required_size(c, NUM_HASH, n)
    for result in range(1, BITARRAY_BASE_SIZE):
        if bloom_required_size(c, NUM_HASH, 1 << result) >= native_size:
            return result
    raise ValueError(f"no filter size large enough for {n} items")


def _check_digest(digest: Digest) -> Digest:
    if len(digest) != NUM_HASH:
        raise ValueError(f"digest must have {NUM_HASH} words, got {len(digest)}")
    return digest


class BloomFilter:
    """A bloom filter of ``2 ** num_bits`` bits stored as 32-bit words."""

    def __init__(self, num_bits: int) -> None:
        if not 4 <= num_bits < BITARRAY_BASE_SIZE:
            raise ValueError(f"num_bits must be in range [4, 31], got {num_bits}")
        self.num_bits = num_bits
        self.bitsize = 1 << num_bits
        self.mask = _WORD_MASK >> (BITARRAY_BASE_SIZE - num_bits)
        self.size = max(1, self.bitsize // BITARRAY_BASE_SIZE)
        self.words = [0] * self.size

    def _positions(self, digest: Digest) -> Iterator[tuple[int, int]]:
        for value in _check_digest(digest):
            bit = value & self.mask
            yield divmod(bit, BITARRAY_BASE_SIZE)

    def insert(self, digest: Digest) -> None:
        """Set the bits selected by the eight digest words."""
        for index, intra in self._positions(digest):
            self.words[index] |= 1 << intra

    def __contains__(self, digest: Digest) -> bool:
        return all(
            (self.words[index] >> intra) & 1 for index, intra in self._positions(digest)
        )

    def merge(self, other: BloomFilter) -> BloomFilter:
        """OR ``other`` into this filter and return this filter."""
        if self.size != other.size or self.mask != other.mask:
            raise ValueError("cannot merge filters of different sizes")
        self.words = [a | b for a, b in zip(self.words, other.words)]
        return self

    def copy(self, empty: bool = False) -> BloomFilter:
        """Return a filter of the same size, empty or with the same bits."""
        result = BloomFilter(self.num_bits)
        if not empty:
            result.words = list(self.words)
        return result

    def clear(self) -> None:
        """Unset every bit."""
        self.words = [0] * self.size

    def render(self) -> str:
        """Return the filter as a string of 0/1, each word from bit 31 down to 0."""
        return "".join(format(word & _WORD_MASK, "032b") for word in self.words)


class BloomFilterGroup:
    """A fixed number of equally sized bloom filters."""

    def __init__(self, num: int, num_bits: int) -> None:
        if num <= 0:
            raise ValueError("a filter group needs at least one member")
        self.filters = [BloomFilter(num_bits) for _ in range(num)]

    @property
    def group_size(self) -> int:
        return len(self.filters)

    def __len__(self) -> int:
        return len(self.filters)

    def __getitem__(self, index: int) -> BloomFilter:
        return self.filters[index]

    def __iter__(self) -> Iterator[BloomFilter]:
        return iter(self.filters)

    def insert(self, member: int, digest: Digest) -> None:
        """Insert ``digest`` into the filter at position ``member``."""
        if not 0 <= member < len(self.filters):
            raise IndexError(f"no group member {member}")
        self.filters[member].insert(digest)


class BloomRingQueue:
    """A ring of filters with an aggregate; rotating drops the oldest filter."""

    def __init__(self, num: int, num_bits: int) -> None:
        self.group = BloomFilterGroup(num, num_bits)
        self.current_index = 0
        self.aggregate = BloomFilter(num_bits)

    def insert(self, digest: Digest) -> None:
        """Insert into the aggregate and the current ring member."""
        self.aggregate.insert(digest)
        self.group.insert(self.current_index, digest)

    def __contains__(self, digest: Digest) -> bool:
        return digest in self.aggregate

    def next_index(self) -> int:
        """Index of the member that follows the current one."""
        if self.current_index + 1 >= self.group.group_size:
            return 0
        return self.current_index + 1

    def advance(self) -> BloomRingQueue:
        """Move to the next member without clearing anything."""
        self.current_index = self.next_index()
        return self

    def rotate(self) -> BloomRingQueue:
        """Clear the next member, rebuild the aggregate and advance."""
        fresh = self.aggregate.copy(empty=True)
        self.group[self.next_index()].clear()
        for member in self.group:
            fresh.merge(member)
        self.advance()
        self.aggregate.words = fresh.words
        return self

    def clear(self) -> None:
        """Clear the aggregate and every member and reset to the first member."""
        self.aggregate.clear()
        for member in self.group:
            member.clear()
        self.current_index = 0

    def insert_absolute(self, words: Sequence[int], index: int, buf_index: int) -> None:
        """OR a block of raw words into member ``buf_index`` at block ``index``."""
        if not 0 <= buf_index < self.group.group_size:
            raise IndexError(f"no ring member {buf_index}")
        target = self.group[buf_index]
        size = min(len(words), target.size)
        for i in range(size):
            position = index * size + i
            if not 0 <= position < target.size:
                raise IndexError(f"word {position} outside filter of {target.size} words")
            target.words[position] |= words[i] & _WORD_MASK

    def sync_aggregate(self) -> None:
        """Rebuild the aggregate from all ring members."""
        self.aggregate.clear()
        for member in self.group:
            self.aggregate.merge(member)