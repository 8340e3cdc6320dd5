"""Verdict logic of the DNS-based, HELO, reverse-DNS and random checks."""

from __future__ import annotations

import enum
import random
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from grossd.addrutils import INET6_ADDRSTRLEN

__all__ = [
    "DEFAULT_TOLERANCE",
    "Judgment",
    "CheckResult",
    "Dnsbl",
    "increment_tolerance_counters",
    "dnsbl_query_name",
    "rhsbl_domain",
    "valid_dn",
    "random_result",
    "helo_result",
    "reverse_result",
]

DEFAULT_TOLERANCE = 5
RANDOM_BLOCK_REASON = "This is just a random block."


class Judgment(enum.Enum):
    """The verdict a check hands back."""

    UNDEFINED = enum.auto()
    PASS = enum.auto()
    BLOCK = enum.auto()
    SUSPICIOUS = enum.auto()


@dataclass
class CheckResult:
    """Outcome of one check for one request."""

    checkname: str
    judgment: Judgment = Judgment.UNDEFINED
    weight: int = 0
    reason: str | None = None
    wait: bool = False


class Dnsbl:
    """A DNS list zone with a weight and a timeout tolerance counter.

    Each timeout lowers the counter; the list is only queried while the
    counter is positive, and it is raised again periodically up to its limit.
    """

    def __init__(self, name: str, weight: int = 1, tolerance: int = DEFAULT_TOLERANCE) -> None:
        if not name:
            raise ValueError("a DNS list needs a zone name")
        self.name = name
        self.weight = weight
        self.tolerance = tolerance
        self.counter = tolerance
        self._lock = threading.Lock()

    def has_clearance(self) -> bool:
        """Whether the list may be queried."""
        with self._lock:
            return self.counter > 0

    def tolerate(self) -> None:
        """Raise the counter by one, up to the tolerance limit."""
        with self._lock:
            if self.counter < self.tolerance:
                self.counter += 1

    def record_timeout(self) -> None:
        """Lower the counter after a query timed out."""
        with self._lock:
            self.counter -= 1

    def match_result(self) -> CheckResult:
        """The result reported when the queried name is listed."""
        return CheckResult(
            checkname=self.name,
            judgment=Judgment.SUSPICIOUS,
            weight=self.weight,
            wait=True,
        )

    def __repr__(self) -> str:
        return f"Dnsbl({self.name!r}, weight={self.weight}, counter={self.counter})"


def increment_tolerance_counters(dnsbls: Iterable[Dnsbl]) -> None:
    """Call ``tolerate`` on every list."""
    for dnsbl in dnsbls:
        dnsbl.tolerate()


def dnsbl_query_name(qstr: str, zone: str) -> str:
    """Build the fully qualified name to look up ``qstr`` in ``zone``."""
    if not zone:
        raise ValueError("empty zone name")
    suffix = "" if zone.endswith(".") else "."
    return f"{qstr}.{zone}{suffix}"


def rhsbl_domain(sender: str) -> str | None:
    """Return the domain after the last ``@`` of the sender, or None.

    An ``@`` in the first position does not count as a domain separator.
    """
    at = sender.rfind("@")
    if at <= 0:
        return None
    return sender[at + 1:at + 1 + INET6_ADDRSTRLEN]


def _is_alnum(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ("0" <= ch <= "9")


def valid_dn(dn: str) -> bool:
    """Check that ``dn`` is a syntactically valid domain name.

    Labels start with an ASCII letter or digit, contain letters, digits and
    hyphens, and do not end with a hyphen; there is no trailing dot.
    """
    pos, end = 0, len(dn)
    while pos < end:
        if not _is_alnum(dn[pos]):
            return False
        while pos < end and dn[pos] != ".":
            ch = dn[pos]
            nxt = dn[pos + 1] if pos + 1 < end else ""
            if not (_is_alnum(ch) or (ch == "-" and nxt not in (".", ""))):
                return False
            pos += 1
        if pos < end:  # at a dot
            if pos + 1 == end:
                return False
            pos += 1
    return True


def random_result(r: int | None = None) -> CheckResult:
    """A debugging verdict picked from ``r`` (a random number when None)."""
    if r is None:
        r = random.randrange(2**31)
    result = CheckResult(checkname="random")
    if r % 7 == 0:
        result.judgment = Judgment.PASS
    elif r % 5 == 0:
        result.judgment = Judgment.BLOCK
        result.reason = RANDOM_BLOCK_REASON
    elif r % 3 == 0:
        result.judgment = Judgment.SUSPICIOUS
        result.weight = 1
    return result


def helo_result(
    helo: str,
    client_address: str,
    resolved_address: str | None,
    ptr_name: str | None,
) -> CheckResult:
    """Score the HELO name against the client.

    An invalid HELO name weighs two. Otherwise one is added when the name
    does not resolve to the client address, and one when the client's PTR
    name is missing or differs from the HELO name.
    """
    result = CheckResult(checkname="helo")
    if not valid_dn(helo):
        result.weight += 2
    else:
        if resolved_address is None or resolved_address != client_address:
            result.weight += 1
        if ptr_name is None or ptr_name != helo:
            result.weight += 1
    if result.weight > 0:
        result.judgment = Judgment.SUSPICIOUS
    return result


def reverse_result(
    client_address: str,
    ptr_name: str | None,
    canonical_address: str | None,
) -> CheckResult:
    """Score the client's reverse DNS.

    Suspicious when there is no PTR record, the PTR name does not resolve,
    or it resolves to another address than the client's.
    """
    result = CheckResult(checkname="reverse")
    if ptr_name is None or canonical_address is None or canonical_address != client_address:
        result.judgment = Judgment.SUSPICIOUS
        result.weight = 1
    return result