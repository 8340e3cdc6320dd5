"""IP address helpers: DNSBL-style reversal and greylisting network masks."""

from __future__ import annotations

import ipaddress

INET_ADDRSTRLEN = 16
INET6_ADDRSTRLEN = 46

__all__ = ["reverse_inet_addr", "grey_mask"]


def _parse_v4(ipstr: str) -> bytes | None:
    """Return the four address bytes, or None if ipstr is not a dotted quad."""
    if len(ipstr) >= INET_ADDRSTRLEN:
        return None
    try:
        return ipaddress.IPv4Address(ipstr).packed
    except ValueError:
        return None


def _parse_v6(ipstr: str) -> bytes | None:
    """Return the sixteen address bytes, or None if ipstr is not an IPv6 address."""
    if len(ipstr) >= INET6_ADDRSTRLEN or "%" in ipstr:
        return None
    try:
        return ipaddress.IPv6Address(ipstr).packed
    except ValueError:
        return None


def _format_v6(packed: bytes) -> str:
    """Format sixteen address bytes the way the C library's inet_ntop does."""
    words = [int.from_bytes(packed[i:i + 2], "big") for i in range(0, 16, 2)]

    best_base, best_len = -1, 0
    run_base, run_len = -1, 0
    for i, word in enumerate(words):
        if word == 0:
            if run_base < 0:
                run_base, run_len = i, 1
            else:
                run_len += 1
            if run_len > best_len:
                best_base, best_len = run_base, run_len
        else:
            run_base, run_len = -1, 0
    if best_len < 2:
        best_base, best_len = -1, 0

    parts: list[str] = []
    for i, word in enumerate(words):
        if best_base >= 0 and best_base <= i < best_base + best_len:
            if i == best_base:
                parts.append(":")
            continue
        if i != 0:
            parts.append(":")
        if (
            i == 6
            and best_base == 0
            and (best_len == 6 or (best_len == 5 and words[5] == 0xFFFF))
        ):
            parts.append(str(ipaddress.IPv4Address(packed[12:16])))
            break
        parts.append(format(word, "x"))
    if best_base >= 0 and best_base + best_len == 8:
        parts.append(":")
    return "".join(parts)


def reverse_inet_addr(ipstr: str) -> str:
    """Reverse an address for a DNSBL query, e.g. ``1.2.3.4`` -> ``4.3.2.1``.

    IPv6 addresses are expanded to reversed nibbles. Raises ValueError for
    anything that is not a valid address.
    """
    if ":" in ipstr:
        packed = _parse_v6(ipstr)
        if packed is None:
            raise ValueError(f"not a valid ip address: {ipstr}")
        return ".".join(
            f"{byte & 0xF:x}.{byte >> 4:x}" for byte in reversed(packed)
        )
    packed = _parse_v4(ipstr)
    if packed is None:
        raise ValueError(f"not a valid ip address: {ipstr}")
    return ".".join(str(byte) for byte in reversed(packed))


def _mask_v4(packed: bytes, mask: int) -> str:
    if not 0 <= mask <= 32:
        raise ValueError(f"invalid IPv4 mask: {mask}")
    netmask = 0xFFFFFFFF ^ ((1 << (32 - mask)) - 1)
    net = int.from_bytes(packed, "big") & netmask
    return str(ipaddress.IPv4Address(net))


def _mask_v6(packed: bytes, mask6: int) -> str:
    if not 0 <= mask6 <= 128:
        raise ValueError(f"invalid IPv6 mask: {mask6}")
    full, partial = mask6 >> 3, mask6 & 0x7
    masked = bytearray(packed)
    for i in range(full, len(masked)):
        if i == full:
            masked[i] &= 0xFF ^ ((1 << (8 - partial)) - 1)
        else:
            masked[i] = 0
    return _format_v6(bytes(masked))


def grey_mask(ipstr: str, mask: int, mask6: int) -> str:
    """Apply the greylisting network mask to an address.

    ``mask`` is the IPv4 prefix length and ``mask6`` the IPv6 one. Returns
    the network address as a string; raises ValueError for an invalid address.
    """
    packed = _parse_v4(ipstr)
    if packed is not None:
        return _mask_v4(packed, mask)
    packed = _parse_v6(ipstr)
    if packed is not None:
        return _mask_v6(packed, mask6)
    raise ValueError(f"invalid ipaddress: {ipstr}")