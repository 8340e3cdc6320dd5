"""Datagram protocol used by the messaging-server mapping call.

Covers building query strings, framing datagrams, parsing the mapping
argument and turning a server reply into a mapping result.
"""

from __future__ import annotations

import enum
import ipaddress
import struct
from dataclasses import dataclass

__all__ = [
    "MAXLINELEN",
    "MTASTRLEN",
    "SBUFLEN",
    "STATUS_TRUST",
    "STATUS_MATCH",
    "STATUS_GREYLIST",
    "STATUS_BLOCK",
    "MessageType",
    "SjsmsMessage",
    "MapRequest",
    "MapArgumentError",
    "build_query_string",
    "encode_message",
    "decode_message",
    "parse_map_argument",
    "map_response",
]

MAXLINELEN = 1024
MTASTRLEN = 252
SBUFLEN = 256

# answers for servers that reply with a bare status letter
STATUS_TRUST = "$Y"
STATUS_MATCH = "$Y"
STATUS_GREYLIST = "$X4.4.3|$NPlease$ try$ again$ later"
STATUS_BLOCK = "$N"

_DEFAULT_ANSWERS = {
    "G": STATUS_GREYLIST,
    "T": STATUS_TRUST,
    "M": STATUS_MATCH,
    "B": STATUS_BLOCK,
}

_HEADER = struct.Struct(">HH")
_MAP_SEPARATOR = ","


class MessageType(enum.IntEnum):
    """Kinds of datagrams a client sends."""

    QUERY = 1
    LOGMSG = 2
    QUERY_V2 = 3


class MapArgumentError(ValueError):
    """Raised when a mapping argument cannot be parsed."""


@dataclass(frozen=True)
class SjsmsMessage:
    """A framed datagram: a 16-bit type and its payload."""

    msgtype: int
    payload: bytes

    def encode(self) -> bytes:
        """Return the datagram bytes."""
        return encode_message(self.msgtype, self.payload)

    @property
    def text(self) -> str:
        """The payload as text, up to the first NUL byte."""
        raw = self.payload[: MAXLINELEN - 1].split(b"\0", 1)[0]
        return raw.decode("utf-8", errors="replace")


def build_query_string(
    sender: str, recipient: str, client_address: str, helo: str | None = None
) -> str:
    """Build the ``name=value`` query block ending in an empty line."""
    helo_part = f"\nhelo_name={helo}" if helo is not None else ""
    query = (
        f"sender={sender}\nrecipient={recipient}\n"
        f"client_address={client_address}{helo_part}\n\n"
    )
    return query[: MAXLINELEN - 2]


def encode_message(msgtype: int, payload: str | bytes) -> bytes:
    """Frame ``payload`` with its type and length in network byte order."""
    if not 0 <= msgtype <= 0xFFFF:
        raise ValueError(f"message type out of range: {msgtype}")
    data = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
    data = data[:MAXLINELEN]
    return _HEADER.pack(msgtype, len(data)) + data


def decode_message(data: bytes) -> SjsmsMessage:
    """Parse a datagram produced by ``encode_message``."""
    if len(data) < _HEADER.size:
        raise ValueError("datagram shorter than its header")
    msgtype, msglen = _HEADER.unpack_from(data)
    payload = data[_HEADER.size : _HEADER.size + min(msglen, MAXLINELEN)]
    return SjsmsMessage(msgtype, bytes(payload))


@dataclass(frozen=True)
class MapRequest:
    """The parts of a mapping argument."""

    primary: str
    secondary: str | None
    port: int
    client_address: str
    recipient: str
    sender: str
    helo: str = ""

    @property
    def servers(self) -> tuple[str, ...]:
        """Servers to try, in order."""
        if self.secondary is None:
            return (self.primary,)
        return (self.primary, self.secondary)

    @property
    def query_string(self) -> str:
        """The query block to send to the server."""
        return build_query_string(
            self.sender, self.recipient, self.client_address, self.helo or None
        )


def _is_ipv4(text: str) -> bool:
    try:
        ipaddress.IPv4Address(text)
    except ValueError:
        return False
    return True


def _atoi(text: str) -> int:
    text = text.lstrip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if not ch.isdigit():
            break
        digits += ch
    return sign * int(digits) if digits else 0


def parse_map_argument(arg: str) -> MapRequest:
    """Parse ``primary,secondary,port,client,recipient,sender[,helo]``.

    The primary server must be an IPv4 address; an invalid secondary means
    there is only one server. An empty sender becomes ``<>``.
    """
    fields = arg.split(_MAP_SEPARATOR)
    if len(fields) < 6:
        raise MapArgumentError(f"ERROR: request was: {arg}")
    if len(fields) > 7:
        raise MapArgumentError(f"ERROR: request was: {arg}")
    primary, secondary, port, caddr, recipient, sender = fields[:6]
    if not _is_ipv4(primary):
        raise MapArgumentError(f"ERROR: request was: {arg}")
    helo = fields[6] if len(fields) == 7 else ""
    limit = SBUFLEN - 1
    return MapRequest(
        primary=primary,
        secondary=secondary if _is_ipv4(secondary) else None,
        port=_atoi(port),
        client_address=caddr[:limit],
        recipient=recipient[:limit],
        sender=(sender or "<>")[:limit],
        helo=helo[:limit],
    )


def map_response(reply: str | bytes) -> str | None:
    """Turn a server reply into the mapping result, or None if it has none.

    A bare status letter gets the default answer for that status; otherwise
    the text from the third character on is returned.
    """
    if isinstance(reply, bytes):
        reply = reply.split(b"\0", 1)[0].decode("utf-8", errors="replace")
    else:
        reply = reply.split("\0", 1)[0]
    if not reply or reply[0] not in _DEFAULT_ANSWERS:
        return None
    result = _DEFAULT_ANSWERS[reply[0]] if len(reply) == 1 else reply[2:]
    return result[:MTASTRLEN]