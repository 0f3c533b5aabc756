"""Fixed-size binary records exchanged over the lookup socket.

Every record travels as one datagram on a ``SOCK_SEQPACKET`` connection, so
record boundaries come from the transport. Layouts use host byte order with
no padding::

    request:  int32 type | char vip[40]
    response: int32 type | char vip[40] | char ip[40] | char id[256] | char name[40]

Text fields are UTF-8, truncated to fit and always NUL-terminated.
"""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass
from enum import IntEnum

from vipbroker.ipc.errors import ParseError, ProtocolError
from vipbroker.limits import ID_FIELD_SIZE, IP_FIELD_SIZE, NAME_FIELD_SIZE, VIP_FIELD_SIZE

type IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

_REQUEST_STRUCT = struct.Struct(f"=i{VIP_FIELD_SIZE}s")
_RESPONSE_STRUCT = struct.Struct(
    f"=i{VIP_FIELD_SIZE}s{IP_FIELD_SIZE}s{ID_FIELD_SIZE}s{NAME_FIELD_SIZE}s"
)

REQUEST_SIZE = _REQUEST_STRUCT.size
RESPONSE_SIZE = _RESPONSE_STRUCT.size


class CommandType(IntEnum):
    """Commands a client sends."""

    LOOKUP = 1
    DUMP = 2
    REGISTER_UP = 3
    REGISTER_DOWN = 4
    END = 5


class EventType(IntEnum):
    """Result and notification types the server sends."""

    ENTRY = 6
    NOTIFY_UP = 7
    NOTIFY_DOWN = 8


def encode_text(value: str, size: int) -> bytes:
    """Encode *value* so it fits a NUL-terminated field of *size* bytes.

    Truncation never splits a multi-byte character.
    """
    raw = value.encode("utf-8")
    if len(raw) < size:
        return raw
    return raw[: size - 1].decode("utf-8", "ignore").encode("utf-8")


def decode_text(raw: bytes) -> str:
    """Decode a NUL-terminated field, tolerating a missing terminator."""
    return raw.split(b"\0", 1)[0].decode("utf-8", "replace")


def format_address(address: IPAddress | str) -> str:
    """Return the canonical text form used for the ``vip`` and ``ip`` fields."""
    if isinstance(address, str):
        return str(parse_address(address))
    return str(address)


def parse_address(text: str) -> IPAddress:
    """Parse numeric IPv4/IPv6 text. Host names are not resolved."""
    try:
        return ipaddress.ip_address(text)
    except ValueError as exc:
        msg = f"Invalid address: {text!r}"
        raise ParseError(msg) from exc


def _command_type(value: int) -> CommandType | int:
    try:
        return CommandType(value)
    except ValueError:
        return value


@dataclass(frozen=True, slots=True)
class Request:
    """A client command. ``vip`` is only meaningful for ``LOOKUP``."""

    type: CommandType | int
    vip: str = ""

    def pack(self) -> bytes:
        return _REQUEST_STRUCT.pack(int(self.type), encode_text(self.vip, VIP_FIELD_SIZE))

    @classmethod
    def unpack(cls, data: bytes) -> Request:
        """Decode one request record.

        The ``vip`` field is treated as terminated at its last byte no
        matter what the client sent.
        """
        if len(data) != REQUEST_SIZE:
            msg = f"Request record must be {REQUEST_SIZE} bytes, got {len(data)}"
            raise ProtocolError(msg)
        raw_type, raw_vip = _REQUEST_STRUCT.unpack(data)
        return cls(type=_command_type(raw_type), vip=decode_text(raw_vip[: VIP_FIELD_SIZE - 1]))


@dataclass(frozen=True, slots=True)
class Response:
    """A lookup result row or a pushed assignment/release notification."""

    type: EventType
    vip: str
    ip: str
    identity: str
    name: str

    def pack(self) -> bytes:
        return _RESPONSE_STRUCT.pack(
            int(self.type),
            encode_text(self.vip, VIP_FIELD_SIZE),
            encode_text(self.ip, IP_FIELD_SIZE),
            encode_text(self.identity, ID_FIELD_SIZE),
            encode_text(self.name, NAME_FIELD_SIZE),
        )

    @classmethod
    def unpack(cls, data: bytes) -> Response:
        if len(data) != RESPONSE_SIZE:
            msg = f"Response record must be {RESPONSE_SIZE} bytes, got {len(data)}"
            raise ProtocolError(msg)
        raw_type, vip, ip, identity, name = _RESPONSE_STRUCT.unpack(data)
        try:
            event_type = EventType(raw_type)
        except ValueError as exc:
            msg = f"Unknown response type {raw_type}"
            raise ProtocolError(msg) from exc
        return cls(
            type=event_type,
            vip=decode_text(vip),
            ip=decode_text(ip),
            identity=decode_text(identity),
            name=decode_text(name),
        )


__all__ = [
    "REQUEST_SIZE",
    "RESPONSE_SIZE",
    "CommandType",
    "EventType",
    "IPAddress",
    "Request",
    "Response",
    "decode_text",
    "encode_text",
    "format_address",
    "parse_address",
]
