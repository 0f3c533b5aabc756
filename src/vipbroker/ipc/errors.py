"""Error taxonomy for the lookup socket."""

from __future__ import annotations


class BrokerError(Exception):
    """Base for broker errors with a machine-readable code."""

    code: str = "BROKER_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class SocketError(BrokerError):
    """Raised when the listening socket cannot be created or set up."""

    code = "SOCKET_ERROR"


class BindError(SocketError):
    """Raised when the listening socket cannot be bound to its path."""

    code = "BIND_ERROR"

    def __init__(self, path: str, cause: OSError) -> None:
        super().__init__(f"Binding lookup socket {path} failed: {cause.strerror or cause}")
        self.path = path
        self.__cause__ = cause


class ProtocolError(BrokerError):
    """Raised for malformed or wrongly sized records."""

    code = "PROTOCOL_ERROR"


class TransportError(BrokerError):
    """Raised when reading from or writing to a connection fails mid-session."""

    code = "TRANSPORT_ERROR"


class ParseError(BrokerError, ValueError):
    """Raised when address text cannot be parsed."""

    code = "PARSE_ERROR"


__all__ = [
    "BindError",
    "BrokerError",
    "ParseError",
    "ProtocolError",
    "SocketError",
    "TransportError",
]
