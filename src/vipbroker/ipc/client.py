"""Client for the VIP lookup socket."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from vipbroker.ipc.delivery import Direction
from vipbroker.ipc.errors import TransportError
from vipbroker.ipc.protocol import RESPONSE_SIZE, CommandType, Request, Response
from vipbroker.ipc.transports import connect_socket, send_record
from vipbroker.limits import CLIENT_TIMEOUT

if TYPE_CHECKING:
    import socket
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

_REGISTER_COMMANDS = (
    (Direction.UP, CommandType.REGISTER_UP),
    (Direction.DOWN, CommandType.REGISTER_DOWN),
)


class LookupClient:
    """Blocking client speaking the fixed-record lookup protocol.

    The server sends no end-of-results marker, so one-shot queries are
    followed by ``END`` and read until the server closes the connection.

    Usage::

        with LookupClient("/run/vipbroker.sock") as client:
            for row in client.lookup("10.3.0.1"):
                print(row.identity)

    A client is good for one query or one subscription; open another one for
    the next.
    """

    def __init__(self, path: str, *, timeout: float | None = CLIENT_TIMEOUT) -> None:
        self._path = path
        self._timeout = timeout
        self._sock: socket.socket | None = None

    def __enter__(self) -> LookupClient:
        self.connect()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        """Open the connection. Does nothing when already connected."""
        if self._sock is not None:
            return
        self._sock = connect_socket(self._path, timeout=self._timeout)
        logger.debug("Lookup client connected: path=%s", self._path)

    def close(self) -> None:
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
            self._sock = None
            logger.debug("Lookup client disconnected")

    def send(self, request: Request) -> None:
        """Send one request record.

        Raises:
            TransportError: If not connected or the write fails.
        """
        if not send_record(self._require_socket(), request.pack()):
            msg = "Connection closed by server"
            raise TransportError(msg)

    def receive(self) -> Response | None:
        """Read one response record; ``None`` once the server closed.

        Raises:
            TransportError: On read failure or timeout.
            ProtocolError: If the record has the wrong size or type.
        """
        try:
            data = self._require_socket().recv(RESPONSE_SIZE + 1)
        except OSError as exc:
            msg = f"Receiving lookup response failed: {exc}"
            raise TransportError(msg) from exc
        if not data:
            return None
        return Response.unpack(data)

    def lookup(self, vip: str) -> list[Response]:
        """Return the rows for *vip*; empty when it is not assigned."""
        return self._query(Request(CommandType.LOOKUP, vip))

    def dump(self) -> list[Response]:
        """Return one row per currently assigned virtual IP."""
        return self._query(Request(CommandType.DUMP))

    def listen(
        self,
        direction: Direction,
        *,
        idle_timeout: float | None = None,
    ) -> Iterator[Response]:
        """Subscribe and yield notifications until the server disconnects.

        ``Direction.BOTH`` sends both register commands on the one connection.
        Waits forever between events unless *idle_timeout* is given.
        """
        commands = [
            command for wanted, command in _REGISTER_COMMANDS if wanted in direction
        ]
        if not commands:
            msg = "listen() needs at least one of Direction.UP or Direction.DOWN"
            raise ValueError(msg)
        self.connect()
        self._require_socket().settimeout(idle_timeout)
        for command in commands:
            self.send(Request(command))
        while (response := self.receive()) is not None:
            yield response

    def _query(self, request: Request) -> list[Response]:
        self.connect()
        try:
            self.send(request)
            self.send(Request(CommandType.END))
            rows: list[Response] = []
            while (response := self.receive()) is not None:
                rows.append(response)
        finally:
            self.close()
        return rows

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            msg = "Client is not connected; call connect() first"
            raise TransportError(msg)
        return self._sock


__all__ = ["LookupClient"]
