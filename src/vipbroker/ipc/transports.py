"""Unix ``SOCK_SEQPACKET`` socket helpers for the lookup server and client.

The records have no length prefix, so the transport must keep message
boundaries; plain stream sockets are not supported.
"""

from __future__ import annotations

import contextlib
import logging
import os
import selectors
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING

from vipbroker.ipc.errors import BindError, SocketError, TransportError
from vipbroker.limits import LISTEN_BACKLOG, SOCKET_MODE

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable

_SEND_FLAGS = getattr(socket, "MSG_NOSIGNAL", 0)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerHandle:
    """Handle returned after the lookup server starts listening.

    Attributes:
        address: Filesystem path of the listening socket.
        close: Stops the server and releases every socket it owns.
    """

    address: str
    close: Callable[[], None]


@dataclass(frozen=True, slots=True)
class SocketOwner:
    """Numeric owner for the socket file; ``-1`` leaves a field unchanged."""

    uid: int = -1
    gid: int = -1

    @property
    def is_set(self) -> bool:
        return self.uid != -1 or self.gid != -1


def _seqpacket_type() -> int:
    kind = getattr(socket, "SOCK_SEQPACKET", None)
    if kind is None or not hasattr(socket, "AF_UNIX"):
        msg = "Unix SOCK_SEQPACKET sockets are not supported on this platform"
        raise SocketError(msg)
    return kind


def remove_socket_file(path: str) -> None:
    """Remove a socket file, ignoring absence."""
    with contextlib.suppress(FileNotFoundError):
        os.unlink(path)


def open_listening_socket(
    path: str,
    *,
    mode: int = SOCKET_MODE,
    owner: SocketOwner | None = None,
    backlog: int = LISTEN_BACKLOG,
) -> socket.socket:
    """Create, bind and listen on the lookup socket at *path*.

    A stale socket file is removed first. The file is created with *mode*
    and then handed to *owner*; a failed ownership change is only logged.

    Raises:
        SocketError: If the socket cannot be created or cannot listen.
        BindError: If binding to *path* fails.
    """
    try:
        sock = socket.socket(socket.AF_UNIX, _seqpacket_type())
    except OSError as exc:
        msg = f"Creating lookup socket failed: {exc}"
        raise SocketError(msg) from exc

    try:
        remove_socket_file(path)
    except OSError as exc:
        logger.debug("Removing stale lookup socket %s failed: %s", path, exc)
    parent = os.path.dirname(path)
    if parent:
        try:
            os.makedirs(parent, exist_ok=True)
        except OSError as exc:
            sock.close()
            raise BindError(path, exc) from exc

    old_umask = os.umask(~mode & 0o777)
    try:
        sock.bind(path)
    except OSError as exc:
        sock.close()
        raise BindError(path, exc) from exc
    finally:
        os.umask(old_umask)

    if owner is not None and owner.is_set:
        try:
            os.chown(path, owner.uid, owner.gid)
        except OSError as exc:
            logger.warning("Changing lookup socket ownership failed: %s", exc)

    try:
        sock.listen(backlog)
    except OSError as exc:
        sock.close()
        remove_socket_file(path)
        msg = f"Listening on lookup socket failed: {exc}"
        raise SocketError(msg) from exc

    logger.info("Lookup socket listening on %s", path)
    return sock


def connect_socket(path: str, *, timeout: float | None = None) -> socket.socket:
    """Open a client connection to the lookup socket at *path*."""
    try:
        sock = socket.socket(socket.AF_UNIX, _seqpacket_type())
    except OSError as exc:
        msg = f"Creating client socket failed: {exc}"
        raise TransportError(msg) from exc
    sock.settimeout(timeout)
    try:
        sock.connect(path)
    except OSError as exc:
        sock.close()
        msg = f"Connecting to lookup socket {path} failed: {exc}"
        raise TransportError(msg) from exc
    return sock


def wait_readable(
    sock: socket.socket,
    stop_event: threading.Event,
    poll_interval: float,
    *,
    abandoned: Callable[[], bool] | None = None,
) -> bool:
    """Block until *sock* is readable.

    Returns ``False`` once *stop_event* is set or *abandoned* reports true;
    both are checked every *poll_interval* seconds.
    """
    with selectors.DefaultSelector() as selector:
        selector.register(sock, selectors.EVENT_READ)
        while not stop_event.is_set():
            if abandoned is not None and abandoned():
                return False
            if selector.select(poll_interval):
                return True
    return False


def send_record(sock: socket.socket, payload: bytes) -> bool:
    """Send one record in a single datagram.

    Returns:
        ``True`` when the whole record was sent, ``False`` when the peer has
        gone away.

    Raises:
        TransportError: On any other failure, including a short write.
    """
    try:
        sent = sock.send(payload, _SEND_FLAGS)
    except (BrokenPipeError, ConnectionResetError):
        return False
    except OSError as exc:
        raise TransportError(str(exc)) from exc
    if sent == len(payload):
        return True
    if sent == 0:
        return False
    msg = f"Short write: {sent} of {len(payload)} bytes"
    raise TransportError(msg)


__all__ = [
    "ServerHandle",
    "SocketOwner",
    "connect_socket",
    "open_listening_socket",
    "remove_socket_file",
    "send_record",
    "wait_readable",
]
