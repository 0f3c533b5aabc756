"""Lookup server: accepts clients, answers queries and hands off subscriptions."""

from __future__ import annotations

import contextlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from vipbroker.ipc.delivery import Direction, QueryContext
from vipbroker.ipc.errors import ParseError, ProtocolError
from vipbroker.ipc.protocol import REQUEST_SIZE, CommandType, Request, parse_address
from vipbroker.ipc.registry import SubscriberRegistry
from vipbroker.ipc.transports import (
    ServerHandle,
    open_listening_socket,
    remove_socket_file,
    wait_readable,
)
from vipbroker.limits import (
    DEFAULT_MAX_WORKERS,
    LISTEN_BACKLOG,
    POLL_INTERVAL,
    SEND_TIMEOUT,
    SHUTDOWN_TIMEOUT,
    SOCKET_MODE,
)

if TYPE_CHECKING:
    import socket
    from collections.abc import Callable

    from vipbroker.events import MappingSource
    from vipbroker.ipc.delivery import Subscription
    from vipbroker.ipc.protocol import IPAddress
    from vipbroker.ipc.transports import SocketOwner

logger = logging.getLogger(__name__)

_SUBSCRIBE_COMMANDS = {
    CommandType.REGISTER_UP: Direction.UP,
    CommandType.REGISTER_DOWN: Direction.DOWN,
}


class LookupServer:
    """Threaded server for the VIP lookup socket.

    One thread accepts connections; each connection is served by a worker
    from a thread pool. Queries are answered on the worker. A subscribe
    command moves the connection into the subscriber registry, after which
    only the mapping source's event thread writes to it. The worker keeps
    reading so a second REGISTER can widen the subscription to both
    directions, and holds on to its pool slot until the client goes away.

    Usage::

        server = LookupServer(source, "/run/vipbroker.sock")
        server.start()
        ...
        server.stop()

    Or as a context manager::

        with LookupServer(source, path) as server:
            ...
    """

    def __init__(
        self,
        source: MappingSource,
        path: str,
        *,
        mode: int = SOCKET_MODE,
        owner: SocketOwner | None = None,
        backlog: int = LISTEN_BACKLOG,
        max_workers: int = DEFAULT_MAX_WORKERS,
        poll_interval: float = POLL_INTERVAL,
        send_timeout: float = SEND_TIMEOUT,
    ) -> None:
        self._source = source
        self._path = path
        self._mode = mode
        self._owner = owner
        self._backlog = backlog
        self._max_workers = max_workers
        self._poll_interval = poll_interval
        self._send_timeout = send_timeout
        self._registry = SubscriberRegistry(source)
        self._stop_event = threading.Event()
        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._handle: ServerHandle | None = None
        self._state_lock = threading.Lock()

    def __enter__(self) -> LookupServer:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    @property
    def path(self) -> str:
        return self._path

    @property
    def registry(self) -> SubscriberRegistry:
        return self._registry

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    def start(self) -> ServerHandle:
        """Open the socket and start accepting connections.

        Raises:
            SocketError: If the socket cannot be created, bound or listened on.
        """
        with self._state_lock:
            if self._handle is not None:
                msg = "Server is already running"
                raise RuntimeError(msg)
            if self._stop_event.is_set():
                msg = "Server has been stopped and cannot be restarted"
                raise RuntimeError(msg)

            self._listener = open_listening_socket(
                self._path,
                mode=self._mode,
                owner=self._owner,
                backlog=self._backlog,
            )
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="vipbroker-conn",
            )
            self._accept_thread = threading.Thread(
                target=self._accept_loop,
                name="vipbroker-accept",
                daemon=True,
            )
            self._accept_thread.start()
            self._handle = ServerHandle(address=self._path, close=self.stop)
        logger.info("Lookup server started: path=%s", self._path)
        return self._handle

    def stop(self) -> None:
        """Stop accepting, end open connections and close all subscriptions."""
        with self._state_lock:
            if self._handle is None:
                return
            self._handle = None
            self._stop_event.set()

            if self._accept_thread is not None:
                self._accept_thread.join(timeout=SHUTDOWN_TIMEOUT)
                self._accept_thread = None
            if self._listener is not None:
                with contextlib.suppress(OSError):
                    self._listener.close()
                self._listener = None
                remove_socket_file(self._path)
            if self._executor is not None:
                self._executor.shutdown(wait=True, cancel_futures=True)
                self._executor = None
            self._registry.shutdown()
        logger.info("Lookup server stopped")

    def query(self, sock: socket.socket, vip: IPAddress | None) -> None:
        """Stream one ENTRY record per mapping matching *vip* (all if ``None``)."""
        context = QueryContext(sock)
        self._source.lookup(vip, context.deliver)

    # ------------------------------------------------------------------
    # Accept loop
    # ------------------------------------------------------------------

    def _accept_loop(self) -> None:
        listener = self._listener
        if listener is None:
            return
        while wait_readable(listener, self._stop_event, self._poll_interval):
            try:
                conn, _ = listener.accept()
            except OSError as exc:
                if self._stop_event.is_set():
                    break
                logger.warning("Accepting lookup connection failed: %s", exc)
                continue
            conn.settimeout(self._send_timeout)
            executor = self._executor
            try:
                if executor is None:
                    msg = "worker pool is gone"
                    raise RuntimeError(msg)
                executor.submit(self._serve_connection, conn)
            except RuntimeError:
                logger.debug("Dropping connection accepted during shutdown")
                conn.close()
                break
        logger.debug("Accept loop finished")

    # ------------------------------------------------------------------
    # Connection dispatch
    # ------------------------------------------------------------------

    def _serve_connection(self, conn: socket.socket) -> None:
        """Run the command loop for one client; close it unless it subscribed."""
        subscription: Subscription | None = None
        try:
            subscription = self._dispatch(conn)
            if subscription is not None:
                self._follow_subscription(conn, subscription)
        except ProtocolError as exc:
            logger.warning("Receiving lookup request failed: %s", exc)
        except OSError as exc:
            logger.warning("Lookup connection failed: %s", exc)
        except Exception:
            logger.exception("Unexpected error while serving lookup connection")
        finally:
            if subscription is None:
                with contextlib.suppress(OSError):
                    conn.close()

    def _dispatch(self, conn: socket.socket) -> Subscription | None:
        """Process requests until the client ends or subscribes.

        Returns the subscription the connection was handed to, if any.
        """
        while True:
            request = self._receive(conn)
            if request is None:
                return None

            direction = _SUBSCRIBE_COMMANDS.get(request.type)
            if direction is not None:
                return self._registry.subscribe(conn, direction)

            match request.type:
                case CommandType.LOOKUP:
                    try:
                        vip = parse_address(request.vip)
                    except ParseError:
                        logger.debug("Ignoring lookup for unparsable address %r", request.vip)
                        continue
                    self.query(conn, vip)
                case CommandType.DUMP:
                    self.query(conn, None)
                case CommandType.END:
                    return None
                case _:
                    logger.warning("Received unknown lookup command %r", request.type)
                    return None

    def _follow_subscription(self, conn: socket.socket, subscription: Subscription) -> None:
        """Keep reading a subscribed connection so a second REGISTER widens it.

        The registry owns the socket now; this only reads and never closes it.
        Stops on EOF, on any other command, or once the registry destroyed the
        subscription.
        """
        while not subscription.destroyed:
            try:
                request = self._receive(conn, abandoned=lambda: subscription.destroyed)
            except (OSError, ValueError) as exc:
                # Closed by the registry while we were waiting.
                logger.debug("Stopped reading subscribed connection: %s", exc)
                return
            if request is None:
                return
            direction = _SUBSCRIBE_COMMANDS.get(request.type)
            if direction is None:
                logger.debug("Ignoring %r on subscribed connection", request.type)
                return
            if not subscription.widen(direction):
                return

    def _receive(
        self,
        conn: socket.socket,
        *,
        abandoned: Callable[[], bool] | None = None,
    ) -> Request | None:
        """Read one request; ``None`` on clean disconnect or shutdown."""
        if not wait_readable(conn, self._stop_event, self._poll_interval, abandoned=abandoned):
            return None
        data = conn.recv(REQUEST_SIZE + 1)
        if not data:
            return None
        return Request.unpack(data)


__all__ = ["LookupServer"]
