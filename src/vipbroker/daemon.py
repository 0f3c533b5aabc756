"""Foreground broker process: lookup server over an in-memory mapping source."""

from __future__ import annotations

import logging
import signal
import threading
from typing import TYPE_CHECKING

from vipbroker.ipc.server import LookupServer
from vipbroker.mapping import InMemoryMappingSource

if TYPE_CHECKING:
    from collections.abc import Iterable

    from vipbroker.config import BrokerConfig
    from vipbroker.events import VipMapping

logger = logging.getLogger(__name__)


def build_server(config: BrokerConfig, source: InMemoryMappingSource) -> LookupServer:
    """Create a lookup server from *config* without starting it."""
    return LookupServer(
        source,
        str(config.socket.path),
        mode=config.socket.mode,
        owner=config.socket.resolve_owner(),
        backlog=config.socket.backlog,
        max_workers=config.server.max_workers,
        poll_interval=config.server.poll_interval,
        send_timeout=config.server.send_timeout,
    )


def run_broker(
    config: BrokerConfig,
    mappings: Iterable[VipMapping] = (),
    *,
    stop_event: threading.Event | None = None,
) -> None:
    """Serve until *stop_event* is set, SIGTERM arrives or Ctrl-C is pressed.

    Raises:
        SocketError: If the lookup socket cannot be opened.
    """
    stop = stop_event or threading.Event()
    source = InMemoryMappingSource()
    for mapping in mappings:
        source.assign(mapping)

    server = build_server(config, source)
    server.start()
    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGTERM, lambda _signum, _frame: stop.set())
    try:
        while not stop.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        logger.info("Broker interrupted")
    finally:
        # Listeners leave the source before their sockets close.
        server.stop()
        source.close()
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)
