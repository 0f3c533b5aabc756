"""Mapping listeners that push response records to lookup clients."""

from __future__ import annotations

import contextlib
import logging
import threading
from enum import Flag, auto
from typing import TYPE_CHECKING

from vipbroker.ipc.errors import TransportError
from vipbroker.ipc.protocol import EventType, Response, format_address
from vipbroker.ipc.transports import send_record

if TYPE_CHECKING:
    import socket

    from vipbroker.events import VipMapping
    from vipbroker.ipc.registry import SubscriberRegistry

logger = logging.getLogger(__name__)


class Direction(Flag):
    """Which events a subscription wants."""

    UP = auto()
    DOWN = auto()
    BOTH = UP | DOWN

    @classmethod
    def of(cls, up: bool) -> Direction:
        return cls.UP if up else cls.DOWN


def build_response(event_type: EventType, mapping: VipMapping) -> Response:
    """Format *mapping* into a response record of *event_type*."""
    return Response(
        type=event_type,
        vip=format_address(mapping.vip),
        ip=format_address(mapping.peer),
        identity=str(mapping.identity),
        name=mapping.name,
    )


class _DeliveryTarget:
    """A client socket that mapping records are written to."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self._lock = threading.Lock()
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def accepts(self, up: bool) -> bool:
        return True

    def response_type(self, up: bool) -> EventType:
        return EventType.ENTRY

    def deliver(self, up: bool, mapping: VipMapping) -> bool:
        """Write one record for *mapping*; ``False`` tells the source to stop."""
        if not self.accepts(up):
            return True
        try:
            payload = build_response(self.response_type(up), mapping).pack()
        except Exception:
            logger.exception("Formatting lookup response for %s failed", mapping.vip)
            self._teardown()
            return False
        with self._lock:
            if self._destroyed:
                return False
            try:
                if send_record(self.sock, payload):
                    return True
                logger.debug("Lookup client disconnected")
            except TransportError as exc:
                logger.warning("Sending lookup response failed: %s", exc)
        self._teardown()
        return False

    def destroy(self) -> None:
        """Close the socket. Safe to call more than once."""
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
            with contextlib.suppress(OSError):
                self.sock.close()

    def _teardown(self) -> None:
        """Hook run after a failed write; subclasses release what they own."""


class QueryContext(_DeliveryTarget):
    """Transient target for one LOOKUP or DUMP.

    Not registered anywhere, and the socket stays with the connection that
    issued the query, so a failed write only stops the lookup.
    """

    def __repr__(self) -> str:
        return f"QueryContext(fd={self.sock.fileno()})"


class Subscription(_DeliveryTarget):
    """Registry-owned socket receiving assignment/release notifications."""

    def __init__(
        self,
        sock: socket.socket,
        direction: Direction,
        registry: SubscriberRegistry,
    ) -> None:
        super().__init__(sock)
        self.direction = direction
        self.registry = registry

    def __repr__(self) -> str:
        return f"Subscription(direction={self.direction.name}, destroyed={self.destroyed})"

    def accepts(self, up: bool) -> bool:
        return Direction.of(up) in self.direction

    def response_type(self, up: bool) -> EventType:
        return EventType.NOTIFY_UP if up else EventType.NOTIFY_DOWN

    def widen(self, direction: Direction) -> bool:
        """Also deliver *direction* events; ``False`` once the entry is destroyed."""
        with self._lock:
            if self._destroyed:
                return False
            self.direction |= direction
        logger.debug("Subscription widened: direction=%s", self.direction.name)
        return True

    def _teardown(self) -> None:
        if self.registry.unsubscribe(self):
            self.destroy()


__all__ = ["Direction", "QueryContext", "Subscription", "build_response"]
