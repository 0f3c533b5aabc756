"""Registry of live notification subscriptions."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from vipbroker.ipc.delivery import Subscription

if TYPE_CHECKING:
    import socket

    from vipbroker.events import MappingSource
    from vipbroker.ipc.delivery import Direction

logger = logging.getLogger(__name__)


class SubscriberRegistry:
    """Owns subscribed client sockets until they fail or the server stops.

    The lock only guards the entry list. Writes to clients and calls into the
    mapping source always happen outside it.
    """

    def __init__(self, source: MappingSource) -> None:
        self._source = source
        self._entries: list[Subscription] = []
        self._lock = threading.Lock()
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def entries(self) -> list[Subscription]:
        """Return a snapshot of the current subscriptions."""
        with self._lock:
            return list(self._entries)

    def subscribe(self, sock: socket.socket, direction: Direction) -> Subscription | None:
        """Take ownership of *sock* and start pushing *direction* events to it.

        Returns ``None`` when the registry has already been shut down; the
        socket is closed in that case too.
        """
        entry = Subscription(sock, direction, self)
        with self._lock:
            if not self._closed:
                self._entries.append(entry)
                accepted = True
            else:
                accepted = False
        if not accepted:
            logger.debug("Rejecting subscription after registry shutdown")
            entry.destroy()
            return None
        self._source.add_listener(entry.deliver)
        logger.debug("Client subscribed: direction=%s", direction.name)
        return entry

    def unsubscribe(self, entry: Subscription) -> bool:
        """Detach *entry*; returns whether this call removed it.

        Only the caller that gets ``True`` may destroy the entry.
        """
        with self._lock:
            for index, known in enumerate(self._entries):
                if known is entry:
                    del self._entries[index]
                    break
            else:
                return False
        logger.debug("Client unsubscribed: direction=%s", entry.direction.name)
        return True

    def shutdown(self) -> None:
        """Destroy every remaining subscription.

        Each listener is removed from the mapping source before its socket is
        closed, so no event can reach an entry after it is destroyed.
        """
        with self._lock:
            self._closed = True
            entries, self._entries = self._entries, []
        for entry in entries:
            try:
                self._source.remove_listener(entry.deliver)
            except Exception:
                logger.exception("Removing lookup listener from mapping source failed")
            entry.destroy()
        if entries:
            logger.info("Closed %d lookup subscription(s)", len(entries))


__all__ = ["SubscriberRegistry"]
