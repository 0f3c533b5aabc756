"""Thread-safe in-memory mapping source.

Holds the current VIP assignments and fans assignment/release events out to
registered listeners. Listeners run synchronously on the thread that fires the
event, one after another, so every listener sees events in firing order.
"""

from __future__ import annotations

import logging
import threading
import tomllib
from typing import TYPE_CHECKING

from vipbroker.events import VipMapping
from vipbroker.ipc.protocol import parse_address

if TYPE_CHECKING:
    from pathlib import Path

    from vipbroker.events import MappingListener
    from vipbroker.ipc.protocol import IPAddress

logger = logging.getLogger(__name__)


class InMemoryMappingSource:
    """Single-process mapping store with synchronous listener fan-out.

    Usage::

        source = InMemoryMappingSource()
        source.add_listener(on_event)
        source.assign(VipMapping(vip, peer, "CN=carol", "home"))
        source.release(vip)
        source.close()
    """

    def __init__(self) -> None:
        self._mappings: dict[IPAddress, VipMapping] = {}
        self._listeners: list[MappingListener] = []
        self._lock = threading.Lock()
        # Held while listeners run; remove_listener waits on it.
        self._fire_lock = threading.RLock()
        self._closed = False

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def mappings(self) -> list[VipMapping]:
        """Return a snapshot of all current mappings."""
        with self._lock:
            return list(self._mappings.values())

    def lookup(self, vip: IPAddress | None, listener: MappingListener) -> None:
        """Invoke *listener* once per current mapping matching *vip*."""
        with self._lock:
            if vip is None:
                matches = list(self._mappings.values())
            else:
                found = self._mappings.get(vip)
                matches = [found] if found is not None else []
        for mapping in matches:
            if not listener(True, mapping):
                break

    def add_listener(self, listener: MappingListener) -> None:
        with self._fire_lock, self._lock:
            if self._closed:
                logger.debug("Ignoring listener registration on closed mapping source")
                return
            self._listeners.append(listener)

    def remove_listener(self, listener: MappingListener) -> None:
        with self._fire_lock, self._lock:
            self._listeners = [known for known in self._listeners if known != listener]

    def assign(self, mapping: VipMapping) -> None:
        """Record *mapping* and notify listeners.

        Reassigning a VIP that is still held releases the previous holder first.
        """
        with self._fire_lock:
            with self._lock:
                previous = self._mappings.get(mapping.vip)
                self._mappings[mapping.vip] = mapping
            if previous is not None and previous != mapping:
                self._fire(False, previous)
            self._fire(True, mapping)

    def release(self, vip: IPAddress) -> VipMapping | None:
        """Forget the mapping for *vip* and notify listeners."""
        with self._fire_lock:
            with self._lock:
                mapping = self._mappings.pop(vip, None)
            if mapping is not None:
                self._fire(False, mapping)
            return mapping

    def close(self) -> None:
        """Drop every listener; no listener is invoked after this returns."""
        with self._fire_lock, self._lock:
            self._closed = True
            self._listeners.clear()

    def _fire(self, up: bool, mapping: VipMapping) -> None:
        with self._lock:
            listeners = list(self._listeners)
        dropped: list[MappingListener] = []
        for listener in listeners:
            try:
                keep = listener(up, mapping)
            except Exception:
                logger.exception("Mapping listener failed; dropping it")
                keep = False
            if not keep:
                dropped.append(listener)
        if dropped:
            with self._lock:
                self._listeners = [
                    known for known in self._listeners if all(known != d for d in dropped)
                ]


def load_mappings(path: Path) -> list[VipMapping]:
    """Read static mappings from a TOML file of ``[[mapping]]`` tables.

    Each table needs ``vip`` and ``peer``; ``identity`` and ``name`` default
    to the peer address and an empty string.

    Raises:
        ParseError: If an address is malformed.
        ValueError: If a required key is missing.
    """
    with path.open("rb") as f:
        data = tomllib.load(f)
    mappings: list[VipMapping] = []
    for index, table in enumerate(data.get("mapping", [])):
        try:
            vip, peer = table["vip"], table["peer"]
        except KeyError as exc:
            msg = f"mapping #{index + 1} in {path} is missing {exc.args[0]!r}"
            raise ValueError(msg) from exc
        mappings.append(
            VipMapping(
                vip=parse_address(vip),
                peer=parse_address(peer),
                identity=table.get("identity", peer),
                name=table.get("name", ""),
            )
        )
    return mappings


__all__ = ["InMemoryMappingSource", "load_mappings"]
