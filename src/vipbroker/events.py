"""Virtual IP mapping model and the mapping source contract."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from vipbroker.ipc.protocol import IPAddress


@dataclass(frozen=True, slots=True)
class VipMapping:
    """One virtual IP assigned to a connected peer."""

    vip: IPAddress
    peer: IPAddress
    identity: object
    name: str


MappingListener = Callable[[bool, VipMapping], bool]
"""Called with ``(up, mapping)``; returning ``False`` drops the registration."""


class MappingSource(Protocol):
    """Tracks current VIP assignments and fires assignment/release events."""

    def lookup(self, vip: IPAddress | None, listener: MappingListener) -> None:
        """Invoke *listener* once per known mapping, optionally filtered to *vip*.

        Stops early when the listener returns ``False``.
        """
        ...

    def add_listener(self, listener: MappingListener) -> None:
        """Invoke *listener* for every future event until it returns ``False``."""
        ...

    def remove_listener(self, listener: MappingListener) -> None:
        """Drop *listener*; returns only once no call into it is in flight."""
        ...


__all__ = ["MappingListener", "MappingSource", "VipMapping"]
