"""Local query and notification broker for virtual IP assignments."""

from __future__ import annotations

from vipbroker.events import MappingListener, MappingSource, VipMapping
from vipbroker.mapping import InMemoryMappingSource

__all__ = ["InMemoryMappingSource", "MappingListener", "MappingSource", "VipMapping"]
