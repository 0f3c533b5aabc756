"""Lookup socket: wire protocol, subscriber registry, server and client."""

from __future__ import annotations

from vipbroker.ipc.client import LookupClient
from vipbroker.ipc.delivery import Direction
from vipbroker.ipc.errors import (
    BindError,
    BrokerError,
    ParseError,
    ProtocolError,
    SocketError,
    TransportError,
)
from vipbroker.ipc.protocol import CommandType, EventType, Request, Response
from vipbroker.ipc.registry import SubscriberRegistry
from vipbroker.ipc.server import LookupServer
from vipbroker.ipc.transports import ServerHandle, SocketOwner

__all__ = [
    "BindError",
    "BrokerError",
    "CommandType",
    "Direction",
    "EventType",
    "LookupClient",
    "LookupServer",
    "ParseError",
    "ProtocolError",
    "Request",
    "Response",
    "ServerHandle",
    "SocketError",
    "SocketOwner",
    "SubscriberRegistry",
    "TransportError",
]
