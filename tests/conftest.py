"""Pytest fixtures for vipbroker tests."""

from __future__ import annotations

import os
import shutil
import socket
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

from tests.helpers.sockets import HAS_SEQPACKET, requires_seqpacket
from vipbroker.ipc.server import LookupServer
from vipbroker.mapping import InMemoryMappingSource

if TYPE_CHECKING:
    from collections.abc import Generator


settings.register_profile(
    "ci",
    max_examples=200,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=50,
    deadline=500,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip socket tests on platforms without SOCK_SEQPACKET."""
    del config
    if HAS_SEQPACKET:
        return
    for item in items:
        if item.get_closest_marker("smoke"):
            item.add_marker(requires_seqpacket)


@pytest.fixture
def short_tmp() -> Generator[Path]:
    """Create a short temp directory for Unix socket paths (104-byte limit on macOS)."""
    d = tempfile.mkdtemp(prefix="vb-", dir="/tmp")
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def socket_path(short_tmp: Path) -> str:
    return str(short_tmp / "vip.sock")


@pytest.fixture
def source() -> Generator[InMemoryMappingSource]:
    mapping_source = InMemoryMappingSource()
    yield mapping_source
    mapping_source.close()


@pytest.fixture
def server(source: InMemoryMappingSource, socket_path: str) -> Generator[LookupServer]:
    """A running lookup server with a fast shutdown poll."""
    lookup_server = LookupServer(source, socket_path, poll_interval=0.05, send_timeout=1.0)
    lookup_server.start()
    yield lookup_server
    lookup_server.stop()


@pytest.fixture
def seqpacket_pair() -> Generator[tuple[socket.socket, socket.socket]]:
    """A connected (server side, client side) SEQPACKET pair."""
    if not HAS_SEQPACKET:
        pytest.skip("Unix SOCK_SEQPACKET sockets unavailable")
    server_side, client_side = socket.socketpair(socket.AF_UNIX, socket.SOCK_SEQPACKET)
    server_side.settimeout(1.0)
    client_side.settimeout(1.0)
    yield server_side, client_side
    server_side.close()
    client_side.close()
