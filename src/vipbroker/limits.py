"""Record sizes, timeouts and socket limits - no circular dependencies."""

from __future__ import annotations

import os

VIP_FIELD_SIZE = 40
IP_FIELD_SIZE = 40
ID_FIELD_SIZE = 256
NAME_FIELD_SIZE = 40

LISTEN_BACKLOG = 10
SOCKET_MODE = 0o770
"""Owner and group may connect; everyone else is denied."""

POLL_INTERVAL = 0.2
SEND_TIMEOUT = 5.0
CLIENT_TIMEOUT = 10.0
SHUTDOWN_TIMEOUT = 5.0

DEFAULT_MAX_WORKERS = min(32, (os.cpu_count() or 1) + 4)
