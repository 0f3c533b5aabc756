"""Configuration loader for the VIP lookup broker."""

from __future__ import annotations

import grp
import logging
import pwd
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from vipbroker.ipc.transports import SocketOwner
from vipbroker.limits import (
    DEFAULT_MAX_WORKERS,
    LISTEN_BACKLOG,
    POLL_INTERVAL,
    SEND_TIMEOUT,
    SOCKET_MODE,
)
from vipbroker.paths import get_config_path, get_socket_path

logger = logging.getLogger(__name__)


class SocketConfig(BaseModel):
    """Where the lookup socket lives and who may use it."""

    path: Path = Field(default_factory=get_socket_path, description="Socket file path")
    mode: int = Field(default=SOCKET_MODE, description="File mode applied at creation")
    user: str | None = Field(default=None, description="Owner user name (None = unchanged)")
    group: str | None = Field(
        default=None, description="Owner group name (None = user's primary group)"
    )
    backlog: int = Field(default=LISTEN_BACKLOG, ge=1, le=4096)

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, value: object) -> object:
        """Accept octal strings such as ``"0770"`` as well as integers."""
        if isinstance(value, str):
            try:
                return int(value, 8)
            except ValueError as exc:
                msg = f"Invalid octal file mode: {value!r}"
                raise ValueError(msg) from exc
        return value

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, value: int) -> int:
        if not 0 <= value <= 0o777:
            msg = f"File mode out of range: {oct(value)}"
            raise ValueError(msg)
        return value

    def resolve_owner(self) -> SocketOwner:
        """Look up the numeric owner; unknown names are logged and skipped."""
        uid = gid = -1
        if self.user is not None:
            try:
                entry = pwd.getpwnam(self.user)
            except KeyError:
                logger.warning("Unknown socket owner user %r", self.user)
            else:
                uid, gid = entry.pw_uid, entry.pw_gid
        if self.group is not None:
            try:
                gid = grp.getgrnam(self.group).gr_gid
            except KeyError:
                logger.warning("Unknown socket owner group %r", self.group)
        return SocketOwner(uid=uid, gid=gid)


class ServerConfig(BaseModel):
    """Worker pool and timing settings."""

    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    poll_interval: float = Field(
        default=POLL_INTERVAL,
        gt=0,
        description="Seconds between shutdown checks while waiting on sockets",
    )
    send_timeout: float = Field(
        default=SEND_TIMEOUT,
        gt=0,
        description="Seconds a write to a slow client may block before it is dropped",
    )


class BrokerConfig(BaseModel):
    """Root configuration model."""

    socket: SocketConfig = Field(default_factory=SocketConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> BrokerConfig:
        """Load configuration from TOML; a missing file yields defaults."""
        path = config_path or get_config_path()
        if not path.exists():
            return cls()
        with path.open("rb") as f:
            data = tomllib.load(f)
        return cls.model_validate(data)


__all__ = ["BrokerConfig", "ServerConfig", "SocketConfig"]
