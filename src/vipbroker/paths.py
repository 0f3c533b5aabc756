"""XDG-compliant path helpers for the broker socket and config."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir, user_runtime_dir

SOCKET_NAME = "vipbroker.sock"


def get_runtime_dir() -> Path:
    """Get the directory holding the lookup socket."""
    override = os.environ.get("VIPBROKER_RUNTIME_DIR")
    if override:
        return Path(override).resolve()
    return Path(user_runtime_dir("vipbroker"))


def get_config_dir() -> Path:
    """Get the config directory (config.toml)."""
    override = os.environ.get("VIPBROKER_CONFIG_DIR")
    if override:
        return Path(override).resolve()
    return Path(user_config_dir("vipbroker"))


def get_socket_path() -> Path:
    """Get the default path of the lookup socket."""
    return get_runtime_dir() / SOCKET_NAME


def get_config_path() -> Path:
    """Get the path to the main config file."""
    return get_config_dir() / "config.toml"
