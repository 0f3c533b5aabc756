"""Run the lookup broker in the foreground."""

from __future__ import annotations

from pathlib import Path

import click
from pydantic import ValidationError

from vipbroker.config import BrokerConfig
from vipbroker.ipc.errors import BrokerError
from vipbroker.log_setup import setup_logging


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.toml (defaults to the user config directory)",
)
@click.option(
    "--socket",
    "socket_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Override the socket path from the config",
)
@click.option(
    "--mappings",
    "mappings_path",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    default=None,
    help="TOML file of [[mapping]] tables to serve",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def serve(
    config_path: Path | None,
    socket_path: Path | None,
    mappings_path: Path | None,
    verbose: bool,
) -> None:
    """Serve lookups and notifications until interrupted.

    \b
    Examples:
        vipbroker serve
        vipbroker serve --socket /tmp/vip.sock --mappings leases.toml -v
    """
    from vipbroker.daemon import run_broker
    from vipbroker.mapping import load_mappings

    setup_logging(verbose=verbose)
    try:
        config = BrokerConfig.load(config_path)
    except (ValidationError, ValueError) as exc:
        raise click.ClickException(f"Invalid config: {exc}") from exc
    if socket_path is not None:
        config.socket.path = socket_path

    mappings = []
    if mappings_path is not None:
        try:
            mappings = load_mappings(mappings_path)
        except ValueError as exc:
            raise click.ClickException(f"Invalid mappings file: {exc}") from exc

    click.echo(f"Serving {len(mappings)} mapping(s) on {config.socket.path}", err=True)
    try:
        run_broker(config, mappings)
    except BrokerError as exc:
        raise click.ClickException(str(exc)) from exc
