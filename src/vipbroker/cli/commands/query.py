"""Client commands: one-shot lookups and live notifications."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from vipbroker.ipc.client import LookupClient
from vipbroker.ipc.delivery import Direction
from vipbroker.ipc.errors import BrokerError
from vipbroker.ipc.protocol import EventType
from vipbroker.paths import get_socket_path

if TYPE_CHECKING:
    from collections.abc import Iterable

    from vipbroker.ipc.protocol import Response

_DIRECTIONS = {"up": Direction.UP, "down": Direction.DOWN, "both": Direction.BOTH}

_EVENT_LABELS = {
    EventType.ENTRY: "",
    EventType.NOTIFY_UP: "up",
    EventType.NOTIFY_DOWN: "down",
}

socket_option = click.option(
    "--socket",
    "socket_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Socket path (defaults to the runtime directory)",
)
raw_option = click.option("--raw", is_flag=True, help="Print tab-separated lines")


def _client(socket_path: Path | None) -> LookupClient:
    return LookupClient(str(socket_path or get_socket_path()))


def _raw_line(row: Response) -> str:
    fields = [row.vip, row.ip, row.identity, row.name]
    label = _EVENT_LABELS[row.type]
    if label:
        fields.insert(0, label)
    return "\t".join(fields)


def _print_rows(rows: Iterable[Response], *, raw: bool) -> None:
    if raw:
        for row in rows:
            click.echo(_raw_line(row))
        return
    table = Table("Virtual IP", "Peer", "Identity", "Connection")
    for row in rows:
        table.add_row(row.vip, row.ip, row.identity, row.name)
    Console().print(table)


@click.command()
@click.argument("vips", nargs=-1, required=True)
@socket_option
@raw_option
def lookup(vips: tuple[str, ...], socket_path: Path | None, raw: bool) -> None:
    """Show who holds each of VIPS."""
    rows: list[Response] = []
    try:
        for vip in vips:
            found = _client(socket_path).lookup(vip)
            if not found:
                click.echo(f"{vip}: not found", err=True)
            rows.extend(found)
    except BrokerError as exc:
        raise click.ClickException(str(exc)) from exc
    if rows:
        _print_rows(rows, raw=raw)


@click.command()
@socket_option
@raw_option
def dump(socket_path: Path | None, raw: bool) -> None:
    """List every assigned virtual IP."""
    try:
        rows = _client(socket_path).dump()
    except BrokerError as exc:
        raise click.ClickException(str(exc)) from exc
    _print_rows(rows, raw=raw)


@click.command()
@click.option("--up", "direction", flag_value="up", default=True, help="Watch assignments")
@click.option("--down", "direction", flag_value="down", help="Watch releases")
@click.option("--both", "direction", flag_value="both", help="Watch assignments and releases")
@socket_option
def listen(direction: str, socket_path: Path | None) -> None:
    """Print assignment or release notifications as they happen.

    \b
    Examples:
        vipbroker listen --up
        vipbroker listen --down --socket /tmp/vip.sock
        vipbroker listen --both
    """
    client = _client(socket_path)
    try:
        for row in client.listen(_DIRECTIONS[direction]):
            click.echo(_raw_line(row))
    except BrokerError as exc:
        raise click.ClickException(str(exc)) from exc
    except KeyboardInterrupt:
        pass
    finally:
        client.close()
