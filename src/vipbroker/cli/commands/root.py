"""Root CLI command registration."""

from __future__ import annotations

from importlib.metadata import version

import click

from .query import dump, listen, lookup
from .serve import serve

__version__ = version("vipbroker")


@click.group()
@click.version_option(__version__, prog_name="vipbroker")
def cli() -> None:
    """Query and watch virtual IP assignments over a local socket."""


cli.add_command(serve)
cli.add_command(lookup)
cli.add_command(dump)
cli.add_command(listen)
