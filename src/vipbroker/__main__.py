"""CLI entry point for vipbroker."""

from __future__ import annotations

from vipbroker.cli.commands.root import cli

if __name__ == "__main__":
    cli()
