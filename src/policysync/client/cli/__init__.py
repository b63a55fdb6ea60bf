"""Command-line interface for policysync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Save the management API endpoint
- rule-group: Create, show, update and delete rule groups
- policy: Create, show, update, delete and import organization policies
- server: Run the reference management API
"""

from __future__ import annotations

import logging

import click

from policysync.client.cli.config import (
    get_api_config,
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from policysync.client.cli.configure import configure
from policysync.client.cli.policy import policy
from policysync.client.cli.rule_group import rule_group
from policysync.client.cli.server import server

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@click.group()
@click.version_option(package_name="policysync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """policysync - Converge rule groups and organization policies."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )


cli.add_command(configure)
cli.add_command(rule_group)
cli.add_command(policy)
cli.add_command(server)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_api_config",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
]
