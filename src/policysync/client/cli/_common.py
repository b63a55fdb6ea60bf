"""Helpers shared by CLI commands."""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import click
import httpx

from policysync.client.api import ManagementClient
from policysync.client.cli.config import get_api_config
from policysync.sync.errors import ConvergenceError


def open_client() -> ManagementClient:
    """Create a client from the configured endpoint, or exit."""
    config = get_api_config()
    if config is None:
        click.echo(
            "Error: No endpoint configured. Run 'policysync configure --endpoint URL' "
            "or set POLICYSYNC_ENDPOINT.",
            err=True,
        )
        sys.exit(1)
    return ManagementClient(config)


@contextmanager
def cli_errors() -> Iterator[None]:
    """Print convergence and connection errors, then exit with status 1."""
    try:
        yield
    except (ConvergenceError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except httpx.RequestError as e:
        click.echo(f"Error: Cannot reach endpoint: {e}", err=True)
        sys.exit(1)


def echo_json(data: dict[str, Any]) -> None:
    """Print a state dictionary as indented JSON."""
    click.echo(json.dumps(data, indent=2))
