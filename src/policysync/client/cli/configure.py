"""Endpoint configuration command for the policysync CLI.

Commands:
- configure: Save the management API endpoint and key
"""

from __future__ import annotations

import sys

import click

from policysync.client.cli.config import get_config_file, load_config, save_config


@click.command()
@click.option(
    "--endpoint",
    required=True,
    help="Management API URL (e.g., http://localhost:8000).",
)
@click.option(
    "--api-key",
    default=None,
    help="Bearer key for the API (omit if the API has auth disabled).",
)
@click.option(
    "--check/--no-check",
    default=True,
    help="Check that the endpoint answers before saving.",
)
def configure(endpoint: str, api_key: str | None, check: bool) -> None:
    """Save the management API endpoint."""
    from policysync.client.api import ManagementClient
    from policysync.core.config import ApiConfig

    api_config = ApiConfig(endpoint_url=endpoint, api_key=api_key)

    if check:
        with ManagementClient(api_config) as client:
            if not client.health_check():
                click.echo(f"Error: {api_config.endpoint_url} is not reachable.", err=True)
                sys.exit(1)

    config = load_config()
    config["endpoint_url"] = api_config.endpoint_url
    if api_key:
        config["api_key"] = api_key
    else:
        config.pop("api_key", None)
    save_config(config)

    click.echo(f"Endpoint: {api_config.endpoint_url}")
    if not api_config.is_secure:
        click.echo("Warning: endpoint does not use HTTPS.", err=True)
    click.echo(f"Saved to {get_config_file()}")
