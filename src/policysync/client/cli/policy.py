"""Organization policy commands for the policysync CLI.

Commands:
- policy create: Create a policy from a JSON document
- policy show: Print a policy
- policy update: Change name, description and/or content
- policy delete: Delete a policy (or only forget it with --skip-destroy)
- policy import: Check that a policy can be adopted
"""

from __future__ import annotations

from pathlib import Path

import click

from policysync.client.cli._common import cli_errors, echo_json, open_client
from policysync.core.types import PolicyType
from policysync.sync.policies import PolicyManager

POLICY_TYPES = [t.value for t in PolicyType]


@click.group("policy")
def policy() -> None:
    """Manage organization policies."""


@policy.command("create")
@click.argument("name")
@click.option(
    "--content",
    "content_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="JSON policy document.",
)
@click.option(
    "--type",
    "policy_type",
    type=click.Choice(POLICY_TYPES),
    default=PolicyType.SERVICE_CONTROL_POLICY.value,
    show_default=True,
    help="Policy type.",
)
@click.option("--description", default="", help="Policy description.")
def create_cmd(name: str, content_file: Path, policy_type: str, description: str) -> None:
    """Create an organization policy."""
    with cli_errors(), open_client() as client:
        state = PolicyManager(client).create(
            name,
            content_file.read_text(),
            policy_type=policy_type,
            description=description,
        )
        echo_json(state.to_dict())


@policy.command("show")
@click.argument("policy_id")
def show_cmd(policy_id: str) -> None:
    """Print an organization policy."""
    with cli_errors(), open_client() as client:
        echo_json(PolicyManager(client).read(policy_id).to_dict())


@policy.command("update")
@click.argument("policy_id")
@click.option("--name", default=None, help="New name.")
@click.option("--description", default=None, help="New description.")
@click.option(
    "--content",
    "content_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="New JSON policy document.",
)
def update_cmd(
    policy_id: str,
    name: str | None,
    description: str | None,
    content_file: Path | None,
) -> None:
    """Update the given fields of an organization policy."""
    with cli_errors(), open_client() as client:
        state = PolicyManager(client).update(
            policy_id,
            name=name,
            description=description,
            content=content_file.read_text() if content_file else None,
        )
        echo_json(state.to_dict())


@policy.command("delete")
@click.argument("policy_id")
@click.option(
    "--skip-destroy",
    is_flag=True,
    help="Keep the remote policy; only stop managing it.",
)
def delete_cmd(policy_id: str, skip_destroy: bool) -> None:
    """Delete an organization policy."""
    with cli_errors(), open_client() as client:
        PolicyManager(client).delete(policy_id, skip_destroy=skip_destroy)
        if skip_destroy:
            click.echo(f"Policy {policy_id} retained.")
        else:
            click.echo(f"Policy {policy_id} deleted.")


@policy.command("import")
@click.argument("policy_id")
def import_cmd(policy_id: str) -> None:
    """Adopt an existing customer-managed policy."""
    with cli_errors(), open_client() as client:
        echo_json(PolicyManager(client).import_policy(policy_id).to_dict())
