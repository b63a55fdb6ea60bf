"""Rule group commands for the policysync CLI.

Commands:
- rule-group create: Create a rule group with its activated rules
- rule-group show: Print a rule group and its activated rules
- rule-group update: Converge activated rules to a rules file
- rule-group delete: Remove activated rules, then the rule group
"""

from __future__ import annotations

from pathlib import Path

import click

from policysync.client.cli._common import cli_errors, echo_json, open_client
from policysync.client.cli.config import load_rules_file
from policysync.sync.rule_groups import RuleGroupOrchestrator

RULES_OPTION_HELP = "JSON file with activated rules (list of {rule_id, priority, action, type})."


@click.group("rule-group")
def rule_group() -> None:
    """Manage rule groups and their activated rules."""


@rule_group.command("create")
@click.argument("name")
@click.option("--metric-name", required=True, help="Metric name of the rule group.")
@click.option(
    "--rules",
    "rules_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help=RULES_OPTION_HELP,
)
def create_cmd(name: str, metric_name: str, rules_file: Path | None) -> None:
    """Create a rule group."""
    with cli_errors(), open_client() as client:
        members = load_rules_file(rules_file) if rules_file else []
        state = RuleGroupOrchestrator(client).create(name, metric_name, members=members)
        echo_json(state.to_dict())


@rule_group.command("show")
@click.argument("group_id")
def show_cmd(group_id: str) -> None:
    """Print a rule group and its activated rules."""
    with cli_errors(), open_client() as client:
        state = RuleGroupOrchestrator(client).read(group_id)
        echo_json(state.to_dict())


@rule_group.command("update")
@click.argument("group_id")
@click.option(
    "--rules",
    "rules_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help=RULES_OPTION_HELP,
)
def update_cmd(group_id: str, rules_file: Path) -> None:
    """Converge the activated rules of a rule group to a rules file.

    The live activated rules are used as the starting point.
    """
    with cli_errors(), open_client() as client:
        desired = load_rules_file(rules_file)
        orchestrator = RuleGroupOrchestrator(client)
        current = orchestrator.read(group_id)
        state = orchestrator.update(group_id, current.members, desired)
        echo_json(state.to_dict())


@rule_group.command("delete")
@click.argument("group_id")
def delete_cmd(group_id: str) -> None:
    """Delete a rule group after removing its activated rules."""
    with cli_errors(), open_client() as client:
        RuleGroupOrchestrator(client).delete(group_id)
        click.echo(f"Rule group {group_id} deleted.")
