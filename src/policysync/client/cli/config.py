"""Configuration utilities for the policysync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from policysync.core.config import ApiConfig

ENDPOINT_ENV = "POLICYSYNC_ENDPOINT"
API_KEY_ENV = "POLICYSYNC_API_KEY"


def get_config_dir() -> Path:
    """Get the configuration directory for policysync.

    Returns:
        Path to ~/.policysync or equivalent.
    """
    return Path.home() / ".policysync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_api_config() -> ApiConfig | None:
    """Build the API configuration.

    Environment variables take precedence over the config file.

    Returns:
        ApiConfig, or None if no endpoint is configured.
    """
    config = load_config()
    endpoint = os.environ.get(ENDPOINT_ENV) or config.get("endpoint_url")
    if not endpoint:
        return None
    api_key = os.environ.get(API_KEY_ENV) or config.get("api_key") or None
    return ApiConfig(endpoint_url=endpoint, api_key=api_key)


def load_rules_file(path: Path) -> list[dict[str, Any]]:
    """Load activated rule records from a JSON file.

    The file holds either a list of records or an object with an
    "activated_rule" list (the shape printed by 'rule-group show').

    Raises:
        ValueError: If the file does not hold a list of records.
    """
    data = json.loads(Path(path).read_text())
    if isinstance(data, dict):
        data = data.get("activated_rule", [])
    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise ValueError(f"{path}: expected a list of activated rule records")
    return data
