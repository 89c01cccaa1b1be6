"""Configuration loading for the Matrix service.

Settings are plain dicts. Defaults are deep-merged with an optional JSON
config file and then with explicit overrides.
"""

import copy
import json
from pathlib import Path

from fabric_matrix.errors import ConfigError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "matrix" / "config.json"

DEFAULTS = {
    "alias": "FABRIC",
    "autojoin": True,
    "handle": "@fabric:fabric.pub",
    "name": "@fabric/matrix",
    "path": "./stores/matrix",
    "homeserver": "https://fabric.pub",
    "coordinator": "!pPjIUAOkwmgXeICrzT:fabric.pub",
    "constraints": {
        "sync": {
            "limit": 10000,
        },
    },
    "token": None,
    "connect": True,
    "username": None,
    "password": None,
    "seed": None,
    "device_id": None,
    "device_name": "Fabric Matrix Agent",
    "encryption": False,
    "publish": False,
    "timeout": 30,
}


def merge_settings(base: dict, overrides: dict) -> dict:
    """Deep-merge overrides into a copy of base.

    Nested dicts are merged key by key; any other value replaces the base
    value. None overrides are kept, so a caller can clear a default token.
    """
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: str | Path | None = None, **overrides) -> dict:
    """Load service settings.

    Args:
        config_path: JSON config file. Defaults to ~/.config/matrix/config.json,
            which may be missing; an explicit path must exist.
        **overrides: Values applied on top of the file contents

    Returns:
        Complete settings dict

    Raises:
        ConfigError if an explicit file is missing, or the file is not a
        JSON object
    """
    explicit = config_path is not None
    config_path = Path(config_path) if explicit else DEFAULT_CONFIG_PATH
    settings = copy.deepcopy(DEFAULTS)

    if config_path.exists():
        try:
            with open(config_path) as f:
                file_settings = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
        if not isinstance(file_settings, dict):
            raise ConfigError(f"Config root must be an object: {config_path}")
        # Other Matrix tools name these access_token and user_id
        if "access_token" in file_settings and "token" not in file_settings:
            file_settings["token"] = file_settings.pop("access_token")
        if "user_id" in file_settings and "handle" not in file_settings:
            file_settings["handle"] = file_settings.pop("user_id")
        settings = merge_settings(settings, file_settings)
    elif explicit:
        raise ConfigError(f"Config file not found: {config_path}")

    return merge_settings(settings, overrides)


def sync_limit(settings: dict) -> int:
    """Return the initial sync timeline limit from constraints.sync.limit."""
    return int(settings.get("constraints", {}).get("sync", {}).get("limit", 10000))
