"""Tests for settings loading."""

import json

import pytest

from fabric_matrix.config import DEFAULTS, load_config, merge_settings, sync_limit
from fabric_matrix.errors import ConfigError


def test_merge_settings_is_deep():
    merged = merge_settings(DEFAULTS, {"constraints": {"sync": {"limit": 50}}})

    assert merged["constraints"]["sync"]["limit"] == 50
    assert DEFAULTS["constraints"]["sync"]["limit"] == 10000


def test_load_config_reads_file_and_overrides(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "homeserver": "https://matrix.example.org",
        "access_token": "syt_file",
        "user_id": "@bot:example.org",
    }))

    settings = load_config(path, autojoin=False)

    assert settings["homeserver"] == "https://matrix.example.org"
    assert settings["token"] == "syt_file"
    assert settings["handle"] == "@bot:example.org"
    assert settings["autojoin"] is False
    assert settings["coordinator"] == DEFAULTS["coordinator"]


def test_load_config_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")


def test_load_config_invalid_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    with pytest.raises(ConfigError):
        load_config(path)


def test_load_config_rejects_non_object(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2]")

    with pytest.raises(ConfigError):
        load_config(path)


def test_sync_limit():
    assert sync_limit(DEFAULTS) == 10000
    assert sync_limit({}) == 10000
