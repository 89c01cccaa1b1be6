"""Tests for the agent script."""

import json
from unittest.mock import AsyncMock, patch

from fabric_matrix.agent import build_service, main
from fabric_matrix.errors import ProtocolViolation
from fabric_matrix.store import load_credentials, save_credentials


def test_build_service_wires_handlers(settings, client):
    service = build_service(settings, client=client)

    assert service.listener_count("message") == 1
    assert service.listener_count("activity") == 1
    assert service.listener_count("ready") == 1


def test_main_rejects_bad_config(tmp_path, capsys):
    path = tmp_path / "config.json"
    path.write_text("{broken")

    assert main(["--config", str(path)]) == 1
    assert "Error:" in capsys.readouterr().err


def test_main_logout_removes_credentials(tmp_path):
    store = tmp_path / "store"
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"path": str(store)}))
    save_credentials({"path": str(store)}, "@bot:server", "DEVICE", "syt_abc")

    assert main(["--config", str(path), "--logout"]) == 0
    assert load_credentials({"path": str(store)}) is None


def test_main_exits_on_protocol_violation(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"path": str(tmp_path / "store")}))

    with patch("fabric_matrix.agent.MatrixService.run", AsyncMock(side_effect=ProtocolViolation("bad sync"))):
        assert main(["--config", str(path), "--no-connect"]) == 2


def test_main_logout_without_credentials(tmp_path, capsys):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"path": str(tmp_path / "store")}))

    assert main(["--config", str(path), "--logout"]) == 0
    assert "No stored credentials" in capsys.readouterr().out
