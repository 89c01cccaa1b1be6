"""
Pytest configuration and fixtures for fabric_matrix tests.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

from fabric_matrix.service import MatrixService

HANDLE = "@fabric:test.server"
COORDINATOR = "!coordinator:test.server"


@pytest.fixture
def client():
    """A stand-in for nio.AsyncClient with successful responses."""
    client = Mock()
    client.access_token = "syt_test"
    client.rooms = {}
    client.room_send = AsyncMock(
        return_value=SimpleNamespace(event_id="$sent", room_id=COORDINATOR)
    )
    client.room_redact = AsyncMock(
        return_value=SimpleNamespace(event_id="$redaction", room_id=COORDINATOR)
    )
    client.room_put_state = AsyncMock(return_value=SimpleNamespace(event_id="$state"))
    client.join = AsyncMock(return_value=SimpleNamespace(room_id=COORDINATOR))
    client.login = AsyncMock(
        return_value=SimpleNamespace(user_id=HANDLE, device_id="DEVICE", access_token="syt_new")
    )
    client.register = AsyncMock(
        return_value=SimpleNamespace(user_id="@new:test.server", device_id="DEV2", access_token="syt_reg")
    )
    client.get_displayname = AsyncMock(return_value=SimpleNamespace(displayname="Fabric"))
    client.set_displayname = AsyncMock(return_value=SimpleNamespace())
    client.get_profile = AsyncMock(
        return_value=SimpleNamespace(displayname="Fabric", avatar_url="mxc://test/avatar")
    )
    client.joined_rooms = AsyncMock(return_value=SimpleNamespace(rooms=[COORDINATOR]))
    client.sync_forever = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def settings(tmp_path):
    """Settings that never touch the network."""
    return {
        "handle": HANDLE,
        "coordinator": COORDINATOR,
        "homeserver": "https://test.server",
        "path": str(tmp_path / "store"),
        "connect": False,
        "timeout": 5,
    }


@pytest.fixture
def service(settings, client):
    return MatrixService(settings, client=client)


@pytest.fixture
def connected_service(settings, client):
    settings["connect"] = True
    return MatrixService(settings, client=client)


def record_events(service) -> dict:
    """Collect every local event emitted by a service, by name."""
    events = {}

    def listen(name):
        events[name] = []
        service.on(name, lambda *args: events[name].append(args))

    for name in ("log", "error", "message", "warning", "activity", "ready", "prepared", "actor"):
        listen(name)
    return events


@pytest.fixture
def recorder(service):
    return record_events(service)
