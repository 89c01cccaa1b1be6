"""Room directory and account lookups over the plain HTTP API."""

import urllib.parse

from fabric_matrix.http import matrix_request


async def resolve_room_alias(config: dict, alias: str, timeout: float = 30) -> str:
    """Resolve a room alias to room ID.

    Args:
        config: Settings with homeserver and token
        alias: Room alias (e.g., #room:server)

    Returns:
        Room ID (e.g., !abc123:server)

    Raises:
        ValueError if alias cannot be resolved
    """
    encoded_alias = urllib.parse.quote(alias, safe='')
    result = await matrix_request(config, "GET", f"/directory/room/{encoded_alias}", timeout=timeout)
    if "room_id" in result:
        return result["room_id"]
    raise ValueError(f"Could not resolve room alias: {result.get('error', 'Unknown error')}")


async def check_username_available(config: dict, username: str, timeout: float = 30) -> bool:
    """Ask the homeserver whether a username can be registered.

    Any error (taken, invalid, server refused) counts as unavailable.
    """
    result = await matrix_request(
        config, "GET", "/register/available",
        params={"username": username}, timeout=timeout,
    )
    if "error" in result:
        return False
    return bool(result.get("available", False))


async def list_public_rooms(config: dict, limit: int = None, timeout: float = 30) -> list:
    """List rooms published in the homeserver's room directory.

    Returns:
        List of dicts with room_id, name, alias and members keys
    """
    params = {"limit": str(limit)} if limit else None
    result = await matrix_request(config, "GET", "/publicRooms", params=params, timeout=timeout)
    if "error" in result:
        raise ValueError(f"Could not list public rooms: {result['error']}")

    rooms = []
    for chunk in result.get("chunk", []):
        rooms.append({
            "room_id": chunk.get("room_id"),
            "name": chunk.get("name") or chunk.get("canonical_alias") or chunk.get("room_id"),
            "alias": chunk.get("canonical_alias"),
            "members": chunk.get("num_joined_members", 0),
        })
    return rooms
