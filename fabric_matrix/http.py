"""Plain client-server API requests for endpoints nio does not wrap."""

import aiohttp


async def matrix_request(
    config: dict,
    method: str,
    endpoint: str,
    data: dict = None,
    params: dict = None,
    timeout: float = 30,
) -> dict:
    """Make a Matrix API request.

    Args:
        config: Settings with homeserver and (optionally) token
        method: HTTP method (GET, POST, PUT, DELETE)
        endpoint: API endpoint (e.g., /publicRooms)
        data: Optional dict to send as JSON body
        params: Optional query parameters
        timeout: Total request timeout in seconds

    Returns:
        Response dict, or dict with 'error' and 'errcode' keys on failure
    """
    url = f"{config['homeserver'].rstrip('/')}/_matrix/client/v3{endpoint}"
    headers = {"Content-Type": "application/json"}
    if config.get("token"):
        headers["Authorization"] = f"Bearer {config['token']}"

    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.request(
            method, url, json=data, params=params, headers=headers
        ) as response:
            text = await response.text()
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = None

            if response.status >= 400:
                if isinstance(body, dict):
                    return {
                        "error": body.get("error", text),
                        "errcode": body.get("errcode"),
                    }
                return {"error": text, "errcode": str(response.status)}

            return body if isinstance(body, dict) else {}
