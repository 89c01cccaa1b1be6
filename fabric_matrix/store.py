"""Session storage under the "path" setting.

The directory holds credentials.json (the session the agent resumes on
restart) and, with encryption on, the nio key store.
"""

import json
import os
from pathlib import Path

CREDENTIALS_FILE = "credentials.json"
CREDENTIAL_FIELDS = ("user_id", "device_id", "access_token")


def get_store_path(settings: dict, create: bool = True) -> Path:
    """Return the store directory, creating it unless create is False."""
    store_path = Path(settings.get("path") or "./stores/matrix").expanduser()
    if create:
        store_path.mkdir(parents=True, exist_ok=True)
    return store_path


def get_credentials_path(settings: dict) -> Path:
    return get_store_path(settings, create=False) / CREDENTIALS_FILE


def load_credentials(settings: dict) -> dict | None:
    """Load the stored session.

    Returns:
        Dict with user_id, device_id, access_token, or None if nothing
        usable is stored
    """
    creds_path = get_credentials_path(settings)
    if not creds_path.is_file():
        return None
    with open(creds_path) as f:
        creds = json.load(f)
    if not isinstance(creds, dict) or not creds.get("user_id") or not creds.get("access_token"):
        return None
    return {field: creds.get(field) for field in CREDENTIAL_FIELDS}


def save_credentials(settings: dict, user_id: str, device_id: str, access_token: str) -> Path:
    """Store a session, readable by the owner only.

    Raises:
        OSError if the store directory cannot be created or written
    """
    creds_path = get_store_path(settings) / CREDENTIALS_FILE
    fd = os.open(creds_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        json.dump(dict(zip(CREDENTIAL_FIELDS, (user_id, device_id, access_token))), f, indent=2)
    # O_CREAT leaves the mode of an existing file alone
    os.chmod(creds_path, 0o600)
    return creds_path


def delete_credentials(settings: dict) -> bool:
    """Forget the stored session. Returns True if one was removed."""
    creds_path = get_credentials_path(settings)
    if not creds_path.exists():
        return False
    creds_path.unlink()
    return True
