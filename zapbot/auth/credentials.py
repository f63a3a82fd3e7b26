"""Session credentials schema and persistence (separate from config)."""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field


class SessionCredentials(BaseModel):
    """Opaque protocol state persisted between runs. Stored with 0o600."""
    state: dict[str, Any] = Field(default_factory=dict)
    me: str = ""  # JID of the logged-in account, once known
    updated_at: str = ""

    @property
    def registered(self) -> bool:
        return bool(self.state)


def get_credentials_path() -> Path:
    """Get the default credentials file path."""
    return Path.home() / ".zapbot" / "session" / "creds.json"


def load_credentials(creds_path: Path | None = None) -> SessionCredentials:
    """Load credentials from file or return empty credentials (fresh pairing)."""
    path = creds_path or get_credentials_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            return SessionCredentials.model_validate(data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load credentials from {path}: {e}. Starting a fresh session.")

    return SessionCredentials()


def save_credentials(creds: SessionCredentials, creds_path: Path | None = None) -> None:
    """Save credentials to file with 0o600 permissions."""
    path = creds_path or get_credentials_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    creds.updated_at = datetime.now().isoformat()
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w") as f:
        json.dump(creds.model_dump(), f, indent=2)
    os.chmod(tmp, 0o600)
    os.replace(tmp, path)


class CredentialStore:
    """Credential persistence collaborator used by the connection lifecycle.

    ``load()`` is called once per session establishment; ``save()`` once per
    ``creds.update`` event. Updates are merged into the stored state.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or get_credentials_path()
        self._current: SessionCredentials | None = None

    def load(self) -> dict[str, Any]:
        self._current = load_credentials(self.path)
        return self._current.state

    async def save(self, update: dict[str, Any]) -> None:
        creds = self._current or load_credentials(self.path)
        creds.state.update(update)
        me = update.get("me")
        if isinstance(me, dict) and me.get("id"):
            creds.me = me["id"]
        save_credentials(creds, self.path)
        self._current = creds
        logger.debug(f"Credentials saved to {self.path}")
