"""Session credential persistence."""

from zapbot.auth.credentials import (
    CredentialStore,
    SessionCredentials,
    get_credentials_path,
    load_credentials,
    save_credentials,
)

__all__ = [
    "CredentialStore",
    "SessionCredentials",
    "get_credentials_path",
    "load_credentials",
    "save_credentials",
]
