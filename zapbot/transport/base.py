"""Abstract transport interfaces.

The protocol itself lives outside zapbot; a transport only has to establish
sessions and expose the handful of primitives the bot needs.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

BatchCallback = Callable[[dict[str, Any]], Awaitable[None]]


class Session(ABC):
    """A live, authenticated connection to the messaging network."""

    @abstractmethod
    def on_events(self, callback: BatchCallback) -> None:
        """Register the callback that receives every event batch."""

    @abstractmethod
    async def send_message(self, jid: str, content: dict[str, Any], **options: Any) -> dict[str, Any]:
        """Send ``content`` (e.g. ``{"text": "..."}`` or ``{"sticker": b"..."}``) to ``jid``."""

    @abstractmethod
    async def group_metadata(self, jid: str) -> dict[str, Any]:
        """Fetch metadata (subject, participants) for a group."""

    @abstractmethod
    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        """Mark messages as read."""

    @abstractmethod
    async def download_media(self, message: dict[str, Any], media_type: str) -> bytes:
        """Download the decrypted media of a message node (e.g. an ``imageMessage``)."""

    @abstractmethod
    async def close(self) -> None:
        """Tear the session down."""


class Transport(ABC):
    """Factory for sessions."""

    @abstractmethod
    async def establish_session(self, credentials: dict[str, Any]) -> Session:
        """Build a new session from persisted credentials. Raises TransportError."""
