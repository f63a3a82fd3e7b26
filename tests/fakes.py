"""In-memory transport fakes used across the test suite."""

from typing import Any
from unittest.mock import AsyncMock

from zapbot.transport.base import Session, Transport


class FakeSession(Session):
    """In-memory Session that records calls."""

    def __init__(self):
        self.callback = None
        self.sent: list[tuple[str, dict, dict]] = []
        self.send_error: Exception | None = None
        self.groups: dict[str, dict] = {}
        self.media: bytes = b"media-bytes"
        self.read_messages = AsyncMock()
        self.closed = False

    def on_events(self, callback) -> None:
        self.callback = callback

    async def emit(self, batch: dict[str, Any]):
        return await self.callback(batch)

    async def send_message(self, jid, content, **options):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((jid, content, options))
        return {"key": {"id": str(len(self.sent))}}

    async def read_messages(self, keys):
        return None

    async def group_metadata(self, jid):
        return self.groups.get(jid, {"id": jid, "subject": "Group", "participants": []})

    async def download_media(self, message, media_type):
        return self.media

    async def close(self) -> None:
        self.closed = True


class FakeTransport(Transport):
    """Returns queued sessions or raises queued errors, in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    async def establish_session(self, credentials):
        self.calls.append(credentials)
        outcome = self.outcomes.pop(0) if self.outcomes else FakeSession()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome
