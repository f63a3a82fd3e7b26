"""Time-expiring cache of group metadata."""

import time
from typing import Any, Callable

DEFAULT_GROUP_TTL = 5 * 60  # seconds


class GroupMetadataCache:
    """Read-mostly TTL cache keyed by group JID.

    Entries are refreshed on ``groups.update`` and read by the transport when
    sending to groups. Stale reads within the TTL are acceptable.
    """

    def __init__(self, ttl: float = DEFAULT_GROUP_TTL, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, dict[str, Any]]] = {}

    def get(self, jid: str) -> dict[str, Any] | None:
        entry = self._entries.get(jid)
        if entry is None:
            return None
        expires_at, metadata = entry
        if self._clock() >= expires_at:
            del self._entries[jid]
            return None
        return metadata

    def set(self, jid: str, metadata: dict[str, Any]) -> None:
        self._entries[jid] = (self._clock() + self.ttl, metadata)

    def delete(self, jid: str) -> None:
        self._entries.pop(jid, None)

    def prune(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [jid for jid, (expires_at, _) in self._entries.items() if now >= expires_at]
        for jid in expired:
            del self._entries[jid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
