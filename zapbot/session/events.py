"""Session event types emitted by the transport."""

from dataclasses import dataclass, field
from typing import Any, Union

from loguru import logger

CONNECTION_UPDATE = "connection.update"
CREDENTIALS_UPDATE = "creds.update"
MESSAGES_UPSERT = "messages.upsert"
GROUPS_UPDATE = "groups.update"
PARTICIPANTS_UPDATE = "group-participants.update"

GROUP_SUFFIX = "@g.us"


def parse_timestamp(value: Any) -> int:
    """Seconds since the epoch from an int, a numeric string or a Long ``{low, high}`` object.

    Anything else yields 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    if isinstance(value, dict):
        low, high = value.get("low"), value.get("high")
        if isinstance(low, int) and isinstance(high, int):
            return (high << 32) | (low & 0xFFFFFFFF)
    return 0


@dataclass
class MessageKey:
    """Identity of a message on the network."""

    remote_jid: str  # chat the message belongs to
    from_me: bool = False
    id: str = ""
    participant: str | None = None  # author inside a group

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MessageKey":
        return cls(
            remote_jid=data.get("remoteJid") or data.get("remote_jid") or "",
            from_me=bool(data.get("fromMe", data.get("from_me", False))),
            id=data.get("id", ""),
            participant=data.get("participant"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"remoteJid": self.remote_jid, "fromMe": self.from_me, "id": self.id}
        if self.participant:
            data["participant"] = self.participant
        return data


@dataclass
class WAMessage:
    """An inbound message as delivered by ``messages.upsert``."""

    key: MessageKey
    message: dict[str, Any] = field(default_factory=dict)  # raw content, e.g. {"conversation": "hi"}
    push_name: str = ""
    message_timestamp: int = 0
    raw: dict[str, Any] = field(default_factory=dict)  # original payload, used for quoting

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WAMessage | None":
        key = data.get("key")
        if not isinstance(key, dict):
            return None
        content = data.get("message") or {}
        if not isinstance(content, dict):
            raise ValueError(f"message content must be an object, got {type(content).__name__}")
        return cls(
            key=MessageKey.from_dict(key),
            message=content,
            push_name=data.get("pushName") or "",
            message_timestamp=parse_timestamp(data.get("messageTimestamp")),
            raw=data,
        )

    @property
    def chat_id(self) -> str:
        return self.key.remote_jid

    @property
    def is_group(self) -> bool:
        return self.key.remote_jid.endswith(GROUP_SUFFIX)

    @property
    def sender(self) -> str:
        if self.is_group:
            return self.key.participant or ""
        return self.key.remote_jid


@dataclass
class ConnectionUpdate:
    connection: str | None = None  # "connecting" | "open" | "close"
    last_disconnect: dict[str, Any] | None = None
    qr: str | None = None


@dataclass
class CredentialsUpdate:
    state: dict[str, Any] = field(default_factory=dict)


@dataclass
class MessagesUpsert:
    messages: list[WAMessage] = field(default_factory=list)
    type: str = "notify"


@dataclass
class GroupsUpdate:
    groups: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ParticipantsUpdate:
    id: str
    participants: list[str] = field(default_factory=list)
    action: str = ""  # "add" | "remove" | "promote" | "demote"


SessionEvent = Union[
    ConnectionUpdate, CredentialsUpdate, MessagesUpsert, GroupsUpdate, ParticipantsUpdate
]


def _parse_messages(raw_messages: list[Any]) -> list[WAMessage]:
    """Parse each message on its own so one malformed entry does not drop the batch."""
    messages = []
    for raw in raw_messages:
        if not isinstance(raw, dict):
            continue
        try:
            msg = WAMessage.from_dict(raw)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Skipping malformed message: {e}")
            continue
        if msg is not None:
            messages.append(msg)
    return messages


def parse_event(name: str, payload: Any) -> SessionEvent | None:
    """Convert a raw ``(name, payload)`` pair into a typed event.

    Returns None for event names this bot does not know about.
    """
    payload = payload if payload is not None else {}

    if name == CONNECTION_UPDATE:
        return ConnectionUpdate(
            connection=payload.get("connection"),
            last_disconnect=payload.get("lastDisconnect"),
            qr=payload.get("qr"),
        )
    if name == CREDENTIALS_UPDATE:
        return CredentialsUpdate(state=dict(payload))
    if name == MESSAGES_UPSERT:
        return MessagesUpsert(
            messages=_parse_messages(payload.get("messages") or []),
            type=payload.get("type", "notify"),
        )
    if name == GROUPS_UPDATE:
        groups = payload if isinstance(payload, list) else [payload]
        return GroupsUpdate(groups=[g for g in groups if isinstance(g, dict)])
    if name == PARTICIPANTS_UPDATE:
        return ParticipantsUpdate(
            id=payload.get("id", ""),
            participants=list(payload.get("participants") or []),
            action=payload.get("action", ""),
        )
    return None
