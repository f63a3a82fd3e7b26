"""Helpers for inspecting raw message content."""

from dataclasses import dataclass
from typing import Any

from zapbot.session.events import WAMessage

# Checked in order; the first key present wins.
MESSAGE_TYPES = (
    "conversation",
    "stickerMessage",
    "extendedTextMessage",
    "imageMessage",
    "videoMessage",
    "audioMessage",
    "documentMessage",
    "contactMessage",
    "locationMessage",
    "liveLocationMessage",
    "reactionMessage",
)

# Containers the network wraps around the real content
_WRAPPERS = ("ephemeralMessage", "viewOnceMessage", "viewOnceMessageV2", "documentWithCaptionMessage")


def unwrap_message(message: dict[str, Any]) -> dict[str, Any]:
    """Strip ephemeral/view-once wrappers and return the innermost content."""
    current = message or {}
    for _ in range(len(_WRAPPERS)):
        for wrapper in _WRAPPERS:
            inner = current.get(wrapper)
            if isinstance(inner, dict) and isinstance(inner.get("message"), dict):
                current = inner["message"]
                break
        else:
            return current
    return current


def get_message_type(message: dict[str, Any]) -> str:
    content = unwrap_message(message)
    for kind in MESSAGE_TYPES:
        if content.get(kind):
            return kind
    return "unknown"


def extract_body(message: dict[str, Any]) -> str:
    """Text the user typed: plain text, extended text, or a media caption."""
    content = unwrap_message(message)
    if content.get("conversation"):
        return content["conversation"]
    for kind, key in (
        ("extendedTextMessage", "text"),
        ("imageMessage", "caption"),
        ("videoMessage", "caption"),
        ("documentMessage", "caption"),
    ):
        node = content.get(kind)
        if isinstance(node, dict) and node.get(key):
            return node[key]
    return ""


def context_info(message: dict[str, Any]) -> dict[str, Any]:
    content = unwrap_message(message)
    for node in content.values():
        if isinstance(node, dict) and isinstance(node.get("contextInfo"), dict):
            return node["contextInfo"]
    return {}


def quoted_message(message: dict[str, Any]) -> dict[str, Any] | None:
    quoted = context_info(message).get("quotedMessage")
    return unwrap_message(quoted) if isinstance(quoted, dict) else None


def get_expiration(message: dict[str, Any]) -> int | None:
    """Disappearing-message timer of the chat, if the message carries one."""
    expiration = context_info(message).get("expiration")
    return int(expiration) if expiration else None


@dataclass(frozen=True)
class QuotedChecks:
    """Which sticker-relevant media the quoted message carries."""

    image: bool = False
    video: bool = False
    sticker: bool = False


def get_quoted_checks(message: dict[str, Any]) -> QuotedChecks:
    quoted = quoted_message(message)
    if not quoted:
        return QuotedChecks()
    return QuotedChecks(
        image="imageMessage" in quoted,
        video="videoMessage" in quoted,
        sticker="stickerMessage" in quoted,
    )


@dataclass(frozen=True)
class MessageInfo:
    """Pre-processed view of an inbound message."""

    type: str
    body: str
    is_media: bool
    quoted: QuotedChecks
    expiration: int | None


def preprocess_message(msg: WAMessage) -> MessageInfo:
    content = unwrap_message(msg.message)
    return MessageInfo(
        type=get_message_type(content),
        body=extract_body(content),
        is_media=bool(content.get("imageMessage") or content.get("videoMessage")),
        quoted=get_quoted_checks(content),
        expiration=get_expiration(content),
    )


def describe_content(message: dict[str, Any]) -> str:
    """One-line human description of message content for logs."""
    content = unwrap_message(message)
    kind = get_message_type(content)
    node = content.get(kind)

    if kind == "conversation":
        return f"text: {content['conversation']}"
    if kind == "extendedTextMessage":
        return f"text: {node.get('text', '')}"
    if kind in ("imageMessage", "stickerMessage"):
        return f"{kind} {node.get('mimetype', '')} {node.get('width', '?')}x{node.get('height', '?')}"
    if kind in ("videoMessage", "audioMessage"):
        return f"{kind} {node.get('mimetype', '')} {node.get('seconds', '?')}s"
    if kind == "documentMessage":
        return f"document {node.get('fileName', '')} ({node.get('mimetype', '')})"
    if kind == "contactMessage":
        return f"contact {node.get('displayName', '')}"
    if kind in ("locationMessage", "liveLocationMessage"):
        return f"location {node.get('degreesLatitude')},{node.get('degreesLongitude')}"
    if kind == "reactionMessage":
        return f"reaction {node.get('text', '')}"
    return "unknown message type"


def format_message_log(msg: WAMessage, group: dict[str, Any] | None = None) -> str:
    where = msg.chat_id
    if group:
        where = f"{group.get('subject', msg.chat_id)} ({len(group.get('participants') or [])} members)"
    who = msg.push_name or msg.sender
    return f"Message from {who} [{msg.sender}] in {where}: {describe_content(msg.message)}"
