"""Sticker EXIF container: fixed TIFF header followed by a JSON payload.

Layout::

    offset  0..13   TIFF header + one IFD entry (tag 0x5741, type UNDEFINED)
    offset 14..17   payload length, uint32 little-endian (patched per payload)
    offset 18..21   offset of the payload (always 22)
    offset 22..     UTF-8 JSON attributes
"""

import json
import struct
from pathlib import Path
from typing import Any, Mapping

from zapbot.errors import EncodingError

EXIF_TEMPLATE = bytes([
    0x49, 0x49, 0x2A, 0x00, 0x08, 0x00, 0x00, 0x00,
    0x01, 0x00, 0x41, 0x57, 0x07, 0x00, 0x00, 0x00,
    0x00, 0x00, 0x16, 0x00, 0x00, 0x00,
])
LENGTH_OFFSET = 14
MAX_PAYLOAD = 0xFFFFFFFF

PACK_NAME_KEY = "sticker-pack-name"
PUBLISHER_KEY = "sticker-pack-publisher"


def _coerce(value: Any) -> str:
    if isinstance(value, str):
        return value
    # bool is an int subclass; both convert cleanly.
    if isinstance(value, (int, float)):
        return str(value)
    raise EncodingError(f"Unsupported attribute value type: {type(value).__name__}")


def build_sticker_exif(attributes: Mapping[str, Any]) -> bytes:
    """Build the EXIF blob that tags a WebP sticker with pack attributes.

    Raises:
        EncodingError: If a key is not a string, a value cannot be converted
            to a string, or the payload does not fit in 32 bits.
    """
    payload: dict[str, str] = {}
    for key, value in attributes.items():
        if not isinstance(key, str):
            raise EncodingError(f"Attribute keys must be strings, got {type(key).__name__}")
        payload[key] = _coerce(value)

    try:
        data = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError, UnicodeEncodeError) as e:
        raise EncodingError(f"Cannot serialize sticker attributes: {e}") from e

    if len(data) > MAX_PAYLOAD:
        raise EncodingError(f"Payload too large: {len(data)} bytes")

    buffer = bytearray(EXIF_TEMPLATE)
    buffer.extend(data)
    struct.pack_into("<I", buffer, LENGTH_OFFSET, len(data))
    return bytes(buffer)


def sticker_attributes(pack_name: str, publisher: str) -> dict[str, str]:
    return {PACK_NAME_KEY: pack_name, PUBLISHER_KEY: publisher}


def write_exif(path: Path, attributes: Mapping[str, Any]) -> Path:
    """Write the EXIF blob to ``path`` for consumption by webpmux."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(build_sticker_exif(attributes))
    return path
