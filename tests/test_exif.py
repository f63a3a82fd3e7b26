"""Tests for sticker EXIF metadata packaging."""

import json
import struct

import pytest

from zapbot.errors import EncodingError
from zapbot.media.exif import (
    EXIF_TEMPLATE,
    LENGTH_OFFSET,
    build_sticker_exif,
    sticker_attributes,
    write_exif,
)


def _payload(blob: bytes) -> bytes:
    return blob[len(EXIF_TEMPLATE):]


class TestBuildStickerExif:
    def test_template_is_22_bytes(self):
        assert len(EXIF_TEMPLATE) == 22

    def test_single_attribute(self):
        blob = build_sticker_exif({"sticker-pack-name": "X"})
        json_bytes = json.dumps({"sticker-pack-name": "X"}, separators=(",", ":")).encode()

        assert len(blob) == 22 + len(json_bytes)
        assert struct.unpack_from("<I", blob, LENGTH_OFFSET)[0] == len(json_bytes)
        assert blob[:14] == EXIF_TEMPLATE[:14]
        assert blob[18:22] == EXIF_TEMPLATE[18:22]
        assert _payload(blob) == json_bytes

    def test_multibyte_length_counts_bytes_not_chars(self):
        blob = build_sticker_exif({"sticker-pack-name": "Usuário ✨"})
        payload = _payload(blob)
        assert struct.unpack_from("<I", blob, LENGTH_OFFSET)[0] == len(payload)
        assert json.loads(payload.decode("utf-8")) == {"sticker-pack-name": "Usuário ✨"}

    def test_empty_attributes(self):
        blob = build_sticker_exif({})
        assert _payload(blob) == b"{}"
        assert struct.unpack_from("<I", blob, LENGTH_OFFSET)[0] == 2

    def test_numbers_are_stringified(self):
        blob = build_sticker_exif({"count": 3, "flag": True})
        assert json.loads(_payload(blob)) == {"count": "3", "flag": "True"}

    def test_nested_value_rejected(self):
        with pytest.raises(EncodingError):
            build_sticker_exif({"sticker-pack-name": {"nested": "x"}})

    def test_non_string_key_rejected(self):
        with pytest.raises(EncodingError):
            build_sticker_exif({1: "x"})

    def test_unencodable_string_rejected(self):
        with pytest.raises(EncodingError):
            build_sticker_exif({"name": "\ud800"})

    def test_template_not_mutated(self):
        before = bytes(EXIF_TEMPLATE)
        build_sticker_exif({"sticker-pack-name": "a" * 300})
        assert EXIF_TEMPLATE == before


def test_sticker_attributes():
    assert sticker_attributes("User: Ana", "Owner: Bot") == {
        "sticker-pack-name": "User: Ana",
        "sticker-pack-publisher": "Owner: Bot",
    }


def test_write_exif(tmp_path):
    path = write_exif(tmp_path / "meta" / "sticker.exif", {"sticker-pack-name": "X"})
    assert path.read_bytes() == build_sticker_exif({"sticker-pack-name": "X"})
