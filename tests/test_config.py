"""Tests for config schema defaults and camelCase persistence."""

import json

import pytest

from zapbot.config.loader import (
    camel_to_snake,
    convert_keys,
    convert_to_camel,
    load_config,
    save_config,
    snake_to_camel,
)
from zapbot.config.schema import Config
from zapbot.utils.retry import policy_from_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith("ZAPBOT_"):
            monkeypatch.delenv(key)


def test_defaults():
    config = Config()
    assert config.bot.prefix == "/"
    assert config.connection.base_delay == 2.0
    assert config.connection.max_delay == 60.0
    assert config.connection.group_cache_ttl == 300.0
    assert (config.retry.retries, config.retry.delay, config.retry.timeout) == (3, 3.0, 5.0)
    assert config.sticker.max_video_seconds == 11
    assert config.sticker.max_quoted_video_seconds == 35
    assert (config.youtube.ytdlp, config.youtube.max_minutes) == ("yt-dlp", 20)


def test_paths_expand_data_dir(tmp_path):
    config = Config(data_dir=str(tmp_path))
    assert config.temp_path == tmp_path / "temp"
    assert config.credentials_path == tmp_path / "session" / "creds.json"


def test_case_conversion():
    assert camel_to_snake("maxQuotedVideoSeconds") == "max_quoted_video_seconds"
    assert snake_to_camel("max_quoted_video_seconds") == "maxQuotedVideoSeconds"
    assert snake_to_camel("prefix") == "prefix"


def test_convert_keys_nested():
    data = {"bot": {"readMessages": False}, "items": [{"apiKey": "x"}]}
    assert convert_keys(data) == {"bot": {"read_messages": False}, "items": [{"api_key": "x"}]}
    assert convert_to_camel(convert_keys(data)) == data


def test_save_writes_camel_case(tmp_path):
    path = tmp_path / "config.json"
    save_config(Config(), path)

    raw = json.loads(path.read_text())
    assert "readMessages" in raw["bot"]
    assert "maxDelay" in raw["connection"]
    assert "apiKey" in raw["gemini"]


def test_save_load_round_trip(tmp_path):
    path = tmp_path / "config.json"
    config = Config()
    config.owner.number = "5511999999999@s.whatsapp.net"
    config.bot.prefix = "!"
    config.retry.retries = 5

    save_config(config, path)
    loaded = load_config(path)

    assert loaded.owner.number == "5511999999999@s.whatsapp.net"
    assert loaded.bot.prefix == "!"
    assert loaded.retry.retries == 5


def test_load_missing_file_returns_defaults(tmp_path):
    assert load_config(tmp_path / "missing.json") == Config()


def test_load_malformed_returns_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{nope")
    assert load_config(path).bot.prefix == "/"


def test_invalid_values_fall_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"connection": {"baseDelay": -1}}))
    assert load_config(path).connection.base_delay == 2.0


def test_env_override(monkeypatch):
    monkeypatch.setenv("ZAPBOT_BOT__PREFIX", "#")
    assert Config().bot.prefix == "#"


def test_policy_from_config():
    config = Config()
    config.retry.retries = 4
    policy = policy_from_config(config.retry)
    assert policy.retries == 4
    assert policy.delay == 3.0
    assert policy.timeout == 5.0
