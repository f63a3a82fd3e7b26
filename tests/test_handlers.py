"""Tests for the built-in command handlers."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from zapbot.commands.handlers import BotCommands
from zapbot.commands.message import preprocess_message
from zapbot.commands.pipeline import CommandContext, Replier, parse_command
from zapbot.config.schema import Config
from zapbot.errors import DownloadError, GenerationError
from zapbot.providers.youtube import VideoInfo
from zapbot.session.events import WAMessage
from zapbot.utils.retry import RetryPolicy

FAST = RetryPolicy(retries=1, delay=0, timeout=1)


def _ctx(session, message: dict, body: str, push_name="Ana"):
    config = Config()
    config.owner.number = "owner@s.whatsapp.net"
    config.owner.name = "Boss"
    msg = WAMessage.from_dict({
        "key": {"remoteJid": "1@s.whatsapp.net", "id": "K"},
        "message": message,
        "pushName": push_name,
    })
    return CommandContext(
        session=session,
        message=msg,
        info=preprocess_message(msg),
        command=parse_command(body, "/"),
        replier=Replier(session, owner_jid=config.owner.number, policy=FAST),
        config=config,
    )


def _commands(generator=None, downloader=None):
    stickers = MagicMock()
    stickers.make_sticker = AsyncMock(return_value=b"RIFFwebp")
    stickers.sticker_to_image = AsyncMock(return_value=b"\xff\xd8jpeg")
    return BotCommands(stickers, generator, downloader), stickers


def _downloader(video=None, error=None):
    downloader = MagicMock()
    downloader.search = AsyncMock(return_value=video, side_effect=error)
    downloader.info = AsyncMock(return_value=video, side_effect=error)
    downloader.fetch_thumbnail = AsyncMock(return_value=b"thumb")
    downloader.download_audio = AsyncMock(return_value=b"m4a")
    downloader.download_video = AsyncMock(return_value=b"mp4")
    return downloader


def _texts(session):
    return [content.get("text") for _, content, _ in session.sent]


class TestSticker:
    @pytest.mark.asyncio
    async def test_direct_image(self, session):
        commands, stickers = _commands()
        ctx = _ctx(session, {"imageMessage": {"caption": "/s", "url": "u"}}, "/s")

        await commands.sticker(ctx)

        stickers.make_sticker.assert_awaited_once()
        data, kind, attributes = stickers.make_sticker.await_args.args
        assert data == session.media
        assert kind == "image"
        assert attributes == {"sticker-pack-name": "User: Ana", "sticker-pack-publisher": "Owner: Boss"}
        assert session.sent[0][1] == {"sticker": b"RIFFwebp"}

    @pytest.mark.asyncio
    async def test_quoted_video_within_limit(self, session):
        commands, stickers = _commands()
        message = {"extendedTextMessage": {"text": "/s", "contextInfo": {
            "quotedMessage": {"videoMessage": {"seconds": 20}},
        }}}

        await commands.sticker(_ctx(session, message, "/s"))

        assert stickers.make_sticker.await_args.args[1] == "video"

    @pytest.mark.asyncio
    async def test_quoted_image(self, session):
        commands, stickers = _commands()
        message = {"extendedTextMessage": {"text": "/s", "contextInfo": {
            "quotedMessage": {"imageMessage": {"url": "q"}},
        }}}

        await commands.sticker(_ctx(session, message, "/s"))

        assert stickers.make_sticker.await_args.args[1] == "image"

    @pytest.mark.asyncio
    async def test_view_once_image(self, session):
        commands, stickers = _commands()
        message = {"viewOnceMessageV2": {"message": {"imageMessage": {"caption": "/s"}}}}

        await commands.sticker(_ctx(session, message, "/s"))

        assert stickers.make_sticker.await_args.args[1] == "image"

    @pytest.mark.asyncio
    async def test_direct_video_too_long(self, session):
        commands, stickers = _commands()

        await commands.sticker(_ctx(session, {"videoMessage": {"caption": "/s", "seconds": 11}}, "/s"))

        stickers.make_sticker.assert_not_awaited()
        assert _texts(session) == ["Video too long for an animated sticker."]

    @pytest.mark.asyncio
    async def test_quoted_video_too_long(self, session):
        commands, stickers = _commands()
        message = {"extendedTextMessage": {"text": "/s", "contextInfo": {
            "quotedMessage": {"videoMessage": {"seconds": 35}},
        }}}

        await commands.sticker(_ctx(session, message, "/s"))

        stickers.make_sticker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_media(self, session):
        commands, stickers = _commands()
        await commands.sticker(_ctx(session, {"conversation": "/s"}, "/s"))
        assert "Send or quote an image or video" in _texts(session)[0]

    @pytest.mark.asyncio
    async def test_pack_name_falls_back_to_sender(self, session):
        commands, stickers = _commands()
        await commands.sticker(_ctx(session, {"imageMessage": {"caption": "/s"}}, "/s", push_name=""))
        assert stickers.make_sticker.await_args.args[2]["sticker-pack-name"] == "User: 1@s.whatsapp.net"


class TestToImage:
    @pytest.mark.asyncio
    async def test_quoted_sticker(self, session):
        commands, stickers = _commands()
        message = {"extendedTextMessage": {"text": "/toimg", "contextInfo": {
            "quotedMessage": {"stickerMessage": {"mimetype": "image/webp"}},
        }}}

        await commands.to_image(_ctx(session, message, "/toimg"))

        stickers.sticker_to_image.assert_awaited_once_with(session.media)
        assert session.sent[0][1] == {"image": b"\xff\xd8jpeg"}

    @pytest.mark.asyncio
    async def test_requires_quote(self, session):
        commands, stickers = _commands()
        await commands.to_image(_ctx(session, {"conversation": "/toimg"}, "/toimg"))
        assert _texts(session) == ["Quote a sticker to convert it into an image!"]


class TestAskAI:
    @pytest.mark.asyncio
    async def test_reply(self, session):
        generator = MagicMock()
        generator.generate = AsyncMock(return_value="42")
        commands, _ = _commands(generator)

        await commands.ask_ai(_ctx(session, {"conversation": "/gemini meaning of life"}, "/gemini meaning of life"))

        generator.generate.assert_awaited_once_with("1@s.whatsapp.net", "meaning of life")
        assert _texts(session) == ["42"]

    @pytest.mark.asyncio
    async def test_generation_error_notifies_user_and_owner(self, session):
        generator = MagicMock()
        generator.generate = AsyncMock(side_effect=GenerationError("API error", "Gemini API 500"))
        commands, _ = _commands(generator)

        await commands.ask_ai(_ctx(session, {"conversation": "/cat hi"}, "/cat hi"))

        targets = [jid for jid, _, _ in session.sent]
        assert targets == ["1@s.whatsapp.net", "owner@s.whatsapp.net"]
        assert "Gemini API 500" in session.sent[1][1]["text"]

    @pytest.mark.asyncio
    async def test_not_configured(self, session):
        commands, _ = _commands(None)
        await commands.ask_ai(_ctx(session, {"conversation": "/cat hi"}, "/cat hi"))
        assert _texts(session) == ["The AI assistant is not configured."]

    @pytest.mark.asyncio
    async def test_usage(self, session):
        generator = MagicMock()
        generator.generate = AsyncMock()
        commands, _ = _commands(generator)
        await commands.ask_ai(_ctx(session, {"conversation": "/cat"}, "/cat"))
        assert _texts(session) == ["Usage: /cat <question>"]
        generator.generate.assert_not_awaited()


class TestYouTube:
    VIDEO = VideoInfo(
        title="Lo-fi beats", url="https://www.youtube.com/watch?v=abc",
        duration=185, views=1200, thumbnail="https://i.ytimg.com/abc.jpg",
    )

    @pytest.mark.asyncio
    async def test_search_shows_preview(self, session):
        downloader = _downloader(self.VIDEO)
        commands, _ = _commands(downloader=downloader)

        await commands.yt_search(_ctx(session, {"conversation": "/ytbuscar lofi beats"}, "/ytbuscar lofi beats"))

        downloader.search.assert_awaited_once_with("lofi beats")
        content = session.sent[0][1]
        assert content["image"] == b"thumb"
        assert "Lo-fi beats" in content["caption"]
        assert "3:05" in content["caption"]
        downloader.download_audio.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_preview_without_thumbnail_is_text(self, session):
        downloader = _downloader(self.VIDEO)
        downloader.fetch_thumbnail.return_value = None
        commands, _ = _commands(downloader=downloader)

        await commands.yt_search(_ctx(session, {"conversation": "/ytbuscar lofi"}, "/ytbuscar lofi"))

        assert "🔗 *Link:* https://www.youtube.com/watch?v=abc" in _texts(session)[0]

    @pytest.mark.asyncio
    async def test_play_sends_audio(self, session):
        downloader = _downloader(self.VIDEO)
        commands, _ = _commands(downloader=downloader)

        await commands.play_audio(_ctx(session, {"conversation": "/play lofi"}, "/play lofi"))

        downloader.download_audio.assert_awaited_once_with(self.VIDEO.url)
        assert session.sent[-1][1] == {"audio": b"m4a", "mimetype": "audio/mp4"}

    @pytest.mark.asyncio
    async def test_playvid_with_link(self, session):
        downloader = _downloader(self.VIDEO)
        commands, _ = _commands(downloader=downloader)
        body = "/playvid https://youtu.be/abc"

        await commands.play_video(_ctx(session, {"conversation": body}, body))

        downloader.info.assert_awaited_once_with("https://youtu.be/abc")
        downloader.search.assert_not_awaited()
        assert session.sent[-1][1] == {"video": b"mp4", "mimetype": "video/mp4"}

    @pytest.mark.asyncio
    async def test_too_long(self, session):
        long_video = VideoInfo(title="Concert", url="https://youtu.be/long", duration=21 * 60)
        downloader = _downloader(long_video)
        commands, _ = _commands(downloader=downloader)

        await commands.play_audio(_ctx(session, {"conversation": "/play concert"}, "/play concert"))

        assert _texts(session) == ["The video is too long. Please choose one under 20 minutes."]
        downloader.download_audio.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_twenty_minutes_is_allowed(self, session):
        video = VideoInfo(title="Set", url="https://youtu.be/set", duration=20 * 60 + 59)
        downloader = _downloader(video)
        commands, _ = _commands(downloader=downloader)

        await commands.play_audio(_ctx(session, {"conversation": "/play set"}, "/play set"))

        downloader.download_audio.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_results(self, session):
        commands, _ = _commands(downloader=_downloader(None))
        await commands.play_video(_ctx(session, {"conversation": "/playvid zzzz"}, "/playvid zzzz"))
        assert _texts(session) == ["No video found for that search."]

    @pytest.mark.asyncio
    async def test_missing_query(self, session):
        downloader = _downloader(self.VIDEO)
        commands, _ = _commands(downloader=downloader)
        await commands.play_audio(_ctx(session, {"conversation": "/play"}, "/play"))
        assert _texts(session) == ["Please provide a YouTube link or video name."]
        downloader.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_error(self, session):
        commands, _ = _commands(downloader=_downloader(error=DownloadError("yt-dlp exited with 1")))
        await commands.yt_search(_ctx(session, {"conversation": "/ytbuscar x"}, "/ytbuscar x"))
        assert _texts(session) == ["Error searching for the video. Please try again."]

    @pytest.mark.asyncio
    async def test_download_error(self, session):
        downloader = _downloader(self.VIDEO)
        downloader.download_video.side_effect = DownloadError("HTTP 403")
        commands, _ = _commands(downloader=downloader)

        await commands.play_video(_ctx(session, {"conversation": "/playvid lofi"}, "/playvid lofi"))

        assert _texts(session)[-1] == "Error downloading the video. Please try again."

    @pytest.mark.asyncio
    async def test_not_configured(self, session):
        commands, _ = _commands()
        await commands.play_audio(_ctx(session, {"conversation": "/play lofi"}, "/play lofi"))
        assert _texts(session) == ["YouTube downloads are not available."]


class TestMisc:
    @pytest.mark.asyncio
    async def test_ping(self, session):
        commands, _ = _commands()
        await commands.ping(_ctx(session, {"conversation": "/ping"}, "/ping"))
        assert _texts(session)[0].startswith("🏓 pong")

    @pytest.mark.asyncio
    async def test_menu_lists_commands(self, session):
        commands, _ = _commands()
        await commands.menu(_ctx(session, {"conversation": "/menu"}, "/menu"))
        text = _texts(session)[0]
        assert "/sticker, /s" in text
        assert "/toimg" in text
        assert "/playvid" in text

    def test_table_aliases(self):
        commands, _ = _commands()
        table = commands.table()
        assert table["s"] == table["sticker"]
        assert table["cat"] == table["gemini"]
        assert {"ytbuscar", "play", "playvid"} <= set(table)
