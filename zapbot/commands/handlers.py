"""Command handlers."""

import time
from typing import Mapping

from loguru import logger

from zapbot.commands.message import quoted_message, unwrap_message
from zapbot.commands.pipeline import CommandContext, CommandHandler
from zapbot.errors import DownloadError, GenerationError
from zapbot.media.exif import sticker_attributes
from zapbot.media.sticker import StickerMaker
from zapbot.providers.gemini import ContentGenerator
from zapbot.providers.youtube import MediaDownloader, VideoInfo

MENU = [
    ("sticker, s", "Turn an image or short video (sent or quoted) into a sticker"),
    ("toimg", "Turn a quoted sticker back into an image"),
    ("gemini, cat", "Ask the AI assistant"),
    ("ytbuscar", "Search YouTube and show the first result"),
    ("play", "Send the audio of a YouTube video (link or name)"),
    ("playvid", "Send a YouTube video (link or name)"),
    ("ping", "Check that the bot is alive"),
    ("menu", "Show this list"),
]


class BotCommands:
    """Command implementations bound to their collaborators."""

    def __init__(
        self,
        stickers: StickerMaker,
        generator: ContentGenerator | None = None,
        downloader: MediaDownloader | None = None,
    ):
        self.stickers = stickers
        self.generator = generator
        self.downloader = downloader

    def table(self) -> Mapping[str, CommandHandler]:
        return {
            "sticker": self.sticker,
            "s": self.sticker,
            "toimg": self.to_image,
            "gemini": self.ask_ai,
            "cat": self.ask_ai,
            "ytbuscar": self.yt_search,
            "play": self.play_audio,
            "playvid": self.play_video,
            "ping": self.ping,
            "menu": self.menu,
        }

    # ------------------------------------------------------------------
    # Stickers
    # ------------------------------------------------------------------

    async def sticker(self, ctx: CommandContext) -> None:
        info, limits = ctx.info, ctx.config.sticker
        content = unwrap_message(ctx.message.message)

        if info.is_media:
            kind = "video" if content.get("videoMessage") else "image"
            node = content[f"{kind}Message"]
            max_seconds = limits.max_video_seconds
        elif info.quoted.video or info.quoted.image:
            kind = "video" if info.quoted.video else "image"
            node = quoted_message(content)[f"{kind}Message"]
            max_seconds = limits.max_quoted_video_seconds
        else:
            await ctx.reply("Send or quote an image or video to create a sticker.")
            return

        if kind == "video" and int(node.get("seconds") or 0) >= max_seconds:
            await ctx.reply("Video too long for an animated sticker.")
            return

        data = await ctx.session.download_media(node, kind)
        attributes = sticker_attributes(
            pack_name=f"User: {ctx.message.push_name or ctx.sender}",
            publisher=f"Owner: {ctx.config.owner.name}",
        )
        webp = await self.stickers.make_sticker(data, kind, attributes)
        await ctx.send({"sticker": webp})

    async def to_image(self, ctx: CommandContext) -> None:
        if not ctx.info.quoted.sticker:
            await ctx.reply("Quote a sticker to convert it into an image!")
            return

        node = quoted_message(ctx.message.message)["stickerMessage"]
        data = await ctx.session.download_media(node, "sticker")
        image = await self.stickers.sticker_to_image(data)
        await ctx.send({"image": image})

    # ------------------------------------------------------------------
    # AI
    # ------------------------------------------------------------------

    async def ask_ai(self, ctx: CommandContext) -> None:
        if self.generator is None:
            await ctx.reply("The AI assistant is not configured.")
            return
        if not ctx.text:
            await ctx.reply(f"Usage: {ctx.config.bot.prefix}{ctx.command.name} <question>")
            return

        try:
            response = await self.generator.generate(ctx.sender, ctx.text)
        except GenerationError as e:
            logger.error(f"AI generation failed: {e}")
            contact = ""
            if ctx.config.owner.phone:
                contact = f" If the problem persists, contact the developer: {ctx.config.owner.phone} 📞"
            await ctx.reply(f"⚠️ Could not generate a response ({e.short_message}). Please try again.{contact}")
            await ctx.report_owner(
                f"⚠️ An error occurred while generating content:\n\n{e.detail or e.short_message}\n\n📩 Please check it."
            )
            return

        await ctx.reply(response)

    # ------------------------------------------------------------------
    # YouTube
    # ------------------------------------------------------------------

    async def _find_video(self, ctx: CommandContext) -> VideoInfo | None:
        """Look up the video named by the command args and show its preview.

        Replies to the user and returns None on every failure path.
        """
        if self.downloader is None:
            await ctx.reply("YouTube downloads are not available.")
            return None
        if not ctx.text:
            await ctx.reply("Please provide a YouTube link or video name.")
            return None

        query = ctx.text
        try:
            if query.startswith("http"):
                video = await self.downloader.info(query)
            else:
                video = await self.downloader.search(query)
        except DownloadError as e:
            logger.error(f"YouTube lookup failed for '{query}': {e}")
            await ctx.reply("Error searching for the video. Please try again.")
            return None

        if video is None:
            await ctx.reply("No video found for that search.")
            return None

        max_minutes = ctx.config.youtube.max_minutes
        if video.minutes > max_minutes:
            await ctx.reply(f"The video is too long. Please choose one under {max_minutes} minutes.")
            return None

        thumbnail = await self.downloader.fetch_thumbnail(video.thumbnail)
        if thumbnail:
            await ctx.send({"image": thumbnail, "caption": video.caption()})
        else:
            await ctx.reply(video.caption())
        return video

    async def yt_search(self, ctx: CommandContext) -> None:
        await self._find_video(ctx)

    async def play_audio(self, ctx: CommandContext) -> None:
        video = await self._find_video(ctx)
        if video is None:
            return
        try:
            audio = await self.downloader.download_audio(video.url)
        except DownloadError as e:
            logger.error(f"Audio download failed for {video.url}: {e}")
            await ctx.reply("Error downloading the audio. Please try again.")
            return
        await ctx.send({"audio": audio, "mimetype": "audio/mp4"})

    async def play_video(self, ctx: CommandContext) -> None:
        video = await self._find_video(ctx)
        if video is None:
            return
        try:
            data = await self.downloader.download_video(video.url)
        except DownloadError as e:
            logger.error(f"Video download failed for {video.url}: {e}")
            await ctx.reply("Error downloading the video. Please try again.")
            return
        await ctx.send({"video": data, "mimetype": "video/mp4"})

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def ping(self, ctx: CommandContext) -> None:
        started = time.monotonic()
        lag = ""
        if ctx.message.message_timestamp:
            lag = f" (message lag {max(0, int(time.time()) - ctx.message.message_timestamp)}s)"
        sent = await ctx.reply("🏓 pong" + lag)
        if sent:
            logger.debug(f"Ping reply took {time.monotonic() - started:.2f}s")

    async def menu(self, ctx: CommandContext) -> None:
        prefix = ctx.config.bot.prefix
        lines = ["*Commands*", ""]
        for names, description in MENU:
            shown = ", ".join(f"{prefix}{n.strip()}" for n in names.split(","))
            lines.append(f"• {shown}: {description}")
        await ctx.reply("\n".join(lines))
