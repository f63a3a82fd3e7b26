"""Sticker transcoding via ffmpeg and webpmux."""

import asyncio
import shutil
from typing import Any, Mapping

from loguru import logger

from zapbot.errors import TranscodeError
from zapbot.media.exif import build_sticker_exif
from zapbot.media.manager import MediaManager

VIDEO_FILTER = "fps=10,scale=512:512"
IMAGE_FILTER = "scale=512:512"

_EXTENSIONS = {"image": "jpg", "video": "mp4"}


async def run_tool(*args: str) -> bytes:
    """Run an external tool and return stdout. Any failure raises TranscodeError."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise TranscodeError(f"{args[0]} not found") from e

    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip()[-500:]
        raise TranscodeError(f"{args[0]} exited with {proc.returncode}: {detail}")
    return stdout


class StickerMaker:
    """Turns images and short videos into tagged WebP stickers, and back."""

    def __init__(self, media: MediaManager, ffmpeg: str = "ffmpeg", webpmux: str = "webpmux"):
        self.media = media
        self.ffmpeg = ffmpeg
        self.webpmux = webpmux

    def _resolve_webpmux(self) -> str:
        path = shutil.which(self.webpmux)
        if not path:
            raise TranscodeError("webpmux not found. Please install it (package: webp).")
        return path

    async def make_sticker(self, data: bytes, kind: str, attributes: Mapping[str, Any]) -> bytes:
        """Convert ``data`` (kind ``"image"`` or ``"video"``) into a WebP sticker.

        The metadata blob is built before any tool runs, so an EncodingError
        surfaces without spawning processes.
        """
        if kind not in _EXTENSIONS:
            raise ValueError(f"Unsupported sticker source: {kind}")

        exif = build_sticker_exif(attributes)
        vf = VIDEO_FILTER if kind == "video" else IMAGE_FILTER

        with self.media.workspace() as scratch:
            source = self.media.save("temp", _EXTENSIONS[kind], data)
            scratch.append(source)
            output = self.media.new_path("sticker", "webp")
            scratch.append(output)
            meta = self.media.save("meta", "exif", exif)
            scratch.append(meta)

            await run_tool(
                self.ffmpeg, "-y", "-i", str(source),
                "-vcodec", "libwebp", "-lossless", "1", "-loop", "0",
                "-preset", "default", "-an", "-vf", vf,
                str(output),
            )
            webpmux = self._resolve_webpmux()
            await run_tool(webpmux, "-set", "exif", str(meta), str(output), "-o", str(output))

            result = output.read_bytes()

        logger.debug(f"Built {kind} sticker ({len(result)} bytes)")
        return result

    async def sticker_to_image(self, data: bytes) -> bytes:
        """Convert a WebP sticker into a JPEG image."""
        with self.media.workspace() as scratch:
            source = self.media.save("temp_file", "webp", data)
            scratch.append(source)
            output = self.media.new_path("image", "jpg")
            scratch.append(output)

            await run_tool(self.ffmpeg, "-y", "-i", str(source), str(output))
            return output.read_bytes()
