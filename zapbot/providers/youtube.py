"""YouTube search and download through the yt-dlp command-line tool."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from zapbot.errors import DownloadError, TranscodeError
from zapbot.media.manager import MediaManager
from zapbot.media.sticker import run_tool

AUDIO_FORMAT = "bestaudio[ext=m4a]/bestaudio"
# Single-file mp4 so no muxing step is needed
VIDEO_FORMAT = "best[ext=mp4][height<=480]/best[ext=mp4]/best"


@dataclass(frozen=True)
class VideoInfo:
    title: str
    url: str
    duration: int = 0  # seconds
    views: int = 0
    thumbnail: str = ""

    @property
    def minutes(self) -> int:
        return self.duration // 60

    @property
    def timestamp(self) -> str:
        """``H:MM:SS`` or ``M:SS``, as shown by YouTube."""
        hours, rest = divmod(self.duration, 3600)
        minutes, seconds = divmod(rest, 60)
        if hours:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    def caption(self) -> str:
        return (
            f"🎬 *Title:* {self.title}\n"
            f"⏱️ *Duration:* {self.timestamp}\n"
            f"👁️ *Views:* {self.views}\n"
            f"🔗 *Link:* {self.url}"
        )

    @classmethod
    def from_ytdlp(cls, data: dict[str, Any]) -> VideoInfo:
        url = data.get("webpage_url") or data.get("original_url") or ""
        if not url and data.get("id"):
            url = f"https://www.youtube.com/watch?v={data['id']}"
        return cls(
            title=data.get("title") or "",
            url=url,
            duration=int(data.get("duration") or 0),
            views=int(data.get("view_count") or 0),
            thumbnail=data.get("thumbnail") or "",
        )


class MediaDownloader(ABC):
    """Abstract video search/download collaborator."""

    @abstractmethod
    async def search(self, query: str) -> VideoInfo | None:
        """First result for ``query``, or None when nothing matches."""

    @abstractmethod
    async def info(self, url: str) -> VideoInfo:
        """Metadata for a video URL."""

    @abstractmethod
    async def download_audio(self, url: str) -> bytes:
        pass

    @abstractmethod
    async def download_video(self, url: str) -> bytes:
        pass

    @abstractmethod
    async def fetch_thumbnail(self, url: str) -> bytes | None:
        """Thumbnail image bytes, or None if it could not be fetched."""


class YtDlpDownloader(MediaDownloader):
    """Runs yt-dlp as a subprocess. Downloads go through the media temp dir."""

    def __init__(self, media: MediaManager, binary: str = "yt-dlp", timeout: float = 300.0):
        self.media = media
        self.binary = binary
        self.timeout = timeout

    async def _run(self, *args: str) -> bytes:
        try:
            return await asyncio.wait_for(run_tool(self.binary, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise DownloadError(f"{self.binary} timed out after {self.timeout}s") from e
        except TranscodeError as e:
            raise DownloadError(str(e)) from e

    async def _dump_json(self, target: str) -> dict[str, Any] | None:
        out = await self._run("--dump-json", "--no-playlist", "--skip-download", "--no-warnings", target)
        for line in out.decode(errors="replace").splitlines():
            line = line.strip()
            if line:
                try:
                    return json.loads(line)
                except json.JSONDecodeError as e:
                    raise DownloadError(f"Unreadable yt-dlp output: {e}") from e
        return None

    async def search(self, query: str) -> VideoInfo | None:
        data = await self._dump_json(f"ytsearch1:{query}")
        return VideoInfo.from_ytdlp(data) if data else None

    async def info(self, url: str) -> VideoInfo:
        data = await self._dump_json(url)
        if not data:
            raise DownloadError(f"No video information for {url}")
        return VideoInfo.from_ytdlp(data)

    async def _download(self, url: str, fmt: str, ext: str) -> bytes:
        with self.media.workspace() as scratch:
            output = self.media.new_path("youtube", ext)
            scratch.append(output)
            await self._run("-f", fmt, "--no-playlist", "--no-warnings", "-o", str(output), url)
            if not output.exists():
                raise DownloadError(f"yt-dlp produced no file for {url}")
            data = output.read_bytes()
        logger.debug(f"Downloaded {url} ({len(data)} bytes)")
        return data

    async def download_audio(self, url: str) -> bytes:
        return await self._download(url, AUDIO_FORMAT, "m4a")

    async def download_video(self, url: str) -> bytes:
        return await self._download(url, VIDEO_FORMAT, "mp4")

    async def fetch_thumbnail(self, url: str) -> bytes | None:
        if not url:
            return None
        try:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.get(url, timeout=30.0)
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            logger.warning(f"Could not fetch thumbnail {url}: {e}")
            return None
