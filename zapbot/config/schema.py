"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OwnerConfig(BaseModel):
    """Bot operator: receives startup notices and error diagnostics."""
    number: str = ""  # JID, e.g. "5511999999999@s.whatsapp.net"
    name: str = "zapbot"  # Shown as the sticker publisher
    phone: str = ""  # Human-readable contact shown in apology messages


class BotConfig(BaseModel):
    """Command handling behaviour."""
    prefix: str = "/"
    read_messages: bool = True  # Mark inbound messages as read
    log_messages: bool = True  # Log a summary line for every inbound message


class ConnectionConfig(BaseModel):
    """Reconnect backoff (seconds)."""
    base_delay: float = Field(default=2.0, gt=0)
    max_delay: float = Field(default=60.0, gt=0)
    maintenance_interval: float = Field(default=60.0, gt=0)
    group_cache_ttl: float = Field(default=300.0, gt=0)


class RetryConfig(BaseModel):
    """Outbound send retry policy."""
    retries: int = Field(default=3, ge=1)
    delay: float = Field(default=3.0, ge=0)
    timeout: float = Field(default=5.0, gt=0)


class BridgeConfig(BaseModel):
    """WebSocket bridge to the protocol sidecar."""
    url: str = "ws://127.0.0.1:8787/ws"
    heartbeat: float = 30.0


class StickerConfig(BaseModel):
    """Sticker transcoding."""
    ffmpeg: str = "ffmpeg"
    webpmux: str = "webpmux"
    max_video_seconds: int = 11  # Sent directly with the command
    max_quoted_video_seconds: int = 35  # Quoted by the command


class YouTubeConfig(BaseModel):
    """Video search and download (yt-dlp)."""
    ytdlp: str = "yt-dlp"
    max_minutes: int = 20  # Longer search results are refused
    timeout: float = 300.0


class GeminiConfig(BaseModel):
    """AI content generation."""
    api_key: str = ""
    model: str = "gemini-2.0-flash"
    timeout: float = 60.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str | None = None  # Optional rotating log file


class Config(BaseSettings):
    """Root configuration for zapbot."""
    model_config = SettingsConfigDict(env_prefix="ZAPBOT_", env_nested_delimiter="__")

    owner: OwnerConfig = Field(default_factory=OwnerConfig)
    bot: BotConfig = Field(default_factory=BotConfig)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    sticker: StickerConfig = Field(default_factory=StickerConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    youtube: YouTubeConfig = Field(default_factory=YouTubeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    data_dir: str = "~/.zapbot"

    @property
    def data_path(self) -> Path:
        """Get expanded data directory."""
        return Path(self.data_dir).expanduser()

    @property
    def temp_path(self) -> Path:
        return self.data_path / "temp"

    @property
    def credentials_path(self) -> Path:
        return self.data_path / "session" / "creds.json"
