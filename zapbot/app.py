"""Application wiring: collaborators, per-session handler table, run loop."""

import asyncio
from typing import Any, Mapping

from loguru import logger

from zapbot.auth.credentials import CredentialStore
from zapbot.commands.handlers import BotCommands
from zapbot.commands.pipeline import CommandPipeline, Replier
from zapbot.config.schema import Config
from zapbot.media.manager import MediaManager
from zapbot.media.sticker import StickerMaker
from zapbot.providers.gemini import ContentGenerator, create_content_generator
from zapbot.providers.youtube import MediaDownloader, YtDlpDownloader
from zapbot.session.cache import GroupMetadataCache
from zapbot.session.events import (
    CREDENTIALS_UPDATE,
    GROUPS_UPDATE,
    MESSAGES_UPSERT,
    PARTICIPANTS_UPDATE,
    CredentialsUpdate,
    GroupsUpdate,
    MessagesUpsert,
    ParticipantsUpdate,
)
from zapbot.session.lifecycle import ConnectionLifecycle, ReconnectState, SleepFn
from zapbot.session.maintenance import MaintenanceService
from zapbot.session.router import EventHandler
from zapbot.transport.base import Session, Transport
from zapbot.transport.bridge import BridgeTransport
from zapbot.utils.retry import policy_from_config

# Events the session emits that need no handling
_IGNORED_EVENTS = ("chats.upsert", "contacts.upsert")


class ZapBot:
    """Owns the long-lived collaborators and rebuilds the handler table per session."""

    def __init__(
        self,
        config: Config,
        transport: Transport | None = None,
        credentials: CredentialStore | None = None,
        generator: ContentGenerator | None = None,
        stickers: StickerMaker | None = None,
        downloader: MediaDownloader | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.config = config
        self.policy = policy_from_config(config.retry)
        self.group_cache = GroupMetadataCache(ttl=config.connection.group_cache_ttl)

        self.transport = transport or BridgeTransport(
            config.bridge.url, heartbeat=config.bridge.heartbeat, group_cache=self.group_cache,
        )
        self.credentials = credentials or CredentialStore(config.credentials_path)

        if generator is None:
            generator = create_content_generator(
                config.gemini.api_key, config.gemini.model, timeout=config.gemini.timeout,
            )
        media = MediaManager(config.temp_path)
        stickers = stickers or StickerMaker(
            media,
            ffmpeg=config.sticker.ffmpeg,
            webpmux=config.sticker.webpmux,
        )
        downloader = downloader or YtDlpDownloader(
            media, binary=config.youtube.ytdlp, timeout=config.youtube.timeout,
        )
        self.commands = BotCommands(stickers, generator, downloader)
        self.pipeline = CommandPipeline(config, self.commands.table(), policy=self.policy)

        self.maintenance = MaintenanceService(
            self._maintenance_tick, interval_s=config.connection.maintenance_interval,
        )
        self.lifecycle = ConnectionLifecycle(
            transport=self.transport,
            credentials=self.credentials,
            handler_factory=self.build_handlers,
            reconnect=ReconnectState(
                base_delay=config.connection.base_delay,
                max_delay=config.connection.max_delay,
            ),
            on_open=self._notify_owner,
            maintenance=self.maintenance,
            sleep=sleep,
        )
        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Handler table
    # ------------------------------------------------------------------

    def build_handlers(self, session: Session) -> Mapping[str, EventHandler]:
        """Build the event handler table for a freshly established session."""

        async def ignore(_: Any) -> None:
            return None

        async def on_credentials(event: CredentialsUpdate) -> None:
            await self.credentials.save(event.state)

        async def on_messages(event: MessagesUpsert) -> None:
            # Awaited inline: batches finish in order, so a later close waits for slow commands.
            await self.pipeline.handle_upsert(session, event)

        async def on_groups(event: GroupsUpdate) -> None:
            for group in event.groups:
                jid = group.get("id")
                if not jid:
                    continue
                self.group_cache.delete(jid)
                metadata = await session.group_metadata(jid)
                self.group_cache.set(jid, metadata)

        async def on_participants(event: ParticipantsUpdate) -> None:
            # Membership changed; next read refetches.
            self.group_cache.delete(event.id)
            logger.info(f"Group {event.id}: {event.action} {', '.join(event.participants)}")

        handlers: dict[str, EventHandler] = {name: ignore for name in _IGNORED_EVENTS}
        handlers.update({
            CREDENTIALS_UPDATE: on_credentials,
            MESSAGES_UPSERT: on_messages,
            GROUPS_UPDATE: on_groups,
            PARTICIPANTS_UPDATE: on_participants,
        })
        return handlers

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    async def _notify_owner(self, session: Session) -> None:
        replier = Replier(session, owner_jid=self.config.owner.number, policy=self.policy)
        if await replier.report_owner("🟢 The bot started successfully."):
            logger.info("Status message sent to the owner")

    async def _maintenance_tick(self) -> None:
        pruned = self.group_cache.prune()
        logger.debug(
            f"Maintenance: state={self.lifecycle.state.value} "
            f"groups_cached={len(self.group_cache)} pruned={pruned}"
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start the lifecycle and block until :meth:`stop` is called."""
        self.config.temp_path.mkdir(parents=True, exist_ok=True)
        await self.lifecycle.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.lifecycle.stop()

    def stop(self) -> None:
        self._stop_event.set()
