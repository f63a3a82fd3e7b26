"""Connection lifecycle: establish, watch open/close, reconnect with backoff."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Protocol

from loguru import logger

from zapbot.session.events import CONNECTION_UPDATE, ConnectionUpdate
from zapbot.session.maintenance import MaintenanceService
from zapbot.session.router import EventHandler, EventRouter
from zapbot.transport.base import Session, Transport

# 2**32 * base_delay is far past any sane max_delay; keeps the float math finite.
MAX_BACKOFF_EXPONENT = 32

HandlerFactory = Callable[[Session], Mapping[str, EventHandler]]
SleepFn = Callable[[float], Awaitable[Any]]


class CredentialLoader(Protocol):
    def load(self) -> dict[str, Any]: ...


class LifecycleState(str, Enum):
    idle = "idle"
    connecting = "connecting"
    open = "open"
    closing = "closing"


@dataclass
class ReconnectState:
    """Reconnect counter and backoff bounds (seconds)."""

    attempts: int = 0
    base_delay: float = 2.0
    max_delay: float = 60.0

    def __post_init__(self):
        if self.base_delay <= 0 or self.max_delay <= 0:
            raise ValueError("backoff delays must be positive")


def compute_backoff(attempts: int, base_delay: float, max_delay: float) -> float:
    """``min(base_delay * 2**attempts, max_delay)`` with the exponent clamped."""
    exponent = min(max(attempts, 0), MAX_BACKOFF_EXPONENT)
    return min(base_delay * 2 ** exponent, max_delay)


class ConnectionLifecycle:
    """
    Owns the session and its reconnect schedule.

    States: idle -> connecting -> open -> closing -> connecting -> ...

    Construction failures and post-connection closes are treated the same:
    both bump ``attempts`` and schedule another ``establish()`` after the
    backoff delay. Only a confirmed ``open`` resets the counter. There is no
    attempt limit; the delay is capped instead.
    """

    def __init__(
        self,
        transport: Transport,
        credentials: CredentialLoader,
        handler_factory: HandlerFactory,
        reconnect: ReconnectState | None = None,
        on_open: Callable[[Session], Awaitable[None]] | None = None,
        maintenance: MaintenanceService | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.transport = transport
        self.credentials = credentials
        self.handler_factory = handler_factory
        self.reconnect = reconnect or ReconnectState()
        self.on_open_callback = on_open
        self.maintenance = maintenance
        self._sleep = sleep

        self.state = LifecycleState.idle
        self.session: Session | None = None
        self.router: EventRouter | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._stopped = False

    @property
    def attempts(self) -> int:
        return self.reconnect.attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._stopped = False
        await self.establish()

    async def stop(self) -> None:
        """Cancel pending reconnects, stop maintenance and close the session."""
        self._stopped = True
        if self._reconnect_task:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        if self.maintenance:
            self.maintenance.stop()
        await self._teardown_session()
        self.state = LifecycleState.idle
        logger.info("Connection lifecycle stopped")

    async def establish(self) -> None:
        """Build a new session and register the handler table on it.

        Never raises: any failure is logged and routed to the reconnect path.
        """
        await self._teardown_session()
        session: Session | None = None
        try:
            credentials = self.credentials.load()
            logger.info("Starting connection...")
            session = await self.transport.establish_session(credentials)

            handlers = dict(self.handler_factory(session))
            handlers[CONNECTION_UPDATE] = self.handle_connection_update
            router = EventRouter(handlers)

            self.session = session
            self.router = router
            self.state = LifecycleState.connecting
            session.on_events(router.dispatch)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error starting connection: {e}")
            if session is not None:
                if self.session is session:
                    self.session, self.router = None, None
                await self._close_quietly(session)
            self.schedule_reconnect()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def handle_connection_update(self, update: ConnectionUpdate) -> None:
        """Handler for ``connection.update`` events."""
        try:
            if update.connection == "open":
                await self.on_open()
            elif update.connection == "close":
                await self.on_close(update.last_disconnect)
        except Exception as e:
            logger.error(f"Error handling connection update: {e}")
            self.schedule_reconnect()

    async def on_open(self) -> None:
        self.state = LifecycleState.open
        self.reconnect.attempts = 0
        logger.info("Connection open. Bot available.")

        if self.maintenance:
            self.maintenance.start()

        if self.on_open_callback and self.session is not None:
            await self.on_open_callback(self.session)

    async def on_close(self, reason: dict[str, Any] | None = None) -> None:
        self.state = LifecycleState.closing
        if self.maintenance:
            self.maintenance.stop()
        logger.warning(f"Connection closed: {reason or 'no reason given'}")
        self.schedule_reconnect()

    def schedule_reconnect(self) -> float | None:
        """Bump the attempt counter and re-run ``establish()`` after the backoff delay.

        Returns the delay in seconds, or None when nothing was scheduled
        (lifecycle stopped, or a reconnect is already pending).
        """
        if self._stopped:
            return None
        if self.reconnect_pending:
            logger.debug("Reconnect already pending")
            return None

        self.reconnect.attempts += 1
        delay = compute_backoff(
            self.reconnect.attempts, self.reconnect.base_delay, self.reconnect.max_delay,
        )
        logger.info(f"Reconnecting in {delay:.1f}s (attempt {self.reconnect.attempts})")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))
        return delay

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._reconnect_task = None
        if not self._stopped:
            await self.establish()

    async def _teardown_session(self) -> None:
        session, self.session, self.router = self.session, None, None
        if session is not None:
            await self._close_quietly(session)

    @staticmethod
    async def _close_quietly(session: Session) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.debug(f"Error closing session: {e}")
