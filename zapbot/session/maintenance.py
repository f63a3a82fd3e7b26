"""Periodic maintenance while a session is open."""

import asyncio
from typing import Any, Callable, Coroutine

from loguru import logger

DEFAULT_MAINTENANCE_INTERVAL_S = 60


class MaintenanceService:
    """
    Runs ``on_tick`` every ``interval_s`` seconds until stopped.

    Started by the connection lifecycle when a session opens and stopped when
    it closes, so at most one loop runs per open session.
    """

    def __init__(
        self,
        on_tick: Callable[[], Coroutine[Any, Any, None]],
        interval_s: float = DEFAULT_MAINTENANCE_INTERVAL_S,
    ):
        self.on_tick = on_tick
        self.interval_s = interval_s
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop, replacing any loop already running."""
        self.stop()
        self._task = asyncio.create_task(self._run_loop())
        logger.debug(f"Maintenance started (every {self.interval_s}s)")

    def stop(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_s)
                await self.on_tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Maintenance error: {e}")
