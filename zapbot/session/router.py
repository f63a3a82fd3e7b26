"""Fault-isolated dispatch of session event batches."""

import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping

from loguru import logger

from zapbot.errors import HandlerError
from zapbot.session.events import parse_event

EventHandler = Callable[[Any], Awaitable[None]]


@dataclass
class DispatchReport:
    """What happened to each event name in a batch."""

    handled: list[str] = field(default_factory=list)
    failed: list[HandlerError] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class EventRouter:
    """Routes each event of a batch to the handler registered for its name.

    The handler table is frozen at construction; build a new router for each
    session. Handlers receive the typed event from
    :func:`zapbot.session.events.parse_event`, or the raw payload for names
    that have no typed variant.
    """

    def __init__(self, handlers: Mapping[str, EventHandler]):
        self._handlers = MappingProxyType(dict(handlers))

    @property
    def handlers(self) -> Mapping[str, EventHandler]:
        return self._handlers

    async def dispatch(self, batch: Mapping[str, Any]) -> DispatchReport:
        """Run the handler for every event in ``batch``, in order.

        A failing handler is logged and recorded; the remaining events still
        run and this method never raises (except for cancellation).
        """
        report = DispatchReport()

        for name, payload in batch.items():
            handler = self._handlers.get(name)
            if handler is None:
                report.ignored.append(name)
                continue

            try:
                event = parse_event(name, payload)
                await handler(event if event is not None else payload)
                report.handled.append(name)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = HandlerError(name, e)
                report.failed.append(error)
                logger.error(f"Error processing event {name}: {e}")

        return report
