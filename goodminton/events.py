"""
Domain events emitted by the match service, and a tiny in-process bus.

The service publishes after its database work has committed; subscribers (the
notification dispatcher, tests) decide what to do with them.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable

from .logging_config import get_logger
from .models import Match

log = get_logger(__name__)


@dataclass(frozen=True)
class MatchProposed:
    match: Match


@dataclass(frozen=True)
class MatchConfirmed:
    match: Match
    confirmed_by: int


@dataclass(frozen=True)
class MatchRejected:
    match: Match
    rejected_by: int


Handler = Callable[[object], Awaitable[None]]


class EventBus:
    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    async def publish(self, event: object) -> None:
        """Run every handler for `event`. A failing handler is logged and skipped."""
        for handler in list(self._handlers.get(type(event), ())):
            try:
                await handler(event)
            except Exception:
                log.exception("Handler %r failed for %s", handler, type(event).__name__)
