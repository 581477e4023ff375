"""
Live notifications.

`NotificationRouter` keeps, per user, the one connection that currently receives
pushes and delivers events to it at most once. Nothing is queued: a user who is
not connected simply misses the push and can pull the state later (/pending,
/match).

`NotificationDispatcher` turns match events into pushes.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

from .errors import DeliveryFailure
from .events import EventBus, MatchConfirmed, MatchProposed, MatchRejected
from .logging_config import get_logger
from .models import Match

log = get_logger(__name__)

GAME_CONFIRMATION_RECEIVED = "game:confirmation:received"
GAME_CONFIRMED = "game:confirmed"
GAME_REJECTED = "game:rejected"


class TransportHandle(Protocol):
    """One live connection to a user."""

    @property
    def is_live(self) -> bool: ...

    async def push(self, event_name: str, envelope: dict[str, Any]) -> None:
        """Deliver now or raise DeliveryFailure."""


def envelope(event_name: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "event": event_name,
        "payload": dict(payload),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class NotificationRouter:
    def __init__(self):
        self._connections: dict[int, TransportHandle] = {}
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.delivered = 0
        self.failed = 0

    async def register(self, user_id: int, handle: TransportHandle) -> None:
        """Make `handle` the user's connection. A previous one is superseded, not closed."""
        async with self._locks[user_id]:
            previous = self._connections.get(user_id)
            self._connections[user_id] = handle
        if previous is not None and previous is not handle:
            log.info("User %s reconnected; previous connection superseded", user_id)
        else:
            log.info("User %s connected", user_id)

    async def unregister(self, user_id: int, handle: TransportHandle) -> bool:
        """Drop the user's connection, but only if `handle` is still the current one."""
        async with self._locks[user_id]:
            if self._connections.get(user_id) is not handle:
                log.debug("Stale unregister ignored for user %s", user_id)
                if user_id not in self._connections:
                    self._locks.pop(user_id, None)
                return False
            del self._connections[user_id]
            self._locks.pop(user_id, None)
        log.info("User %s disconnected", user_id)
        return True

    def connection_for(self, user_id: int) -> TransportHandle | None:
        return self._connections.get(user_id)

    def is_connected(self, user_id: int) -> bool:
        handle = self._connections.get(user_id)
        return handle is not None and handle.is_live

    def connected_user_ids(self) -> list[int]:
        return [uid for uid, h in self._connections.items() if h.is_live]

    def connected_count(self) -> int:
        return len(self.connected_user_ids())

    async def _push(self, user_id: int, handle: TransportHandle, event_name: str, env: dict[str, Any]) -> bool:
        try:
            await handle.push(event_name, env)
        except DeliveryFailure as e:
            self.failed += 1
            log.warning("Push %s to user %s failed: %s", event_name, user_id, e)
            return False
        except Exception:
            self.failed += 1
            log.warning("Push %s to user %s failed", event_name, user_id, exc_info=True)
            return False
        self.delivered += 1
        log.debug("Pushed %s to user %s", event_name, user_id)
        return True

    async def notify(self, user_id: int, event_name: str, payload: dict[str, Any]) -> bool:
        """Push one event to `user_id`. Returns False (never raises) when it was not delivered."""
        handle = self._connections.get(user_id)
        if handle is None or not handle.is_live:
            log.debug("User %s not connected; %s not delivered", user_id, event_name)
            return False
        return await self._push(user_id, handle, event_name, envelope(event_name, payload))

    async def notify_many(self, user_ids: Iterable[int], event_name: str, payload: dict[str, Any]) -> int:
        delivered = 0
        for uid in dict.fromkeys(user_ids):
            if await self.notify(uid, event_name, payload):
                delivered += 1
        return delivered

    async def broadcast(self, event_name: str, payload: dict[str, Any]) -> int:
        """Push to every registered connection; returns how many received it."""
        env = envelope(event_name, payload)
        delivered = 0
        for uid, handle in list(self._connections.items()):
            if not handle.is_live:
                continue
            if await self._push(uid, handle, event_name, env):
                delivered += 1
        log.info("Broadcast %s delivered to %s user(s)", event_name, delivered)
        return delivered


def match_payload(match: Match) -> dict[str, Any]:
    return {
        "gameId": match.id,
        "discipline": match.discipline,
        "sideA": list(match.side_a),
        "sideB": list(match.side_b),
        "scores": [list(s) for s in match.scores],
        "winner": match.winner,
        "status": match.status,
        "proposerId": match.proposer_id,
    }


class NotificationDispatcher:
    """Forwards match events from the bus to the router."""

    def __init__(self, router: NotificationRouter):
        self.router = router

    def attach(self, bus: EventBus) -> "NotificationDispatcher":
        bus.subscribe(MatchProposed, self.on_proposed)
        bus.subscribe(MatchConfirmed, self.on_confirmed)
        bus.subscribe(MatchRejected, self.on_rejected)
        return self

    async def on_proposed(self, event: MatchProposed) -> None:
        payload = match_payload(event.match)
        payload["message"] = "Please confirm this game result"
        await self.router.notify_many(event.match.responders, GAME_CONFIRMATION_RECEIVED, payload)

    async def on_confirmed(self, event: MatchConfirmed) -> None:
        match = event.match
        payload = match_payload(match)
        payload["confirmedBy"] = event.confirmed_by
        payload["ratingChanges"] = [
            {"userId": c.user_id, "before": c.before, "after": c.after, "change": c.delta}
            for c in match.rating_changes
        ]
        payload["message"] = "Game result has been confirmed and ratings updated!"
        await self.router.notify_many(match.bystanders(event.confirmed_by), GAME_CONFIRMED, payload)

    async def on_rejected(self, event: MatchRejected) -> None:
        match = event.match
        payload = match_payload(match)
        payload["rejectedBy"] = event.rejected_by
        await self.router.notify_many(match.bystanders(event.rejected_by), GAME_REJECTED, payload)
