"""
Discord-backed connections for the notification router.

A user opts in with /live: either direct messages or a guild channel.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import discord

from . import fmt
from .errors import DeliveryFailure
from .logging_config import get_logger

log = get_logger(__name__)

OnSent = Callable[[int, str, dict[str, Any], discord.Message], Awaitable[None]]


class DirectMessageHandle:
    """Pushes events as DMs to one user."""

    def __init__(self, user: discord.abc.User, on_sent: Optional[OnSent] = None, allowed_mentions=None):
        self.user = user
        self.on_sent = on_sent
        self.allowed_mentions = allowed_mentions or discord.AllowedMentions.none()
        self._closed = False

    @property
    def is_live(self) -> bool:
        return not self._closed

    def close(self) -> None:
        self._closed = True

    async def push(self, event_name: str, envelope: dict[str, Any]) -> None:
        try:
            message = await self.user.send(
                fmt.render_event(event_name, envelope),
                allowed_mentions=self.allowed_mentions,
            )
        except discord.Forbidden as e:
            # DMs closed: stop trying until the user runs /live again
            self._closed = True
            raise DeliveryFailure(f"DMs to {self.user.id} are closed") from e
        except discord.HTTPException as e:
            raise DeliveryFailure(f"DM to {self.user.id} failed: {e}") from e
        if self.on_sent is not None:
            try:
                await self.on_sent(self.user.id, event_name, envelope, message)
            except Exception:
                log.debug("on_sent hook failed for %s", event_name, exc_info=True)

    def __repr__(self) -> str:
        return f"<DirectMessageHandle user={self.user.id} live={self.is_live}>"


class ChannelHandle:
    """Pushes events into a guild channel, mentioning the user."""

    def __init__(self, channel: discord.abc.Messageable, user_id: int, on_sent: Optional[OnSent] = None,
                 allowed_mentions=None):
        self.channel = channel
        self.user_id = user_id
        self.on_sent = on_sent
        self.allowed_mentions = allowed_mentions or discord.AllowedMentions(users=True, roles=False, everyone=False)
        self._closed = False

    @property
    def is_live(self) -> bool:
        return not self._closed

    def close(self) -> None:
        self._closed = True

    async def push(self, event_name: str, envelope: dict[str, Any]) -> None:
        text = f"{fmt.mention(self.user_id)} {fmt.render_event(event_name, envelope)}"
        try:
            message = await self.channel.send(text, allowed_mentions=self.allowed_mentions)
        except (discord.Forbidden, discord.NotFound) as e:
            self._closed = True
            raise DeliveryFailure(f"channel for {self.user_id} is gone: {e}") from e
        except discord.HTTPException as e:
            raise DeliveryFailure(f"channel post for {self.user_id} failed: {e}") from e
        if self.on_sent is not None:
            try:
                await self.on_sent(self.user_id, event_name, envelope, message)
            except Exception:
                log.debug("on_sent hook failed for %s", event_name, exc_info=True)

    def __repr__(self) -> str:
        return f"<ChannelHandle user={self.user_id} channel={getattr(self.channel, 'id', None)} live={self.is_live}>"
