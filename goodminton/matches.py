"""
Match confirmation workflow.

A participant proposes a result, the opposing side confirms or rejects it.
Ratings only move on confirmation, and only once: the status change is a
conditional update (pending -> confirmed) that commits in the same transaction
as the rating writes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from . import db, rating, rules
from .config import Settings
from .errors import InvalidState, NotFound, Unauthorized, ValidationError
from .events import EventBus, MatchConfirmed, MatchProposed, MatchRejected
from .logging_config import get_logger
from .models import (
    CONFIRMED,
    DISCIPLINES,
    DOUBLES,
    MIXED,
    REJECTED,
    SIDE_A,
    SIDE_B,
    SINGLES,
    Match,
    Player,
    RatingChange,
)

log = get_logger(__name__)


class MatchService:
    def __init__(
        self,
        bus: EventBus | None = None,
        k_factor: int = rating.K_FACTOR,
        strict_scores: bool = False,
        points_target: int = 21,
        points_win_by: int = 2,
        points_cap: Optional[int] = None,
    ):
        self.bus = bus or EventBus()
        self.k_factor = k_factor
        self.strict_scores = strict_scores
        self.points_target = points_target
        self.points_win_by = points_win_by
        self.points_cap = points_cap

    @classmethod
    def from_settings(cls, settings: Settings, bus: EventBus | None = None) -> "MatchService":
        return cls(
            bus=bus,
            k_factor=settings.k_factor,
            strict_scores=settings.strict_scores,
            points_target=settings.points_target,
            points_win_by=settings.points_win_by,
            points_cap=settings.cap_for(settings.points_target),
        )

    # --- validation ---

    @staticmethod
    def _check_sides(side_a: list[int], side_b: list[int]) -> None:
        if not side_a or not side_b:
            raise ValidationError("Both sides need at least one player.")
        if len(side_a) != len(side_b) or len(side_a) > 2:
            raise ValidationError("Sides must be 1v1 (singles) or 2v2 (doubles).")
        for label, side in (("A", side_a), ("B", side_b)):
            if len(set(side)) != len(side):
                raise ValidationError(f"Side {label} lists the same player twice.")
        overlap = set(side_a) & set(side_b)
        if overlap:
            raise ValidationError("A player cannot be on both sides.")

    @staticmethod
    def _discipline_for(side_size: int, discipline: Optional[str]) -> str:
        if discipline is not None:
            discipline = discipline.lower()
            if discipline not in DISCIPLINES:
                raise ValidationError(f"Unknown discipline `{discipline}`.")
        if side_size == 1:
            if discipline not in (None, SINGLES):
                raise ValidationError("A 1v1 match can only be singles.")
            return SINGLES
        if discipline not in (None, DOUBLES, MIXED):
            raise ValidationError("A 2v2 match is doubles or mixed.")
        return discipline or DOUBLES

    @staticmethod
    def _winning_side(winner, side_a: list[int], side_b: list[int]) -> str:
        """Accept "A"/"B" or the user id of any player on the winning side."""
        if isinstance(winner, str) and winner.strip().upper() in (SIDE_A, SIDE_B):
            return winner.strip().upper()
        if isinstance(winner, int) and not isinstance(winner, bool):
            if winner in side_a:
                return SIDE_A
            if winner in side_b:
                return SIDE_B
        raise ValidationError("The winner must be one of the two sides.")

    # --- operations ---

    async def propose(
        self,
        proposer_id: int,
        side_a: Iterable[int],
        side_b: Iterable[int],
        scores,
        winner,
        discipline: Optional[str] = None,
        guild_id: int = 0,
        names: Optional[dict[int, str]] = None,
    ) -> Match:
        """Record a pending match and ask the opposing side to confirm it."""
        side_a, side_b = list(side_a), list(side_b)
        self._check_sides(side_a, side_b)
        if proposer_id not in side_a and proposer_id not in side_b:
            raise ValidationError("You can only report matches you played in.")
        winning_side = self._winning_side(winner, side_a, side_b)
        scores = rules.validate_scores(scores)
        if self.strict_scores:
            rules.check_badminton_rules(
                scores, winning_side, self.points_target, self.points_win_by, self.points_cap
            )
        discipline = self._discipline_for(len(side_a), discipline)
        responders = side_b if proposer_id in side_a else side_a

        names = names or {}
        for uid in (*side_a, *side_b):
            await db.get_or_create_player(uid, names.get(uid))

        draft = Match(
            id=None,
            guild_id=guild_id,
            discipline=discipline,
            side_a=side_a,
            side_b=side_b,
            scores=scores,
            winner=winning_side,
            proposer_id=proposer_id,
            responders=list(responders),
        )
        match_id = await db.insert_pending_match(draft)
        match = await db.get_match(match_id)
        log.info("Match #%s proposed by %s (%s) A=%s B=%s winner=%s awaiting %s",
                 match_id, proposer_id, discipline, side_a, side_b, winning_side, match.responders)
        await self.bus.publish(MatchProposed(match))
        return match

    async def get_match(self, match_id: int) -> Match:
        match = await db.get_match(match_id)
        if match is None:
            raise NotFound(f"Match #{match_id} not found.")
        return match

    async def _load_for_response(self, match_id: int, responder_id: int) -> Match:
        match = await self.get_match(match_id)
        # outsiders learn nothing about the match's state
        if responder_id not in match.responders:
            raise Unauthorized(f"You are not allowed to respond to match #{match_id}.")
        if not match.is_pending:
            raise InvalidState(f"Match #{match_id} has already been {match.status}.")
        return match

    async def confirm(self, match_id: int, responder_id: int) -> Match:
        """Confirm a pending match and apply its rating changes exactly once."""
        match = await self._load_for_response(match_id, responder_id)
        a_won = match.winner == SIDE_A

        async with db.transaction() as conn:
            if not await db.resolve_match(conn, match_id, CONFIRMED, responder_id):
                raise InvalidState(f"Match #{match_id} has already been resolved.")
            ratings = await db.load_ratings(conn, match.participants, match.discipline)
            delta_a, delta_b = rating.side_deltas(
                [ratings[uid] for uid in match.side_a],
                [ratings[uid] for uid in match.side_b],
                a_won,
                self.k_factor,
            )
            changes = []
            for side, delta, won in ((match.side_a, delta_a, a_won), (match.side_b, delta_b, not a_won)):
                for uid in side:
                    before = ratings[uid]
                    await db.apply_rating(conn, uid, match.discipline, before + delta, won)
                    changes.append(RatingChange(uid, before, before + delta))
            await db.store_rating_changes(conn, match_id, changes)

        confirmed = await db.get_match(match_id)
        log.info("Match #%s confirmed by %s (delta A=%+d B=%+d)", match_id, responder_id, delta_a, delta_b)
        await self.bus.publish(MatchConfirmed(confirmed, responder_id))
        return confirmed

    async def reject(self, match_id: int, responder_id: int) -> Match:
        """Reject a pending match. Ratings are untouched."""
        await self._load_for_response(match_id, responder_id)

        async with db.transaction() as conn:
            if not await db.resolve_match(conn, match_id, REJECTED, responder_id):
                raise InvalidState(f"Match #{match_id} has already been resolved.")

        rejected = await db.get_match(match_id)
        log.info("Match #%s rejected by %s", match_id, responder_id)
        await self.bus.publish(MatchRejected(rejected, responder_id))
        return rejected

    async def list_pending_for(self, user_id: int) -> list[Match]:
        return await db.list_pending_for_user(user_id)

    async def weekly_matches(self, user_id: int, now: Optional[datetime] = None) -> list[Match]:
        """Confirmed matches of the current Sunday-to-Saturday week (UTC)."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        now = now.astimezone(timezone.utc)
        days_since_sunday = (now.weekday() + 1) % 7
        start = (now - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=7)
        return await db.confirmed_matches_for_user(user_id, start.isoformat(), end.isoformat())

    async def player_stats(self, user_id: int, username: Optional[str] = None) -> Player:
        return await db.get_or_create_player(user_id, username)

    async def leaderboard(self, discipline: str = SINGLES, limit: int = 10) -> list[Player]:
        if discipline not in DISCIPLINES:
            raise ValidationError(f"Unknown discipline `{discipline}`.")
        return await db.top_players(discipline, limit)
