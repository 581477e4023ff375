"""
Data models for the badminton match desk.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SINGLES = "singles"
DOUBLES = "doubles"
MIXED = "mixed"
DISCIPLINES = (SINGLES, DOUBLES, MIXED)

PENDING = "pending"
CONFIRMED = "confirmed"
REJECTED = "rejected"
STATUSES = (PENDING, CONFIRMED, REJECTED)

SIDE_A = "A"
SIDE_B = "B"


@dataclass
class Player:
    user_id: int
    username: str
    rating_singles: int
    rating_doubles: int
    rating_mixed: int
    games_played: int = 0
    games_won: int = 0

    def rating(self, discipline: str) -> int:
        return getattr(self, f"rating_{discipline}")

    @property
    def games_lost(self) -> int:
        return self.games_played - self.games_won

    @property
    def win_rate(self) -> float:
        if self.games_played <= 0:
            return 0.0
        return self.games_won / self.games_played * 100


@dataclass(frozen=True)
class RatingChange:
    user_id: int
    before: int
    after: int

    @property
    def delta(self) -> int:
        return self.after - self.before


@dataclass
class Match:
    id: int | None
    guild_id: int
    discipline: str
    side_a: list[int]
    side_b: list[int]
    scores: list[tuple[int, int]]
    winner: str
    proposer_id: int
    responders: list[int]
    status: str = PENDING
    responded_by: int | None = None
    created_at: str | None = None
    resolved_at: str | None = None
    rating_changes: list[RatingChange] = field(default_factory=list)

    @property
    def participants(self) -> list[int]:
        return [*self.side_a, *self.side_b]

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    def side_of(self, user_id: int) -> str | None:
        if user_id in self.side_a:
            return SIDE_A
        if user_id in self.side_b:
            return SIDE_B
        return None

    def won(self, user_id: int) -> bool:
        return self.side_of(user_id) == self.winner

    def bystanders(self, *exclude: int) -> list[int]:
        """Participants other than `exclude` (typically the proposer and the responder)."""
        return [uid for uid in self.participants if uid not in exclude]

    def change_for(self, user_id: int) -> RatingChange | None:
        for change in self.rating_changes:
            if change.user_id == user_id:
                return change
        return None
