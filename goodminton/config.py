"""
Runtime settings for the bot, read from the environment (and a local .env file).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .logging_config import get_logger

log = get_logger(__name__)

DEFAULT_K_FACTOR = 32
DEFAULT_RATING = 1000


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _optional_int(name: str) -> Optional[int]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        log.warning("Ignoring non-integer %s=%r", name, raw)
        return None


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning("Invalid %s value %r, using default %s", name, raw, default)
        return default
    if value <= 0:
        log.warning("%s must be positive, using default %s", name, default)
        return default
    return value


@dataclass
class Settings:
    discord_token: Optional[str] = None
    test_mode: bool = False
    test_guild_id: Optional[int] = None
    database_path: str = "./goodminton.sqlite"
    db_timeout: float = 5.0

    k_factor: int = DEFAULT_K_FACTOR
    default_rating: int = DEFAULT_RATING

    strict_scores: bool = False
    points_target: int = 21
    points_win_by: int = 2
    points_cap: Optional[int] = None

    emoji_approve: str = "✅"
    emoji_reject: str = "❌"
    mentions_ping: bool = True

    @property
    def ephemeral(self) -> bool:
        return self.database_path.startswith("file::memory:") or self.database_path == ":memory:"

    def cap_for(self, target: int) -> int:
        """Points cap for a set played to `target` (30 for 21-point sets, 15 for 11-point)."""
        if self.points_cap is not None:
            return self.points_cap
        return 30 if target >= 21 else 15

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()

        test_mode = _flag("TEST_MODE")
        database_path = os.getenv(
            "DATABASE_PATH",
            "./test_goodminton.sqlite" if test_mode else "./goodminton.sqlite",
        )
        if _flag("EPHEMERAL_DB"):
            database_path = "file::memory:?cache=shared"

        try:
            db_timeout = float(os.getenv("DB_TIMEOUT", "5.0"))
        except ValueError:
            log.warning("Invalid DB_TIMEOUT, using 5.0s")
            db_timeout = 5.0

        return cls(
            discord_token=os.getenv("DISCORD_TOKEN"),
            test_mode=test_mode,
            test_guild_id=_optional_int("TEST_GUILD_ID"),
            database_path=database_path,
            db_timeout=db_timeout,
            k_factor=_positive_int("K_FACTOR", DEFAULT_K_FACTOR),
            default_rating=_positive_int("DEFAULT_RATING", DEFAULT_RATING),
            strict_scores=_flag("STRICT_SCORES"),
            points_target=_positive_int("POINTS_TARGET", 21),
            points_win_by=_positive_int("POINTS_WIN_BY", 2),
            points_cap=_optional_int("POINTS_CAP"),
            emoji_approve=os.getenv("EMOJI_APPROVE", "✅"),
            emoji_reject=os.getenv("EMOJI_REJECT", "❌"),
            mentions_ping=_flag("MENTIONS_PING", "1"),
        )
