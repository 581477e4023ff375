"""
SQLite persistence for players, matches and confirmation DMs.

Every helper opens its own connection, except the ones taking a `conn` argument:
those run inside `transaction()` so a confirmation commits status, ratings and
stats together or not at all.
"""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import aiosqlite

from .logging_config import get_logger
from .models import (
    CONFIRMED,
    DISCIPLINES,
    PENDING,
    Match,
    Player,
    RatingChange,
)

log = get_logger(__name__)

# Global database settings (set by init_db)
DB_PATH = "goodminton.sqlite"
DB_TIMEOUT = 5.0
BASE_RATING = 1000

# Holds a shared in-memory database open; it vanishes with its last connection
_KEEPER: Optional[aiosqlite.Connection] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect(**kwargs) -> aiosqlite.Connection:
    return aiosqlite.connect(DB_PATH, timeout=DB_TIMEOUT, uri=DB_PATH.startswith("file:"), **kwargs)


def is_in_memory(path: str) -> bool:
    return path == ":memory:" or path.startswith("file::memory:") or "mode=memory" in path


def _ids(csv: str | None) -> list[int]:
    return [int(x) for x in (csv or "").split(",") if x]


def _csv(ids: list[int]) -> str:
    return ",".join(map(str, ids))


def _rating_column(discipline: str) -> str:
    if discipline not in DISCIPLINES:
        raise ValueError(f"unknown discipline {discipline!r}")
    return f"rating_{discipline}"


def _player_from_row(row) -> Player:
    return Player(
        user_id=row["user_id"],
        username=row["username"],
        rating_singles=row["rating_singles"],
        rating_doubles=row["rating_doubles"],
        rating_mixed=row["rating_mixed"],
        games_played=row["games_played"],
        games_won=row["games_won"],
    )


def _match_from_row(row) -> Match:
    changes = json.loads(row["rating_changes"] or "[]")
    return Match(
        id=row["id"],
        guild_id=row["guild_id"],
        discipline=row["discipline"],
        side_a=_ids(row["side_a"]),
        side_b=_ids(row["side_b"]),
        scores=[(int(a), int(b)) for a, b in json.loads(row["scores"] or "[]")],
        winner=row["winner"],
        proposer_id=row["proposer_id"],
        responders=_ids(row["responders"]),
        status=row["status"],
        responded_by=row["responded_by"],
        created_at=row["created_at"],
        resolved_at=row["resolved_at"],
        rating_changes=[RatingChange(c["user_id"], c["before"], c["after"]) for c in changes],
    )


async def init_db(db_path: str = "goodminton.sqlite", timeout: float = 5.0, base_rating: int = 1000) -> None:
    """Initialize the database with required tables and indexes.

    An in-memory path gets a keeper connection that lives until `close_db()`,
    so the per-call connections all see the same database. Calling this again
    with the same path keeps the existing data.
    """
    global DB_PATH, DB_TIMEOUT, BASE_RATING, _KEEPER
    if db_path == ":memory:":
        # a plain :memory: is private to one connection
        db_path = "file::memory:?cache=shared"
    if _KEEPER is not None and db_path != DB_PATH:
        await close_db()
    DB_PATH = db_path
    DB_TIMEOUT = timeout
    BASE_RATING = base_rating

    if is_in_memory(DB_PATH) and _KEEPER is None:
        _KEEPER = await _connect()
        log.warning("Using in-memory database %s; data is lost on shutdown", DB_PATH)

    async with _connect() as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS players (
                user_id INTEGER PRIMARY KEY,
                username TEXT NOT NULL,
                rating_singles INTEGER NOT NULL,
                rating_doubles INTEGER NOT NULL,
                rating_mixed INTEGER NOT NULL,
                games_played INTEGER NOT NULL DEFAULT 0,
                games_won INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS matches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL DEFAULT 0,
                discipline TEXT CHECK(discipline IN ('singles','doubles','mixed')) NOT NULL,
                side_a TEXT NOT NULL,
                side_b TEXT NOT NULL,
                scores TEXT NOT NULL,
                winner TEXT CHECK(winner IN ('A','B')) NOT NULL,
                status TEXT CHECK(status IN ('pending','confirmed','rejected')) NOT NULL DEFAULT 'pending',
                proposer_id INTEGER NOT NULL,
                responders TEXT NOT NULL,
                responded_by INTEGER,
                rating_changes TEXT,
                created_at TEXT NOT NULL,
                resolved_at TEXT
            )
            """
        )
        # One row per (match, responder) so pending lookups don't need LIKE over CSV
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS match_responders (
                match_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                PRIMARY KEY (match_id, user_id)
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_responders_user ON match_responders(user_id)")
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS match_players (
                match_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                PRIMARY KEY (match_id, user_id)
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_match_players_user ON match_players(user_id)")
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS verification_messages (
                message_id INTEGER PRIMARY KEY,
                match_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now'))
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_verif_match ON verification_messages(match_id)")
        await db.commit()
    log.debug("Initialized database at %s", DB_PATH)


async def close_db() -> None:
    """Release the in-memory keeper connection, if any. Its data is dropped."""
    global _KEEPER
    if _KEEPER is None:
        return
    keeper, _KEEPER = _KEEPER, None
    await keeper.close()
    log.debug("Closed keeper connection for %s", DB_PATH)


@asynccontextmanager
async def transaction() -> AsyncIterator[aiosqlite.Connection]:
    """Open a connection holding the write lock until commit (BEGIN IMMEDIATE).

    Commits when the block exits normally, rolls back on any exception.
    """
    async with _connect(isolation_level=None) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("BEGIN IMMEDIATE")
        try:
            yield db
        except BaseException:
            await db.execute("ROLLBACK")
            raise
        else:
            await db.execute("COMMIT")


# --- Players ---

async def get_player(user_id: int) -> Optional[Player]:
    async with _connect() as db:
        db.row_factory = aiosqlite.Row
        async with db.execute("SELECT * FROM players WHERE user_id = ?", (user_id,)) as cursor:
            row = await cursor.fetchone()
            return _player_from_row(row) if row else None


async def get_or_create_player(user_id: int, username: str | None = None, base_rating: int | None = None) -> Player:
    """Get existing player or create a new one at the base rating.

    A non-empty `username` refreshes the stored name of an existing player.
    """
    rating = BASE_RATING if base_rating is None else base_rating
    now = _now()
    async with _connect() as db:
        db.row_factory = aiosqlite.Row
        await db.execute(
            """
            INSERT OR IGNORE INTO players
                (user_id, username, rating_singles, rating_doubles, rating_mixed, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, username or f"User{user_id}", rating, rating, rating, now, now),
        )
        if username:
            await db.execute("UPDATE players SET username = ? WHERE user_id = ?", (username, user_id))
        await db.commit()
        async with db.execute("SELECT * FROM players WHERE user_id = ?", (user_id,)) as cursor:
            row = await cursor.fetchone()
    player = _player_from_row(row)
    log.debug("get_or_create_player user_id=%s singles=%s doubles=%s mixed=%s",
              user_id, player.rating_singles, player.rating_doubles, player.rating_mixed)
    return player


async def top_players(discipline: str, limit: int = 10) -> list[Player]:
    """Players ordered by their rating in `discipline`.

    Only players with at least one confirmed match of that discipline are listed.
    """
    column = _rating_column(discipline)
    async with _connect() as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            f"""
            SELECT * FROM players
            WHERE user_id IN (
                SELECT p.user_id FROM match_players p
                JOIN matches m ON m.id = p.match_id
                WHERE m.status = ? AND m.discipline = ?
            )
            ORDER BY {column} DESC, games_won DESC, user_id ASC
            LIMIT ?
            """,
            (CONFIRMED, discipline, limit),
        ) as cursor:
            rows = await cursor.fetchall()
    out = [_player_from_row(r) for r in rows]
    log.debug("Top players discipline=%s limit=%s -> %s", discipline, limit, len(out))
    return out


# --- Matches ---

async def insert_pending_match(match: Match) -> int:
    """Insert a pending match with its responder rows, return its ID."""
    now = _now()
    async with _connect() as db:
        cursor = await db.execute(
            """
            INSERT INTO matches
                (guild_id, discipline, side_a, side_b, scores, winner, status, proposer_id, responders, created_at)
            VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?)
            """,
            (
                match.guild_id,
                match.discipline,
                _csv(match.side_a),
                _csv(match.side_b),
                json.dumps([list(s) for s in match.scores]),
                match.winner,
                match.proposer_id,
                _csv(match.responders),
                now,
            ),
        )
        match_id = cursor.lastrowid
        await db.executemany(
            "INSERT INTO match_responders (match_id, user_id) VALUES (?, ?)",
            [(match_id, uid) for uid in match.responders],
        )
        await db.executemany(
            "INSERT INTO match_players (match_id, user_id) VALUES (?, ?)",
            [(match_id, uid) for uid in match.participants],
        )
        await db.commit()
    log.debug("Inserted pending match id=%s discipline=%s A=%s B=%s winner=%s",
              match_id, match.discipline, match.side_a, match.side_b, match.winner)
    return match_id


async def get_match(match_id: int) -> Optional[Match]:
    """Get a match by ID."""
    async with _connect() as db:
        db.row_factory = aiosqlite.Row
        async with db.execute("SELECT * FROM matches WHERE id = ?", (match_id,)) as cursor:
            row = await cursor.fetchone()
    log.debug("Fetched match id=%s -> found=%s", match_id, bool(row))
    return _match_from_row(row) if row else None


async def list_pending_for_user(user_id: int) -> list[Match]:
    """Pending matches waiting on a response from `user_id`, newest first."""
    async with _connect() as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            """
            SELECT m.* FROM matches m
            JOIN match_responders r ON r.match_id = m.id
            WHERE r.user_id = ? AND m.status = ?
            ORDER BY m.id DESC
            """,
            (user_id, PENDING),
        ) as cursor:
            rows = await cursor.fetchall()
    out = [_match_from_row(r) for r in rows]
    log.debug("Pending matches for user=%s -> %s", user_id, len(out))
    return out


async def confirmed_matches_for_user(user_id: int, start: str, end: str) -> list[Match]:
    """Confirmed matches `user_id` played, resolved within [start, end), newest first."""
    async with _connect() as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            """
            SELECT m.* FROM matches m
            JOIN match_players p ON p.match_id = m.id
            WHERE p.user_id = ? AND m.status = ? AND m.resolved_at >= ? AND m.resolved_at < ?
            ORDER BY m.resolved_at DESC
            """,
            (user_id, CONFIRMED, start, end),
        ) as cursor:
            rows = await cursor.fetchall()
    return [_match_from_row(r) for r in rows]


# --- Transactional helpers (use inside transaction()) ---

async def resolve_match(conn: aiosqlite.Connection, match_id: int, status: str, responder_id: int) -> bool:
    """Move a match out of 'pending'. Returns False if it was not pending anymore."""
    cursor = await conn.execute(
        """
        UPDATE matches SET status = ?, responded_by = ?, resolved_at = ?
        WHERE id = ? AND status = ?
        """,
        (status, responder_id, _now(), match_id, PENDING),
    )
    changed = cursor.rowcount == 1
    log.debug("resolve_match id=%s -> %s changed=%s", match_id, status, changed)
    return changed


async def load_ratings(conn: aiosqlite.Connection, user_ids: list[int], discipline: str) -> dict[int, int]:
    column = _rating_column(discipline)
    now = _now()
    for uid in user_ids:
        await conn.execute(
            """
            INSERT OR IGNORE INTO players
                (user_id, username, rating_singles, rating_doubles, rating_mixed, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (uid, f"User{uid}", BASE_RATING, BASE_RATING, BASE_RATING, now, now),
        )
    placeholders = ",".join("?" for _ in user_ids)
    async with conn.execute(
        f"SELECT user_id, {column} AS rating FROM players WHERE user_id IN ({placeholders})",
        tuple(user_ids),
    ) as cursor:
        rows = await cursor.fetchall()
    return {row["user_id"]: int(row["rating"]) for row in rows}


async def apply_rating(conn: aiosqlite.Connection, user_id: int, discipline: str, new_rating: int, won: bool) -> None:
    column = _rating_column(discipline)
    await conn.execute(
        f"""
        UPDATE players
        SET {column} = ?, games_played = games_played + 1, games_won = games_won + ?, updated_at = ?
        WHERE user_id = ?
        """,
        (new_rating, 1 if won else 0, _now(), user_id),
    )
    log.debug("Updated player user_id=%s %s=%s won=%s", user_id, column, new_rating, won)


async def store_rating_changes(conn: aiosqlite.Connection, match_id: int, changes: list[RatingChange]) -> None:
    payload = json.dumps([{"user_id": c.user_id, "before": c.before, "after": c.after} for c in changes])
    await conn.execute("UPDATE matches SET rating_changes = ? WHERE id = ?", (payload, match_id))


# --- Confirmation DMs (reaction based) ---

async def record_verification_message(message_id: int, match_id: int, user_id: int) -> None:
    """Record a DM that carries approve/reject reactions for `match_id`."""
    async with _connect() as db:
        await db.execute(
            """
            INSERT OR REPLACE INTO verification_messages (message_id, match_id, user_id)
            VALUES (?, ?, ?)
            """,
            (message_id, match_id, user_id),
        )
        await db.commit()
    log.debug("Recorded verification_message id=%s match=%s user=%s", message_id, match_id, user_id)


async def get_verification_message(message_id: int) -> dict | None:
    async with _connect() as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            "SELECT * FROM verification_messages WHERE message_id = ?",
            (message_id,),
        ) as cursor:
            row = await cursor.fetchone()
            return dict(row) if row else None


async def delete_verification_messages(match_id: int) -> None:
    """Forget every confirmation DM of a resolved match."""
    async with _connect() as db:
        await db.execute("DELETE FROM verification_messages WHERE match_id = ?", (match_id,))
        await db.commit()
    log.debug("Deleted verification_messages for match=%s", match_id)
