import time
from typing import Any, Iterable, Optional

from .models import Match, Player


def bold(t: str) -> str:
	return f"**{t}**"


def code(t: str) -> str:
	return f"`{t}`"


def block(t: str, lang: str | None = None) -> str:
	return f"```{lang or ''}\n{t}\n```"


def mention(uid: int) -> str:
	return f"<@{uid}>"


def score_sets(sets: Iterable) -> str:
	return " | ".join(f"{a}–{b}" for a, b in sets)


def side(ids: Iterable[int]) -> str:
	return " & ".join(mention(uid) for uid in ids)


def signed(n: int) -> str:
	return f"{n:+d}"


def match_line(match: Match) -> str:
	"""One-line summary: `#12 singles @A vs @B 21–18 | 21–15 (winner A)`."""
	return (
		f"{code('#' + str(match.id))} {match.discipline} "
		f"{side(match.side_a)} vs {side(match.side_b)} "
		f"{score_sets(match.scores)} (winner {match.winner})"
	)


def rating_lines(match: Match) -> list[str]:
	return [
		f"{mention(c.user_id)} {c.before} → {c.after} ({signed(c.delta)})"
		for c in match.rating_changes
	]


def player_card(player: Player, display: str) -> str:
	lines = [
		f"## 📊 Stats for {display}",
		f"{bold('Singles')}: {code(str(player.rating_singles))}",
		f"{bold('Doubles')}: {code(str(player.rating_doubles))}",
		f"{bold('Mixed')}: {code(str(player.rating_mixed))}",
		f"{bold('Record')}: {code(f'{player.games_won}-{player.games_lost}')} ({code(f'{player.win_rate:.1f}%')})",
		f"{bold('Games')}: {code(str(player.games_played))}",
	]
	return "\n".join(lines)


def render_event(event_name: str, envelope: dict[str, Any]) -> str:
	"""Text for a pushed event, as shown in a DM or channel."""
	p = envelope.get("payload", {})
	game = code(f"#{p.get('gameId')}")
	sets = score_sets(p.get("scores") or [])
	if event_name == "game:confirmation:received":
		return (
			f"{bold('Please confirm match')} {game} ({p.get('discipline')})\n"
			f"{side(p.get('sideA', []))} vs {side(p.get('sideB', []))}\n"
			f"{sets} · winner: side {p.get('winner')}\n"
			f"Reported by {mention(p.get('proposerId'))}. React to approve or reject, "
			f"or use {code('/confirm')} / {code('/reject')}."
		)
	if event_name == "game:confirmed":
		changes = p.get("ratingChanges") or []
		lines = [f"{bold('Match confirmed')} {game} by {mention(p.get('confirmedBy'))}"]
		lines += [f"{mention(c['userId'])} {c['before']} → {c['after']} ({signed(c['change'])})" for c in changes]
		return "\n".join(lines)
	if event_name == "game:rejected":
		return f"{bold('Match rejected')} {game} by {mention(p.get('rejectedBy'))}. Ratings unchanged."
	if event_name == "announcement":
		return f"📣 {p.get('message', '')}"
	return f"{bold(event_name)}\n{block(str(p))}"


# --- Display name cache helper ---
_NAME_CACHE: dict[tuple[Optional[int], int], tuple[float, str]] = {}
_CACHE_TTL_SEC = 300.0  # 5 minutes
_MAX_CACHE_SIZE = 1000


def _clean_expired_cache():
	now = time.time()
	expired_keys = [k for k, v in _NAME_CACHE.items() if now - v[0] >= _CACHE_TTL_SEC]
	for k in expired_keys:
		del _NAME_CACHE[k]

	if len(_NAME_CACHE) > _MAX_CACHE_SIZE:
		sorted_entries = sorted(_NAME_CACHE.items(), key=lambda x: x[1][0])
		for k, _ in sorted_entries[: len(_NAME_CACHE) - _MAX_CACHE_SIZE]:
			del _NAME_CACHE[k]


async def display_name_or_cached(bot, guild, user_id: int, fallback: Optional[str] = None) -> str:
	"""Return a user's display name, preferring guild nicknames, with a small TTL cache.

	Lookup order: guild member cache, global user fetch, then `fallback`
	(defaults to "User<id>").
	"""
	g_id = getattr(guild, "id", None)
	key = (g_id, user_id)
	now = time.time()

	if len(_NAME_CACHE) % 100 == 0:
		_clean_expired_cache()

	cached = _NAME_CACHE.get(key)
	if cached and (now - cached[0] < _CACHE_TTL_SEC):
		return cached[1]

	name: Optional[str] = None
	member = guild.get_member(user_id) if guild is not None else None
	if member is not None:
		name = member.display_name
	else:
		user = bot.get_user(user_id)
		if user is None:
			try:
				user = await bot.fetch_user(user_id)
			except Exception:
				user = None
		if user is not None:
			name = getattr(user, "display_name", None) or user.name

	name = name or fallback or f"User{user_id}"
	_NAME_CACHE[key] = (now, name)
	return name


def mono_table(rows: list[list[str]], headers: Optional[list[str]] = None) -> str:
	"""Render a simple monospaced table as a Markdown code block."""
	norm_rows = [[str(c) for c in r] for r in rows]
	col_count = max((len(r) for r in norm_rows), default=0)
	if headers:
		headers = [str(h) for h in headers]
		col_count = max(col_count, len(headers))

	def pad_row(r: Iterable[str]) -> list[str]:
		lst = list(r)
		return lst + [""] * (col_count - len(lst))

	if headers:
		headers = pad_row(headers)
	norm_rows = [pad_row(r) for r in norm_rows]

	widths = [0] * col_count
	for r in ([headers] if headers else []) + norm_rows:
		for i, cell in enumerate(r):
			widths[i] = max(widths[i], len(cell))

	def fmt_row(r: list[str]) -> str:
		return " | ".join(r[i].ljust(widths[i]) for i in range(col_count))

	lines: list[str] = []
	if headers:
		lines.append(fmt_row(headers))
		lines.append("-+-".join("-" * w for w in widths))
	lines.extend(fmt_row(r) for r in norm_rows)
	return block("\n".join(lines), "md")
