# app.py
# Goodminton Discord bot: report casual badminton games, confirm them, track Elo per discipline

from __future__ import annotations

import asyncio

import discord
from discord import app_commands

from goodminton import db, fmt
from goodminton.config import Settings
from goodminton.errors import GoodmintonError
from goodminton.events import EventBus, MatchConfirmed, MatchRejected
from goodminton.logging_config import get_logger, setup_logging
from goodminton.matches import MatchService
from goodminton.models import DISCIPLINES, DOUBLES, MIXED, SINGLES
from goodminton.notify import GAME_CONFIRMATION_RECEIVED, NotificationDispatcher, NotificationRouter
from goodminton.rules import parse_scores
from goodminton.transports import ChannelHandle, DirectMessageHandle

# --- Env / Config ---
settings = Settings.from_env()
setup_logging(mode="test" if settings.test_mode else None)
log = get_logger("goodminton.app")

ALLOWED_MENTIONS = discord.AllowedMentions(users=settings.mentions_ping, roles=False, everyone=False)

# --- Core services (one of each per process) ---
bus = EventBus()
router = NotificationRouter()
NotificationDispatcher(router).attach(bus)
service = MatchService.from_settings(settings, bus)

# Intents
intents = discord.Intents.none()
intents.guilds = True
intents.dm_messages = True
intents.reactions = True   # for on_raw_reaction_add
intents.dm_reactions = True

bot = discord.Client(intents=intents)
tree = app_commands.CommandTree(bot)


# --- Helpers ---
async def _names(inter: discord.Interaction, ids: list[int]) -> str:
    parts = [await fmt.display_name_or_cached(bot, inter.guild, uid) for uid in ids]
    return "/".join(parts)


async def _fail(inter: discord.Interaction, err: GoodmintonError) -> None:
    text = f"❌ {err}"
    if inter.response.is_done():
        await inter.followup.send(text, ephemeral=True)
    else:
        await inter.response.send_message(text, ephemeral=True)


async def _attach_reactions(user_id: int, event_name: str, envelope: dict, message: discord.Message) -> None:
    """Confirmation requests get approve/reject reactions the responder can press."""
    if event_name != GAME_CONFIRMATION_RECEIVED:
        return
    match_id = envelope["payload"]["gameId"]
    await message.add_reaction(settings.emoji_approve)
    await message.add_reaction(settings.emoji_reject)
    await db.record_verification_message(message.id, match_id, user_id)


async def _forget_confirmation_dms(event) -> None:
    await db.delete_verification_messages(event.match.id)

bus.subscribe(MatchConfirmed, _forget_confirmation_dms)
bus.subscribe(MatchRejected, _forget_confirmation_dms)


async def _report(
    inter: discord.Interaction,
    side_a: list[discord.abc.User],
    side_b: list[discord.abc.User],
    scores: str,
    won: bool,
    discipline: str,
):
    try:
        parsed = parse_scores(scores)
    except GoodmintonError as e:
        return await _fail(inter, e)

    # propose pushes to every responder before returning; that can outlast the 3s reply window
    await inter.response.defer(thinking=True)
    try:
        names = {u.id: (getattr(u, "display_name", None) or u.name) for u in side_a + side_b}
        match = await service.propose(
            proposer_id=inter.user.id,
            side_a=[u.id for u in side_a],
            side_b=[u.id for u in side_b],
            scores=parsed,
            winner="A" if won else "B",
            discipline=discipline,
            guild_id=inter.guild_id or 0,
            names=names,
        )
    except GoodmintonError as e:
        # the public "thinking" message goes, the error is only shown to the reporter
        await inter.delete_original_response()
        return await inter.followup.send(f"❌ {e}", ephemeral=True)

    waiting = ", ".join(fmt.mention(uid) for uid in match.responders)
    await inter.followup.send(
        f"Match {fmt.code('#' + str(match.id))} recorded: {fmt.match_line(match)}\n"
        f"Waiting for confirmation from {waiting}.",
        allowed_mentions=ALLOWED_MENTIONS,
    )


async def _latest_pending_id(user_id: int) -> int | None:
    pending = await service.list_pending_for(user_id)
    return pending[0].id if pending else None


# --- Discord events ---
@bot.event
async def on_ready():
    await db.init_db(settings.database_path, timeout=settings.db_timeout, base_rating=settings.default_rating)

    if settings.ephemeral:
        log.warning("Ephemeral DB mode active: data will NOT persist between restarts")

    if settings.test_mode and settings.test_guild_id:
        guild = discord.Object(id=settings.test_guild_id)
        tree.copy_global_to(guild=guild)
        await tree.sync(guild=guild)
        log.info("Commands synced to test guild %s", settings.test_guild_id)
    else:
        await tree.sync()
        log.info("Commands synced globally")

    status = "Badminton 🏸 [TEST MODE]" if settings.test_mode else "Badminton 🏸"
    await bot.change_presence(activity=discord.Game(name=status))
    log.info("Bot ready as %s | guilds=%s | DB=%s", bot.user, len(bot.guilds), settings.database_path)


@bot.event
async def on_raw_reaction_add(payload: discord.RawReactionActionEvent):
    if not bot.user or payload.user_id == bot.user.id:
        return

    row = await db.get_verification_message(payload.message_id)
    if not row or payload.user_id != row["user_id"]:
        return

    emoji = str(payload.emoji)
    if emoji == settings.emoji_approve:
        action, verb = service.confirm, "confirmed"
    elif emoji == settings.emoji_reject:
        action, verb = service.reject, "rejected"
    else:
        return

    try:
        match = await action(row["match_id"], payload.user_id)
        reply = f"Match {fmt.code('#' + str(match.id))} {verb}."
        if match.rating_changes:
            reply += "\n" + "\n".join(fmt.rating_lines(match))
    except GoodmintonError as e:
        reply = f"❌ {e}"

    try:
        channel = await bot.fetch_channel(payload.channel_id)
        msg = await channel.fetch_message(payload.message_id)
        await msg.reply(reply, mention_author=False, allowed_mentions=ALLOWED_MENTIONS)
    except discord.HTTPException:
        log.debug("Could not reply to reaction on message=%s", payload.message_id, exc_info=True)


# --- Commands ---
@tree.command(name="ping", description="Replies with pong")
async def ping(inter: discord.Interaction):
    await inter.response.send_message("pong")


@tree.command(name="match_singles", description="Report a singles game you played")
@app_commands.describe(
    opponent="Who you played against",
    scores="Set scores from your side first, e.g. 21-18 15-21 21-19",
    won="Did you win?",
)
async def match_singles(inter: discord.Interaction, opponent: discord.User, scores: str, won: bool):
    await _report(inter, [inter.user], [opponent], scores, won, SINGLES)


@tree.command(name="match_doubles", description="Report a doubles game you played")
@app_commands.describe(
    partner="Your partner",
    opponent1="Opponent 1",
    opponent2="Opponent 2",
    scores="Set scores from your side first, e.g. 21-18 21-15",
    won="Did your team win?",
    mixed="Mixed doubles (rated separately)",
)
async def match_doubles(
    inter: discord.Interaction,
    partner: discord.User,
    opponent1: discord.User,
    opponent2: discord.User,
    scores: str,
    won: bool,
    mixed: bool = False,
):
    await _report(inter, [inter.user, partner], [opponent1, opponent2], scores, won, MIXED if mixed else DOUBLES)


@tree.command(name="confirm", description="Confirm a match reported against you")
@app_commands.describe(match_id="Match ID (defaults to your latest pending match)")
async def confirm(inter: discord.Interaction, match_id: int | None = None):
    await inter.response.defer(ephemeral=True)
    match_id = match_id or await _latest_pending_id(inter.user.id)
    if match_id is None:
        return await inter.followup.send("You have no matches to confirm.", ephemeral=True)
    try:
        match = await service.confirm(match_id, inter.user.id)
    except GoodmintonError as e:
        return await _fail(inter, e)
    lines = [f"{fmt.bold('Confirmed')} {fmt.match_line(match)}", *fmt.rating_lines(match)]
    await inter.followup.send("\n".join(lines), ephemeral=True, allowed_mentions=ALLOWED_MENTIONS)


@tree.command(name="reject", description="Reject a match reported against you")
@app_commands.describe(match_id="Match ID (defaults to your latest pending match)")
async def reject(inter: discord.Interaction, match_id: int | None = None):
    await inter.response.defer(ephemeral=True)
    match_id = match_id or await _latest_pending_id(inter.user.id)
    if match_id is None:
        return await inter.followup.send("You have no matches to reject.", ephemeral=True)
    try:
        match = await service.reject(match_id, inter.user.id)
    except GoodmintonError as e:
        return await _fail(inter, e)
    await inter.followup.send(f"{fmt.bold('Rejected')} {fmt.match_line(match)}", ephemeral=True,
                              allowed_mentions=ALLOWED_MENTIONS)


@tree.command(name="pending", description="List matches waiting for your confirmation")
async def pending(inter: discord.Interaction):
    await inter.response.defer(ephemeral=True)
    matches = await service.list_pending_for(inter.user.id)
    if not matches:
        return await inter.followup.send("You have no pending matches to confirm!", ephemeral=True)

    rows = []
    for m in matches:
        teams = f"{await _names(inter, m.side_a)} vs {await _names(inter, m.side_b)}"
        rows.append([f"#{m.id}", m.discipline, teams, fmt.score_sets(m.scores), m.winner])
    table = fmt.mono_table(rows, headers=["Match", "Type", "Teams", "Sets", "Won"])
    hint = fmt.block("/confirm match_id:<ID>\n/reject  match_id:<ID>", "md")
    await inter.followup.send(table + "\n" + hint, ephemeral=True)


@tree.command(name="match", description="Show one match")
@app_commands.describe(match_id="Match ID")
async def show_match(inter: discord.Interaction, match_id: int):
    try:
        m = await service.get_match(match_id)
    except GoodmintonError as e:
        return await _fail(inter, e)
    lines = [fmt.match_line(m), f"Status: {fmt.code(m.status)}", f"Reported by {fmt.mention(m.proposer_id)}"]
    if m.rating_changes:
        lines += fmt.rating_lines(m)
    await inter.response.send_message("\n".join(lines), ephemeral=True, allowed_mentions=ALLOWED_MENTIONS)


@tree.command(name="weekly", description="Your confirmed games this week (Sunday-Saturday)")
async def weekly(inter: discord.Interaction):
    await inter.response.defer(ephemeral=True)
    matches = await service.weekly_matches(inter.user.id)
    if not matches:
        return await inter.followup.send("*No confirmed games this week.*", ephemeral=True)
    rows = []
    for m in matches:
        result = "WIN" if m.won(inter.user.id) else "LOSS"
        change = m.change_for(inter.user.id)
        rows.append([f"#{m.id}", m.discipline, fmt.score_sets(m.scores), result,
                     fmt.signed(change.delta) if change else ""])
    await inter.followup.send(fmt.mono_table(rows, headers=["Match", "Type", "Sets", "Result", "Δ"]), ephemeral=True)


@tree.command(name="stats", description="Show player ratings and record")
@app_commands.describe(user="The user to show stats for (defaults to you)")
async def stats(inter: discord.Interaction, user: discord.User | None = None):
    user = user or inter.user
    player = await service.player_stats(user.id)
    display = getattr(user, "display_name", None) or user.name
    if player.games_played == 0:
        return await inter.response.send_message(f"📊 {display} has no games recorded yet.", ephemeral=True)
    await inter.response.send_message(fmt.player_card(player, display), ephemeral=True)


@tree.command(name="leaderboard", description="Show top players by rating")
@app_commands.describe(discipline="Singles, doubles or mixed", limit="How many players to show (1-50)")
@app_commands.choices(discipline=[app_commands.Choice(name=d.title(), value=d) for d in DISCIPLINES])
async def leaderboard(inter: discord.Interaction, discipline: str = SINGLES,
                      limit: app_commands.Range[int, 1, 50] = 20):
    players = await service.leaderboard(discipline, int(limit))
    if not players:
        return await inter.response.send_message("No players found yet.", ephemeral=True)
    lines = [f"**🏆 {discipline.title()} leaderboard (Top {len(players)})**"]
    for i, p in enumerate(players, start=1):
        lines.append(f"{i}. {fmt.mention(p.user_id)} — {p.username} — {p.rating(discipline)} "
                     f"({p.games_won}-{p.games_lost})")
    await inter.response.send_message("\n".join(lines), allowed_mentions=ALLOWED_MENTIONS)


@tree.command(name="live", description="Choose where live match notifications reach you")
@app_commands.describe(where="dm: direct messages · here: this channel · off: stop")
@app_commands.choices(where=[
    app_commands.Choice(name="Direct messages", value="dm"),
    app_commands.Choice(name="This channel", value="here"),
    app_commands.Choice(name="Off", value="off"),
])
async def live(inter: discord.Interaction, where: str):
    uid = inter.user.id
    if where == "off":
        current = router.connection_for(uid)
        if current is None or not await router.unregister(uid, current):
            return await inter.response.send_message("Live notifications were already off.", ephemeral=True)
        return await inter.response.send_message("Live notifications turned off.", ephemeral=True)

    if where == "here":
        if inter.channel is None or inter.guild is None:
            return await inter.response.send_message("Use `here` inside a server channel.", ephemeral=True)
        handle = ChannelHandle(inter.channel, uid, on_sent=_attach_reactions, allowed_mentions=ALLOWED_MENTIONS)
    else:
        handle = DirectMessageHandle(inter.user, on_sent=_attach_reactions, allowed_mentions=ALLOWED_MENTIONS)
    await router.register(uid, handle)
    await inter.response.send_message(
        f"Live notifications will arrive {'here' if where == 'here' else 'by DM'}. "
        f"Missed something? {fmt.code('/pending')} always shows what waits on you.",
        ephemeral=True,
    )


@tree.command(name="announce", description="Send a message to everyone with live notifications on")
@app_commands.describe(message="What to announce")
@app_commands.default_permissions(administrator=True)
async def announce(inter: discord.Interaction, message: str):
    await inter.response.defer(ephemeral=True)
    delivered = await router.broadcast("announcement", {"message": message[:1500], "from": inter.user.id})
    await inter.followup.send(f"Announcement delivered to {delivered} player(s).", ephemeral=True)


# --- Entrypoint ---
async def main(token: str) -> None:
    try:
        async with bot:
            await bot.start(token)
    finally:
        # drops the in-memory database in EPHEMERAL_DB mode
        await db.close_db()


if __name__ == "__main__":
    if not settings.discord_token:
        log.error("DISCORD_TOKEN not set. Put it in environment or .env")
        raise SystemExit(1)
    try:
        asyncio.run(main(settings.discord_token))
    except KeyboardInterrupt:
        log.info("Shutting down")
