"""
Tests for the slash command handlers in app.py, driven with a fake interaction.
"""

import asyncio
import os
import sys
import tempfile
from types import SimpleNamespace

import app
from goodminton import db
from goodminton.events import EventBus, MatchProposed
from goodminton.matches import MatchService
from goodminton.notify import NotificationRouter

ALICE, BOB = 101, 202


class FakeResponse:
    def __init__(self, log):
        self.log = log
        self.done = False

    def is_done(self):
        return self.done

    async def defer(self, **kwargs):
        self.log.append("defer")
        self.done = True

    async def send_message(self, content, **kwargs):
        self.log.append(("reply", content, kwargs.get("ephemeral", False)))
        self.done = True


class FakeFollowup:
    def __init__(self, log):
        self.log = log

    async def send(self, content, **kwargs):
        self.log.append(("followup", content, kwargs.get("ephemeral", False)))


class FakeInteraction:
    def __init__(self, user_id):
        self.log = []
        self.user = SimpleNamespace(id=user_id, name=f"u{user_id}", display_name=f"U{user_id}")
        self.guild_id = 1
        self.response = FakeResponse(self.log)
        self.followup = FakeFollowup(self.log)

    async def delete_original_response(self):
        self.log.append("delete")


def _player(uid):
    return SimpleNamespace(id=uid, name=f"u{uid}", display_name=f"U{uid}")


def run_with_service(scenario):
    async def wrapper():
        with tempfile.TemporaryDirectory() as tmp:
            await db.init_db(os.path.join(tmp, "test_app.sqlite"))
            saved = app.service
            bus = EventBus()
            app.service = MatchService(bus)
            try:
                await scenario(bus)
            finally:
                app.service = saved
    asyncio.run(wrapper())


def test_report_defers_before_pushes():
    print("🧪 Testing /match_singles reply timing...")

    async def scenario(bus):
        inter = FakeInteraction(ALICE)

        async def slow_push(event):
            inter.log.append("push")

        bus.subscribe(MatchProposed, slow_push)
        await app._report(inter, [inter.user], [_player(BOB)], "21-18 21-15", True, "singles")

        assert inter.log[0] == "defer"
        assert inter.log[1] == "push"
        kind, content, ephemeral = inter.log[2]
        assert kind == "followup" and not ephemeral
        assert "recorded" in content and "<@202>" in content

    run_with_service(scenario)
    print("  ✅ Interaction acknowledged before any push")


def test_report_bad_scores_answer_privately():
    async def scenario(bus):
        inter = FakeInteraction(ALICE)
        await app._report(inter, [inter.user], [_player(BOB)], "twenty-one", True, "singles")
        assert len(inter.log) == 1
        kind, _, ephemeral = inter.log[0]
        assert kind == "reply" and ephemeral

    run_with_service(scenario)


def test_report_rejected_proposal_answers_privately():
    async def scenario(bus):
        inter = FakeInteraction(ALICE)
        await app._report(inter, [inter.user], [inter.user], "21-18", True, "singles")
        assert inter.log[:2] == ["defer", "delete"]
        kind, content, ephemeral = inter.log[2]
        assert kind == "followup" and ephemeral and content.startswith("❌")
        assert await db.get_match(1) is None

    run_with_service(scenario)


def test_announce_defers_before_broadcast():
    async def scenario():
        inter = FakeInteraction(ALICE)

        class Handle:
            is_live = True

            async def push(self, event_name, envelope):
                inter.log.append("push")

        saved = app.router
        app.router = NotificationRouter()
        try:
            await app.router.register(BOB, Handle())
            await app.announce.callback(inter, "courts closed")
        finally:
            app.router = saved
        assert inter.log[:2] == ["defer", "push"]
        kind, content, ephemeral = inter.log[2]
        assert kind == "followup" and ephemeral and "1 player" in content

    asyncio.run(scenario())


if __name__ == "__main__":
    tests = [v for k, v in sorted(globals().items()) if k.startswith("test_") and callable(v)]
    failed = 0
    for t in tests:
        try:
            t()
        except Exception as e:
            failed += 1
            print(f"❌ {t.__name__} failed: {e!r}")
    print(f"\nTotal: {len(tests) - failed}/{len(tests)} tests passed")
    sys.exit(1 if failed else 0)
