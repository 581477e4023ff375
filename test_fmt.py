"""
Tests for message formatting (goodminton.fmt).
"""

import sys

from goodminton import fmt
from goodminton.models import Match, Player, RatingChange
from goodminton.notify import envelope


def _match():
    return Match(
        id=7,
        guild_id=1,
        discipline="singles",
        side_a=[1],
        side_b=[2],
        scores=[(21, 18), (21, 15)],
        winner="A",
        proposer_id=1,
        responders=[2],
        status="confirmed",
        rating_changes=[RatingChange(1, 1000, 1016), RatingChange(2, 1000, 984)],
    )


def test_match_line():
    print("🧪 Testing match formatting...")
    line = fmt.match_line(_match())
    assert line.startswith("`#7` singles <@1> vs <@2>")
    assert "21–18 | 21–15" in line
    assert line.endswith("(winner A)")
    assert fmt.rating_lines(_match()) == ["<@1> 1000 → 1016 (+16)", "<@2> 1000 → 984 (-16)"]
    print("  ✅ Match line rendered")


def test_player_card():
    card = fmt.player_card(Player(1, "ana", 1016, 1000, 990, games_played=4, games_won=3), "Ana")
    assert "Stats for Ana" in card
    assert "`3-1`" in card
    assert "`75.0%`" in card


def test_render_event():
    env = envelope("game:confirmation:received", {
        "gameId": 7, "discipline": "singles", "sideA": [1], "sideB": [2],
        "scores": [[21, 18]], "winner": "A", "proposerId": 1,
    })
    text = fmt.render_event("game:confirmation:received", env)
    assert "Please confirm match" in text and "`#7`" in text and "<@1>" in text

    env = envelope("game:confirmed", {
        "gameId": 7, "confirmedBy": 2,
        "ratingChanges": [{"userId": 1, "before": 1000, "after": 1016, "change": 16}],
    })
    assert "<@1> 1000 → 1016 (+16)" in fmt.render_event("game:confirmed", env)
    assert "Match rejected" in fmt.render_event("game:rejected", envelope("game:rejected", {"gameId": 7}))
    assert fmt.render_event("announcement", envelope("announcement", {"message": "hi"})) == "📣 hi"
    assert fmt.render_event("other", envelope("other", {"a": 1})).startswith("**other**")


def test_mono_table():
    table = fmt.mono_table([["1", "ana", "1016"], ["2", "bo"]], headers=["#", "Player", "Rating"])
    lines = table.splitlines()
    assert lines[0] == "```md"
    assert lines[1] == "# | Player | Rating"
    assert lines[-1] == "```"
    assert len({len(line) for line in lines[1:-1]}) == 1


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
