"""
Tests for environment settings (goodminton.config).
"""

import os
import sys

from goodminton.config import Settings

KEYS = (
    "DISCORD_TOKEN", "TEST_MODE", "TEST_GUILD_ID", "DATABASE_PATH", "EPHEMERAL_DB", "DB_TIMEOUT",
    "K_FACTOR", "DEFAULT_RATING", "STRICT_SCORES", "POINTS_TARGET", "POINTS_WIN_BY", "POINTS_CAP",
    "EMOJI_APPROVE", "EMOJI_REJECT", "MENTIONS_PING",
)


def _with_env(**values):
    saved = {k: os.environ.pop(k, None) for k in KEYS}
    os.environ.update({k: str(v) for k, v in values.items()})
    try:
        return Settings.from_env(dotenv=False)
    finally:
        for k in KEYS:
            os.environ.pop(k, None)
            if saved[k] is not None:
                os.environ[k] = saved[k]


def test_defaults():
    print("🧪 Testing default settings...")
    s = _with_env()
    assert s.discord_token is None
    assert s.k_factor == 32 and s.default_rating == 1000
    assert s.database_path == "./goodminton.sqlite"
    assert not s.test_mode and not s.strict_scores and s.mentions_ping
    assert s.cap_for(21) == 30 and s.cap_for(11) == 15
    print("  ✅ Defaults loaded")


def test_overrides():
    s = _with_env(DISCORD_TOKEN="abc", TEST_MODE="true", TEST_GUILD_ID="42", K_FACTOR="24",
                  STRICT_SCORES="1", POINTS_CAP="25", MENTIONS_PING="0")
    assert s.discord_token == "abc"
    assert s.test_mode and s.test_guild_id == 42
    assert s.database_path == "./test_goodminton.sqlite"
    assert s.k_factor == 24
    assert s.strict_scores and s.cap_for(21) == 25
    assert not s.mentions_ping


def test_bad_values_fall_back():
    s = _with_env(K_FACTOR="lots", DEFAULT_RATING="-5", TEST_GUILD_ID="abc", DB_TIMEOUT="soon")
    assert s.k_factor == 32
    assert s.default_rating == 1000
    assert s.test_guild_id is None
    assert s.db_timeout == 5.0


def test_ephemeral_db():
    s = _with_env(EPHEMERAL_DB="1")
    assert s.ephemeral
    assert s.database_path.startswith("file::memory:")


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
