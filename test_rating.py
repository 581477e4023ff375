"""
Tests for the Elo rating engine (goodminton.rating).
"""

import sys

from goodminton.rating import (
    apply_side_result,
    compute_updated_ratings,
    expected_score,
    side_deltas,
    side_rating,
)


def test_expected_score():
    print("🧪 Testing expected score...")
    assert expected_score(1000, 1000) == 0.5
    assert expected_score(1400, 1200) > 0.7
    assert abs(expected_score(1200, 1000) + expected_score(1000, 1200) - 1.0) < 1e-12
    print("  ✅ Expected score works")


def test_equal_ratings_swing_sixteen():
    print("🧪 Testing 1000 vs 1000...")
    assert compute_updated_ratings(1000, 1000, True) == (1016, 984)
    assert compute_updated_ratings(1000, 1000, False) == (984, 1016)
    print("  ✅ Equal ratings move by 16")


def test_favourite_and_upset():
    print("🧪 Testing favourite win and upset...")
    # expected score of the 1200 player is ~0.76
    assert compute_updated_ratings(1200, 1000, True) == (1208, 992)
    assert compute_updated_ratings(1200, 1000, False) == (1176, 1024)
    print("  ✅ Upsets move ratings further than expected wins")


def test_deterministic():
    first = compute_updated_ratings(1337, 1212, False, k=24)
    second = compute_updated_ratings(1337, 1212, False, k=24)
    assert first == second
    assert all(isinstance(r, int) for r in first)


def test_k_factor_scales_change():
    assert compute_updated_ratings(1000, 1000, True, k=16) == (1008, 992)
    assert compute_updated_ratings(1000, 1000, True, k=0) == (1000, 1000)


def test_side_rating_is_average():
    assert side_rating([1200, 1400]) == 1300
    assert side_rating([1000]) == 1000
    try:
        side_rating([])
    except ValueError:
        pass
    else:
        raise AssertionError("empty side should be rejected")


def test_singles_side_deltas_match_pairwise_update():
    for ra, rb, a_won in [(1000, 1000, True), (1200, 1000, False), (1017, 1433, True), (1501, 1500, False)]:
        new_a, new_b = compute_updated_ratings(ra, rb, a_won)
        assert side_deltas([ra], [rb], a_won) == (new_a - ra, new_b - rb)


def test_doubles_teammates_share_delta():
    print("🧪 Testing doubles distribution...")
    new_a, new_b = apply_side_result([1100, 900], [1000, 1000], True)
    # both sides average 1000: each winner +16, each loser -16
    assert new_a == [1116, 916]
    assert new_b == [984, 984]
    delta_a, delta_b = side_deltas([1300, 1100], [1000, 1000], False)
    assert delta_a < -16 and delta_b > 16
    print("  ✅ Teammates receive identical deltas")


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
