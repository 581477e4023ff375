"""
Tests for score parsing and validation (goodminton.rules).
"""

import sys

from goodminton.errors import ValidationError
from goodminton.rules import check_badminton_rules, parse_scores, set_wins, valid_set, validate_scores


def _raises_validation(fn, *args, **kwargs) -> str:
    try:
        fn(*args, **kwargs)
    except ValidationError as e:
        return str(e)
    raise AssertionError(f"{fn.__name__}{args} did not raise ValidationError")


def test_parse_scores():
    print("🧪 Testing score parsing...")
    assert parse_scores("21-18 15-21 21-19") == [(21, 18), (15, 21), (21, 19)]
    assert parse_scores("21-18, 21-15") == [(21, 18), (21, 15)]
    assert parse_scores(" 21 - 18 ;  30:29 ") == [(21, 18), (30, 29)]
    print("  ✅ Score parsing works")


def test_parse_scores_rejects_garbage():
    _raises_validation(parse_scores, "")
    _raises_validation(parse_scores, "twenty-one to eighteen")
    _raises_validation(parse_scores, "21-18 21")


def test_validate_scores_normalises_pairs():
    assert validate_scores([[21, 18], (15, 21)]) == [(21, 18), (15, 21)]


def test_validate_scores_errors():
    print("🧪 Testing score validation errors...")
    _raises_validation(validate_scores, [])
    _raises_validation(validate_scores, [(21, 18)] * 4)
    _raises_validation(validate_scores, [(21, 18, 3)])
    _raises_validation(validate_scores, ["21-18"])
    _raises_validation(validate_scores, [(21, -1)])
    _raises_validation(validate_scores, [(21.0, 18)])
    _raises_validation(validate_scores, [(True, 0)])
    assert "tie" in _raises_validation(validate_scores, [(20, 20)])
    _raises_validation(validate_scores, None)
    print("  ✅ Malformed scores are rejected")


def test_valid_set():
    assert valid_set(21, 19, 21, cap=30)
    assert valid_set(23, 21, 21, cap=30)
    assert valid_set(30, 29, 21, cap=30)
    assert valid_set(11, 5, 11, cap=15)
    assert not valid_set(21, 20, 21, cap=30)
    assert not valid_set(19, 17, 21, cap=30)
    assert not valid_set(31, 29, 21, cap=30)
    assert not valid_set(25, 10, 21, cap=30)


def test_valid_set_at_cap_needs_deuce_run():
    assert valid_set(30, 28, 21, cap=30)
    assert valid_set(15, 14, 11, cap=15)
    # these sets would have finished at 22-20 and 13-11
    assert not valid_set(30, 20, 21, cap=30)
    assert not valid_set(20, 30, 21, cap=30)
    assert not valid_set(15, 11, 11, cap=15)
    assert not valid_set(30, 27, 21, cap=30)


def test_set_wins():
    assert set_wins([(21, 18), (15, 21), (21, 19)]) == (2, 1)
    assert set_wins([(10, 21)]) == (0, 1)


def test_check_badminton_rules():
    print("🧪 Testing strict badminton rules...")
    check_badminton_rules([(21, 18), (15, 21), (21, 19)], "A", target=21, cap=30)
    _raises_validation(check_badminton_rules, [(21, 18), (15, 21), (21, 19)], "B", target=21, cap=30)
    _raises_validation(check_badminton_rules, [(21, 18), (15, 21)], "A", target=21, cap=30)
    _raises_validation(check_badminton_rules, [(21, 20)], "A", target=21, cap=30)
    print("  ✅ Strict rules enforced")


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
