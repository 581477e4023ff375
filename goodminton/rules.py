import re
from typing import Iterable, Optional

from .errors import ValidationError

MAX_SETS = 3

_SET_RE = re.compile(r"^(\d{1,2})\s*[-:]\s*(\d{1,2})$")


def parse_scores(text: str) -> list[tuple[int, int]]:
    """
    Parse a score line such as "21-18 15-21 21-19" (commas also accepted).
    Side A's points come first in every set.
    """
    compact = re.sub(r"\s*([-:])\s*", r"\1", (text or "").strip())
    parts = [p for p in re.split(r"[,;\s]+", compact) if p]
    if not parts:
        raise ValidationError("Enter at least one set, e.g. `21-18 21-15`.")
    scores = []
    for part in parts:
        m = _SET_RE.match(part.strip())
        if not m:
            raise ValidationError(f"Could not read set score `{part}`; use `A-B`, e.g. `21-18`.")
        scores.append((int(m.group(1)), int(m.group(2))))
    return scores


def validate_scores(scores: Iterable) -> list[tuple[int, int]]:
    """
    Check that scores are well-formed pairs and normalise them to int tuples.

    Raises ValidationError for: no sets, more than three sets, entries that are not
    pairs, negative or non-integer points, tied sets.
    """
    try:
        entries = list(scores)
    except TypeError:
        raise ValidationError("Scores must be a list of set scores.") from None
    if not entries:
        raise ValidationError("At least one set score is required.")
    if len(entries) > MAX_SETS:
        raise ValidationError(f"A match has at most {MAX_SETS} sets.")

    out = []
    for i, entry in enumerate(entries, start=1):
        if isinstance(entry, (str, bytes)) or not hasattr(entry, "__len__") or len(entry) != 2:
            raise ValidationError(f"Set {i} must be a pair of scores.")
        a, b = entry
        if isinstance(a, bool) or isinstance(b, bool) or not isinstance(a, int) or not isinstance(b, int):
            raise ValidationError(f"Set {i} scores must be whole numbers.")
        if a < 0 or b < 0:
            raise ValidationError(f"Set {i} scores cannot be negative.")
        if a == b:
            raise ValidationError(f"Set {i} cannot end in a tie ({a}-{b}).")
        out.append((a, b))
    return out


def valid_set(a: int, b: int, target: int, win_by: int = 2, cap: Optional[int] = None) -> bool:
    """
    Returns True if the set score (a, b) is a finished badminton set.
    - max(a, b) >= target
    - abs(a - b) >= win_by unless cap is reached
    - If cap is reached, next point wins (e.g., 30-29 or 15-14), but only from a
      deuce run: 30-20 would have ended at 22-20
    """
    if a < 0 or b < 0:
        return False
    m = max(a, b)
    d = abs(a - b)
    if cap is not None and m > cap:
        return False
    if m < target:
        return False
    if cap is not None and m == cap:
        if cap > target and min(a, b) < cap - win_by:
            return False
        return d >= 1
    # nobody past target by more than a deuce run: 25-10 is not a real set
    if m > target and d != win_by:
        return False
    return d >= win_by


def set_wins(scores: list[tuple[int, int]]) -> tuple[int, int]:
    """Number of sets won by side A and side B."""
    sets_a = sum(1 for a, b in scores if a > b)
    sets_b = sum(1 for a, b in scores if b > a)
    return sets_a, sets_b


def check_badminton_rules(
    scores: list[tuple[int, int]],
    winner: str,
    target: int = 21,
    win_by: int = 2,
    cap: Optional[int] = None,
) -> None:
    """Strict check: every set is finished and the declared winner took more sets."""
    for i, (a, b) in enumerate(scores, start=1):
        if not valid_set(a, b, target, win_by, cap):
            raise ValidationError(f"Set {i} ({a}-{b}) is not a finished set to {target}.")
    sets_a, sets_b = set_wins(scores)
    if sets_a == sets_b:
        raise ValidationError("The set count is level; play a deciding set.")
    if (sets_a > sets_b) != (winner == "A"):
        raise ValidationError("The declared winner did not win more sets.")
