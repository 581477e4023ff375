"""
Elo rating calculations.
Pure functions: no I/O, same inputs always give the same outputs.
"""

import math

K_FACTOR = 32


def _round_half_up(x: float) -> int:
    # round() is banker's rounding; 1000.5 must become 1001 like 1001.5 becomes 1002
    return math.floor(x + 0.5)


def expected_score(rating_a: float, rating_b: float) -> float:
    """
    Calculate the expected score for player A against player B.

    Args:
        rating_a: Rating of player A
        rating_b: Rating of player B

    Returns:
        Expected score (probability) for player A to win (0.0 to 1.0)
    """
    return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))


def compute_updated_ratings(rating_a: int, rating_b: int, a_won: bool, k: int = K_FACTOR) -> tuple[int, int]:
    """
    Calculate both players' ratings after a decided game.

    Each side is rounded independently, so the sum of the two ratings can drift
    by one point; that is expected.

    Args:
        rating_a: Current rating of player A
        rating_b: Current rating of player B
        a_won: True if player A won
        k: K-factor determining maximum rating change per game

    Returns:
        Tuple of (new_rating_a, new_rating_b)
    """
    expected_a = expected_score(rating_a, rating_b)
    expected_b = expected_score(rating_b, rating_a)

    actual_a = 1.0 if a_won else 0.0
    actual_b = 1.0 - actual_a

    new_a = _round_half_up(rating_a + k * (actual_a - expected_a))
    new_b = _round_half_up(rating_b + k * (actual_b - expected_b))
    return new_a, new_b


def side_rating(ratings: list[int]) -> float:
    """
    Effective rating of a side: the average of its players' ratings.

    Args:
        ratings: Ratings of every player on the side (one for singles, two for doubles)

    Returns:
        The side's rating
    """
    if not ratings:
        raise ValueError("a side needs at least one player")
    return sum(ratings) / len(ratings)


def side_deltas(ratings_a: list[int], ratings_b: list[int], a_won: bool, k: int = K_FACTOR) -> tuple[int, int]:
    """
    Rating change for each side when side ratings are treated as one player.

    Every teammate receives the same delta. For singles this is exactly
    compute_updated_ratings(a, b) minus the old ratings.

    Returns:
        Tuple of (delta_a, delta_b), integers
    """
    ra = side_rating(ratings_a)
    rb = side_rating(ratings_b)
    actual_a = 1.0 if a_won else 0.0
    delta_a = _round_half_up(k * (actual_a - expected_score(ra, rb)))
    delta_b = _round_half_up(k * ((1.0 - actual_a) - expected_score(rb, ra)))
    return delta_a, delta_b


def apply_side_result(
    ratings_a: list[int],
    ratings_b: list[int],
    a_won: bool,
    k: int = K_FACTOR,
) -> tuple[list[int], list[int]]:
    """
    Apply a decided game to every player of both sides.

    Args:
        ratings_a: Ratings of side A players
        ratings_b: Ratings of side B players
        a_won: True if side A won
        k: K-factor

    Returns:
        Tuple of (new_ratings_side_a, new_ratings_side_b)
    """
    delta_a, delta_b = side_deltas(ratings_a, ratings_b, a_won, k)
    return [r + delta_a for r in ratings_a], [r + delta_b for r in ratings_b]
