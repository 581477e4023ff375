"""
Errors raised by the match desk. Each carries a message safe to show the user.
"""


class GoodmintonError(Exception):
    """Base class for expected, user-facing failures."""


class ValidationError(GoodmintonError):
    """Malformed match input (bad scores, unknown winner, overlapping sides...)."""


class NotFound(GoodmintonError):
    """Unknown match or player."""


class Unauthorized(GoodmintonError):
    """The caller is not entitled to act on this match."""


class InvalidState(GoodmintonError):
    """The match is not in the state the action requires (e.g. already resolved)."""


class DeliveryFailure(GoodmintonError):
    """A push to a live connection failed. Recovered by the router, never surfaced."""
