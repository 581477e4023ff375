"""Goodminton core package.

Exports commonly used modules for convenience.
"""

from . import db as db
from . import rating as rating
from . import rules as rules
from . import logging_config as logging_config
from .matches import MatchService
from .models import Match, Player, RatingChange
from .notify import NotificationDispatcher, NotificationRouter

__all__ = [
    "db",
    "rating",
    "rules",
    "logging_config",
    "MatchService",
    "NotificationDispatcher",
    "NotificationRouter",
    "Match",
    "Player",
    "RatingChange",
]
