"""Services package for Pass the Bluff background work."""

from .round_reset import RoundResetScheduler

__all__ = [
    "RoundResetScheduler",
]
