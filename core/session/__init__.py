"""
Session package.

Holds the score event model and the single-writer tally that turns events
into immutable snapshots. Publishing is handled by core.publisher.
"""

from .models import (
    Goal,
    Reset,
    ScoreEvent,
    TallySnapshot,
    Team,
    Undo,
)
from .tally import UNDO_DEPTH, SessionTally

__all__ = [
    "Goal",
    "Reset",
    "ScoreEvent",
    "SessionTally",
    "TallySnapshot",
    "Team",
    "UNDO_DEPTH",
    "Undo",
]
