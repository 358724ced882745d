"""
Session data model.

Score events are plain immutable commands; the tally turns them into
immutable snapshots. Nothing here mutates state.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class Team(str, Enum):
    A = "A"
    B = "B"

    @property
    def label(self) -> str:
        return f"Team {self.value}"


@dataclass(frozen=True)
class Goal:
    """Increment one team's score by one."""

    team: Team


@dataclass(frozen=True)
class Undo:
    """Revert the most recent goal of the current epoch, if any."""


@dataclass(frozen=True)
class Reset:
    """Zero both scores, clear undo history and start a new epoch."""


ScoreEvent = Union[Goal, Undo, Reset]
SCORE_EVENT_TYPES = (Goal, Undo, Reset)


@dataclass(frozen=True)
class TallySnapshot:
    """
    Immutable view of the tally after one accepted event.

    `sequence` restarts at 0 on every Reset, so ordering is only meaningful
    together with `epoch`.
    """

    score_a: int = 0
    score_b: int = 0
    epoch: int = 0
    sequence: int = 0

    @property
    def key(self) -> Tuple[int, int]:
        return (self.epoch, self.sequence)

    @property
    def leader(self) -> Optional[Team]:
        if self.score_a > self.score_b:
            return Team.A
        if self.score_b > self.score_a:
            return Team.B
        return None

    def score_for(self, team: Team) -> int:
        return self.score_a if Team(team) is Team.A else self.score_b

    def to_document(self) -> Dict[str, Any]:
        return {
            "score_a": self.score_a,
            "score_b": self.score_b,
            "epoch": self.epoch,
            "sequence": self.sequence,
        }
