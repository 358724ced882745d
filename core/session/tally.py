from __future__ import annotations

import threading
from collections import deque
from typing import Deque

from core.session.models import (
    SCORE_EVENT_TYPES,
    Goal,
    Reset,
    ScoreEvent,
    TallySnapshot,
    Team,
    Undo,
)
from shared.logging.logger import get_logger

log = get_logger("core.session.tally")

UNDO_DEPTH = 32


class SessionTally:
    """
    Authoritative in-memory score state for one play session.

    Responsibilities:
    - Apply Goal / Undo / Reset commands in arrival order
    - Keep a bounded undo history of recent goals (current epoch only)
    - Produce an immutable TallySnapshot after every accepted command

    apply() calls are serialized; current() may be read from any thread and
    always returns a fully built snapshot.
    """

    def __init__(self, *, undo_depth: int = UNDO_DEPTH):
        if undo_depth < 1:
            raise ValueError("undo_depth must be at least 1")

        self._lock = threading.Lock()
        self._score_a = 0
        self._score_b = 0
        self._epoch = 0
        self._sequence = 0
        self._undo: Deque[Team] = deque(maxlen=undo_depth)
        self._ignored = 0
        self._snapshot = TallySnapshot()

    # ---------------------------------------------------------
    # Core API
    # ---------------------------------------------------------

    def apply(self, event: ScoreEvent) -> TallySnapshot:
        if not isinstance(event, SCORE_EVENT_TYPES):
            raise TypeError(f"Unsupported score event: {event!r}")

        # Raw "A"/"B" strings map onto Team; anything else raises ValueError
        # before state is touched.
        team = Team(event.team) if isinstance(event, Goal) else None

        with self._lock:
            if isinstance(event, Goal):
                self._apply_goal(team)
            elif isinstance(event, Undo):
                self._apply_undo()
            else:
                self._apply_reset()

            self._snapshot = TallySnapshot(
                score_a=self._score_a,
                score_b=self._score_b,
                epoch=self._epoch,
                sequence=self._sequence,
            )
            snapshot = self._snapshot

        log.debug(f"Applied {type(event).__name__}: {snapshot.to_document()}")
        return snapshot

    def current(self) -> TallySnapshot:
        return self._snapshot

    # ---------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------

    @property
    def ignored_commands(self) -> int:
        """Number of Undo commands that had nothing to revert."""
        return self._ignored

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    # ---------------------------------------------------------
    # Transitions (lock held)
    # ---------------------------------------------------------

    def _apply_goal(self, team: Team) -> None:
        if team is Team.A:
            self._score_a += 1
        else:
            self._score_b += 1
        self._undo.append(team)
        self._sequence += 1

    def _apply_undo(self) -> None:
        # Recorded as an accepted event even when nothing is reverted.
        self._sequence += 1

        if not self._undo:
            self._ignored += 1
            log.debug("Undo ignored: no goal to revert in this session")
            return

        team = self._undo.pop()
        if team is Team.A:
            self._score_a -= 1
        else:
            self._score_b -= 1

    def _apply_reset(self) -> None:
        self._score_a = 0
        self._score_b = 0
        self._undo.clear()
        self._epoch += 1
        self._sequence = 0
        log.info(f"Session reset, starting epoch {self._epoch}")
