"""
Operator command parsing.

One command per line. Parsing happens before anything reaches the tally,
so the tally only ever sees valid ScoreEvents.
"""

from __future__ import annotations

from typing import Optional

from core.session.models import Goal, Reset, ScoreEvent, Team, Undo


class UnknownCommand(ValueError):
    pass


class QuitCommand(Exception):
    """Raised when the operator asks to end the session."""


_COMMANDS = {
    "a": Goal(Team.A),
    "1": Goal(Team.A),
    "goal a": Goal(Team.A),
    "b": Goal(Team.B),
    "2": Goal(Team.B),
    "goal b": Goal(Team.B),
    "u": Undo(),
    "undo": Undo(),
    "r": Reset(),
    "reset": Reset(),
}

_QUIT = {"q", "quit", "exit"}

HELP_TEXT = (
    "Commands: a/1 = goal Team A, b/2 = goal Team B, "
    "u = undo, r = reset, q = quit"
)


def parse_command(line: str) -> Optional[ScoreEvent]:
    """
    Returns the ScoreEvent for a line, or None for a blank line.

    Raises QuitCommand for quit requests and UnknownCommand otherwise.
    """
    normalized = " ".join(line.strip().lower().split())
    if not normalized:
        return None

    if normalized in _QUIT:
        raise QuitCommand()

    event = _COMMANDS.get(normalized)
    if event is None:
        raise UnknownCommand(f"Unknown command: {line.strip()!r}")
    return event
