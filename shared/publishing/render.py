from __future__ import annotations

from core.session.models import TallySnapshot, Team


def render_tally_text(snapshot: TallySnapshot) -> str:
    """Deterministic one-line rendering, e.g. `Team A 3 - Team B 2`."""
    return (
        f"{Team.A.label} {snapshot.score_a} - "
        f"{Team.B.label} {snapshot.score_b}"
    )


def render_footer(snapshot: TallySnapshot) -> str:
    return f"Session {snapshot.epoch} · update {snapshot.sequence}"
