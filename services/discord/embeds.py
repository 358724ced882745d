from __future__ import annotations

from typing import Any, Dict

import discord

from core.session.models import TallySnapshot, Team
from shared.publishing.render import render_footer, render_tally_text

TEAM_COLORS = {
    Team.A: discord.Color.blue(),
    Team.B: discord.Color.orange(),
}


def tally_embed(snapshot: TallySnapshot) -> discord.Embed:
    """
    Build the running tally embed for a snapshot.

    The first snapshot of every epoch announces a new session. No timestamp
    is attached so the embed is a pure function of the snapshot.
    """
    title = "Starting new session" if snapshot.sequence == 0 else "Running tally"
    leader = snapshot.leader

    embed = discord.Embed(
        title=title,
        description=render_tally_text(snapshot),
        color=TEAM_COLORS[leader] if leader else discord.Color.blurple(),
    )
    for team in Team:
        embed.add_field(name=team.label, value=str(snapshot.score_for(team)), inline=True)
    embed.set_footer(text=render_footer(snapshot))
    return embed


def tally_message(snapshot: TallySnapshot, *, username: str) -> Dict[str, Any]:
    """Webhook execute payload for a snapshot."""
    return {
        "username": username,
        "embeds": [tally_embed(snapshot).to_dict()],
    }
