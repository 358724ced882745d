from __future__ import annotations

import sys
from typing import Optional, TextIO

from core.session.models import TallySnapshot
from shared.logging.logger import get_logger
from shared.publishing.base import TallySink
from shared.publishing.render import render_tally_text

log = get_logger("services.local.sink")


class LocalSink(TallySink):
    """
    Writes the tally to a text stream instead of the network.

    Deterministic and infallible: it goes through the same publish cadence
    as the webhook path but never triggers a retry.
    """

    name = "local"

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    async def send(self, snapshot: TallySnapshot) -> None:
        stream = self._stream or sys.stdout
        stream.write(render_tally_text(snapshot) + "\n")
        stream.flush()
        log.debug(f"Wrote snapshot {snapshot.key} to local output")
