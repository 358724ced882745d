from __future__ import annotations

from core.session.models import TallySnapshot


class TallySink:
    """
    Destination for published tally snapshots.

    send() performs exactly one delivery attempt and signals failure by
    raising a DeliveryError subclass. Retry policy belongs to the publisher.
    """

    name = "sink"

    async def send(self, snapshot: TallySnapshot) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
