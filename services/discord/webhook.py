"""
Discord webhook sink.

Performs exactly one HTTP POST per send() and maps the outcome onto the
delivery error taxonomy. Retry, backoff and coalescing are the publisher's
job; this module never sleeps.
"""

from __future__ import annotations

from typing import Optional

import httpx

from core.session.models import TallySnapshot
from runtime.version import as_user_agent
from services.discord.embeds import tally_message
from shared.config.publisher import DEFAULT_BOT_NAME, WebhookTarget
from shared.logging.logger import get_logger
from shared.publishing.base import TallySink
from shared.publishing.errors import (
    PermanentDeliveryError,
    RateLimited,
    TransientDeliveryError,
)

log = get_logger("discord.webhook", runtime="sessiontally")

DEFAULT_RETRY_AFTER = 1.0


class DiscordWebhookSink(TallySink):
    name = "discord-webhook"

    def __init__(
        self,
        target: WebhookTarget,
        *,
        username: str = DEFAULT_BOT_NAME,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._target = target
        self._username = username

        # Allow caller to supply a shared client; otherwise own lifecycle
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": as_user_agent()},
        )
        self._client_owned = client is None

    # ------------------------------------------------------------------

    async def send(self, snapshot: TallySnapshot) -> None:
        payload = tally_message(snapshot, username=self._username)

        try:
            resp = await self._client.post(self._target.url, json=payload)
        except httpx.TimeoutException as e:
            raise TransientDeliveryError(f"Webhook request timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientDeliveryError(f"Webhook transport error: {e}") from e

        status = resp.status_code

        if 200 <= status < 300:
            log.debug(
                f"Webhook accepted snapshot {snapshot.key} (status={status})"
            )
            return

        if status == 429:
            raise RateLimited(_retry_after(resp))

        if status >= 500:
            raise TransientDeliveryError(
                f"Webhook returned {status}", status_code=status
            )

        raise PermanentDeliveryError(
            f"Webhook rejected payload [{status}]: {_body_preview(resp)}",
            status_code=status,
        )

    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        if self._client_owned:
            await self._client.aclose()


def _retry_after(resp: httpx.Response) -> float:
    """
    Discord reports the wait in the JSON body (`retry_after`, seconds);
    the Retry-After header is the generic fallback.
    """
    try:
        body = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        value = body.get("retry_after")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)

    header = resp.headers.get("Retry-After")
    if header:
        try:
            return float(header)
        except ValueError:
            log.debug(f"Unparseable Retry-After header: {header}")

    return DEFAULT_RETRY_AFTER


def _body_preview(resp: httpx.Response) -> str:
    try:
        return resp.text[:200]
    except Exception:
        return "<unreadable>"
