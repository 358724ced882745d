"""
Publisher configuration.

Dataclass defaults are the design defaults; from_env() applies process
environment overrides (including values loaded from .env by the app).
Invalid environment values are logged and ignored so the runtime can still
start; invalid explicit values raise ConfigError.
"""

from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field, replace
from typing import Optional
from urllib.parse import urlparse

from shared.logging.logger import get_logger

log = get_logger("shared.config.publisher")

WEBHOOK_HOSTS = {
    "discord.com",
    "discordapp.com",
    "ptb.discord.com",
    "canary.discord.com",
}
_WEBHOOK_PATH = re.compile(r"^/api(?:/v\d+)?/webhooks/(?P<id>\d+)/(?P<token>[A-Za-z0-9_\-\.]+)/?$")

SINK_WEBHOOK = "webhook"
SINK_LOCAL = "local"

DEFAULT_BOT_NAME = "Rocket League Session"


class ConfigError(ValueError):
    """Unrecoverable startup configuration problem."""


@dataclass(frozen=True)
class WebhookTarget:
    url: str
    webhook_id: str
    credential: str

    def __repr__(self) -> str:
        return f"WebhookTarget(webhook_id={self.webhook_id}, credential=***REDACTED***)"

    __str__ = __repr__


def parse_webhook_url(url: Optional[str]) -> WebhookTarget:
    raw = (url or "").strip().strip('"').strip("'").strip()
    if not raw:
        raise ConfigError("Webhook URL is empty")

    parsed = urlparse(raw)
    if parsed.scheme != "https":
        raise ConfigError("Webhook URL must use https")
    if (parsed.hostname or "").lower() not in WEBHOOK_HOSTS:
        raise ConfigError(f"Webhook host is not a Discord host: {parsed.hostname}")

    match = _WEBHOOK_PATH.match(parsed.path)
    if not match:
        raise ConfigError("Webhook URL path must look like /api/webhooks/<id>/<token>")

    return WebhookTarget(
        url=raw,
        webhook_id=match.group("id"),
        credential=match.group("token"),
    )


@dataclass(frozen=True)
class SinkConfig:
    kind: str = SINK_LOCAL
    webhook: Optional[WebhookTarget] = None
    bot_name: str = DEFAULT_BOT_NAME

    def __post_init__(self) -> None:
        if self.kind not in (SINK_WEBHOOK, SINK_LOCAL):
            raise ConfigError(f"Unknown sink kind: {self.kind}")
        if self.kind == SINK_WEBHOOK and self.webhook is None:
            raise ConfigError("Webhook sink requires a webhook target")

    @classmethod
    def local(cls) -> "SinkConfig":
        return cls(kind=SINK_LOCAL)

    @classmethod
    def for_webhook(cls, url: str, *, bot_name: str = DEFAULT_BOT_NAME) -> "SinkConfig":
        return cls(kind=SINK_WEBHOOK, webhook=parse_webhook_url(url), bot_name=bot_name)


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with a ceiling, applied between retries."""

    initial: float = 1.0
    factor: float = 2.0
    ceiling: float = 30.0

    def __post_init__(self) -> None:
        if not all(math.isfinite(v) for v in (self.initial, self.factor, self.ceiling)):
            raise ConfigError("Backoff values must be finite numbers")
        if self.initial < 0 or self.ceiling < 0:
            raise ConfigError("Backoff delays must not be negative")
        if self.factor < 1:
            raise ConfigError("Backoff factor must be at least 1")

    def delay_for(self, retry: int) -> float:
        """Delay before the given retry (1-based)."""
        exponent = max(0, retry - 1)
        return min(self.initial * (self.factor ** exponent), self.ceiling)


@dataclass(frozen=True)
class PublisherConfig:
    sink: SinkConfig = field(default_factory=SinkConfig.local)
    debounce_interval: float = 2.0
    max_retries: int = 5
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    attempt_timeout: float = 10.0
    shutdown_grace: float = 5.0

    def __post_init__(self) -> None:
        for name in ("debounce_interval", "attempt_timeout", "shutdown_grace"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigError(f"{name} must be a finite number")
        if self.debounce_interval < 0:
            raise ConfigError("debounce_interval must not be negative")
        if self.max_retries < 0:
            raise ConfigError("max_retries must not be negative")
        if self.attempt_timeout <= 0:
            raise ConfigError("attempt_timeout must be positive")
        if self.shutdown_grace < 0:
            raise ConfigError("shutdown_grace must not be negative")

    @classmethod
    def from_env(cls, *, base: Optional["PublisherConfig"] = None) -> "PublisherConfig":
        cfg = base or cls()

        debounce = _env_float("SESSIONTALLY_DEBOUNCE_SECONDS", cfg.debounce_interval, minimum=0.0)
        max_retries = _env_int("SESSIONTALLY_MAX_RETRIES", cfg.max_retries, minimum=0)
        attempt_timeout = _env_float("SESSIONTALLY_ATTEMPT_TIMEOUT", cfg.attempt_timeout, minimum=0.1)
        shutdown_grace = _env_float("SESSIONTALLY_SHUTDOWN_GRACE", cfg.shutdown_grace, minimum=0.0)

        backoff_initial = _env_float("SESSIONTALLY_BACKOFF_INITIAL", cfg.backoff.initial, minimum=0.0)
        backoff_ceiling = _env_float("SESSIONTALLY_BACKOFF_CEILING", cfg.backoff.ceiling, minimum=0.0)

        sink = cfg.sink
        bot_name = os.getenv("SESSIONTALLY_BOT_NAME")
        if bot_name and bot_name.strip():
            sink = replace(sink, bot_name=bot_name.strip())

        return replace(
            cfg,
            sink=sink,
            debounce_interval=debounce,
            max_retries=max_retries,
            attempt_timeout=attempt_timeout,
            shutdown_grace=shutdown_grace,
            backoff=replace(cfg.backoff, initial=backoff_initial, ceiling=backoff_ceiling),
        )


# ----------------------------------------------------------------------
# Environment helpers
# ----------------------------------------------------------------------

def _env_float(key: str, default: float, *, minimum: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        log.warning(f"Invalid {key}={raw}; using {default}")
        return default
    if not math.isfinite(value):
        log.warning(f"{key}={raw} is not a finite number; using {default}")
        return default
    if value < minimum:
        log.warning(f"{key}={raw} is below {minimum}; using {default}")
        return default
    return value


def _env_int(key: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning(f"Invalid {key}={raw}; using {default}")
        return default
    if value < minimum:
        log.warning(f"{key}={raw} is below {minimum}; using {default}")
        return default
    return value
