import pytest

from shared.config.publisher import (
    SINK_LOCAL,
    SINK_WEBHOOK,
    BackoffPolicy,
    ConfigError,
    PublisherConfig,
    SinkConfig,
    parse_webhook_url,
)

WEBHOOK_URL = "https://discord.com/api/webhooks/123456789/abcDEF-token_42"


# ---------------------------------------------------------
# Webhook URL validation
# ---------------------------------------------------------

def test_parse_webhook_url_extracts_credential():
    target = parse_webhook_url(WEBHOOK_URL)

    assert target.url == WEBHOOK_URL
    assert target.webhook_id == "123456789"
    assert target.credential == "abcDEF-token_42"


def test_webhook_credential_is_redacted():
    target = parse_webhook_url(WEBHOOK_URL)

    assert "abcDEF" not in repr(target)
    assert "abcDEF" not in str(target)


def test_parse_webhook_url_accepts_legacy_host_and_quotes():
    target = parse_webhook_url('"https://discordapp.com/api/webhooks/42/tok"')

    assert target.webhook_id == "42"


@pytest.mark.parametrize("url", [
    "",
    None,
    "http://discord.com/api/webhooks/1/token",
    "https://example.com/api/webhooks/1/token",
    "https://discord.com/api/webhooks/abc/token",
    "https://discord.com/api/webhooks/1",
    "not a url",
])
def test_parse_webhook_url_rejects_malformed(url):
    with pytest.raises(ConfigError):
        parse_webhook_url(url)


# ---------------------------------------------------------
# Dataclass validation
# ---------------------------------------------------------

def test_defaults():
    config = PublisherConfig()

    assert config.sink.kind == SINK_LOCAL
    assert config.debounce_interval == 2.0
    assert config.max_retries == 5


def test_webhook_sink_requires_target():
    with pytest.raises(ConfigError):
        SinkConfig(kind=SINK_WEBHOOK)


def test_unknown_sink_kind():
    with pytest.raises(ConfigError):
        SinkConfig(kind="carrier-pigeon")


@pytest.mark.parametrize("kwargs", [
    {"debounce_interval": -1},
    {"max_retries": -1},
    {"attempt_timeout": 0},
    {"shutdown_grace": -0.5},
    {"debounce_interval": float("nan")},
    {"attempt_timeout": float("inf")},
    {"shutdown_grace": float("nan")},
])
def test_invalid_publisher_values(kwargs):
    with pytest.raises(ConfigError):
        PublisherConfig(**kwargs)


def test_backoff_grows_to_ceiling():
    policy = BackoffPolicy(initial=1.0, factor=2.0, ceiling=5.0)

    assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_backoff_rejects_shrinking_factor():
    with pytest.raises(ConfigError):
        BackoffPolicy(factor=0.5)


def test_backoff_rejects_non_finite_values():
    with pytest.raises(ConfigError):
        BackoffPolicy(initial=float("nan"))
    with pytest.raises(ConfigError):
        BackoffPolicy(ceiling=float("inf"))


# ---------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------

def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("SESSIONTALLY_DEBOUNCE_SECONDS", "0.5")
    monkeypatch.setenv("SESSIONTALLY_MAX_RETRIES", "7")
    monkeypatch.setenv("SESSIONTALLY_BACKOFF_INITIAL", "0.25")
    monkeypatch.setenv("SESSIONTALLY_BOT_NAME", "Friday Night League")

    config = PublisherConfig.from_env()

    assert config.debounce_interval == 0.5
    assert config.max_retries == 7
    assert config.backoff.initial == 0.25
    assert config.sink.bot_name == "Friday Night League"


def test_from_env_ignores_invalid_values(monkeypatch):
    monkeypatch.setenv("SESSIONTALLY_DEBOUNCE_SECONDS", "soon")
    monkeypatch.setenv("SESSIONTALLY_MAX_RETRIES", "-3")

    config = PublisherConfig.from_env()

    assert config.debounce_interval == 2.0
    assert config.max_retries == 5


@pytest.mark.parametrize("raw", ["nan", "inf", "-inf"])
def test_from_env_ignores_non_finite_floats(monkeypatch, raw):
    monkeypatch.setenv("SESSIONTALLY_DEBOUNCE_SECONDS", raw)
    monkeypatch.setenv("SESSIONTALLY_SHUTDOWN_GRACE", raw)
    monkeypatch.setenv("SESSIONTALLY_BACKOFF_CEILING", raw)

    config = PublisherConfig.from_env()

    assert config.debounce_interval == 2.0
    assert config.shutdown_grace == 5.0
    assert config.backoff.ceiling == 30.0
