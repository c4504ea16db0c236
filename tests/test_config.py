from __future__ import annotations

import pytest

from agent_browser.config import HealConfig, normalize_timeout_ms, parse_overrides

_ENV_VARS = (
    "AGENT_BROWSER_HOST",
    "AGENT_BROWSER_PORT",
    "AGENT_BROWSER_AUTO_RETRY",
    "AGENT_BROWSER_RETRY_COUNT",
    "AGENT_BROWSER_RETRY_DELAY_MS",
    "AGENT_BROWSER_TIMEOUT_MS",
    "AGENT_BROWSER_DIALOG_MODE",
    "AGENT_BROWSER_CONSOLE_BUFFER",
    "AGENT_BROWSER_REF_CACHE",
    "AGENT_BROWSER_SNAPSHOT_MAX_CHARS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_from_env_defaults(clean_env: pytest.MonkeyPatch) -> None:
    cfg = HealConfig.from_env()
    assert cfg == HealConfig()
    assert cfg.cdp_base_url == "http://127.0.0.1:9222"
    assert cfg.auto_retry is False
    assert cfg.retry_count == 2


def test_from_env_reads_variables(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("AGENT_BROWSER_PORT", "9333")
    clean_env.setenv("AGENT_BROWSER_AUTO_RETRY", "yes")
    clean_env.setenv("AGENT_BROWSER_RETRY_COUNT", "4")
    clean_env.setenv("AGENT_BROWSER_TIMEOUT_MS", "999999")
    clean_env.setenv("AGENT_BROWSER_DIALOG_MODE", "QUEUE")

    cfg = HealConfig.from_env()
    assert cfg.cdp_port == 9333
    assert cfg.auto_retry is True
    assert cfg.retry_count == 4
    assert cfg.default_timeout_ms == 120_000
    assert cfg.dialog_mode == "queue"


def test_from_env_bad_values(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("AGENT_BROWSER_DIALOG_MODE", "sometimes")
    clean_env.setenv("AGENT_BROWSER_AUTO_RETRY", "maybe")
    cfg = HealConfig.from_env()
    assert cfg.dialog_mode == "accept"
    assert cfg.auto_retry is False

    clean_env.setenv("AGENT_BROWSER_PORT", "not-a-port")
    with pytest.raises(ValueError):
        HealConfig.from_env()


def test_normalize_timeout_ms() -> None:
    assert normalize_timeout_ms(100) == 500
    assert normalize_timeout_ms(5_000) == 5_000
    assert normalize_timeout_ms("2500") == 2_500
    assert normalize_timeout_ms(10**7) == 120_000
    assert normalize_timeout_ms("soon") == 10_000
    assert normalize_timeout_ms(None, default=3_000) == 3_000
    assert normalize_timeout_ms(True) == 10_000


def test_parse_overrides_lenient_coercion() -> None:
    cfg, warnings, errors = parse_overrides(
        HealConfig(),
        {"retry-count": "3", "auto_retry": "on", "dialog_mode": " Queue ", "default_timeout_ms": "200"},
    )
    assert warnings == []
    assert errors == []
    assert cfg.retry_count == 3
    assert cfg.auto_retry is True
    assert cfg.dialog_mode == "queue"
    assert cfg.default_timeout_ms == 500


def test_parse_overrides_invalid_keeps_current() -> None:
    base = HealConfig(retry_count=2)
    cfg, warnings, errors = parse_overrides(base, {"retry_count": "lots", "retry_delay_ms": 250, "colour": "red"})
    assert errors == []
    assert cfg.retry_count == 2
    assert cfg.retry_delay_ms == 250
    assert warnings == [
        "retry_count: expected integer 0-10; keeping current value",
        "colour: unknown key; keeping current value",
    ]


def test_parse_overrides_strict_rejects() -> None:
    base = HealConfig()
    cfg, warnings, errors = parse_overrides(base, {"strict_params": True, "dialog_mode": "maybe", "retry_count": 1})
    assert cfg is base
    assert warnings == []
    assert errors == ["dialog_mode: expected one of ['accept', 'dismiss', 'queue']"]


def test_parse_overrides_none_values_skipped() -> None:
    cfg, warnings, errors = parse_overrides(HealConfig(), {"retry_count": None})
    assert cfg == HealConfig()
    assert warnings == errors == []


def test_retry_options_from_config() -> None:
    opts = HealConfig(retry_count=3, retry_delay_ms=100).retry_options(ref="e7")
    assert opts.max_retries == 3
    assert opts.max_attempts == 4
    assert opts.delay_ms == 100
    assert opts.ref == "e7"
