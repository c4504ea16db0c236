"""Runtime configuration: env defaults plus lenient per-call overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any

from .heal.retry import RetryOptions

DIALOG_MODES = frozenset({"accept", "dismiss", "queue"})

TIMEOUT_MIN_MS = 500
TIMEOUT_MAX_MS = 120_000


def normalize_timeout_ms(value: Any, default: int = 10_000) -> int:
    """Clamp to TIMEOUT_MIN_MS..TIMEOUT_MAX_MS; non-numeric input falls back to *default*."""
    if value is None or isinstance(value, bool):
        return default
    try:
        num = int(float(value))
    except (TypeError, ValueError):
        return default
    return max(TIMEOUT_MIN_MS, min(TIMEOUT_MAX_MS, num))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    coerced, ok = _coerce_boolish(raw)
    return bool(coerced) if ok and coerced is not None else default


@dataclass(frozen=True)
class HealConfig:
    cdp_host: str = "127.0.0.1"
    cdp_port: int = 9222
    auto_retry: bool = False
    retry_count: int = 2
    retry_delay_ms: int = 500
    default_timeout_ms: int = 10_000
    dialog_mode: str = "accept"
    console_buffer_size: int = 500
    ref_cache_size: int = 50
    snapshot_max_chars: int = 50_000

    @staticmethod
    def normalize_dialog_mode(raw: str | None) -> str:
        mode = (raw or "").strip().lower()
        return mode if mode in DIALOG_MODES else "accept"

    @classmethod
    def from_env(cls) -> HealConfig:
        """Build from AGENT_BROWSER_* variables. Unparsable numbers raise ValueError."""
        return cls(
            cdp_host=os.environ.get("AGENT_BROWSER_HOST", "127.0.0.1").strip() or "127.0.0.1",
            cdp_port=int(os.environ.get("AGENT_BROWSER_PORT", "9222")),
            auto_retry=_env_bool("AGENT_BROWSER_AUTO_RETRY", False),
            retry_count=int(os.environ.get("AGENT_BROWSER_RETRY_COUNT", "2")),
            retry_delay_ms=int(os.environ.get("AGENT_BROWSER_RETRY_DELAY_MS", "500")),
            default_timeout_ms=normalize_timeout_ms(int(os.environ.get("AGENT_BROWSER_TIMEOUT_MS", "10000"))),
            dialog_mode=cls.normalize_dialog_mode(os.environ.get("AGENT_BROWSER_DIALOG_MODE")),
            console_buffer_size=int(os.environ.get("AGENT_BROWSER_CONSOLE_BUFFER", "500")),
            ref_cache_size=int(os.environ.get("AGENT_BROWSER_REF_CACHE", "50")),
            snapshot_max_chars=int(os.environ.get("AGENT_BROWSER_SNAPSHOT_MAX_CHARS", "50000")),
        )

    @property
    def cdp_base_url(self) -> str:
        return f"http://{self.cdp_host}:{self.cdp_port}"

    def retry_options(self, ref: str | None = None) -> RetryOptions:
        return RetryOptions(max_retries=self.retry_count, delay_ms=self.retry_delay_ms, ref=ref)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cdp_host": self.cdp_host,
            "cdp_port": self.cdp_port,
            "auto_retry": self.auto_retry,
            "retry_count": self.retry_count,
            "retry_delay_ms": self.retry_delay_ms,
            "default_timeout_ms": self.default_timeout_ms,
            "dialog_mode": self.dialog_mode,
            "console_buffer_size": self.console_buffer_size,
            "ref_cache_size": self.ref_cache_size,
            "snapshot_max_chars": self.snapshot_max_chars,
        }


_BOOLISH_KEYS = {"auto_retry"}

_ENUM_KEYS: dict[str, set[str]] = {
    "dialog_mode": set(DIALOG_MODES),
}

_INT_KEYS: dict[str, tuple[int, int]] = {
    "retry_count": (0, 10),
    "retry_delay_ms": (0, 60_000),
    "console_buffer_size": (10, 10_000),
    "ref_cache_size": (1, 1_000),
    "snapshot_max_chars": (1_000, 1_000_000),
}


def _coerce_boolish(value: Any) -> tuple[bool | None, bool]:
    if value is None:
        return None, True
    if isinstance(value, bool):
        return value, True
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value), True
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"true", "1", "yes", "y", "on"}:
            return True, True
        if v in {"false", "0", "no", "n", "off"}:
            return False, True
    return None, False


def _coerce_int(value: Any, *, lo: int, hi: int) -> tuple[int | None, bool]:
    if value is None or isinstance(value, bool):
        return None, False
    try:
        num = int(value)
    except (TypeError, ValueError):
        return None, False
    if num < lo or num > hi:
        return None, False
    return num, True


def _normalize_key(key: str) -> str:
    # Accept the dashed spelling agents copy from CLI help (retry-count).
    return str(key).strip().lower().replace("-", "_")


def _invalid(key: str, reason: str, *, strict: bool, errors: list[str], warnings: list[str]) -> None:
    if strict:
        errors.append(f"{key}: {reason}")
    else:
        warnings.append(f"{key}: {reason}; keeping current value")


def _coerce_override(key: str, value: Any) -> tuple[Any, str | None]:
    """Return (coerced, None) or (None, reason)."""
    if key in _BOOLISH_KEYS:
        coerced, ok = _coerce_boolish(value)
        return (coerced, None) if ok and coerced is not None else (None, "expected boolean")
    if key in _ENUM_KEYS:
        allowed = _ENUM_KEYS[key]
        normalized = value.strip().lower() if isinstance(value, str) else None
        if normalized in allowed:
            return normalized, None
        return None, f"expected one of {sorted(allowed)}"
    if key in _INT_KEYS:
        lo, hi = _INT_KEYS[key]
        num, ok = _coerce_int(value, lo=lo, hi=hi)
        return (num, None) if ok else (None, f"expected integer {lo}-{hi}")
    if key == "default_timeout_ms":
        num, ok = _coerce_int(value, lo=0, hi=10**9)
        if not ok:
            return None, "expected integer milliseconds"
        return normalize_timeout_ms(num), None
    return None, "unknown key"


def parse_overrides(
    config: HealConfig,
    args: dict[str, Any] | None,
) -> tuple[HealConfig, list[str], list[str]]:
    """Apply per-call overrides. Invalid values keep the current setting (warning),
    or become errors when ``strict_params`` is truthy."""
    src = {_normalize_key(k): v for k, v in dict(args or {}).items()}
    warnings: list[str] = []
    errors: list[str] = []

    strict, _ = _coerce_boolish(src.pop("strict_params", False))
    strict = bool(strict)

    changes: dict[str, Any] = {}
    for key, value in src.items():
        if value is None:
            continue
        coerced, reason = _coerce_override(key, value)
        if reason is not None:
            _invalid(key, reason, strict=strict, errors=errors, warnings=warnings)
            continue
        changes[key] = coerced

    if errors:
        return config, warnings, errors
    return replace(config, **changes), warnings, errors


__all__ = ["DIALOG_MODES", "HealConfig", "normalize_timeout_ms", "parse_overrides"]
