"""Failure classification: raw failure message + context -> FailureKind.

The boundary contract is message text, not exception types: whatever drives
the page must phrase its errors with the fragments below (see
``tools.base.to_agent_error`` for the CDP-side translation).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

FailureKind = Literal[
    "stale_ref",
    "not_interactable",
    "strict_mode",
    "dialog_blocking",
    "navigation_changed",
    "overlay_interference",
    "captcha_detected",
    "unknown",
]

STALE_REF: FailureKind = "stale_ref"
NOT_INTERACTABLE: FailureKind = "not_interactable"
STRICT_MODE: FailureKind = "strict_mode"
DIALOG_BLOCKING: FailureKind = "dialog_blocking"
NAVIGATION_CHANGED: FailureKind = "navigation_changed"
OVERLAY_INTERFERENCE: FailureKind = "overlay_interference"
CAPTCHA_DETECTED: FailureKind = "captcha_detected"
UNKNOWN: FailureKind = "unknown"

FAILURE_KINDS: tuple[FailureKind, ...] = (
    STALE_REF,
    NOT_INTERACTABLE,
    STRICT_MODE,
    DIALOG_BLOCKING,
    NAVIGATION_CHANGED,
    OVERLAY_INTERFERENCE,
    CAPTCHA_DETECTED,
    UNKNOWN,
)

# No automated remedy exists for these.
TERMINAL_KINDS: frozenset[str] = frozenset({UNKNOWN, CAPTCHA_DETECTED})

# Consecutive blocked attempts before "retry harder" becomes "something covers the page".
OVERLAY_ESCALATION_THRESHOLD = 2

_REF_PHRASES = ("Unknown ref", "not found or not visible", "Run a new snapshot")
_BLOCKED_PHRASES = (
    "not interactable",
    "hidden or covered",
    "intercepts pointer events",
    "not receive pointer events",
)
_TIMEOUT_PHRASES = ("Timeout", "timeout", "timed out")
_CAPTCHA_PHRASES = ("captcha", "i'm not a robot", "cloudflare", "human verification", "bot detection")


@dataclass(frozen=True, slots=True)
class ErrorContext:
    has_unhandled_dialog: bool = False
    pre_action_url: str | None = None
    current_url: str | None = None
    not_interactable_count: int = 0

    def url_changed(self) -> bool:
        return bool(self.pre_action_url and self.current_url and self.pre_action_url != self.current_url)


def _has_any(message: str, phrases: tuple[str, ...]) -> bool:
    return any(p in message for p in phrases)


def classify(message: str, context: ErrorContext | None = None) -> FailureKind:
    """First match wins; several kinds share surface symptoms."""
    msg = str(message or "")
    ctx = context or ErrorContext()

    if _has_any(msg, _REF_PHRASES):
        return NAVIGATION_CHANGED if ctx.url_changed() else STALE_REF

    if "matched" in msg and "elements" in msg:
        return STRICT_MODE

    if _has_any(msg, _BLOCKED_PHRASES):
        if ctx.not_interactable_count >= OVERLAY_ESCALATION_THRESHOLD:
            return OVERLAY_INTERFERENCE
        return NOT_INTERACTABLE

    if _has_any(msg, _TIMEOUT_PHRASES) and ctx.has_unhandled_dialog:
        return DIALOG_BLOCKING

    if _has_any(msg.lower(), _CAPTCHA_PHRASES):
        return CAPTCHA_DETECTED

    return UNKNOWN


def is_terminal(kind: str) -> bool:
    return kind in TERMINAL_KINDS


__all__ = [
    "CAPTCHA_DETECTED",
    "DIALOG_BLOCKING",
    "FAILURE_KINDS",
    "NAVIGATION_CHANGED",
    "NOT_INTERACTABLE",
    "OVERLAY_ESCALATION_THRESHOLD",
    "OVERLAY_INTERFERENCE",
    "STALE_REF",
    "STRICT_MODE",
    "TERMINAL_KINDS",
    "UNKNOWN",
    "ErrorContext",
    "FailureKind",
    "classify",
    "is_terminal",
]
