"""Retry orchestrator: attempt -> classify -> recover -> retry, bounded.

Goal:
- Turn recoverable driver failures (stale refs, overlays, blocking dialogs,
  navigation) into a transparent retry.
- Fail fast on failures with no safe automated remedy (unknown, captcha).
- Once attempts run out, raise a single self-sufficient DiagnosticError.

Statistics go to the observer as a side effect; they never steer control flow.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .capabilities import HealContext
from .classify import (
    CAPTCHA_DETECTED,
    DIALOG_BLOCKING,
    NAVIGATION_CHANGED,
    NOT_INTERACTABLE,
    OVERLAY_INTERFERENCE,
    STALE_REF,
    STRICT_MODE,
    ErrorContext,
    classify,
    is_terminal,
)
from .recovery import attempt_recovery

_LOGGER = logging.getLogger("agent_browser.heal.retry")

T = TypeVar("T")

CONSOLE_ERROR_LIMIT = 20


@dataclass(frozen=True, slots=True)
class RetryOptions:
    max_retries: int
    delay_ms: int = 0
    ref: str | None = None

    @property
    def max_attempts(self) -> int:
        return max(0, int(self.max_retries)) + 1


@dataclass
class RetryOutcome(Generic[T]):
    result: T
    attempts: int
    recoveries: list[str] = field(default_factory=list)


@dataclass
class DiagnosticError(Exception):
    """What the agent sees once self-healing gave up."""

    message: str
    ref: str | None
    attempts: int
    retry_log: list[str] = field(default_factory=list)
    console_errors: list[str] = field(default_factory=list)
    suggestion: str = ""
    kind: str = "unknown"

    def __str__(self) -> str:
        return f"{self.message} Suggestion: {self.suggestion}"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "error": True,
            "message": self.message,
            "kind": self.kind,
            "attempts": self.attempts,
            "retry_log": list(self.retry_log),
            "console_errors": list(self.console_errors),
            "suggestion": self.suggestion,
        }
        if self.ref:
            out["ref"] = self.ref
        return out


_SUGGESTIONS: dict[str, str] = {
    STALE_REF: "Element ref became stale after {n} attempt(s). Run a new snapshot and retry.",
    NOT_INTERACTABLE: (
        "Element not interactable after {n} attempt(s). Check if element is visible and not overlapped."
    ),
    STRICT_MODE: "Ref matched multiple elements after {n} attempt(s). Run a new snapshot to get a unique ref.",
    DIALOG_BLOCKING: (
        'Action timed out due to a blocking dialog. Run "dialog list" to see pending dialogs, '
        "or set dialog-mode to accept."
    ),
    NAVIGATION_CHANGED: (
        "Page navigated during action after {n} attempt(s). Run a new snapshot from the new page context."
    ),
    OVERLAY_INTERFERENCE: (
        "Element blocked by an overlay (modal, cookie banner, or dialog) after {n} attempt(s). "
        "An auto-dismiss was attempted. Run snapshot to verify overlay is gone."
    ),
    CAPTCHA_DETECTED: "Manual intervention required, solve the CAPTCHA in the browser and retry.",
}


def build_suggestion(kind: str, attempts: int) -> str:
    template = _SUGGESTIONS.get(kind, "Action failed after {n} attempt(s).")
    return template.format(n=attempts)


def _current_url(context: HealContext | None) -> str | None:
    if context is None:
        return None
    try:
        return str(context.page.current_url() or "") or None
    except Exception as exc:  # noqa: BLE001
        _LOGGER.debug("current_url failed: %s", exc)
        return None


def _has_pending_dialog(context: HealContext | None) -> bool:
    if context is None or context.dialogs is None:
        return False
    try:
        return bool(context.dialogs.has_pending())
    except Exception as exc:  # noqa: BLE001
        _LOGGER.debug("dialog check failed: %s", exc)
        return False


def _record(context: HealContext | None, method: str, *args: Any) -> None:
    observer = context.observer if context is not None else None
    if observer is None:
        return
    try:
        getattr(observer, method)(*args)
    except Exception as exc:  # noqa: BLE001
        _LOGGER.debug("stats sink %s failed: %s", method, exc)


def _console_errors(context: HealContext | None) -> list[str]:
    observer = context.observer if context is not None else None
    if observer is None:
        return []
    try:
        return [str(e) for e in observer.recent_console_errors(CONSOLE_ERROR_LIMIT)]
    except Exception as exc:  # noqa: BLE001
        _LOGGER.debug("console error read failed: %s", exc)
        return []


def _error_context(context: HealContext | None, pre_action_url: str | None, counter: int) -> ErrorContext:
    return ErrorContext(
        has_unhandled_dialog=_has_pending_dialog(context),
        pre_action_url=pre_action_url,
        current_url=_current_url(context),
        not_interactable_count=counter,
    )


def with_retry(
    action: Callable[[], T],
    options: RetryOptions,
    context: HealContext | None = None,
    *,
    sleep: Callable[[float], Any] = time.sleep,
) -> RetryOutcome[T]:
    """Run *action* up to ``options.max_attempts`` times, healing between attempts.

    Raises the action's own exception on a terminal failure kind or when no
    context (page) is available; raises DiagnosticError when attempts run out.
    """
    max_attempts = options.max_attempts
    recoveries: list[str] = []
    pre_action_url = _current_url(context)
    blocked_streak = 0
    recovered_once = False
    last_error: BaseException | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = action()
        except Exception as exc:
            last_error = exc
            kind = classify(str(exc), _error_context(context, pre_action_url, blocked_streak))

            if kind in (NOT_INTERACTABLE, OVERLAY_INTERFERENCE):
                blocked_streak += 1
            else:
                blocked_streak = 0

            if is_terminal(kind):
                _LOGGER.info("attempt %d failed with %s; not retrying", attempt, kind)
                raise
            if context is None:
                _LOGGER.info("attempt %d failed with %s; no page to recover with", attempt, kind)
                raise

            if attempt >= max_attempts:
                break

            _record(context, "record_attempt", kind)
            recovered_once = True
            attempt_recovery(kind, context, recoveries)

            if options.delay_ms > 0:
                sleep(options.delay_ms / 1000.0)
            continue

        if recovered_once:
            _record(context, "record_outcome", True)
        return RetryOutcome(result=result, attempts=attempt, recoveries=recoveries)

    if recovered_once:
        _record(context, "record_outcome", False)

    message = str(last_error) if last_error is not None else "Action failed"
    # Fresh context without the blocked streak: the suggestion describes the
    # failure itself, not the escalation that would have followed it.
    final_kind = classify(message, _error_context(context, pre_action_url, 0))
    _LOGGER.info("giving up after %d attempt(s): %s", max_attempts, final_kind)
    raise DiagnosticError(
        message=message,
        ref=options.ref,
        attempts=max_attempts,
        retry_log=list(recoveries),
        console_errors=_console_errors(context),
        suggestion=build_suggestion(final_kind, max_attempts),
        kind=final_kind,
    ) from last_error


__all__ = [
    "CONSOLE_ERROR_LIMIT",
    "DiagnosticError",
    "RetryOptions",
    "RetryOutcome",
    "build_suggestion",
    "with_retry",
]
