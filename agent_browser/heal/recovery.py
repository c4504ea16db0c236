"""Recovery strategies, one per recoverable FailureKind.

Every strategy is best-effort: a page-control step that fails is logged and
skipped, the strategy still completes and its tag is still recorded. Nothing
here raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .capabilities import HealContext, PageControl
from .classify import (
    DIALOG_BLOCKING,
    NAVIGATION_CHANGED,
    NOT_INTERACTABLE,
    OVERLAY_INTERFERENCE,
    STALE_REF,
    STRICT_MODE,
)
from .refs import SnapshotOptions

_LOGGER = logging.getLogger("agent_browser.heal.recovery")

TAG_RESNAP = "resnap"
TAG_RESNAP_NTH = "resnap-nth"
TAG_SCROLL_DISMISS = "scroll-dismiss"
TAG_DIALOG_ACCEPTED = "dialog-accepted"
TAG_RESNAP_NEW_PAGE = "resnap-new-page"
TAG_OVERLAY_DISMISSED = "overlay-dismissed"

# Small on purpose: every dismissal click can have side effects on the page.
OVERLAY_SELECTORS: tuple[str, ...] = (
    "[role=dialog]",
    ".modal",
    ".cookie-banner",
    "[aria-modal=true]",
)
CLOSE_CONTROL_SELECTOR = (
    "button[aria-label*='close' i], button[aria-label*='dismiss' i], "
    "button[aria-label*='accept' i], [data-dismiss], .close, .btn-close"
)

COMPACT_RESNAP = SnapshotOptions(interactive_only=False, max_depth=None, compact=True)
FULL_RESNAP = SnapshotOptions(interactive_only=False, max_depth=None, compact=False)

ESCAPE = "Escape"


def _step(label: str, fn: Callable[..., Any], *args: Any) -> bool:
    try:
        fn(*args)
        return True
    except Exception as exc:  # noqa: BLE001
        _LOGGER.debug("recovery step %s failed: %s", label, exc)
        return False


def _resnap(ctx: HealContext, options: SnapshotOptions) -> None:
    _step("snapshot", ctx.snapshots.take_snapshot, options)


def _is_visible(page: PageControl, handle: Any) -> bool:
    try:
        return bool(page.is_visible(handle))
    except Exception:  # noqa: BLE001
        return False


def dismiss_overlay(page: PageControl) -> bool:
    """Close the first visible overlay from OVERLAY_SELECTORS. True if one was acted on."""
    for selector in OVERLAY_SELECTORS:
        try:
            overlay = page.locate_by_selector(selector)
            if not _is_visible(page, overlay):
                continue
            close = page.locate_by_selector(CLOSE_CONTROL_SELECTOR, within=overlay)
            if _is_visible(page, close):
                page.click(close)
                _LOGGER.info("overlay %s closed via close control", selector)
                return True
            page.press_key(ESCAPE)
            _LOGGER.info("overlay %s dismissed via Escape", selector)
            return True
        except Exception as exc:  # noqa: BLE001
            _LOGGER.debug("overlay %s dismissal failed: %s", selector, exc)
            continue
    return False


def _recover_stale_ref(ctx: HealContext) -> str:
    _resnap(ctx, COMPACT_RESNAP)
    return TAG_RESNAP


def _recover_strict_mode(ctx: HealContext) -> str:
    # Non-compact keeps every duplicate line, so nth indices come back.
    _resnap(ctx, FULL_RESNAP)
    return TAG_RESNAP_NTH


def _recover_not_interactable(ctx: HealContext) -> str:
    _step("scroll", ctx.page.scroll, 0, 200)
    _step("escape", ctx.page.press_key, ESCAPE)
    return TAG_SCROLL_DISMISS


def _recover_dialog_blocking(ctx: HealContext) -> str:
    dialogs = ctx.dialogs
    if dialogs is not None:
        previous = dialogs.mode
        if previous == "queue":
            dialogs.mode = "accept"
            try:
                _step("dialog", dialogs.resolve_oldest, "accept")
            finally:
                dialogs.mode = previous
        else:
            _step("dialog", dialogs.resolve_oldest, "accept")
    _resnap(ctx, COMPACT_RESNAP)
    return TAG_DIALOG_ACCEPTED


def _recover_navigation_changed(ctx: HealContext) -> str:
    _resnap(ctx, COMPACT_RESNAP)
    return TAG_RESNAP_NEW_PAGE


def _recover_overlay(ctx: HealContext) -> str:
    if not dismiss_overlay(ctx.page):
        _step("scroll", ctx.page.scroll, 0, -300)
        _step("escape", ctx.page.press_key, ESCAPE)
    _resnap(ctx, COMPACT_RESNAP)
    return TAG_OVERLAY_DISMISSED


_STRATEGIES: dict[str, Callable[[HealContext], str]] = {
    STALE_REF: _recover_stale_ref,
    STRICT_MODE: _recover_strict_mode,
    NOT_INTERACTABLE: _recover_not_interactable,
    DIALOG_BLOCKING: _recover_dialog_blocking,
    NAVIGATION_CHANGED: _recover_navigation_changed,
    OVERLAY_INTERFERENCE: _recover_overlay,
}


def has_strategy(kind: str) -> bool:
    return kind in _STRATEGIES


def attempt_recovery(kind: str, context: HealContext, recoveries: list[str]) -> str | None:
    """Run the strategy for *kind* and append its tag. Returns the tag (None if no strategy)."""
    strategy = _STRATEGIES.get(kind)
    if strategy is None:
        return None
    tag = strategy(context)
    recoveries.append(tag)
    _LOGGER.info("recovery kind=%s tag=%s", kind, tag)
    return tag


__all__ = [
    "CLOSE_CONTROL_SELECTOR",
    "COMPACT_RESNAP",
    "FULL_RESNAP",
    "OVERLAY_SELECTORS",
    "TAG_DIALOG_ACCEPTED",
    "TAG_OVERLAY_DISMISSED",
    "TAG_RESNAP",
    "TAG_RESNAP_NEW_PAGE",
    "TAG_RESNAP_NTH",
    "TAG_SCROLL_DISMISS",
    "attempt_recovery",
    "dismiss_overlay",
    "has_strategy",
]
