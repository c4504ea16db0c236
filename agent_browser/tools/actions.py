"""Ref-bound page actions, run through the self-healing retry loop."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from ..heal.locator import LocatorHandle, RefNotFoundError, resolve_ref
from ..heal.refs import ReferenceTable, RoleRef, is_ref_token, require_ref
from ..heal.rematch import find_matching_ref
from ..heal.retry import RetryOptions, RetryOutcome, with_retry
from .base import to_agent_error
from .page import CdpPage

if TYPE_CHECKING:
    from ..session_manager import PageSession

_LOGGER = logging.getLogger("agent_browser.tools.actions")

T = TypeVar("T")

PageAction = Callable[[CdpPage, LocatorHandle], T]


class _RefTracker:
    """Follows one element across table replacements by its original (role, name)."""

    def __init__(self, token: str, table: ReferenceTable | None) -> None:
        self.token = token
        self.table = table
        self.original: RoleRef | None = None
        self.lost = False
        if table is not None and table.mode == "role" and is_ref_token(token):
            self.original = table.get(token)

    def current(self, table: ReferenceTable | None) -> str:
        if table is not self.table:
            self.table = table
            self.lost = False
            if self.original is not None and table is not None:
                match = find_matching_ref(table, self.original.role, self.original.name)
                if match is None:
                    # Tokens are renumbered per snapshot; the old one now names something else.
                    _LOGGER.info("ref %s has no match after resnap", self.token)
                    self.lost = True
                elif match != self.token:
                    _LOGGER.info("ref %s rematched to %s", self.token, match)
                    self.token = match
        if self.lost:
            raise RefNotFoundError(self.token, table.tokens() if table is not None else None)
        return self.token


def run_ref_action(
    session: PageSession,
    ref: str,
    fn: PageAction[T],
    options: RetryOptions | None = None,
) -> RetryOutcome[T]:
    """Resolve *ref* against the current table and run *fn* on it.

    Retries with recovery when ``auto_retry`` is configured or *options* are
    given; otherwise one attempt, with driver errors still rephrased.
    """
    token = require_ref(ref)
    tracker = _RefTracker(token, session.table)

    def attempt() -> T:
        current_token = tracker.current(session.table)
        handle = resolve_ref(current_token, session.table, session.frame_selector)
        try:
            return fn(session.page, handle)
        except Exception as exc:
            translated = to_agent_error(exc, current_token)
            if translated is exc:
                raise
            raise translated from exc

    if options is None and not session.config.auto_retry:
        return RetryOutcome(result=attempt(), attempts=1, recoveries=[])
    opts = options or session.config.retry_options(ref=token)
    return with_retry(attempt, opts, session.heal_context())


def _outcome_dict(action: str, ref: str, outcome: RetryOutcome[Any]) -> dict[str, Any]:
    out: dict[str, Any] = {"ok": True, "action": action, "ref": ref, "attempts": outcome.attempts}
    if outcome.recoveries:
        out["recoveries"] = list(outcome.recoveries)
    return out


def click_ref(session: PageSession, ref: str, options: RetryOptions | None = None) -> dict[str, Any]:
    outcome = run_ref_action(session, ref, lambda page, handle: page.click(handle), options)
    return _outcome_dict("click", ref, outcome)


def fill_ref(session: PageSession, ref: str, text: str, options: RetryOptions | None = None) -> dict[str, Any]:
    outcome = run_ref_action(
        session,
        ref,
        lambda page, handle: page.fill_node(page.resolve_node(handle), text),
        options,
    )
    return _outcome_dict("fill", ref, outcome)


__all__ = ["click_ref", "fill_ref", "run_ref_action"]
