"""
Base utilities for ref-bound page tools.

Provides:
- ElementResolutionError: what the page adapter raises when a ref's element
  is ambiguous, missing or covered
- ActionError: the agent-facing error after translation
- to_agent_error: driver failure -> classifier-friendly phrasing
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from ..session_cdp import CdpError

ElementProblem = Literal["ambiguous", "missing", "covered"]

# CDP protocol messages that mean the node is gone or has no layout.
_MISSING_FRAGMENTS = ("No node with given id", "Node is detached", "Could not find node", "No node found")
_COVERED_FRAGMENTS = ("Could not compute box model", "Node does not have a layout object")


@dataclass
class ElementResolutionError(Exception):
    """Raw resolution failure from the page adapter (before translation)."""

    problem: ElementProblem
    detail: str = ""
    count: int = 0

    def __str__(self) -> str:
        if self.problem == "ambiguous":
            return f"strict mode violation: resolved to {self.count} elements ({self.detail})"
        if self.problem == "missing":
            return f"no element for {self.detail}"
        return f"element {self.detail} intercepts pointer events"


class ActionError(RuntimeError):
    """A ref-bound action failed; the message follows the failure classifier's phrasing."""

    def __init__(self, message: str, ref: str | None = None) -> None:
        super().__init__(message)
        self.ref = ref


def _problem_of(exc: BaseException) -> ElementProblem | None:
    if isinstance(exc, ElementResolutionError):
        return exc.problem
    if isinstance(exc, CdpError):
        text = str(exc)
        if any(f in text for f in _MISSING_FRAGMENTS):
            return "missing"
        if any(f in text for f in _COVERED_FRAGMENTS):
            return "covered"
    return None


def to_agent_error(exc: BaseException, ref: str) -> BaseException:
    """Rephrase known element failures for *ref*; anything else is returned unchanged."""
    problem = _problem_of(exc)
    if problem == "ambiguous":
        count = exc.count if isinstance(exc, ElementResolutionError) and exc.count else "multiple"
        return ActionError(f'Selector "{ref}" matched {count} elements. Re-snapshot to get a unique ref.', ref)
    if problem == "missing":
        return ActionError(
            f'Element "{ref}" not found or not visible. Run a new snapshot to see current elements.', ref
        )
    if problem == "covered":
        return ActionError(
            f'Element "{ref}" is not interactable (hidden or covered). Try scrolling or re-snapshotting.', ref
        )
    return exc


__all__ = ["ActionError", "ElementProblem", "ElementResolutionError", "to_agent_error"]
