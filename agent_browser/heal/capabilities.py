"""Collaborator capabilities the healing core is handed (it owns no transport)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol

from .refs import SnapshotOptions, SnapshotResult

DialogAction = Literal["accept", "dismiss"]
DialogMode = Literal["accept", "dismiss", "queue"]


class PageControl(Protocol):
    def current_url(self) -> str: ...

    def scroll(self, dx: float, dy: float) -> None: ...

    def press_key(self, name: str) -> None: ...

    def locate_by_selector(self, css: str, within: Any | None = None) -> Any: ...

    def is_visible(self, handle: Any) -> bool: ...

    def click(self, handle: Any) -> None: ...


class SnapshotSource(Protocol):
    def take_snapshot(self, options: SnapshotOptions) -> SnapshotResult: ...


class DialogControl(Protocol):
    mode: DialogMode

    def has_pending(self) -> bool: ...

    def resolve_oldest(self, action: DialogAction, text: str | None = None) -> bool: ...


class Observability(Protocol):
    def recent_console_errors(self, limit: int = 20) -> list[str]: ...

    def record_attempt(self, kind: str) -> None: ...

    def record_outcome(self, succeeded: bool) -> None: ...


@dataclass(slots=True)
class HealContext:
    """Everything recovery may touch for one page. ``page`` being set is what enables recovery."""

    page: PageControl
    snapshots: SnapshotSource
    dialogs: DialogControl | None = None
    observer: Observability | None = None


__all__ = [
    "DialogAction",
    "DialogControl",
    "DialogMode",
    "HealContext",
    "Observability",
    "PageControl",
    "SnapshotSource",
]
