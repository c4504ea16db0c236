"""JavaScript dialog ring buffer with an accept/dismiss/queue policy.

A blocking ``alert``/``confirm``/``prompt`` freezes every Runtime call on the
tab. In ``accept`` and ``dismiss`` modes the buffer answers dialogs as they
open; in ``queue`` mode they stay pending until ``resolve_oldest`` (the
dialog-blocking recovery, or the agent) decides.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from .heal.capabilities import DialogAction, DialogMode

_LOGGER = logging.getLogger("agent_browser.dialogs")

DIALOG_BUFFER_CAPACITY = 10

DialogState = Literal["accepted", "dismissed", "pending"]

# (accept, prompt_text) -> None; sends Page.handleJavaScriptDialog.
Responder = Callable[[bool, "str | None"], None]


@dataclass(slots=True)
class DialogEntry:
    type: str
    message: str
    handled: DialogState = "pending"
    text: str | None = None
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type,
            "message": self.message,
            "handled": self.handled,
            "timestamp": self.timestamp,
        }
        if self.text is not None:
            out["text"] = self.text
        return out


class DialogBuffer:
    def __init__(
        self,
        capacity: int = DIALOG_BUFFER_CAPACITY,
        mode: DialogMode = "accept",
        responder: Responder | None = None,
    ) -> None:
        self.capacity = max(1, int(capacity))
        self.mode: DialogMode = mode
        self.responder = responder
        self._entries: list[DialogEntry] = []

    def entries(self) -> list[DialogEntry]:
        return list(self._entries)

    def pending(self) -> list[DialogEntry]:
        return [e for e in self._entries if e.handled == "pending"]

    def has_pending(self) -> bool:
        return any(e.handled == "pending" for e in self._entries)

    def last(self) -> DialogEntry | None:
        return self._entries[-1] if self._entries else None

    def _respond(self, accept: bool, text: str | None) -> None:
        if self.responder is None:
            return
        try:
            self.responder(accept, text)
        except Exception as exc:  # noqa: BLE001
            # The dialog may already be gone (closed by the page or another client).
            _LOGGER.debug("dialog response failed: %s", exc)

    def add(self, dialog_type: str, message: str) -> DialogEntry:
        """Record a newly opened dialog and apply the current policy to it."""
        entry = DialogEntry(
            type=str(dialog_type or "alert"),
            message=str(message or ""),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self._entries.append(entry)
        while len(self._entries) > self.capacity:
            self._entries.pop(0)

        if self.mode == "accept":
            entry.handled = "accepted"
            self._respond(True, None)
        elif self.mode == "dismiss":
            entry.handled = "dismissed"
            self._respond(False, None)
        _LOGGER.info("dialog %s opened (mode=%s)", entry.type, self.mode)
        return entry

    def resolve_oldest(self, action: DialogAction, text: str | None = None) -> bool:
        """Answer the oldest pending dialog. False when nothing is pending."""
        for entry in self._entries:
            if entry.handled != "pending":
                continue
            accept = action == "accept"
            entry.handled = "accepted" if accept else "dismissed"
            entry.text = text
            self._respond(accept, text if accept else None)
            return True
        return False

    def ingest(self, event: dict[str, Any]) -> None:
        """Feed a raw CDP event; only dialog events matter here."""
        if not isinstance(event, dict):
            return
        method = event.get("method")
        params = event.get("params") if isinstance(event.get("params"), dict) else {}
        if method == "Page.javascriptDialogOpening":
            self.add(str(params.get("type") or "alert"), str(params.get("message") or ""))
        elif method == "Page.javascriptDialogClosed":
            # Closed outside our control (page script, user): settle the oldest pending entry.
            for entry in self._entries:
                if entry.handled == "pending":
                    entry.handled = "accepted" if params.get("result") else "dismissed"
                    break

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "pending": len(self.pending()),
            "dialogs": [e.to_dict() for e in self._entries],
        }


__all__ = ["DIALOG_BUFFER_CAPACITY", "DialogBuffer", "DialogEntry", "DialogState"]
