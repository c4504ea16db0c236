"""Per-page CDP telemetry (no page injection required).

Goal:
- Keep the console errors and uncaught exceptions a DiagnosticError reports.
- Keep dialog and top-frame navigation history for triage.

Buffers are bounded; ingestion is best-effort and never raises on odd events.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


def _now_ms() -> int:
    return int(time.time() * 1000)


def _str(x: Any, *, max_len: int = 500) -> str:
    try:
        s = str(x)
    except Exception:  # noqa: BLE001
        s = "<unstringifiable>"
    if len(s) <= max_len:
        return s
    return s[:max_len] + f"... <truncated len={len(s)}>"


def _remote_obj_to_str(obj: Any) -> str:
    """Short text for a CDP RemoteObject."""
    if not isinstance(obj, dict):
        return _str(obj)
    for k in ("value", "unserializableValue", "description"):
        if obj.get(k) is not None:
            return _str(obj.get(k))
    typ = obj.get("type")
    subtype = obj.get("subtype")
    return f"<{typ}{('/' + subtype) if subtype else ''}>"


@dataclass(slots=True)
class PageTelemetry:
    """Bounded console/exception/dialog/navigation buffers for one tab."""

    max_events: int = 500
    max_info: int = 20

    console: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    dialogs: list[dict[str, Any]] = field(default_factory=list)
    navigation: list[dict[str, Any]] = field(default_factory=list)

    dialog_open: bool = False
    _seq: int = field(default=0, repr=False)

    def _push(self, buf: list[dict[str, Any]], item: dict[str, Any]) -> None:
        self._seq += 1
        item["seq"] = self._seq
        buf.append(item)
        if len(buf) > self.max_events:
            del buf[: len(buf) - self.max_events]

    def _ingest_console(self, ts: int, params: dict[str, Any]) -> None:
        level = params.get("type")
        if level == "warning":
            level = "warn"
        level = level if isinstance(level, str) else "log"
        args = params.get("args")
        text = " ".join(_remote_obj_to_str(a) for a in args[:8]) if isinstance(args, list) else ""
        entry = {"ts": ts, "level": level, "text": text}
        if level in {"error", "warn"}:
            self._push(self.console, entry)
            return
        info_count = sum(1 for e in self.console if e.get("level") not in {"error", "warn"})
        if info_count < self.max_info:
            self._push(self.console, entry)

    def _ingest_exception(self, ts: int, params: dict[str, Any]) -> None:
        details = params.get("exceptionDetails")
        if not isinstance(details, dict):
            details = {}
        msg = details.get("text") or "Uncaught exception"
        exception = details.get("exception")
        if isinstance(exception, dict):
            msg = exception.get("description") or exception.get("value") or msg
        err: dict[str, Any] = {"ts": ts, "message": _str(msg, max_len=1200)}
        url = details.get("url")
        if isinstance(url, str) and url:
            err["filename"] = url
        if isinstance(details.get("lineNumber"), int):
            err["lineno"] = details["lineNumber"]
        self._push(self.errors, err)

    def ingest(self, event: dict[str, Any]) -> None:
        """Ingest one raw CDP event dict."""
        if not isinstance(event, dict):
            return
        method = event.get("method")
        if not isinstance(method, str) or not method:
            return
        params = event.get("params")
        if not isinstance(params, dict):
            params = {}
        ts = _now_ms()

        if method == "Runtime.consoleAPICalled":
            self._ingest_console(ts, params)
        elif method == "Runtime.exceptionThrown":
            self._ingest_exception(ts, params)
        elif method == "Page.javascriptDialogOpening":
            entry: dict[str, Any] = {"ts": ts, "event": "open", "type": params.get("type") or "alert"}
            if isinstance(params.get("message"), str):
                entry["message"] = _str(params["message"], max_len=800)
            self.dialog_open = True
            self._push(self.dialogs, entry)
        elif method == "Page.javascriptDialogClosed":
            entry = {"ts": ts, "event": "closed"}
            if isinstance(params.get("result"), bool):
                entry["accepted"] = params["result"]
            self.dialog_open = False
            self._push(self.dialogs, entry)
        elif method == "Page.frameNavigated":
            frame = params.get("frame")
            if isinstance(frame, dict) and not frame.get("parentId") and frame.get("url"):
                self._push(self.navigation, {"ts": ts, "url": str(frame["url"])})

    def recent_console_errors(self, limit: int = 20) -> list[str]:
        """Most recent console errors and uncaught exceptions, oldest first."""
        merged = [e for e in self.console if e.get("level") == "error"] + list(self.errors)
        merged.sort(key=lambda e: e.get("seq", 0))
        texts = [str(e.get("text") or e.get("message") or "") for e in merged]
        if limit <= 0:
            return []
        return texts[-limit:]

    def last_url(self) -> str | None:
        return self.navigation[-1]["url"] if self.navigation else None

    def clear(self) -> None:
        self.console.clear()
        self.errors.clear()
        self.dialogs.clear()
        self.navigation.clear()
        self.dialog_open = False

    def snapshot(self, *, limit: int = 50) -> dict[str, Any]:
        limit = max(0, min(int(limit), self.max_events))

        def tail(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
            return items[-limit:] if limit else []

        return {
            "console": tail(self.console),
            "errors": tail(self.errors),
            "dialogs": tail(self.dialogs),
            "navigation": tail(self.navigation),
            "dialogOpen": self.dialog_open,
        }


__all__ = ["PageTelemetry"]
