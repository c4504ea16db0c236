"""BrowserSession: one tab, the handful of CDP operations healing needs."""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Any

from .session_cdp import CdpConnection, CdpError

_LOGGER = logging.getLogger("agent_browser.browser_session")

KEY_CODES: dict[str, int] = {
    "Enter": 13,
    "Tab": 9,
    "Escape": 27,
    "Backspace": 8,
    "Delete": 46,
    "ArrowUp": 38,
    "ArrowDown": 40,
    "ArrowLeft": 37,
    "ArrowRight": 39,
    "Home": 36,
    "End": 35,
    "PageUp": 33,
    "PageDown": 34,
}

_DOMAINS = ("Page", "Runtime", "DOM", "Accessibility")


class BrowserSession:
    """
    High-level wrapper over a CdpConnection for a specific tab.

    Use as context manager for automatic cleanup.
    """

    def __init__(self, connection: CdpConnection, tab_id: str, tab_url: str = ""):
        self.conn = connection
        self.tab_id = tab_id
        self.tab_url = tab_url
        self._enabled: set[str] = set()

    def __enter__(self) -> BrowserSession:
        self.enable_domains("Page", "Runtime")
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def enable_domains(self, *domains: str) -> None:
        """Idempotent ``<Domain>.enable`` for the given domains."""
        for domain in domains or _DOMAINS:
            if domain in self._enabled:
                continue
            self.conn.send(f"{domain}.enable", {})
            self._enabled.add(domain)

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.conn.send(method, params)

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        try:
            return self.conn.wait_for_event(event_name, timeout=timeout)
        except CdpError as exc:
            _LOGGER.debug("wait_for_event %s failed: %s", event_name, exc)
            return None

    def drain_events(self) -> int:
        return self.conn.drain_events()

    # JavaScript

    def eval_js(self, expression: str) -> Any:
        """Evaluate in the page; returns the JSON value (undefined/null -> None)."""
        self.enable_domains("Runtime")
        result = self.conn.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
        )
        details = result.get("exceptionDetails")
        if isinstance(details, dict):
            exc = details.get("exception") if isinstance(details.get("exception"), dict) else {}
            raise CdpError(str(exc.get("description") or details.get("text") or "JavaScript exception"))
        value = result.get("result")
        if not isinstance(value, dict):
            return None
        if value.get("type") == "undefined" or value.get("subtype") == "null":
            return None
        return value.get("value")

    def call_on_node(self, backend_node_id: int, function_declaration: str, *args: Any) -> Any:
        """Run ``function(this, ...args)`` against a DOM node by backend id."""
        self.enable_domains("DOM", "Runtime")
        resolved = self.conn.send("DOM.resolveNode", {"backendNodeId": backend_node_id})
        object_id = (resolved.get("object") or {}).get("objectId")
        if not object_id:
            raise CdpError(f"Node {backend_node_id} could not be resolved")
        try:
            result = self.conn.send(
                "Runtime.callFunctionOn",
                {
                    "objectId": object_id,
                    "functionDeclaration": function_declaration,
                    "arguments": [{"value": a} for a in args],
                    "returnByValue": True,
                    "awaitPromise": True,
                },
            )
        finally:
            with suppress(Exception):
                self.conn.send("Runtime.releaseObject", {"objectId": object_id})
        value = result.get("result")
        return value.get("value") if isinstance(value, dict) else None

    def get_url(self) -> str:
        return self.eval_js("window.location.href") or ""

    # Input

    def click(self, x: float, y: float, button: str = "left", click_count: int = 1) -> None:
        for event_type in ("mousePressed", "mouseReleased"):
            self.conn.send(
                "Input.dispatchMouseEvent",
                {"type": event_type, "x": x, "y": y, "button": button, "clickCount": click_count},
            )

    def scroll(self, delta_x: float = 0, delta_y: float = 0, x: float = 0, y: float = 0) -> None:
        self.conn.send(
            "Input.dispatchMouseEvent",
            {"type": "mouseWheel", "x": x, "y": y, "deltaX": delta_x, "deltaY": delta_y},
        )

    def press_key(self, key: str, modifiers: int = 0) -> None:
        key_code = KEY_CODES.get(key, ord(key[0].upper()) if len(key) == 1 else 0)
        code = f"Key{key.upper()}" if len(key) == 1 else key
        for event_type in ("keyDown", "keyUp"):
            self.conn.send(
                "Input.dispatchKeyEvent",
                {
                    "type": event_type,
                    "key": key,
                    "code": code,
                    "windowsVirtualKeyCode": key_code,
                    "modifiers": modifiers,
                },
            )

    def insert_text(self, text: str) -> None:
        if text:
            self.conn.send("Input.insertText", {"text": str(text)})

    # Dialogs

    def handle_dialog(self, accept: bool = True, prompt_text: str | None = None) -> None:
        params: dict[str, Any] = {"accept": bool(accept)}
        if prompt_text is not None:
            params["promptText"] = prompt_text
        self.conn.send("Page.handleJavaScriptDialog", params)


__all__ = ["BrowserSession", "KEY_CODES"]
