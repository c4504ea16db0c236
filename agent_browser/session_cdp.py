"""Raw Chrome DevTools Protocol connection over websocket-client.

Why this exists:
- The healing core needs a live page only through small capabilities
  (snapshot, scroll, key press, click). A single synchronous CDP socket per
  tab is enough to provide them.
- CDP interleaves events with command responses. Events received while
  waiting for a response are queued (bounded) and fanned out to an optional
  sink, so dialog/console telemetry is never lost to a pending command.
"""

from __future__ import annotations

import json
import logging
import socket
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any
from urllib.error import URLError
from urllib.request import urlopen

import websocket

_LOGGER = logging.getLogger("agent_browser.session_cdp")

MAX_EVENT_QUEUE = 2000


class CdpError(Exception):
    """Transport or protocol failure. The text is what the failure classifier sees."""


def http_get_json(url: str, timeout: float = 2.0) -> Any:
    """GET a DevTools HTTP endpoint (``/json/list``, ``/json/version``)."""
    try:
        with urlopen(url, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (URLError, OSError) as exc:
        raise CdpError(str(exc)) from exc


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (TimeoutError, websocket.WebSocketTimeoutException)) or "timed out" in str(exc).lower()


def _protocol_error_text(method: str, error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message") or json.dumps(error)
        data = error.get("data")
        if data:
            message = f"{message} ({data})"
    else:
        message = str(error)
    return f"{method}: {message}"


class CdpConnection:
    """One websocket to one DevTools target."""

    def __init__(self, ws_url: str, timeout: float = 5.0):
        self.ws = websocket.create_connection(ws_url, timeout=timeout)
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        self._event_queue: list[dict[str, Any]] = []
        # Responses read by a nested send (event sink -> send) for an outer caller.
        self._responses: dict[int, dict[str, Any]] = {}
        self._event_sink: Callable[[dict[str, Any]], None] | None = None

    def set_event_sink(self, sink: Callable[[dict[str, Any]], None] | None) -> None:
        self._event_sink = sink

    def _dispatch_event(self, event: dict[str, Any], *, queue: bool = True) -> None:
        sink = self._event_sink
        if sink is not None:
            with suppress(Exception):
                sink(event)
        if not queue:
            return
        self._event_queue.append(event)
        overflow = len(self._event_queue) - MAX_EVENT_QUEUE
        if overflow > 0:
            del self._event_queue[:overflow]

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        """Pop the oldest queued event of this name; returns its params."""
        for i, ev in enumerate(self._event_queue):
            if ev.get("method") == event_name:
                self._event_queue.pop(i)
                params = ev.get("params")
                return params if isinstance(params, dict) else {}
        return None

    def _recv_json(self, wait: float) -> dict[str, Any] | None:
        """One frame, or None when nothing arrived within *wait* seconds."""
        try:
            self.ws.settimeout(wait)
            raw = self.ws.recv()
        except Exception as exc:  # noqa: BLE001
            if _is_timeout(exc):
                return None
            raise CdpError(str(exc)) from exc
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _is_event(data: dict[str, Any]) -> bool:
        return isinstance(data.get("method"), str) and "id" not in data

    def drain_events(self, *, max_messages: int = 50) -> int:
        """Pull already-buffered events without blocking. Stops at the first non-event."""
        drained = 0
        for _ in range(max(0, int(max_messages))):
            try:
                data = self._recv_json(0.0)
            except CdpError:
                break
            if data is None or not self._is_event(data):
                break
            self._dispatch_event(data)
            drained += 1
        return drained

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one command and block until its response (or ``CDP response timed out``)."""
        msg_id = self._next_id
        self._next_id += 1
        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params
        try:
            self.ws.settimeout(min(2.0, max(0.5, float(self.timeout))))
            self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            raise CdpError(str(exc)) from exc
        return self._recv_until(method, msg_id)

    def _recv_until(self, method: str, expected_id: int) -> dict[str, Any]:
        deadline = time.time() + self.timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise CdpError(f"{method}: CDP response timed out")
            data = self._responses.pop(expected_id, None) or self._recv_json(min(0.5, remaining))
            if data is None:
                continue
            if self._is_event(data):
                self._dispatch_event(data)
                continue
            if data.get("id") != expected_id:
                if isinstance(data.get("id"), int):
                    self._responses[data["id"]] = data
                continue
            if "error" in data:
                raise CdpError(_protocol_error_text(method, data["error"]))
            result = data.get("result")
            return result if isinstance(result, dict) else {}

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        queued = self.pop_event(event_name)
        if queued is not None:
            return queued
        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                return None
            data = self._recv_json(min(0.5, remaining))
            if data is None or not self._is_event(data):
                continue
            if data.get("method") == event_name:
                self._dispatch_event(data, queue=False)
                params = data.get("params")
                return params if isinstance(params, dict) else {}
            self._dispatch_event(data)

    def close(self) -> None:
        """Hard-close the raw socket; websocket-client's close handshake can hang on a wedged tab."""
        sock = getattr(self.ws, "sock", None)
        if sock is None:
            return
        with suppress(Exception):
            sock.shutdown(socket.SHUT_RDWR)
        with suppress(Exception):
            sock.close()
        _LOGGER.debug("closed %s", self.ws_url)


__all__ = ["CdpConnection", "CdpError", "MAX_EVENT_QUEUE", "http_get_json"]
