"""CdpPage: the page-control capability over one BrowserSession.

Two kinds of handles flow through here:
- ``CssHandle``: lazy CSS selector chain (overlay scan during recovery).
  Like a first-match locator, it is re-queried on every use.
- ``RoleQuery`` / ``NativeRef`` from the ref locator: resolved to a DOM
  backend node id through the AX tree (role mode) or the native ref map of
  the last aria-mode snapshot.

Resolution problems surface as ElementResolutionError; tools/actions.py
rephrases them for the failure classifier.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from ..browser_session import BrowserSession
from ..heal.locator import LocatorHandle, NativeRef, RoleQuery
from ..session_cdp import CdpError
from .ax import query_ax_nodes
from .base import ElementResolutionError

_LOGGER = logging.getLogger("agent_browser.tools.page")


@dataclass(frozen=True, slots=True)
class CssHandle:
    selector: str
    within: CssHandle | None = None

    def chain(self) -> list[str]:
        parent = self.within.chain() if self.within is not None else []
        return [*parent, self.selector]


_FIND_JS = "(chain) => { let el = document; for (const s of chain) { if (!el) return null; el = el.querySelector(s); } return el; }"

_VISIBLE_JS = """
(() => {
  const el = (%(find)s)(%(chain)s);
  if (!el || !el.getBoundingClientRect) return false;
  const r = el.getBoundingClientRect();
  const st = window.getComputedStyle(el);
  return r.width > 0 && r.height > 0 && st.visibility !== 'hidden' && st.display !== 'none';
})()
"""

_CENTER_JS = """
(() => {
  const el = (%(find)s)(%(chain)s);
  if (!el || !el.getBoundingClientRect) return null;
  el.scrollIntoView({block: 'center', inline: 'center'});
  const r = el.getBoundingClientRect();
  if (r.width <= 0 || r.height <= 0) return null;
  return {x: r.left + r.width / 2, y: r.top + r.height / 2};
})()
"""

_HIT_TEST_JS = (
    "function(x, y) { const t = document.elementFromPoint(x, y);"
    " return !!t && (t === this || this.contains(t)); }"
)

_CLEAR_JS = (
    "function() { this.focus(); if ('value' in this) { this.value = '';"
    " this.dispatchEvent(new Event('input', {bubbles: true})); }"
    " else if (this.isContentEditable) { this.textContent = ''; } }"
)


def _css_script(template: str, handle: CssHandle) -> str:
    return template % {"find": _FIND_JS, "chain": json.dumps(handle.chain())}


def _quad_center(quad: list[float]) -> tuple[float, float]:
    xs = quad[0::2]
    ys = quad[1::2]
    return sum(xs) / len(xs), sum(ys) / len(ys)


class CdpPage:
    """PageControl over CDP, plus ref-handle actions (click/fill)."""

    def __init__(self, session: BrowserSession) -> None:
        self.session = session
        # token -> backendDOMNodeId of the last aria-mode snapshot
        self.native_refs: dict[str, int] = {}
        self._frame_roots: dict[str, tuple[int, str | None]] = {}

    # PageControl

    def current_url(self) -> str:
        return self.session.get_url()

    def scroll(self, dx: float, dy: float) -> None:
        self.session.scroll(delta_x=dx, delta_y=dy)

    def press_key(self, name: str) -> None:
        self.session.press_key(name)

    def locate_by_selector(self, css: str, within: Any | None = None) -> CssHandle:
        return CssHandle(selector=css, within=within if isinstance(within, CssHandle) else None)

    def is_visible(self, handle: Any) -> bool:
        if isinstance(handle, CssHandle):
            return bool(self.session.eval_js(_css_script(_VISIBLE_JS, handle)))
        backend = self.resolve_node(handle)
        try:
            self.session.send("DOM.getBoxModel", {"backendNodeId": backend})
        except CdpError:
            return False
        return True

    def click(self, handle: Any) -> None:
        if isinstance(handle, CssHandle):
            point = self.session.eval_js(_css_script(_CENTER_JS, handle))
            if not isinstance(point, dict):
                raise ElementResolutionError("missing", detail=handle.selector)
            self.session.click(float(point["x"]), float(point["y"]))
            return
        self.click_node(self.resolve_node(handle), hit_test=not self._frame_scoped(handle))

    # Ref handles

    @staticmethod
    def _frame_scoped(handle: LocatorHandle) -> bool:
        return bool(getattr(handle, "frame_selector", None))

    def frame_root(self, frame_selector: str) -> tuple[int, str | None]:
        """(contentDocument backendNodeId, frameId) of the iframe matching *frame_selector*."""
        cached = self._frame_roots.get(frame_selector)
        if cached is not None:
            return cached
        doc = self.session.send("DOM.getDocument", {"depth": 0})
        root_id = (doc.get("root") or {}).get("nodeId")
        found = self.session.send("DOM.querySelector", {"nodeId": root_id, "selector": frame_selector})
        node_id = found.get("nodeId")
        if not node_id:
            raise CdpError(f'Frame "{frame_selector}" is not on the page')
        desc = self.session.send("DOM.describeNode", {"nodeId": node_id, "depth": 1, "pierce": True})
        node = desc.get("node") or {}
        content = node.get("contentDocument") or {}
        backend = content.get("backendNodeId")
        if not isinstance(backend, int):
            raise CdpError(f'Frame "{frame_selector}" has no accessible document')
        root = (backend, node.get("frameId"))
        self._frame_roots[frame_selector] = root
        return root

    def forget_frames(self) -> None:
        self._frame_roots.clear()

    def resolve_node(self, handle: LocatorHandle) -> int:
        if isinstance(handle, NativeRef):
            backend = self.native_refs.get(handle.ref)
            if backend is None:
                raise ElementResolutionError("missing", detail=handle.ref)
            return backend
        if not isinstance(handle, RoleQuery):
            raise TypeError(f"unsupported locator handle: {type(handle).__name__}")

        root = self.frame_root(handle.frame_selector)[0] if handle.frame_selector else None
        nodes = query_ax_nodes(self.session, role=handle.role, name=handle.name, root_backend_id=root)
        label = f'{handle.role} "{handle.name}"' if handle.name else handle.role
        if handle.nth is not None:
            if handle.nth >= len(nodes):
                raise ElementResolutionError("missing", detail=f"{label} nth={handle.nth}")
            return int(nodes[handle.nth]["backendDOMNodeId"])
        if not nodes:
            raise ElementResolutionError("missing", detail=label)
        if len(nodes) > 1:
            raise ElementResolutionError("ambiguous", detail=label, count=len(nodes))
        return int(nodes[0]["backendDOMNodeId"])

    def click_node(self, backend: int, *, hit_test: bool = True) -> None:
        self.session.send("DOM.scrollIntoViewIfNeeded", {"backendNodeId": backend})
        box = self.session.send("DOM.getBoxModel", {"backendNodeId": backend})
        quad = (box.get("model") or {}).get("content")
        if not isinstance(quad, list) or len(quad) < 8:
            raise ElementResolutionError("covered", detail=f"node {backend} has no box")
        x, y = _quad_center(quad)
        if hit_test and not self.session.call_on_node(backend, _HIT_TEST_JS, x, y):
            raise ElementResolutionError("covered", detail=f"node {backend}")
        self.session.click(x, y)

    def fill_node(self, backend: int, text: str) -> None:
        self.session.send("DOM.scrollIntoViewIfNeeded", {"backendNodeId": backend})
        self.session.send("DOM.focus", {"backendNodeId": backend})
        self.session.call_on_node(backend, _CLEAR_JS)
        self.session.insert_text(text)
        _LOGGER.debug("filled node %s (%d chars)", backend, len(text))


__all__ = ["CdpPage", "CssHandle"]
