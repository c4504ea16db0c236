from __future__ import annotations

import pytest

from agent_browser.browser_session import BrowserSession
from agent_browser.config import HealConfig
from agent_browser.heal.classify import classify
from agent_browser.heal.locator import NativeRef, RoleQuery
from agent_browser.heal.refs import SnapshotOptions
from agent_browser.session_cdp import CdpError
from agent_browser.session_manager import PageSession, RefStore
from agent_browser.stats import RetryStats
from agent_browser.tools.actions import click_ref
from agent_browser.tools.base import ActionError, ElementResolutionError, to_agent_error
from agent_browser.tools.page import CdpPage, CssHandle

BOX = {"model": {"content": [10, 10, 30, 10, 30, 20, 10, 20]}}


class DummyConn:
    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.calls: list[tuple[str, dict | None]] = []

    def send(self, method: str, params: dict | None = None) -> dict:
        self.calls.append((method, params))
        resp = self.responses.get(method, {})
        if isinstance(resp, Exception):
            raise resp
        return resp(params) if callable(resp) else resp

    def drain_events(self, max_messages: int = 50) -> int:
        return 0

    def close(self) -> None:
        pass

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]


def _page(responses: dict) -> tuple[CdpPage, DummyConn]:
    conn = DummyConn({"DOM.getDocument": {"root": {"nodeId": 1}}, **responses})
    return CdpPage(BrowserSession(conn, "T1")), conn


def _matches(*backend_ids: int) -> dict:
    return {"nodes": [{"backendDOMNodeId": b} for b in backend_ids]}


def test_resolve_unique_ambiguous_missing() -> None:
    page, _ = _page({"Accessibility.queryAXTree": _matches(4)})
    assert page.resolve_node(RoleQuery(ref="e1", role="button", name="Pay")) == 4

    page, _ = _page({"Accessibility.queryAXTree": _matches(4, 5, 6)})
    with pytest.raises(ElementResolutionError) as excinfo:
        page.resolve_node(RoleQuery(ref="e1", role="button", name="Pay"))
    assert excinfo.value.problem == "ambiguous"
    assert excinfo.value.count == 3

    page, _ = _page({"Accessibility.queryAXTree": _matches()})
    with pytest.raises(ElementResolutionError) as excinfo:
        page.resolve_node(RoleQuery(ref="e1", role="button", name="Pay"))
    assert excinfo.value.problem == "missing"


def test_resolve_nth() -> None:
    page, _ = _page({"Accessibility.queryAXTree": _matches(4, 5, 6)})
    assert page.resolve_node(RoleQuery(ref="e3", role="button", name="OK", nth=1)) == 5
    with pytest.raises(ElementResolutionError):
        page.resolve_node(RoleQuery(ref="e3", role="button", name="OK", nth=3))


def test_native_refs() -> None:
    page, _ = _page({})
    page.native_refs = {"e7": 70}
    assert page.resolve_node(NativeRef(ref="e7")) == 70
    with pytest.raises(ElementResolutionError):
        page.resolve_node(NativeRef(ref="e8"))


def test_frame_scoped_query_uses_frame_document() -> None:
    page, conn = _page(
        {
            "DOM.querySelector": {"nodeId": 5},
            "DOM.describeNode": {"node": {"frameId": "F2", "contentDocument": {"backendNodeId": 77}}},
            "Accessibility.queryAXTree": _matches(9),
        }
    )
    handle = RoleQuery(ref="e1", role="button", name="Pay", frame_selector="iframe#pay")
    assert page.resolve_node(handle) == 9
    assert page.resolve_node(handle) == 9
    assert conn.methods().count("DOM.describeNode") == 1
    assert conn.calls[-1][1] == {"role": "button", "accessibleName": "Pay", "backendNodeId": 77}
    assert page.frame_root("iframe#pay") == (77, "F2")

    page.forget_frames()
    page.resolve_node(handle)
    assert conn.methods().count("DOM.describeNode") == 2


def test_missing_frame() -> None:
    page, _ = _page({"DOM.querySelector": {"nodeId": 0}})
    with pytest.raises(CdpError, match="not on the page"):
        page.frame_root("iframe#gone")


def test_click_ref_handle_hit_tests_then_clicks() -> None:
    page, conn = _page(
        {
            "Accessibility.queryAXTree": _matches(4),
            "DOM.getBoxModel": BOX,
            "DOM.resolveNode": {"object": {"objectId": "o1"}},
            "Runtime.callFunctionOn": {"result": {"type": "boolean", "value": True}},
        }
    )
    page.click(RoleQuery(ref="e1", role="button", name="Pay"))
    mouse = [p for m, p in conn.calls if m == "Input.dispatchMouseEvent"]
    assert [(e["type"], e["x"], e["y"]) for e in mouse] == [("mousePressed", 20, 15), ("mouseReleased", 20, 15)]


def test_click_covered_node() -> None:
    page, conn = _page(
        {
            "DOM.getBoxModel": BOX,
            "DOM.resolveNode": {"object": {"objectId": "o1"}},
            "Runtime.callFunctionOn": {"result": {"type": "boolean", "value": False}},
        }
    )
    with pytest.raises(ElementResolutionError) as excinfo:
        page.click_node(4)
    assert excinfo.value.problem == "covered"
    assert "Input.dispatchMouseEvent" not in conn.methods()


def test_css_handles_visibility_and_click() -> None:
    page, conn = _page({"Runtime.evaluate": {"result": {"type": "boolean", "value": True}}})
    overlay = page.locate_by_selector(".modal")
    close = page.locate_by_selector(".close", within=overlay)
    assert close == CssHandle(".close", CssHandle(".modal"))
    assert close.chain() == [".modal", ".close"]
    assert page.is_visible(close) is True
    assert '[".modal", ".close"]' in conn.calls[-1][1]["expression"]

    conn.responses["Runtime.evaluate"] = {"result": {"type": "object", "value": {"x": 5, "y": 6}}}
    page.click(overlay)
    assert conn.calls[-1] == (
        "Input.dispatchMouseEvent",
        {"type": "mouseReleased", "x": 5.0, "y": 6.0, "button": "left", "clickCount": 1},
    )

    conn.responses["Runtime.evaluate"] = {"result": {"type": "object", "subtype": "null", "value": None}}
    with pytest.raises(ElementResolutionError):
        page.click(overlay)


def test_fill_node_clears_then_inserts() -> None:
    page, conn = _page(
        {
            "DOM.resolveNode": {"object": {"objectId": "o1"}},
            "Runtime.callFunctionOn": {"result": {"type": "undefined"}},
        }
    )
    page.fill_node(12, "ada@example.test")
    methods = conn.methods()
    assert methods.index("DOM.focus") < methods.index("Runtime.callFunctionOn") < methods.index("Input.insertText")
    assert conn.calls[-1] == ("Input.insertText", {"text": "ada@example.test"})


def test_translation_matches_classifier_phrases() -> None:
    ambiguous = to_agent_error(ElementResolutionError("ambiguous", "button", count=3), "e2")
    assert isinstance(ambiguous, ActionError)
    assert str(ambiguous) == 'Selector "e2" matched 3 elements. Re-snapshot to get a unique ref.'
    assert classify(str(ambiguous)) == "strict_mode"

    missing = to_agent_error(CdpError("DOM.getBoxModel: No node with given id found"), "e4")
    assert classify(str(missing)) == "stale_ref"
    assert missing.ref == "e4"

    covered = to_agent_error(ElementResolutionError("covered", "node 4"), "e5")
    assert classify(str(covered)) == "not_interactable"

    layout = to_agent_error(CdpError("DOM.getBoxModel: Could not compute box model."), "e6")
    assert "hidden or covered" in str(layout)

    other = RuntimeError("Network request failed")
    assert to_agent_error(other, "e1") is other


def _ax(node_id: str, role: str, name: str = "", parent: str | None = None, children=(), backend=None) -> dict:
    node = {"nodeId": node_id, "role": {"value": role}, "name": {"value": name}, "childIds": list(children)}
    if parent:
        node["parentId"] = parent
    if backend is not None:
        node["backendDOMNodeId"] = backend
    return node


def _page_session(responses: dict) -> tuple[PageSession, DummyConn]:
    conn = DummyConn(
        {
            "DOM.getDocument": {"root": {"nodeId": 1}},
            "DOM.getBoxModel": BOX,
            "DOM.resolveNode": {"object": {"objectId": "o1"}},
            "Runtime.callFunctionOn": {"result": {"type": "boolean", "value": True}},
            **responses,
        }
    )
    session = PageSession(
        "T1",
        BrowserSession(conn, "T1"),
        config=HealConfig(auto_retry=False),
        refs=RefStore(),
        stats=RetryStats(),
    )
    return session, conn


def test_frame_scoped_snapshot_and_click() -> None:
    page, conn = _page_session(
        {
            "DOM.querySelector": {"nodeId": 5},
            "DOM.describeNode": {"node": {"frameId": "F2", "contentDocument": {"backendNodeId": 77}}},
            "Accessibility.getFullAXTree": {
                "nodes": [
                    _ax("1", "RootWebArea", "Payment", children=["2"], backend=1),
                    _ax("2", "button", "Pay", parent="1", backend=9),
                ]
            },
            "Accessibility.queryAXTree": _matches(9),
        }
    )
    page.set_frame("iframe#pay")
    snap = page.take_snapshot(SnapshotOptions(interactive_only=False, max_depth=None, compact=False))
    assert snap.text == '- button "Pay" [ref=e1]'
    assert ("Accessibility.getFullAXTree", {"frameId": "F2"}) in conn.calls

    result = click_ref(page, "e1")

    assert result == {"ok": True, "action": "click", "ref": "e1", "attempts": 1}
    queries = [p for m, p in conn.calls if m == "Accessibility.queryAXTree"]
    assert queries == [{"role": "button", "accessibleName": "Pay", "backendNodeId": 77}]
    assert conn.methods().count("DOM.describeNode") == 1
    # Coordinates inside an iframe are not page coordinates; no elementFromPoint check.
    assert "Runtime.callFunctionOn" not in conn.methods()
    mouse = [p["type"] for m, p in conn.calls if m == "Input.dispatchMouseEvent"]
    assert mouse == ["mousePressed", "mouseReleased"]


def test_click_ref_with_double_quoted_name() -> None:
    page, conn = _page_session(
        {
            "Accessibility.getFullAXTree": {
                "nodes": [
                    _ax("1", "RootWebArea", "Chat", children=["2", "3"], backend=1),
                    _ax("2", "button", 'Say "hi"', parent="1", backend=4),
                    _ax("3", "button", "Say hi", parent="1", backend=5),
                ]
            },
            "Accessibility.queryAXTree": {
                "nodes": [
                    {"backendDOMNodeId": 4, "name": {"value": 'Say "hi"'}},
                    {"backendDOMNodeId": 5, "name": {"value": "Say hi"}},
                ]
            },
        }
    )
    page.take_snapshot(SnapshotOptions(interactive_only=False, max_depth=None, compact=False))
    assert page.table.get("e1").name == "Say 'hi'"

    click_ref(page, "e1")

    assert ("DOM.scrollIntoViewIfNeeded", {"backendNodeId": 4}) in conn.calls
    assert "Input.dispatchMouseEvent" in conn.methods()
