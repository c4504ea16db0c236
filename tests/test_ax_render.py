from __future__ import annotations

import pytest

from agent_browser.session_cdp import CdpError
from agent_browser.tools.ax import fetch_ax_nodes, node_name, query_ax_nodes, render_ax_dump


def _node(node_id: str, role: str, name: str = "", *, parent: str | None = None, children=(), backend=None, **extra):
    node = {
        "nodeId": node_id,
        "role": {"type": "role", "value": role},
        "name": {"type": "computedString", "value": name},
        "childIds": list(children),
    }
    if parent is not None:
        node["parentId"] = parent
    if backend is not None:
        node["backendDOMNodeId"] = backend
    node.update(extra)
    return node


NODES = [
    _node("1", "RootWebArea", "Shop", children=["2"], backend=1),
    _node("2", "main", parent="1", children=["3", "4", "6", "9"], backend=2),
    _node(
        "3",
        "heading",
        "Cart",
        parent="2",
        children=["7"],
        backend=3,
        properties=[{"name": "level", "value": {"type": "integer", "value": 2}}],
    ),
    _node("7", "StaticText", "Cart", parent="3", children=["10"], backend=7),
    _node("10", "InlineTextBox", "Cart", parent="7"),
    _node(
        "4",
        "checkbox",
        'Gift "wrap"',
        parent="2",
        backend=4,
        properties=[{"name": "checked", "value": {"type": "tristate", "value": "true"}}],
    ),
    _node("6", "generic", parent="2", children=["8"], ignored=True),
    _node("8", "link", "Help", parent="6", backend=8),
    _node("9", "StaticText", "Free   shipping", parent="2", backend=9),
]


def test_render_dump_structure() -> None:
    text, refs = render_ax_dump(NODES)
    assert text == "\n".join(
        [
            "- main",
            '  - heading "Cart" [level=2]',
            "  - checkbox \"Gift 'wrap'\" [checked]",
            '  - link "Help"',
            "  - text: Free shipping",
        ]
    )
    assert refs == {}


def test_render_dump_with_native_refs() -> None:
    text, refs = render_ax_dump(NODES, native_refs=True)
    assert text.split("\n")[0] == "- main [ref=e1]"
    assert '  - heading "Cart" [level=2] [ref=e2]' in text
    assert refs == {"e1": 2, "e2": 3, "e3": 4, "e4": 8}


def test_node_name_collapses_whitespace() -> None:
    assert node_name(NODES[-1]) == "Free shipping"
    assert node_name({"name": None}) == ""


class DummySession:
    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.calls: list[tuple[str, dict]] = []

    def send(self, method: str, params: dict | None = None) -> dict:
        self.calls.append((method, params or {}))
        return self.responses.get(method, {})


def test_fetch_ax_nodes_requires_node_list() -> None:
    session = DummySession({"Accessibility.getFullAXTree": {"nodes": NODES}})
    assert len(fetch_ax_nodes(session, frame_id="F1")) == len(NODES)
    assert session.calls == [("Accessibility.getFullAXTree", {"frameId": "F1"})]

    with pytest.raises(CdpError, match="unexpected payload"):
        fetch_ax_nodes(DummySession({"Accessibility.getFullAXTree": {}}))


def test_query_filters_ignored_and_backendless() -> None:
    session = DummySession(
        {
            "DOM.getDocument": {"root": {"nodeId": 1}},
            "Accessibility.queryAXTree": {
                "nodes": [
                    {"backendDOMNodeId": 4},
                    {"backendDOMNodeId": 5, "ignored": True},
                    {"nodeId": "x"},
                ]
            },
        }
    )
    nodes = query_ax_nodes(session, role="button", name="Pay")
    assert nodes == [{"backendDOMNodeId": 4}]
    assert session.calls[-1] == ("Accessibility.queryAXTree", {"role": "button", "accessibleName": "Pay", "nodeId": 1})

    query_ax_nodes(session, role="link", root_backend_id=77)
    assert session.calls[-1] == ("Accessibility.queryAXTree", {"role": "link", "backendNodeId": 77})


def test_query_matches_double_quoted_name_by_dump_form() -> None:
    session = DummySession(
        {
            "DOM.getDocument": {"root": {"nodeId": 1}},
            "Accessibility.queryAXTree": {
                "nodes": [
                    _node("a", "button", 'Say "hi"', backend=4),
                    _node("b", "button", "Say hi", backend=5),
                ]
            },
        }
    )
    text, _ = render_ax_dump([_node("a", "button", 'Say "hi"', backend=4)])
    assert text == "- button \"Say 'hi'\""

    nodes = query_ax_nodes(session, role="button", name="Say 'hi'")
    assert [n["backendDOMNodeId"] for n in nodes] == [4]
    assert session.calls[-1] == ("Accessibility.queryAXTree", {"role": "button", "nodeId": 1})


def test_query_without_name_keeps_only_unnamed_nodes() -> None:
    session = DummySession(
        {
            "Accessibility.queryAXTree": {
                "nodes": [
                    _node("a", "button", "Save", backend=4),
                    _node("b", "button", "", backend=5),
                    _node("c", "button", "Cancel", backend=6),
                ]
            },
        }
    )
    nodes = query_ax_nodes(session, role="button", root_backend_id=77)
    assert [n["backendDOMNodeId"] for n in nodes] == [5]
