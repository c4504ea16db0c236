"""
Accessibility (AX) tree access via Chrome DevTools Protocol.

Why this exists:
- The snapshot compactor consumes an indentation-structured text dump of the
  accessibility tree; CDP hands out a flat node list. This module renders one
  into the other.
- Role refs resolve back to DOM nodes through ``Accessibility.queryAXTree``
  (role + exact accessible name), the same handle the dump was built from.
"""

from __future__ import annotations

from typing import Any

from ..session_cdp import CdpError

# Text leaves and wrappers that add no role information.
_SKIP_ROLES = frozenset({"InlineTextBox", "LineBreak"})
_TRANSPARENT_ROLES = frozenset({"RootWebArea", "WebArea", "Iframe"})
_TEXT_ROLES = frozenset({"StaticText", "text"})

# AX properties rendered as trailing [attr] / [attr=value] annotations.
_BOOL_ATTRS = ("checked", "disabled", "expanded", "selected", "pressed", "required")
_VALUE_ATTRS = ("level",)


def ax_value(value: Any) -> Any:
    """CDP AXValue is usually a dict with {type,value}. Return the underlying value."""
    if isinstance(value, dict) and "value" in value:
        return value.get("value")
    return value


def node_role(node: dict[str, Any]) -> str:
    return str(ax_value(node.get("role")) or "")


def node_name(node: dict[str, Any]) -> str:
    return " ".join(str(ax_value(node.get("name")) or "").split())


def _props(node: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    props = node.get("properties")
    if isinstance(props, list):
        for p in props:
            if isinstance(p, dict) and isinstance(p.get("name"), str):
                out[p["name"]] = ax_value(p.get("value"))
    return out


def _annotations(node: dict[str, Any]) -> str:
    props = _props(node)
    parts: list[str] = []
    for key in _VALUE_ATTRS:
        if props.get(key) not in (None, "", False):
            parts.append(f"[{key}={props[key]}]")
    for key in _BOOL_ATTRS:
        v = props.get(key)
        if v is True or v == "true":
            parts.append(f"[{key}]")
        elif key == "checked" and v == "mixed":
            parts.append("[checked=mixed]")
    return (" " + " ".join(parts)) if parts else ""


def fetch_ax_nodes(session: Any, *, frame_id: str | None = None) -> list[dict[str, Any]]:
    params: dict[str, Any] = {}
    if frame_id:
        params["frameId"] = frame_id
    res = session.send("Accessibility.getFullAXTree", params)
    nodes = res.get("nodes") if isinstance(res, dict) else None
    if not isinstance(nodes, list):
        raise CdpError("Accessibility.getFullAXTree returned unexpected payload")
    return [n for n in nodes if isinstance(n, dict)]


def query_ax_nodes(
    session: Any,
    *,
    role: str,
    name: str | None = None,
    root_backend_id: int | None = None,
) -> list[dict[str, Any]]:
    """Non-ignored nodes with this role and accessible name, document order.

    ``name`` is the form shown in the dump. A name holding a single quote may
    stand for a double quote in the page, so that case is matched here rather
    than by Chrome. A missing name selects only unnamed nodes.
    """
    params: dict[str, Any] = {"role": role}
    folded = name is not None and "'" in name
    if name and not folded:
        params["accessibleName"] = name
    if root_backend_id is not None:
        params["backendNodeId"] = root_backend_id
    else:
        doc = session.send("DOM.getDocument", {"depth": 0})
        params["nodeId"] = (doc.get("root") or {}).get("nodeId")
    res = session.send("Accessibility.queryAXTree", params)
    nodes = res.get("nodes") if isinstance(res, dict) else None
    if not isinstance(nodes, list):
        return []
    out = [
        n
        for n in nodes
        if isinstance(n, dict) and not n.get("ignored") and isinstance(n.get("backendDOMNodeId"), int)
    ]
    if folded:
        return [n for n in out if _quote(node_name(n)) == name]
    if not name:
        return [n for n in out if not node_name(n)]
    return out


def _quote(name: str) -> str:
    # The dump grammar has no escapes; keep names on one line and free of double quotes.
    return name.replace('"', "'")


def render_ax_dump(nodes: list[dict[str, Any]], *, native_refs: bool = False) -> tuple[str, dict[str, int]]:
    """Render AX nodes as ``- role "name" [attrs]`` lines, two spaces per level.

    With ``native_refs`` every element line also carries ``[ref=eN]`` and the
    returned mapping gives each token's backendDOMNodeId.
    """
    by_id = {str(n.get("nodeId")): n for n in nodes if n.get("nodeId") is not None}
    roots = [n for n in nodes if str(n.get("parentId")) not in by_id]
    lines: list[str] = []
    refs: dict[str, int] = {}

    # Iterative DFS: (node, depth, parent rendered with a name)
    stack: list[tuple[dict[str, Any], int, bool]] = [(n, 0, False) for n in reversed(roots)]
    while stack:
        node, depth, parent_named = stack.pop()
        role = node_role(node)
        name = node_name(node)
        child_depth = depth
        named = parent_named

        if role in _SKIP_ROLES:
            continue
        if role in _TEXT_ROLES:
            if name and not parent_named:
                lines.append(f"{'  ' * depth}- text: {name}")
        elif not node.get("ignored") and role and role not in _TRANSPARENT_ROLES:
            line = f"{'  ' * depth}- {role}"
            if name:
                line += f' "{_quote(name)}"'
            line += _annotations(node)
            backend = node.get("backendDOMNodeId")
            if native_refs and isinstance(backend, int):
                token = f"e{len(refs) + 1}"
                refs[token] = backend
                line += f" [ref={token}]"
            lines.append(line)
            child_depth = depth + 1
            named = bool(name)

        child_ids = node.get("childIds") if isinstance(node.get("childIds"), list) else []
        for cid in reversed(child_ids):
            child = by_id.get(str(cid))
            if child is not None:
                stack.append((child, child_depth, named))

    return "\n".join(lines), refs


__all__ = ["ax_value", "fetch_ax_nodes", "node_name", "node_role", "query_ax_nodes", "render_ax_dump"]
