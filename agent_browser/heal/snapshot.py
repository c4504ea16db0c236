"""Snapshot compaction: raw accessibility dump -> pruned tree + ref table.

Input is the indentation-structured text dump a driver produces for the
accessibility tree (two spaces per level)::

    - main
      - heading "Sign in" [level=1]
      - textbox "Email"
      - button "Continue"

Every interactive line (and every *named* content line) gets a short ref
token (``[ref=e3]``) plus a table entry ``e3 -> (role, name, nth)``. The
compactor is total: lines it cannot parse are passed through as text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .refs import ReferenceTable, RoleRef, SnapshotOptions, SnapshotResult, SnapshotStats

INTERACTIVE_ROLES = frozenset(
    {
        "button",
        "link",
        "textbox",
        "checkbox",
        "radio",
        "combobox",
        "listbox",
        "menuitem",
        "menuitemcheckbox",
        "menuitemradio",
        "option",
        "searchbox",
        "slider",
        "spinbutton",
        "switch",
        "tab",
        "treeitem",
    }
)

CONTENT_ROLES = frozenset(
    {
        "heading",
        "cell",
        "gridcell",
        "columnheader",
        "rowheader",
        "listitem",
        "article",
        "region",
        "main",
        "navigation",
    }
)

STRUCTURAL_ROLES = frozenset(
    {
        "generic",
        "group",
        "list",
        "table",
        "row",
        "rowgroup",
        "grid",
        "treegrid",
        "menu",
        "menubar",
        "toolbar",
        "tablist",
        "tree",
        "directory",
        "document",
        "application",
        "presentation",
        "none",
    }
)

EMPTY_TREE = "(empty)"
EMPTY_INTERACTIVE = "(no interactive elements)"
TRUNCATED_MARKER = "\n\n[...TRUNCATED]"

_ROLE_LINE_RE = re.compile(r'^(\s*-\s*)(\w+)(?:\s+"([^"]*)")?(.*)$')
_LEADING_WS_RE = re.compile(r"^(\s*)")
_NATIVE_REF_RE = re.compile(r"\[ref=(e\d+)\]", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class RoleLine:
    raw: str
    depth: int
    prefix: str
    role_raw: str
    name: str | None
    suffix: str

    @property
    def role(self) -> str:
        return self.role_raw.lower()


@dataclass(frozen=True, slots=True)
class PassthroughLine:
    raw: str
    depth: int


ParsedLine = RoleLine | PassthroughLine


def indent_depth(line: str) -> int:
    match = _LEADING_WS_RE.match(line)
    return len(match.group(1)) // 2 if match else 0


def parse_line(line: str) -> ParsedLine:
    """Parse one dump line. Never raises; anything off-grammar is a PassthroughLine."""
    depth = indent_depth(line)
    match = _ROLE_LINE_RE.match(line)
    if not match:
        return PassthroughLine(raw=line, depth=depth)
    prefix, role_raw, name, suffix = match.groups()
    return RoleLine(
        raw=line,
        depth=depth,
        prefix=prefix,
        role_raw=role_raw,
        name=name or None,
        suffix=suffix or "",
    )


class _RoleNameTracker:
    """Counts (role, name) occurrences so duplicates get an ``nth`` index."""

    def __init__(self) -> None:
        self._counts: dict[tuple[str, str], int] = {}

    def next_index(self, role: str, name: str | None) -> int:
        key = (role, name or "")
        current = self._counts.get(key, 0)
        self._counts[key] = current + 1
        return current

    def is_duplicate(self, role: str, name: str | None) -> bool:
        return self._counts.get((role, name or ""), 0) > 1


class _RefAllocator:
    def __init__(self) -> None:
        self.tracker = _RoleNameTracker()
        self._counter = 0
        self._pending: list[tuple[str, str, str | None, int]] = []

    def assign(self, role: str, name: str | None) -> tuple[str, int]:
        self._counter += 1
        token = f"e{self._counter}"
        nth = self.tracker.next_index(role, name)
        self._pending.append((token, role, name, nth))
        return token, nth

    def table(self, *, frame_selector: str | None = None) -> ReferenceTable:
        # nth survives only for keys seen more than once.
        refs: dict[str, RoleRef] = {}
        for token, role, name, nth in self._pending:
            keep_nth = nth if self.tracker.is_duplicate(role, name) else None
            refs[token] = RoleRef(role=role, name=name, nth=keep_nth)
        return ReferenceTable(refs=refs, mode="role", frame_selector=frame_selector)


def _render_ref_line(head: str, line: RoleLine, token: str, nth: int, suffix: str) -> str:
    out = f"{head}{line.role_raw}"
    if line.name:
        out += f' "{line.name}"'
    out += f" [ref={token}]"
    if nth > 0:
        out += f" [nth={nth}]"
    return out + suffix


def _too_deep(depth: int, options: SnapshotOptions) -> bool:
    return options.max_depth is not None and depth > options.max_depth


def _interactive_lines(lines: list[str], options: SnapshotOptions, alloc: _RefAllocator) -> list[str]:
    out: list[str] = []
    for raw in lines:
        parsed = parse_line(raw)
        if _too_deep(parsed.depth, options):
            continue
        if not isinstance(parsed, RoleLine) or parsed.role not in INTERACTIVE_ROLES:
            continue
        token, nth = alloc.assign(parsed.role, parsed.name)
        suffix = parsed.suffix if "[" in parsed.suffix else ""
        out.append(_render_ref_line("- ", parsed, token, nth, suffix))
    return out


def _tree_lines(lines: list[str], options: SnapshotOptions, alloc: _RefAllocator) -> list[str]:
    out: list[str] = []
    for raw in lines:
        parsed = parse_line(raw)
        if _too_deep(parsed.depth, options):
            continue
        if not isinstance(parsed, RoleLine):
            out.append(raw)
            continue
        role = parsed.role
        if options.compact and role in STRUCTURAL_ROLES and not parsed.name:
            continue
        if not (role in INTERACTIVE_ROLES or (role in CONTENT_ROLES and parsed.name)):
            out.append(raw)
            continue
        token, nth = alloc.assign(role, parsed.name)
        out.append(_render_ref_line(parsed.prefix, parsed, token, nth, parsed.suffix))
    return out


def _parent_indices(depths: list[int]) -> list[int]:
    """Index of the nearest preceding shallower line, or -1."""
    parents = [-1] * len(depths)
    stack: list[int] = []
    for i, depth in enumerate(depths):
        while stack and depths[stack[-1]] >= depth:
            stack.pop()
        parents[i] = stack[-1] if stack else -1
        stack.append(i)
    return parents


def _is_labeled(line: str) -> bool:
    return ":" in line and not line.rstrip().endswith(":")


def compact_tree(tree: str) -> str:
    """Drop lines with no ref, no label and no retained descendant.

    Single bottom-up scan: a retained line marks only its nearest shallower
    ancestor; that ancestor is visited later in the same scan and cascades
    further up if it ends up retained.
    """
    lines = tree.split("\n")
    depths = [indent_depth(line) for line in lines]
    parents = _parent_indices(depths)
    keep_below = [False] * len(lines)
    retained = [False] * len(lines)

    for i in range(len(lines) - 1, -1, -1):
        line = lines[i]
        retained[i] = "[ref=" in line or _is_labeled(line) or keep_below[i]
        if retained[i] and parents[i] >= 0:
            keep_below[parents[i]] = True

    return "\n".join(line for line, keep in zip(lines, retained, strict=True) if keep)


def build_role_snapshot(
    aria_snapshot: str,
    options: SnapshotOptions,
    *,
    frame_selector: str | None = None,
) -> SnapshotResult:
    """Compact a driver accessibility dump and assign ``e<N>`` refs."""
    lines = str(aria_snapshot or "").split("\n")
    alloc = _RefAllocator()

    if options.interactive_only:
        out = _interactive_lines(lines, options, alloc)
        text = "\n".join(out) or EMPTY_INTERACTIVE
        table = alloc.table(frame_selector=frame_selector)
        return SnapshotResult(text=text, refs=table, stats=snapshot_stats(text, table))

    out = _tree_lines(lines, options, alloc)
    text = "\n".join(out) or EMPTY_TREE
    if options.compact:
        text = compact_tree(text) or EMPTY_TREE
    table = alloc.table(frame_selector=frame_selector)
    return SnapshotResult(text=text, refs=table, stats=snapshot_stats(text, table))


def build_role_snapshot_from_ai_snapshot(
    ai_snapshot: str,
    options: SnapshotOptions,
    *,
    frame_selector: str | None = None,
) -> SnapshotResult:
    """Variant for dumps whose lines already carry driver-native ``[ref=eN]`` tokens.

    The native tokens are kept as-is (the driver resolves them), so the table is
    ``aria`` mode and carries no ``nth``.
    """
    lines = str(ai_snapshot or "").split("\n")
    refs: dict[str, RoleRef] = {}
    out: list[str] = []

    for raw in lines:
        parsed = parse_line(raw)
        if _too_deep(parsed.depth, options):
            continue
        if not isinstance(parsed, RoleLine):
            if not options.interactive_only:
                out.append(raw)
            continue
        role = parsed.role
        if options.interactive_only and role not in INTERACTIVE_ROLES:
            continue
        if options.compact and not options.interactive_only and role in STRUCTURAL_ROLES and not parsed.name:
            continue
        native = _NATIVE_REF_RE.search(parsed.suffix)
        if options.interactive_only:
            if not native:
                continue
            name_part = f' "{parsed.name}"' if parsed.name else ""
            out.append(f"- {parsed.role_raw}{name_part}{parsed.suffix}")
        else:
            out.append(raw)
        if native:
            refs[native.group(1)] = RoleRef(role=role, name=parsed.name)

    table = ReferenceTable(refs=refs, mode="aria", frame_selector=frame_selector)
    if options.interactive_only:
        text = "\n".join(out) or EMPTY_INTERACTIVE
    else:
        text = "\n".join(out) or EMPTY_TREE
        if options.compact:
            text = compact_tree(text) or EMPTY_TREE
    return SnapshotResult(text=text, refs=table, stats=snapshot_stats(text, table))


def snapshot_stats(text: str, table: ReferenceTable) -> SnapshotStats:
    interactive = sum(1 for ref in table.refs.values() if ref.role in INTERACTIVE_ROLES)
    return SnapshotStats(lines=len(text.split("\n")), chars=len(text), refs=len(table), interactive=interactive)


def truncate_snapshot(text: str, max_chars: int | None) -> tuple[str, bool]:
    if not max_chars or max_chars <= 0 or len(text) <= max_chars:
        return text, False
    return text[:max_chars] + TRUNCATED_MARKER, True


__all__ = [
    "CONTENT_ROLES",
    "EMPTY_INTERACTIVE",
    "EMPTY_TREE",
    "INTERACTIVE_ROLES",
    "STRUCTURAL_ROLES",
    "ParsedLine",
    "PassthroughLine",
    "RoleLine",
    "build_role_snapshot",
    "build_role_snapshot_from_ai_snapshot",
    "compact_tree",
    "indent_depth",
    "parse_line",
    "snapshot_stats",
    "truncate_snapshot",
]
