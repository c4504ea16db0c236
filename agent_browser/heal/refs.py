"""Reference model: resolved element refs and the per-page resolution table.

A ref token (``e1``, ``e2``...) stands in for one element of one snapshot.
Tables are never merged: every snapshot produces a fresh table and the page
session replaces the previous one, so a stale ref is simply a token absent
from the current table.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

RefMode = Literal["role", "aria"]

_REF_TOKEN_RE = re.compile(r"^e\d+$")


@dataclass(frozen=True, slots=True)
class RoleRef:
    """One resolved element: accessibility role, accessible name, disambiguation index."""

    role: str
    name: str | None = None
    # Only set when >= 2 refs in the same snapshot share (role, name).
    nth: int | None = None

    def key(self) -> tuple[str, str]:
        return (self.role, self.name or "")

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"role": self.role}
        if self.name is not None:
            out["name"] = self.name
        if self.nth is not None:
            out["nth"] = self.nth
        return out


@dataclass(slots=True)
class ReferenceTable:
    refs: dict[str, RoleRef] = field(default_factory=dict)
    mode: RefMode = "role"
    frame_selector: str | None = None

    def __contains__(self, token: object) -> bool:
        return token in self.refs

    def __len__(self) -> int:
        return len(self.refs)

    def get(self, token: str) -> RoleRef | None:
        return self.refs.get(token)

    def tokens(self) -> list[str]:
        return list(self.refs.keys())

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {
            "mode": self.mode,
            "refs": {token: ref.to_dict() for token, ref in self.refs.items()},
        }
        if self.frame_selector:
            out["frameSelector"] = self.frame_selector
        return out


@dataclass(frozen=True, slots=True)
class SnapshotOptions:
    interactive_only: bool
    max_depth: int | None
    compact: bool


@dataclass(frozen=True, slots=True)
class SnapshotStats:
    lines: int
    chars: int
    refs: int
    interactive: int

    def to_dict(self) -> dict[str, int]:
        return {"lines": self.lines, "chars": self.chars, "refs": self.refs, "interactive": self.interactive}


@dataclass(slots=True)
class SnapshotResult:
    text: str
    refs: ReferenceTable
    stats: SnapshotStats | None = None
    truncated: bool = False


def strip_ref_prefix(raw: str) -> str:
    """Drop the ``@`` / ``ref=`` prefixes agents tend to copy along with the token."""
    token = (raw or "").strip()
    if token.startswith("@"):
        return token[1:]
    if token.startswith("ref="):
        return token[4:]
    return token


def is_ref_token(token: str) -> bool:
    return bool(_REF_TOKEN_RE.match(token or ""))


def parse_role_ref(raw: str) -> str | None:
    """Return the normalized ``e<N>`` token, or None when *raw* is not one."""
    token = strip_ref_prefix(raw)
    return token if is_ref_token(token) else None


def require_ref(raw: object) -> str:
    token = strip_ref_prefix(raw) if isinstance(raw, str) else ""
    if not token:
        raise ValueError("ref is required")
    return token


__all__ = [
    "RefMode",
    "ReferenceTable",
    "RoleRef",
    "SnapshotOptions",
    "SnapshotResult",
    "SnapshotStats",
    "is_ref_token",
    "parse_role_ref",
    "require_ref",
    "strip_ref_prefix",
]
