"""Ref token -> addressable locator handle for the next driver call."""

from __future__ import annotations

from dataclasses import dataclass

from .refs import ReferenceTable, is_ref_token, require_ref

UNKNOWN_REF_HINT = "Run a new snapshot and use a ref from that snapshot."


class RefNotFoundError(LookupError):
    """Ref token is not in the *current* table (stale or never issued).

    The message phrasing is consumed by the failure classifier.
    """

    def __init__(self, ref: str, available: list[str] | None = None) -> None:
        self.ref = ref
        self.available = list(available or [])
        super().__init__(f'Unknown ref "{ref}". {UNKNOWN_REF_HINT}')


@dataclass(frozen=True, slots=True)
class RoleQuery:
    """Role + exact accessible-name query, optionally indexed by ``nth``."""

    ref: str
    role: str
    name: str | None = None
    nth: int | None = None
    frame_selector: str | None = None


@dataclass(frozen=True, slots=True)
class NativeRef:
    """Token the driver resolves itself (aria-mode snapshots, externally supplied refs)."""

    ref: str
    frame_selector: str | None = None


LocatorHandle = RoleQuery | NativeRef


def resolve_ref(
    raw: str,
    table: ReferenceTable | None,
    frame_selector: str | None = None,
) -> LocatorHandle:
    token = require_ref(raw)
    scope = frame_selector or (table.frame_selector if table is not None else None)

    if not is_ref_token(token):
        return NativeRef(ref=token, frame_selector=scope)

    if table is not None and table.mode == "aria":
        return NativeRef(ref=token, frame_selector=scope)

    info = table.get(token) if table is not None else None
    if info is None:
        raise RefNotFoundError(token, table.tokens() if table is not None else [])

    return RoleQuery(ref=token, role=info.role, name=info.name, nth=info.nth, frame_selector=scope)


__all__ = ["LocatorHandle", "NativeRef", "RefNotFoundError", "RoleQuery", "UNKNOWN_REF_HINT", "resolve_ref"]
