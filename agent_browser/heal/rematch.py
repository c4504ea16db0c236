"""Map an old (role, name) onto a token of a freshly built reference table."""

from __future__ import annotations

from collections.abc import Mapping

from .refs import ReferenceTable, RoleRef


def _entries(refs: ReferenceTable | Mapping[str, RoleRef]) -> list[tuple[str, RoleRef]]:
    if isinstance(refs, ReferenceTable):
        return list(refs.refs.items())
    return list(refs.items())


def find_matching_ref(
    refs: ReferenceTable | Mapping[str, RoleRef],
    old_role: str,
    old_name: str | None = None,
) -> str | None:
    """Exact match, then name containment (either direction), then the sole same-role entry.

    Several same-role candidates with no name match yield None: guessing would
    act on the wrong element.
    """
    entries = _entries(refs)
    old_name = old_name or None

    for token, ref in entries:
        if ref.role == old_role and ref.name == old_name:
            return token

    if old_name:
        for token, ref in entries:
            if ref.role != old_role or not ref.name:
                continue
            if old_name in ref.name or ref.name in old_name:
                return token

    if old_role:
        same_role = [token for token, ref in entries if ref.role == old_role]
        if len(same_role) == 1:
            return same_role[0]

    return None


__all__ = ["find_matching_ref"]
