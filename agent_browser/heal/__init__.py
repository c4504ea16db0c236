"""
Self-healing ref resolution.

Each module provides focused functionality:
- refs: reference model (RoleRef, ReferenceTable, options, token grammar)
- snapshot: accessibility dump compaction and ref assignment
- locator: ref token -> locator handle
- classify: failure message -> FailureKind
- recovery: one best-effort strategy per recoverable kind
- retry: bounded retry loop and DiagnosticError
- rematch: old (role, name) -> token in a fresh table
- capabilities: the collaborator protocols the core is handed
"""

from .capabilities import DialogControl, HealContext, Observability, PageControl, SnapshotSource
from .classify import FAILURE_KINDS, TERMINAL_KINDS, ErrorContext, FailureKind, classify, is_terminal
from .locator import LocatorHandle, NativeRef, RefNotFoundError, RoleQuery, resolve_ref
from .recovery import attempt_recovery, dismiss_overlay
from .refs import (
    ReferenceTable,
    RoleRef,
    SnapshotOptions,
    SnapshotResult,
    SnapshotStats,
    parse_role_ref,
    require_ref,
    strip_ref_prefix,
)
from .rematch import find_matching_ref
from .retry import DiagnosticError, RetryOptions, RetryOutcome, build_suggestion, with_retry
from .snapshot import (
    build_role_snapshot,
    build_role_snapshot_from_ai_snapshot,
    compact_tree,
    snapshot_stats,
    truncate_snapshot,
)

__all__ = [
    "DiagnosticError",
    "DialogControl",
    "ErrorContext",
    "FAILURE_KINDS",
    "FailureKind",
    "HealContext",
    "LocatorHandle",
    "NativeRef",
    "Observability",
    "PageControl",
    "RefNotFoundError",
    "ReferenceTable",
    "RetryOptions",
    "RetryOutcome",
    "RoleQuery",
    "RoleRef",
    "SnapshotOptions",
    "SnapshotResult",
    "SnapshotSource",
    "SnapshotStats",
    "TERMINAL_KINDS",
    "attempt_recovery",
    "build_role_snapshot",
    "build_role_snapshot_from_ai_snapshot",
    "build_suggestion",
    "classify",
    "compact_tree",
    "dismiss_overlay",
    "find_matching_ref",
    "is_terminal",
    "parse_role_ref",
    "require_ref",
    "resolve_ref",
    "snapshot_stats",
    "strip_ref_prefix",
    "truncate_snapshot",
    "with_retry",
]
