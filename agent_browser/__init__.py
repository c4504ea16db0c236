"""Self-healing ref resolution for agent-driven browser automation."""

from .config import HealConfig, parse_overrides
from .heal import DiagnosticError, HealContext, RetryOptions, SnapshotOptions, with_retry
from .session_manager import PageSession, SessionManager

__version__ = "0.9.0"

__all__ = [
    "DiagnosticError",
    "HealConfig",
    "HealContext",
    "PageSession",
    "RetryOptions",
    "SessionManager",
    "SnapshotOptions",
    "__version__",
    "parse_overrides",
    "with_retry",
]
