"""Retry statistics sink, plus the per-page observability adapter the orchestrator is handed."""

from __future__ import annotations

import math
import threading
from typing import Any

from .telemetry import PageTelemetry


class RetryStats:
    """Aggregate counters across retry cycles. Thread-safe; shared by all pages."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total = 0
        self.recovered = 0
        self.failed = 0
        self.by_type: dict[str, int] = {}

    def record_attempt(self, kind: str) -> None:
        """One call per recovery actually started."""
        with self._lock:
            self.total += 1
            self.by_type[kind] = self.by_type.get(kind, 0) + 1

    def record_outcome(self, succeeded: bool) -> None:
        """One call per retry cycle that recovered at least once."""
        with self._lock:
            if succeeded:
                self.recovered += 1
            else:
                self.failed += 1

    @property
    def recovery_rate(self) -> int:
        """Recovered / (recovered + failed), as a rounded percent (0 when nothing finished)."""
        finished = self.recovered + self.failed
        if finished <= 0:
            return 0
        return int(math.floor(self.recovered * 100 / finished + 0.5))

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total": self.total,
                "recovered": self.recovered,
                "failed": self.failed,
                "by_type": dict(self.by_type),
                "recovery_rate": self.recovery_rate,
            }

    def reset(self) -> None:
        with self._lock:
            self.total = 0
            self.recovered = 0
            self.failed = 0
            self.by_type = {}


class PageObservability:
    """Reads console errors from one page's telemetry, writes counters to shared stats."""

    def __init__(self, telemetry: PageTelemetry, stats: RetryStats) -> None:
        self.telemetry = telemetry
        self.stats = stats

    def recent_console_errors(self, limit: int = 20) -> list[str]:
        return self.telemetry.recent_console_errors(limit)

    def record_attempt(self, kind: str) -> None:
        self.stats.record_attempt(kind)

    def record_outcome(self, succeeded: bool) -> None:
        self.stats.record_outcome(succeeded)


__all__ = ["PageObservability", "RetryStats"]
