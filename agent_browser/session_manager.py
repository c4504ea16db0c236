"""Session subsystem: DevTools target discovery and per-page sessions.

- SessionManager finds page targets over the DevTools HTTP endpoint and
  connects a BrowserSession to each.
- PageSession is the snapshot capability for one page: it runs the compactor
  against the live accessibility tree and owns the page's current ref table.
- RefStore keeps the current table per target, bounded, oldest target evicted.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from .browser_session import BrowserSession
from .config import HealConfig
from .dialogs import DialogBuffer
from .heal.capabilities import HealContext
from .heal.refs import ReferenceTable, RefMode, SnapshotOptions, SnapshotResult
from .heal.snapshot import build_role_snapshot, build_role_snapshot_from_ai_snapshot, truncate_snapshot
from .session_cdp import CdpConnection, CdpError, http_get_json
from .stats import PageObservability, RetryStats
from .telemetry import PageTelemetry
from .tools.ax import fetch_ax_nodes, render_ax_dump
from .tools.page import CdpPage

_LOGGER = logging.getLogger("agent_browser.session_manager")

Connector = Callable[[str, float], CdpConnection]


class RefStore:
    """target id -> current ReferenceTable. Replacing a table never merges."""

    def __init__(self, capacity: int = 50) -> None:
        self.capacity = max(1, int(capacity))
        self._tables: OrderedDict[str, ReferenceTable] = OrderedDict()
        self._lock = threading.Lock()

    def put(self, target_id: str, table: ReferenceTable) -> None:
        with self._lock:
            self._tables.pop(target_id, None)
            self._tables[target_id] = table
            while len(self._tables) > self.capacity:
                evicted, _ = self._tables.popitem(last=False)
                _LOGGER.debug("ref table for %s evicted", evicted)

    def get(self, target_id: str) -> ReferenceTable | None:
        with self._lock:
            return self._tables.get(target_id)

    def drop(self, target_id: str) -> None:
        with self._lock:
            self._tables.pop(target_id, None)

    def __len__(self) -> int:
        return len(self._tables)


class PageSession:
    """One connected page: snapshots, ref table, dialogs, telemetry, page control."""

    def __init__(
        self,
        target_id: str,
        session: BrowserSession,
        *,
        config: HealConfig,
        refs: RefStore,
        stats: RetryStats,
    ) -> None:
        self.target_id = target_id
        self.session = session
        self.config = config
        self.refs = refs
        self.telemetry = PageTelemetry(max_events=config.console_buffer_size)
        self.dialogs = DialogBuffer(mode=config.dialog_mode, responder=self._respond_to_dialog)
        self.observer = PageObservability(self.telemetry, stats)
        self.page = CdpPage(session)
        self.frame_selector: str | None = None

    def _respond_to_dialog(self, accept: bool, text: str | None) -> None:
        self.session.handle_dialog(accept=accept, prompt_text=text)

    def on_event(self, event: dict[str, Any]) -> None:
        self.telemetry.ingest(event)
        self.dialogs.ingest(event)
        if event.get("method") == "Page.frameNavigated":
            self.page.forget_frames()

    @property
    def table(self) -> ReferenceTable | None:
        return self.refs.get(self.target_id)

    def set_frame(self, frame_selector: str | None) -> None:
        """Scope later snapshots and role lookups to an iframe (None: main frame)."""
        self.frame_selector = frame_selector or None

    def _frame_id(self) -> str | None:
        if not self.frame_selector:
            return None
        return self.page.frame_root(self.frame_selector)[1]

    def take_snapshot(self, options: SnapshotOptions, mode: RefMode = "role") -> SnapshotResult:
        """Snapshot the live page and make its table the page's current one."""
        with suppress(CdpError):
            self.session.drain_events()
        nodes = fetch_ax_nodes(self.session, frame_id=self._frame_id())
        dump, native = render_ax_dump(nodes, native_refs=mode == "aria")
        if mode == "aria":
            result = build_role_snapshot_from_ai_snapshot(dump, options, frame_selector=self.frame_selector)
            self.page.native_refs = native
        else:
            result = build_role_snapshot(dump, options, frame_selector=self.frame_selector)
        result.text, result.truncated = truncate_snapshot(result.text, self.config.snapshot_max_chars)
        self.refs.put(self.target_id, result.refs)
        _LOGGER.debug("snapshot %s: %d refs (mode=%s)", self.target_id, len(result.refs), mode)
        return result

    def heal_context(self) -> HealContext:
        return HealContext(page=self.page, snapshots=self, dialogs=self.dialogs, observer=self.observer)

    def close(self) -> None:
        self.refs.drop(self.target_id)
        self.session.close()


class SessionManager:
    """Owns page sessions for one DevTools endpoint."""

    def __init__(
        self,
        config: HealConfig | None = None,
        *,
        stats: RetryStats | None = None,
        connect: Connector | None = None,
    ) -> None:
        self.config = config or HealConfig.from_env()
        self.stats = stats or RetryStats()
        self.refs = RefStore(self.config.ref_cache_size)
        self._connect: Connector = connect or (lambda url, timeout: CdpConnection(url, timeout=timeout))
        self._pages: dict[str, PageSession] = {}
        self._lock = threading.Lock()

    def list_targets(self) -> list[dict[str, Any]]:
        targets = http_get_json(f"{self.config.cdp_base_url}/json/list")
        if not isinstance(targets, list):
            return []
        return [t for t in targets if isinstance(t, dict) and t.get("type") == "page"]

    def _pick_target(self, target_id: str | None) -> dict[str, Any]:
        targets = self.list_targets()
        for target in targets:
            if target_id is None or target.get("id") == target_id:
                if target.get("webSocketDebuggerUrl"):
                    return target
        if target_id is None:
            raise CdpError(f"No page targets at {self.config.cdp_base_url}. Is Chrome running with remote debugging?")
        raise CdpError(f"Target {target_id} not found")

    def open_page(self, target_id: str | None = None) -> PageSession:
        """Connect (or reuse) a page session; the first page target when *target_id* is None."""
        if target_id is not None:
            with self._lock:
                existing = self._pages.get(target_id)
            if existing is not None:
                return existing

        target = self._pick_target(target_id)
        tid = str(target["id"])
        with self._lock:
            existing = self._pages.get(tid)
        if existing is not None:
            return existing

        timeout = self.config.default_timeout_ms / 1000.0
        conn = self._connect(str(target["webSocketDebuggerUrl"]), timeout)
        session = BrowserSession(conn, tid, str(target.get("url") or ""))
        page = PageSession(tid, session, config=self.config, refs=self.refs, stats=self.stats)
        conn.set_event_sink(page.on_event)
        try:
            session.enable_domains("Page", "Runtime", "DOM", "Accessibility")
        except Exception:
            session.close()
            raise
        with self._lock:
            self._pages[tid] = page
        _LOGGER.info("connected to target %s", tid)
        return page

    def get(self, target_id: str) -> PageSession | None:
        with self._lock:
            return self._pages.get(target_id)

    def close_page(self, target_id: str) -> None:
        with self._lock:
            page = self._pages.pop(target_id, None)
        if page is not None:
            page.close()

    def close_all(self) -> None:
        with self._lock:
            pages = list(self._pages.values())
            self._pages.clear()
        for page in pages:
            with suppress(Exception):
                page.close()


__all__ = ["PageSession", "RefStore", "SessionManager"]
