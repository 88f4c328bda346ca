"""Polling folder watcher for the movie library.

A daemon thread snapshots the folder every poll interval and diffs
{path: (size, mtime)}. New or modified videos are indexed once they have been
quiet for the debounce period, so files still being copied are not picked up
half-written. Index work runs as coroutines on the application event loop.
"""
from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from cinescan.core import config
from cinescan.core.filename_parser import is_ignored_name, is_supported_video
from cinescan.core.metrics import metrics
from cinescan.core.time_utils import isoformat_utc, utc_now

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Tuple[int, float]]


class MovieWatcher:
    def __init__(
        self,
        indexer,
        path: Optional[str] = None,
        extensions: Optional[Sequence[str]] = None,
        poll_interval_s: Optional[float] = None,
        debounce_s: Optional[float] = None,
        recursive: Optional[bool] = None,
        delete_on_remove: Optional[bool] = None,
    ) -> None:
        self.indexer = indexer
        self.path = Path(path or indexer.folder).expanduser().resolve()
        self.extensions = [e.lower() for e in (extensions or config.get_supported_extensions())]
        self.poll_interval_s = config.WATCHER_POLL_INTERVAL_SECONDS if poll_interval_s is None else poll_interval_s
        self.debounce_s = config.WATCHER_DEBOUNCE_SECONDS if debounce_s is None else debounce_s
        self.recursive = config.WATCHER_RECURSIVE if recursive is None else recursive
        self.delete_on_remove = config.WATCHER_DELETE_ON_REMOVE if delete_on_remove is None else delete_on_remove

        self._lock = threading.RLock()
        self._snapshot: Snapshot = {}
        # path -> monotonic deadline after which the file is considered stable
        self._pending: Dict[str, float] = {}
        self._processing: Set[str] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.running = False
        self._polls = 0
        self._last_poll_at: Optional[datetime] = None

    # --- Lifecycle ----------------------------------------------------------

    def set_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        """Record the loop that owns DB work; index coroutines are submitted to it."""
        self._loop = loop

    @property
    def is_running(self) -> bool:
        return self.running

    def start(self) -> None:
        """Start watching. Files already present are part of the baseline and not indexed."""
        if self.running:
            return
        if not self.path.is_dir():
            raise FileNotFoundError(f"Watch folder does not exist: {self.path}")
        with self._lock:
            self._snapshot = self._take_snapshot()
            self._pending.clear()
        self._stop_event.clear()
        self.running = True
        self._thread = threading.Thread(target=self._watch_loop, name="movie-watcher", daemon=True)
        self._thread.start()
        metrics.increment_event("watcher.started")
        logger.info("watcher_started path=%s files=%s", self.path, len(self._snapshot))

    def stop(self) -> None:
        if not self.running and self._thread is None:
            return
        self.running = False
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=max(5.0, self.poll_interval_s * 2))
            self._thread = None
        with self._lock:
            self._pending.clear()
        logger.info("watcher_stopped path=%s", self.path)

    def restart(self, **options: Any) -> None:
        """Stop, apply new options (path, poll_interval_s, debounce_s, ...) and start again."""
        self.stop()
        for key, value in options.items():
            if value is None:
                continue
            if key == "path":
                value = Path(value).expanduser().resolve()
            if not hasattr(self, key):
                raise AttributeError(f"Unknown watcher option: {key}")
            setattr(self, key, value)
        self.start()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "is_running": self.running,
                "watch_path": str(self.path),
                "processing_queue_size": len(self._processing),
                "pending_events": len(self._pending),
                "polls": self._polls,
                "last_poll_at": isoformat_utc(self._last_poll_at),
            }

    # --- Polling ------------------------------------------------------------

    def _watch_loop(self) -> None:
        while self.running:
            started = time.perf_counter()
            try:
                self.poll_once()
            except Exception:
                logger.exception("watcher_poll_failed path=%s", self.path)
            metrics.record_poll(time.perf_counter() - started)
            self._stop_event.wait(self.poll_interval_s)

    def _take_snapshot(self) -> Snapshot:
        snap: Snapshot = {}
        for dirpath, dirnames, filenames in os.walk(self.path):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for name in filenames:
                if is_ignored_name(name) or not is_supported_video(name, self.extensions):
                    continue
                full = os.path.join(dirpath, name)
                try:
                    st = os.stat(full)
                except OSError:
                    continue
                snap[str(Path(full).resolve())] = (st.st_size, st.st_mtime)
            if not self.recursive:
                break
        return snap

    def poll_once(self, now: Optional[float] = None) -> List[str]:
        """Diff the folder once and dispatch files whose debounce expired.

        Returns the paths submitted for indexing.
        """
        now = time.monotonic() if now is None else now
        current = self._take_snapshot()
        removed: List[str] = []
        with self._lock:
            previous = self._snapshot
            for path, sig in current.items():
                if previous.get(path) != sig:
                    # New file or still changing: (re)arm the debounce
                    self._pending[path] = now + self.debounce_s
                    metrics.increment_event("watcher.events")
            for path in previous.keys() - current.keys():
                self._pending.pop(path, None)
                removed.append(path)
            self._snapshot = current
            due = [p for p, deadline in self._pending.items() if deadline <= now]
            for path in due:
                self._pending.pop(path, None)
            self._polls += 1
            self._last_poll_at = utc_now()

        for path in removed:
            logger.info("watcher_file_removed path=%s", path)
            metrics.increment_event("watcher.removed")
            if self.delete_on_remove:
                self._submit(self.indexer.remove_path(path), op="remove_path")

        dispatched: List[str] = []
        for path in due:
            if self._dispatch(path):
                dispatched.append(path)
        return dispatched

    def _dispatch(self, path: str) -> bool:
        with self._lock:
            if path in self._processing:
                logger.debug("watcher_skip_in_progress path=%s", path)
                return False
            if not os.path.exists(path):
                logger.debug("watcher_skip_vanished path=%s", path)
                return False
            self._processing.add(path)
        logger.info("watcher_index_file path=%s", path)
        self._submit(self._process(path), op="index_file")
        return True

    async def _process(self, path: str):
        try:
            return await self.indexer.index_file(path)
        finally:
            with self._lock:
                self._processing.discard(path)

    def _submit(self, coro, op: str = "") -> None:
        """Run coro on the captured loop, or synchronously when no loop was captured."""
        loop = self._loop
        if loop is None or loop.is_closed():
            try:
                asyncio.run(coro)
            except Exception:
                logger.exception("watcher_task_failed op=%s", op)
            return
        future = asyncio.run_coroutine_threadsafe(coro, loop)

        def _done(fut) -> None:
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error("watcher_task_failed op=%s err=%s", op, exc)

        future.add_done_callback(_done)

    # --- Manual triggers ----------------------------------------------------

    async def force_index_file(self, path: str):
        if not is_supported_video(path, self.extensions):
            raise ValueError(f"Unsupported file extension: {Path(path).suffix or path}")
        return await self.indexer.index_file(path, force=True)

    async def index_existing_files(self):
        return await self.indexer.index_all()
