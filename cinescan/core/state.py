"""Shared application state.

Holds the process-wide MovieIndexer and MovieWatcher so routers, the app
lifespan and scripts use the same instances. Both are built lazily from the
current configuration and dropped by reset_library_state().
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from cinescan.core.indexing import MovieIndexer
from cinescan.core.tmdb import TMDBClient
from cinescan.core.watcher import MovieWatcher

logger = logging.getLogger(__name__)

# Factory for TMDB clients used by the shared indexer (tests swap in a mock transport)
tmdb_factory: Callable[[], TMDBClient] = TMDBClient

_indexer: Optional[MovieIndexer] = None
_watcher: Optional[MovieWatcher] = None


def get_indexer() -> MovieIndexer:
    global _indexer
    if _indexer is None:
        _indexer = MovieIndexer(tmdb_factory=lambda: tmdb_factory())
    return _indexer


def get_watcher() -> MovieWatcher:
    global _watcher
    if _watcher is None:
        _watcher = MovieWatcher(get_indexer())
    return _watcher


def reset_library_state() -> None:
    """Stop the watcher (if any) and forget the shared instances."""
    global _indexer, _watcher
    if _watcher is not None:
        try:
            _watcher.stop()
        except Exception:
            logger.warning("watcher_stop_failed", exc_info=True)
    _indexer = None
    _watcher = None


__all__ = ["get_indexer", "get_watcher", "reset_library_state", "tmdb_factory"]
