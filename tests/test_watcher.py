import asyncio
import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from cinescan.core.indexing import IndexResult
from cinescan.core.watcher import MovieWatcher


class FakeIndexer:
    """Records calls instead of touching TMDB or the database."""

    def __init__(self, folder: str) -> None:
        self.folder = Path(folder)
        self.indexed = []
        self.forced = []
        self.removed = []
        self.index_all_calls = 0

    async def index_file(self, path, force=False):
        (self.forced if force else self.indexed).append(str(path))
        return IndexResult(filename=Path(path).name, path=str(path), success=True)

    async def remove_path(self, path):
        self.removed.append(str(path))
        return 1

    async def index_all(self, force=False):
        self.index_all_calls += 1


class TestMovieWatcherPolling(unittest.TestCase):
    def setUp(self):
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.indexer = FakeIndexer(str(self.root))
        self.watcher = MovieWatcher(
            self.indexer,
            path=str(self.root),
            extensions=[".mkv", ".mp4"],
            poll_interval_s=0.05,
            debounce_s=2.0,
            recursive=True,
            delete_on_remove=True,
        )

    def tearDown(self):
        self.watcher.stop()
        self._tmp.cleanup()

    def _write(self, relative: str, data: bytes = b"video") -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def test_new_file_dispatched_after_debounce(self):
        movie = self._write("Heat.1995.mkv")
        self.assertEqual(self.watcher.poll_once(now=100.0), [])
        self.assertEqual(self.watcher.stats()["pending_events"], 1)
        # still inside the quiet period
        self.assertEqual(self.watcher.poll_once(now=101.0), [])
        dispatched = self.watcher.poll_once(now=102.5)
        self.assertEqual(dispatched, [str(movie)])
        self.assertEqual(self.indexer.indexed, [str(movie)])
        self.assertEqual(self.watcher.stats()["pending_events"], 0)
        self.assertEqual(self.watcher.stats()["processing_queue_size"], 0)

    def test_growing_file_rearms_debounce(self):
        movie = self._write("Heat.1995.mkv", b"a")
        self.watcher.poll_once(now=100.0)
        movie.write_bytes(b"ab")
        os.utime(movie, (1_000_000, 1_000_000))
        self.assertEqual(self.watcher.poll_once(now=101.5), [])
        # 102.5 is past the first deadline but not the re-armed one
        self.assertEqual(self.watcher.poll_once(now=102.5), [])
        self.assertEqual(self.watcher.poll_once(now=103.6), [str(movie)])

    def test_unsupported_hidden_and_temp_files_ignored(self):
        self._write("notes.txt")
        self._write(".Heat.1995.mkv")
        self._write("Heat.1995.mkv.part")
        self._write(".cache/Alien.1979.mkv")
        self.watcher.poll_once(now=0.0)
        self.assertEqual(self.watcher.poll_once(now=10.0), [])
        self.assertEqual(self.indexer.indexed, [])

    def test_non_recursive_skips_subfolders(self):
        self.watcher.recursive = False
        top = self._write("Alien.1979.mkv")
        self._write("nested/Heat.1995.mkv")
        self.watcher.poll_once(now=0.0)
        self.assertEqual(self.watcher.poll_once(now=10.0), [str(top)])

    def test_removed_file_triggers_catalog_removal(self):
        movie = self._write("Heat.1995.mkv")
        self.watcher.poll_once(now=0.0)
        self.watcher.poll_once(now=5.0)
        movie.unlink()
        self.watcher.poll_once(now=6.0)
        self.assertEqual(self.indexer.removed, [str(movie)])

    def test_removal_ignored_when_disabled(self):
        self.watcher.delete_on_remove = False
        movie = self._write("Heat.1995.mkv")
        self.watcher.poll_once(now=0.0)
        movie.unlink()
        self.watcher.poll_once(now=1.0)
        self.assertEqual(self.indexer.removed, [])
        # a file deleted before its debounce expired is never indexed
        self.assertEqual(self.watcher.poll_once(now=10.0), [])
        self.assertEqual(self.indexer.indexed, [])

    def test_path_in_processing_is_not_dispatched_twice(self):
        movie = self._write("Heat.1995.mkv")
        self.watcher._processing.add(str(movie))
        self.watcher.poll_once(now=0.0)
        self.assertEqual(self.watcher.poll_once(now=10.0), [])
        self.assertEqual(self.indexer.indexed, [])

    def test_force_index_file_validates_extension(self):
        movie = self._write("Heat.1995.mkv")
        result = asyncio.run(self.watcher.force_index_file(str(movie)))
        self.assertTrue(result.success)
        self.assertEqual(self.indexer.forced, [str(movie)])
        with self.assertRaises(ValueError):
            asyncio.run(self.watcher.force_index_file(str(self.root / "notes.txt")))

    def test_index_existing_files_delegates(self):
        asyncio.run(self.watcher.index_existing_files())
        self.assertEqual(self.indexer.index_all_calls, 1)


class TestMovieWatcherLifecycle(unittest.TestCase):
    def test_start_requires_existing_folder(self):
        with TemporaryDirectory() as tmp:
            missing = Path(tmp) / "missing"
            watcher = MovieWatcher(FakeIndexer(tmp), path=str(missing), extensions=[".mkv"])
            with self.assertRaises(FileNotFoundError):
                watcher.start()
            self.assertFalse(watcher.is_running)

    def test_start_stop_and_stats(self):
        with TemporaryDirectory() as tmp:
            (Path(tmp) / "Alien.1979.mkv").write_bytes(b"x")
            watcher = MovieWatcher(FakeIndexer(tmp), path=tmp, extensions=[".mkv"], poll_interval_s=0.05, debounce_s=0.0)
            watcher.start()
            try:
                self.assertTrue(watcher.is_running)
                stats = watcher.stats()
                self.assertTrue(stats["is_running"])
                self.assertEqual(stats["watch_path"], str(Path(tmp).resolve()))
            finally:
                watcher.stop()
            self.assertFalse(watcher.is_running)
            # existing files form the baseline and are never indexed
            self.assertEqual(watcher.indexer.indexed, [])

    def test_restart_applies_options(self):
        with TemporaryDirectory() as tmp, TemporaryDirectory() as other:
            watcher = MovieWatcher(FakeIndexer(tmp), path=tmp, extensions=[".mkv"], poll_interval_s=0.05)
            watcher.start()
            try:
                watcher.restart(path=other, debounce_s=0.5)
                self.assertTrue(watcher.is_running)
                self.assertEqual(watcher.path, Path(other).resolve())
                self.assertEqual(watcher.debounce_s, 0.5)
                with self.assertRaises(AttributeError):
                    watcher.restart(unknown_option=1)
            finally:
                watcher.stop()


if __name__ == "__main__":
    unittest.main()
