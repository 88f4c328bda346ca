#!/usr/bin/env python3
"""Remove catalog entries whose file is gone and optionally index new files.

Usage:
  python scripts/sync_library.py                 # orphan cleanup only
  python scripts/sync_library.py --index         # cleanup, then index new files
  python scripts/sync_library.py --index --force # re-fetch TMDB data for every file
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from cinescan.core import config
from cinescan.core.database import init_db, shutdown_db, start_db
from cinescan.core.errors import AppError
from cinescan.core.indexing import MovieIndexer

logger = logging.getLogger("cinescan.sync")


async def run_sync(folder: Optional[str], index: bool, force: bool) -> dict:
    await start_db()
    try:
        if config.get_dev_create_all():
            await init_db()
        indexer = MovieIndexer(folder=folder)
        report = {"sync": (await indexer.sync_library()).as_dict()}
        if index:
            summary = await indexer.index_all(force=force)
            report["index"] = {k: v for k, v in summary.as_dict().items() if k != "results"}
            report["index"]["failures"] = [
                {"filename": r.filename, "error": r.error} for r in summary.results if not r.success
            ]
        return report
    finally:
        await shutdown_db()


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Synchronise the movie catalog with the movies folder.")
    parser.add_argument("--folder", help=f"Movies folder (default: {config.MOVIES_FOLDER_PATH})")
    parser.add_argument("--index", action="store_true", help="Index new files after the cleanup")
    parser.add_argument("--force", action="store_true", help="Re-index files that are already in the catalog")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
    try:
        report = asyncio.run(run_sync(args.folder, args.index, args.force))
    except AppError as exc:
        logger.error("sync_failed code=%s msg=%s", exc.code.value, exc.message)
        return 1
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
