import asyncio

import pytest
from sqlalchemy import func, select

from cinescan.core import catalog
from cinescan.core import database as db
from cinescan.core.errors import NotFoundError
from cinescan.core.indexing import MovieIndexer
from cinescan.models.database import Movie, MovieGenre
from conftest import make_fake_tmdb_client


def _run_with_db(fn):
    """Run fn() inside a started database, creating the schema first."""

    async def scenario():
        await db.start_db()
        await db.init_db()
        try:
            return await fn()
        finally:
            await db.shutdown_db()

    return asyncio.run(scenario())


def _indexer(**kwargs) -> MovieIndexer:
    kwargs.setdefault("tmdb_factory", make_fake_tmdb_client)
    return MovieIndexer(**kwargs)


def test_index_file_saves_tmdb_metadata(write_video):
    path = write_video("The.Matrix.1999.1080p.BluRay.x264.mkv", size=4096)
    indexer = _indexer()

    async def scenario():
        result = await indexer.index_file(path)
        async with db.session_scope() as session:
            detail = await catalog.movie_detail(session, result.movie_id)
        return result, detail

    result, detail = _run_with_db(scenario)
    assert result.success and not result.skipped
    assert result.title == "The Matrix"
    assert result.year == 1999
    assert detail["tmdb_id"] == 603
    assert detail["duration"] == 136
    assert detail["poster_url"].endswith("/w500/matrix.jpg")
    assert detail["trailer_url"] == "https://www.youtube.com/watch?v=m8e-FF8MsqU"
    assert detail["release_date"].startswith("1999-03-30")
    assert detail["genres"] == ["Action", "Science Fiction"]
    assert [a["name"] for a in detail["actors"]] == ["Keanu Reeves", "Carrie-Anne Moss"]
    assert detail["actors"][0]["character"] == "Neo"
    assert detail["has_file"] is True
    assert detail["file"] == {
        "filename": "The.Matrix.1999.1080p.BluRay.x264.mkv",
        "size": 4096,
        "resolution": "1080p",
        "codec": "x264",
        "container": "mkv",
    }


def test_already_indexed_file_is_skipped_unless_forced(write_video):
    path = write_video("Inception (2010).mp4")
    indexer = _indexer()

    async def scenario():
        first = await indexer.index_file(path)
        second = await indexer.index_file(path)
        forced = await indexer.index_file(path, force=True)
        async with db.session_scope() as session:
            movies = (await session.execute(select(func.count(Movie.id)))).scalar_one()
            links = (await session.execute(select(func.count(MovieGenre.id)))).scalar_one()
        return first, second, forced, movies, links

    first, second, forced, movies, links = _run_with_db(scenario)
    assert first.success and not first.skipped
    assert second.success and second.skipped
    assert second.movie_id == first.movie_id
    assert forced.success and not forced.skipped
    assert forced.movie_id == first.movie_id
    assert movies == 1
    assert links == 2


def test_year_off_by_one_still_matches(write_video):
    path = write_video("Inception.2011.mkv")

    result = _run_with_db(lambda: _indexer().index_file(path))
    assert result.success
    assert result.title == "Inception"


def test_index_file_failures_are_reported_not_raised(movies_dir, write_video):
    unknown = write_video("Some.Unknown.Film.2003.mkv")
    text_file = movies_dir / "readme.txt"
    text_file.write_text("not a movie", encoding="utf-8")
    indexer = _indexer()

    async def scenario():
        return (
            await indexer.index_file(unknown),
            await indexer.index_file(text_file),
            await indexer.index_file(movies_dir / "Gone.2001.mkv"),
        )

    not_found, unsupported, missing = _run_with_db(scenario)
    assert not not_found.success and not_found.error == "Not found on TMDB"
    assert unsupported.error == "Unsupported file extension"
    assert missing.error == "File not found"


def test_unconfigured_tmdb_is_reported(write_video):
    path = write_video("Amelie.2001.mkv")
    indexer = MovieIndexer(tmdb_factory=lambda: make_fake_tmdb_client(api_key=""))

    result = _run_with_db(lambda: indexer.index_file(path))
    assert not result.success
    assert result.error == "TMDB not configured"


def test_index_all_summarises_folder(movies_dir, write_video):
    write_video("The.Matrix.1999.mkv")
    write_video("Amelie (2001)/Amelie.2001.FRENCH.1080p.mkv")
    write_video("Nope.Nothing.1990.avi")
    write_video(".hidden/Inception.2010.mkv")
    write_video("Inception.2010.mkv.part")
    (movies_dir / "cover.jpg").write_bytes(b"jpg")

    summary = _run_with_db(lambda: _indexer().index_all())
    assert summary.total == 3
    assert summary.indexed == 2
    assert summary.failed == 1
    assert sorted(r.title for r in summary.results if r.success) == ["Amelie", "The Matrix"]


def test_index_all_missing_folder_raises(tmp_path):
    indexer = _indexer(folder=str(tmp_path / "absent"))
    with pytest.raises(NotFoundError):
        _run_with_db(lambda: indexer.index_all())


def test_sync_library_removes_orphans(write_video):
    keep = write_video("The.Matrix.1999.mkv")
    gone = write_video("Inception.2010.mkv")
    indexer = _indexer()

    async def scenario():
        await indexer.index_all()
        gone.unlink()
        summary = await indexer.sync_library()
        async with db.session_scope() as session:
            titles = (await session.execute(select(Movie.title))).scalars().all()
        return summary, titles

    summary, titles = _run_with_db(scenario)
    assert keep.exists()
    assert summary.orphans_removed == 1
    assert summary.removed_titles == ["Inception"]
    assert titles == ["The Matrix"]


def test_sync_library_refuses_missing_folder(write_video, movies_dir):
    write_video("The.Matrix.1999.mkv")
    indexer = _indexer()
    moved = movies_dir.parent / "unmounted"

    async def scenario():
        await indexer.index_all()
        movies_dir.rename(moved)
        with pytest.raises(NotFoundError):
            await indexer.sync_library()
        async with db.session_scope() as session:
            return (await session.execute(select(func.count(Movie.id)))).scalar_one()

    assert _run_with_db(scenario) == 1


def test_remove_path(write_video):
    path = write_video("Amelie.2001.mkv")
    indexer = _indexer()

    async def scenario():
        result = await indexer.index_file(path)
        removed = await indexer.remove_path(path)
        again = await indexer.remove_path(path)
        return result.movie_id, removed, again

    movie_id, removed, again = _run_with_db(scenario)
    assert removed == movie_id
    assert again is None
