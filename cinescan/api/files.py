"""Video streaming and download by movie id, with HTTP Range support."""
from __future__ import annotations

import logging
import mimetypes
import re
from pathlib import Path
from typing import Iterator, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse, Response, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.auth.security import rate_limiter_dependency
from cinescan.core.config import get_movies_folder_path
from cinescan.core.database import get_async_session
from cinescan.core.errors import AppError, ErrorCode, ForbiddenError, NotFoundError
from cinescan.core.metrics import metrics
from cinescan.models.database import Movie

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"], dependencies=[Depends(rate_limiter_dependency)])

CHUNK_SIZE = 1024 * 1024
DEFAULT_VIDEO_TYPE = "video/mp4"

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class RangeNotSatisfiable(AppError):
    def __init__(self, size: int) -> None:
        super().__init__("Requested range not satisfiable", ErrorCode.RANGE_NOT_SATISFIABLE, details={"size": size})
        self.size = size


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """Return the inclusive (start, end) byte range, or None to serve the whole file.

    Only the first range of a multi-range request is honoured. A header that
    does not parse is ignored; a range that parses but falls outside the file
    raises RangeNotSatisfiable.
    """
    if not header:
        return None
    first = header.split(",")[0].strip().replace(" ", "")
    match = _RANGE_RE.match(first)
    if match is None:
        return None
    raw_start, raw_end = match.groups()
    if raw_start == "" and raw_end == "":
        return None
    if raw_start == "":
        # suffix range: the last N bytes
        length = int(raw_end)
        if length == 0 or size == 0:
            raise RangeNotSatisfiable(size)
        return max(size - length, 0), size - 1
    start = int(raw_start)
    end = int(raw_end) if raw_end else size - 1
    if start >= size or end < start:
        raise RangeNotSatisfiable(size)
    return start, min(end, size - 1)


def iter_file_range(path: Path, start: int, end: int, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    with open(path, "rb") as fh:
        fh.seek(start)
        remaining = end - start + 1
        while remaining > 0:
            chunk = fh.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


def guess_video_type(path: Path) -> str:
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or DEFAULT_VIDEO_TYPE


async def resolve_movie_file(session: AsyncSession, movie_id: int) -> Path:
    """The movie's file, confined to the movies folder."""
    movie = await session.get(Movie, movie_id)
    if movie is None:
        raise NotFoundError("Movie", details={"movie_id": movie_id})
    if not movie.local_path:
        raise NotFoundError("Movie file", details={"movie_id": movie_id})
    root = Path(get_movies_folder_path()).expanduser().resolve()
    path = Path(movie.local_path).resolve()
    if not path.is_relative_to(root):
        logger.warning("file_outside_library movie_id=%s path=%s", movie_id, path)
        raise ForbiddenError("Access to this file is not allowed")
    if not path.is_file():
        raise NotFoundError("Movie file", details={"movie_id": movie_id})
    return path


@router.api_route("/stream/{movie_id}", methods=["GET", "HEAD"])
async def stream(movie_id: int, request: Request, session: AsyncSession = Depends(get_async_session)):
    path = await resolve_movie_file(session, movie_id)
    size = path.stat().st_size
    media_type = guess_video_type(path)
    headers = {"Accept-Ranges": "bytes"}

    try:
        byte_range = parse_range(request.headers.get("range"), size)
    except RangeNotSatisfiable:
        return Response(status_code=416, headers={"Content-Range": f"bytes */{size}", "Accept-Ranges": "bytes"})

    if byte_range is None:
        start, end, status_code = 0, size - 1, 200
    else:
        start, end = byte_range
        status_code = 206
        headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    headers["Content-Length"] = str(max(end - start + 1, 0))

    if request.method == "HEAD":
        return Response(status_code=status_code, headers=headers, media_type=media_type)

    metrics.increment_event("files.stream")
    return StreamingResponse(
        iter_file_range(path, start, end), status_code=status_code, headers=headers, media_type=media_type
    )


@router.get("/download/{movie_id}")
async def download(movie_id: int, session: AsyncSession = Depends(get_async_session)):
    path = await resolve_movie_file(session, movie_id)
    metrics.increment_event("files.download")
    return FileResponse(str(path), media_type=guess_video_type(path), filename=path.name)
