from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.auth.security import get_optional_user, rate_limiter_dependency
from cinescan.core import subtitles
from cinescan.core.database import get_async_session
from cinescan.core.errors import AppError, ErrorCode, NotFoundError
from cinescan.models.database import Movie, User as ORMUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subtitles", tags=["subtitles"], dependencies=[Depends(rate_limiter_dependency)])


async def _movie_video_path(session: AsyncSession, movie_id: int) -> str:
    movie = await session.get(Movie, movie_id)
    if movie is None:
        raise NotFoundError("Movie", details={"movie_id": movie_id})
    if not movie.local_path:
        raise NotFoundError("Movie file", details={"movie_id": movie_id})
    return movie.local_path


@router.get("/movie/{movie_id}")
async def list_subtitles(
    movie_id: int,
    session: AsyncSession = Depends(get_async_session),
    user: Optional[ORMUser] = Depends(get_optional_user),
):
    video_path = await _movie_video_path(session, movie_id)
    found = await asyncio.to_thread(subtitles.find_subtitles, video_path)
    items = [
        {
            **{k: v for k, v in sub.items() if k != "path"},
            "url": f"/api/subtitles/movie/{movie_id}/{sub['filename']}",
        }
        for sub in found
    ]
    logger.debug("subtitles_listed movie_id=%s user_id=%s count=%s", movie_id, user.id if user else None, len(items))
    return {"movie_id": movie_id, "subtitles": items, "count": len(items)}


@router.get("/movie/{movie_id}/{filename}")
async def get_subtitle(movie_id: int, filename: str, session: AsyncSession = Depends(get_async_session)):
    video_path = await _movie_video_path(session, movie_id)
    found = await asyncio.to_thread(subtitles.find_subtitles, video_path)
    match = next((s for s in found if s["filename"] == filename), None)
    if match is None:
        raise NotFoundError("Subtitle", details={"filename": filename})

    path = Path(match["path"])
    if match["format"] == "srt":
        body = await asyncio.to_thread(subtitles.convert_srt_file, path)
    elif match["format"] == "vtt":
        body = await asyncio.to_thread(subtitles.read_text, path)
    else:
        raise AppError(
            "Only SRT and VTT subtitles can be served",
            ErrorCode.UNSUPPORTED_MEDIA_TYPE,
            details={"format": match["format"]},
        )
    logger.debug("subtitle_served movie_id=%s file=%s", movie_id, filename)
    return Response(
        content=body,
        media_type="text/vtt",
        headers={"Cache-Control": "no-cache", "Access-Control-Allow-Origin": "*"},
    )
