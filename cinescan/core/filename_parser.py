"""Release-name parsing for movie files.

Turns names like ``The.Matrix.1999.1080p.BluRay.x264-GRP.mkv`` into a title,
a year and the technical tags the catalog stores (resolution, codec,
container).
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

# 1900-2035
YEAR_PATTERN = re.compile(r"(?<!\d)(19\d{2}|20[0-2]\d|203[0-5])(?!\d)")
RESOLUTION_PATTERN = re.compile(r"\b(\d{3,4}p|4k|uhd)\b", re.IGNORECASE)
CODEC_PATTERN = re.compile(r"\b(x264|x265|h\.?264|h\.?265|hevc|xvid|divx|av1)\b", re.IGNORECASE)
# Tags that end the title part of a release name
RELEASE_TAG_PATTERN = re.compile(
    r"\b(720p|1080p|2160p|480p|4k|uhd|hdr|hdr10|dvdrip|brrip|bdrip|webrip|web[ -]?dl|hdtv|bluray|"
    r"blu[ -]ray|remux|proper|repack|truefrench|vostfr|"
    r"x264|x265|h264|h265|hevc|xvid|divx|av1|aac|ac3|dts|ddp?5[ .]1)\b",
    re.IGNORECASE,
)
BRACKETED = re.compile(r"\[[^\]]*\]|\{[^}]*\}")
EMPTY_PARENS = re.compile(r"\(\s*\)")

GENERIC_FOLDER_NAMES = {"movies", "films", "film", "video", "videos", "downloads", "subs", "done", "new folder"}

MIN_FOLDER_TITLE_LENGTH = 3
MIN_TITLE_LENGTH = 2


@dataclass
class ParsedName:
    title: str
    year: Optional[int] = None
    resolution: Optional[str] = None
    codec: Optional[str] = None
    container: Optional[str] = None


def _normalize_codec(raw: str) -> str:
    return raw.lower().replace(".", "")


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip(" -_.([")


def parse_movie_filename(name: str) -> ParsedName:
    """Parse a bare file or folder name (extension optional)."""
    container = None
    stem = name
    suffix = Path(name).suffix
    if suffix and len(suffix) <= 5 and suffix[1:].isalnum() and not suffix[1:].isdigit():
        container = suffix[1:].lower()
        stem = name[: -len(suffix)]

    resolution_match = RESOLUTION_PATTERN.search(stem)
    codec_match = CODEC_PATTERN.search(stem)

    text = BRACKETED.sub(" ", stem)
    text = re.sub(r"[._]", " ", text)

    year = None
    cut = len(text)
    # A year at position 0 is part of the title ("2001 A Space Odyssey")
    for match in YEAR_PATTERN.finditer(text):
        if match.start() == 0:
            continue
        year = int(match.group(1))
        cut = match.start()
        break
    tag = RELEASE_TAG_PATTERN.search(text)
    if tag and tag.start() > 0 and tag.start() < cut:
        cut = tag.start()

    title = EMPTY_PARENS.sub(" ", text[:cut])
    title = _collapse(title)

    return ParsedName(
        title=title,
        year=year,
        resolution=resolution_match.group(1).lower() if resolution_match else None,
        codec=_normalize_codec(codec_match.group(1)) if codec_match else None,
        container=container,
    )


def parse_movie_path(path: Union[str, Path], root: Optional[Union[str, Path]] = None) -> Optional[ParsedName]:
    """Parse a video path, preferring the parent folder name over the file name.

    Release folders usually carry the cleanest name; the file name is used
    when the folder is the library root, a generic name, or too short.
    Returns None when no usable title can be extracted.
    """
    p = Path(path)
    file_parsed = parse_movie_filename(p.name)
    folder = p.parent
    parsed = None
    use_folder = bool(folder.name) and folder.name.lower() not in GENERIC_FOLDER_NAMES
    if root is not None and use_folder:
        try:
            use_folder = folder.resolve() != Path(root).resolve()
        except OSError:
            use_folder = False
    if use_folder:
        folder_parsed = parse_movie_filename(folder.name)
        # Folder names have no extension; anything parsed as one is part of the name
        if folder_parsed.container:
            folder_parsed = parse_movie_filename(folder.name + ".dir")
        if len(folder_parsed.title) >= MIN_FOLDER_TITLE_LENGTH:
            parsed = folder_parsed
            parsed.container = file_parsed.container
            parsed.year = parsed.year or file_parsed.year
            parsed.resolution = parsed.resolution or file_parsed.resolution
            parsed.codec = parsed.codec or file_parsed.codec
    if parsed is None:
        parsed = file_parsed
    if len(parsed.title) < MIN_TITLE_LENGTH:
        return None
    return parsed


def clean_title_for_search(title: str) -> str:
    """Strip punctuation and collapse whitespace for a looser TMDB query."""
    text = re.sub(r"[^\w\s]", " ", title)
    return re.sub(r"\s+", " ", text).strip()


def strip_release_tags(title: str) -> str:
    """Remove separators and quality/codec tags left inside a title."""
    text = re.sub(r"[._-]", " ", title)
    text = RELEASE_TAG_PATTERN.sub(" ", text)
    text = re.sub(r"\b(hd|web|dl)\b", " ", text, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", text).strip()


def is_supported_video(path: Union[str, Path], extensions: Iterable[str]) -> bool:
    return Path(path).suffix.lower() in {e.lower() for e in extensions}


_IGNORED_SUFFIXES = (".tmp", ".temp", ".swp", ".part", ".crdownload", "~")
_IGNORED_NAMES = {"thumbs.db", "desktop.ini", ".ds_store"}


def is_ignored_name(name: str) -> bool:
    """Hidden files, editor/download temp files and OS metadata files."""
    lower = name.lower()
    return lower.startswith(".") or lower in _IGNORED_NAMES or lower.endswith(_IGNORED_SUFFIXES)
