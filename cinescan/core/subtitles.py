"""Subtitle discovery, language detection and SRT to WebVTT conversion."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

SUBTITLE_EXTENSIONS = (".srt", ".sub", ".vtt", ".ass", ".ssa")
SUBS_FOLDER_NAMES = ("subs", "subtitles")
DEFAULT_LANGUAGE = "English"

_TIMING = re.compile(
    r"^\s*(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})(.*)$"
)

# Filename tokens (split on . _ - space) -> display language
_LANGUAGE_TOKENS: List[Tuple[Tuple[str, ...], str]] = [
    (("fr", "fre", "fra", "french", "francais", "français", "vf", "vff"), "Français"),
    (("en", "eng", "english"), "English"),
    (("es", "esp", "spa", "spanish", "espanol", "español"), "Español"),
    (("de", "ger", "deu", "german", "deutsch"), "Deutsch"),
    (("it", "ita", "italian", "italiano"), "Italiano"),
    (("pt", "por", "portuguese", "portugues", "português"), "Português"),
    (("ru", "rus", "russian"), "Русский"),
    (("ja", "jpn", "japanese"), "日本語"),
    (("ko", "kor", "korean"), "한국어"),
    (("zh", "chi", "zho", "chinese"), "中文"),
]

# Function-word markers checked against the first lines of the file
_CONTENT_MARKERS: List[Tuple[Tuple[str, ...], str]] = [
    ((" the ", " and ", " of "), "English"),
    ((" le ", " et ", " de "), "Français"),
    ((" el ", " y ", " de "), "Español"),
    ((" der ", " und ", " von "), "Deutsch"),
    ((" il ", " e ", " di "), "Italiano"),
]


def srt_to_vtt(text: str) -> str:
    """Convert SRT content to WebVTT.

    Sequence numbers are dropped and comma milliseconds become dots; blocks
    without a valid timing line are skipped.
    """
    content = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    out = ["WEBVTT", ""]
    for block in re.split(r"\n\s*\n", content):
        lines = [line for line in block.strip("\n").split("\n")]
        if not lines or not lines[0].strip():
            continue
        timing_index = None
        for i, line in enumerate(lines[:2]):
            if "-->" in line:
                timing_index = i
                break
        if timing_index is None:
            continue
        match = _TIMING.match(lines[timing_index])
        if match is None:
            continue
        h1, m1, s1, ms1, h2, m2, s2, ms2, settings = match.groups()
        cue = f"{int(h1):02d}:{m1}:{s1}.{ms1} --> {int(h2):02d}:{m2}:{s2}.{ms2}{settings.rstrip()}"
        body = [line.rstrip() for line in lines[timing_index + 1:]]
        if not any(body):
            continue
        out.append(cue)
        out.extend(body)
        out.append("")
    return "\n".join(out) + "\n"


def read_text(path: Path) -> str:
    """Read a subtitle file as UTF-8, falling back to Latin-1 for legacy encodings."""
    raw = Path(path).read_bytes()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def convert_srt_file(path: Path) -> str:
    return srt_to_vtt(read_text(path))


def _language_from_name(filename: str) -> Optional[str]:
    stem = Path(filename).stem.lower()
    tokens = set(re.split(r"[._\-\s\[\]()]+", stem))
    for names, language in _LANGUAGE_TOKENS:
        if tokens.intersection(names):
            return language
    return None


def _language_from_content(path: Path) -> Optional[str]:
    try:
        lines = read_text(path).splitlines()[:20]
    except OSError as exc:
        logger.debug("subtitle_read_failed path=%s err=%s", path, exc)
        return None
    sample = " " + " ".join(lines).lower() + " "
    for markers, language in _CONTENT_MARKERS:
        if all(m in sample for m in markers):
            return language
    return None


def detect_language(filename: str, path: Optional[Path] = None) -> str:
    return _language_from_name(filename) or (path is not None and _language_from_content(path)) or DEFAULT_LANGUAGE


def find_subtitles(video_path: str) -> List[Dict[str, Any]]:
    """Subtitle files next to the video and in a sibling subs/ folder."""
    movie_dir = Path(video_path).parent
    if not movie_dir.is_dir():
        return []
    search: List[Tuple[Path, str]] = [(movie_dir, "same_folder")]
    for child in movie_dir.iterdir():
        if child.is_dir() and child.name.lower() in SUBS_FOLDER_NAMES:
            search.append((child, "subs_folder"))

    found: List[Dict[str, Any]] = []
    for folder, location in search:
        for entry in folder.iterdir():
            if not entry.is_file() or entry.suffix.lower() not in SUBTITLE_EXTENSIONS:
                continue
            found.append({
                "path": str(entry),
                "filename": entry.name,
                "language": detect_language(entry.name, entry),
                "size": entry.stat().st_size,
                "format": entry.suffix.lower().lstrip("."),
                "location": location,
            })
    found.sort(key=lambda s: s["filename"].lower())
    return found
