from __future__ import annotations

from typing import Dict


def page_offset(page: int, limit: int) -> int:
    return (max(1, page) - 1) * limit


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    """Page metadata returned next to every paginated listing."""
    pages = (total + limit - 1) // limit if limit > 0 else 0
    return {"page": page, "limit": limit, "total": total, "pages": pages}


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """LIKE pattern matching ``term`` as a literal substring (use with ``escape=LIKE_ESCAPE``)."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
