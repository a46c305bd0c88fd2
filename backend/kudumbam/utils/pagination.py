"""
Kudumbam — Pagination helpers
"""

import math


def page_offset(page: int, per_page: int) -> tuple[int, int]:
    """(page, offset) with page clamped to at least 1."""
    page = max(1, int(page or 1))
    return page, (page - 1) * per_page


def pagination_payload(page: int, total: int, per_page: int) -> dict:
    return {
        "current_page": page,
        "total_pages": max(1, math.ceil(total / per_page)) if per_page else 1,
        "total_items": total,
        "items_per_page": per_page,
    }


def page_meta(page: int, limit: int, total: int) -> dict:
    """The {page, limit, total, pages} block returned by the community listings."""
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if limit else 0}


def clamp_limit(limit, default: int, ceiling: int = 100) -> int:
    return max(1, min(int(limit or default), ceiling))
