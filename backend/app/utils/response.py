"""Standard response envelopes."""

import math
from typing import Any, Dict, Optional

from app.utils.serialization import serialize_doc

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def success(data: Any = None, message: str = "Success", pagination: Optional[Dict] = None) -> Dict:
    """Build a ``{"status": "success", ...}`` body"""
    body = {"status": "success", "message": message, "data": serialize_doc(data)}
    if pagination is not None:
        body["pagination"] = pagination
    return body


def error_body(message: str, errors: Optional[list] = None) -> Dict:
    body = {"status": "error", "message": message}
    if errors:
        body["errors"] = errors
    return body


def page_window(page: int, limit: int):
    """Clamp page/limit query params and return (page, limit, skip)."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


def pagination_meta(page: int, limit: int, total: int) -> Dict:
    pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
        "has_next": page < pages,
        "has_previous": page > 1,
    }
