"""Shared pagination types and helpers for list endpoints."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PaginationParams:
    page: int
    page_size: int
    skip: int
    search: Optional[str]


def parse_pagination_params(
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
) -> PaginationParams:
    page = max(1, page if page is not None else 1)
    page_size = min(MAX_PAGE_SIZE, max(1, page_size if page_size is not None else DEFAULT_PAGE_SIZE))
    search = (search or "").strip() or None
    return PaginationParams(page=page, page_size=page_size, skip=(page - 1) * page_size, search=search)


def paginated_result(data: List[Any], total: int, page: int, page_size: int) -> Dict[str, Any]:
    return {
        "data": data,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size) if page_size else 0,
    }
