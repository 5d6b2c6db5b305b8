from __future__ import annotations

import math
from typing import Union

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

PageItem = Union[int, str]


def page_range(page: int, page_size: int) -> tuple[int, int]:
    """Inclusive row window for a 1-based page."""
    page = max(1, int(page or 1))
    size = min(MAX_PAGE_SIZE, max(1, int(page_size or DEFAULT_PAGE_SIZE)))
    start = (page - 1) * size
    return start, start + size - 1


def total_pages(total_items: int, page_size: int) -> int:
    size = max(1, int(page_size or DEFAULT_PAGE_SIZE))
    return math.ceil(max(0, int(total_items or 0)) / size)


def generate_pagination(current_page: int, page_count: int) -> list[PageItem]:
    if page_count <= 7:
        return list(range(1, page_count + 1))
    if current_page <= 3:
        return [1, 2, 3, 4, 5, "...", page_count]
    if current_page >= page_count - 2:
        return [1, "...", page_count - 4, page_count - 3, page_count - 2, page_count - 1, page_count]
    return [1, "...", current_page - 1, current_page, current_page + 1, "...", page_count]


def build_page(items: list, total_count: int, page: int, page_size: int) -> dict:
    size = min(MAX_PAGE_SIZE, max(1, int(page_size or DEFAULT_PAGE_SIZE)))
    current = max(1, int(page or 1))
    pages = total_pages(total_count, size)
    return {
        "items": items,
        "totalCount": total_count,
        "page": current,
        "pageSize": size,
        "totalPages": pages,
        "pageItems": generate_pagination(current, pages),
    }
