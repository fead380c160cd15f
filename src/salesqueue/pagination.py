"""Cursor-driven accumulation of paged listings."""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class Page:
    """One page of a listing and the cursor for the next one (None at end)."""

    items: List[Any] = field(default_factory=list)
    next_cursor: Optional[str] = None


PageFetcher = Callable[[Optional[str], int], Awaitable[Page]]


async def fetch_paged(
    fetch_page: PageFetcher,
    limit: int,
    max_page_size: int = MAX_PAGE_SIZE,
) -> List[Any]:
    """Call `fetch_page` until `limit` items are collected or the stream ends.

    The first call gets no cursor; each later call gets the cursor returned
    by the previous page. Each request asks for at most `max_page_size`
    items and never more than are still missing. A page without a cursor
    ends the stream, even when fewer than `limit` items were collected.

    Args:
        fetch_page: async `(cursor, page_size) -> Page`
        limit: Maximum number of items to return
        max_page_size: Upper bound on a single request's page size

    Returns:
        At most `limit` items in upstream order.
    """
    items: List[Any] = []
    cursor: Optional[str] = None
    calls = 0

    while len(items) < limit:
        page_size = min(max_page_size, limit - len(items))
        page = await fetch_page(cursor, page_size)
        calls += 1
        items.extend(page.items)

        if not page.next_cursor:
            break
        cursor = page.next_cursor

    logger.debug(f"Paged fetch collected {len(items)} items in {calls} calls (limit={limit})")
    return items[:limit]
