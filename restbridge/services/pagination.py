import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    TypeVar,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_PAGES = 1000

PageFetcher = Callable[[int, int], Awaitable[Optional[Mapping[str, Any]]]]


@dataclass
class PageCollection(Generic[T]):
    items: List[T] = field(default_factory=list)
    has_more: bool = False
    pages_fetched: int = 0


def has_next_link(page: Mapping[str, Any]) -> bool:
    links = page.get("links")
    if not isinstance(links, list):
        return False
    return any(isinstance(link, dict) and link.get("rel") == "next" for link in links)


async def fetch_all_pages(
    fetch_page: PageFetcher,
    extract: Callable[[Mapping[str, Any]], Iterable[T]],
    *,
    items_per_page: int,
    max_pages: int = DEFAULT_MAX_PAGES,
    key: Optional[Callable[[T], Hashable]] = None,
    limit: Optional[int] = None,
) -> PageCollection[T]:
    """
    Walk a paginated backend listing from page 1, strictly in order.

    Stops when a page is missing or empty, when a page carries no ``next``
    link, when ``limit`` items have been collected, or after ``max_pages``
    pages. In the last two cases ``has_more`` reports whether the backend
    had more to give. Items sharing a ``key`` are kept once, first wins.
    Exceptions raised by ``fetch_page`` propagate; no partial result is
    returned.
    """
    result: PageCollection[T] = PageCollection()
    seen: set = set()
    page_number = 1

    while True:
        if result.pages_fetched >= max_pages:
            logger.warning(
                "Reached maximum page limit (%d); returning %d items with more available",
                max_pages,
                len(result.items),
            )
            result.has_more = True
            break

        page = await fetch_page(page_number, items_per_page)
        if not page:
            result.has_more = False
            break

        result.pages_fetched += 1

        for item in extract(page):
            if key is not None:
                item_key = key(item)
                if item_key in seen:
                    continue
                seen.add(item_key)
            result.items.append(item)

        more = has_next_link(page)
        logger.debug(
            "Fetched page %d, items so far: %d, has_more: %s",
            page_number,
            len(result.items),
            more,
        )

        if limit is not None and len(result.items) >= limit:
            result.has_more = more or len(result.items) > limit
            del result.items[limit:]
            break
        if not more:
            result.has_more = False
            break
        page_number += 1

    return result
