"""Bounded iteration over paginated knowledge-base listings."""

from __future__ import annotations

from typing import Callable, Iterator

from sensay_cli.api.client import EntryPage, KnowledgeService
from sensay_cli.core.logging import get_logger
from sensay_cli.models.entities import KnowledgeEntry

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 100
MAX_PAGES = 1000

PageFetcher = Callable[[int, int], EntryPage]


def iter_pages(fetch: PageFetcher, page_size: int = DEFAULT_PAGE_SIZE, max_pages: int = MAX_PAGES) -> Iterator[EntryPage]:
    """Yield pages starting at 1 until a short or final page, stopping after ``max_pages``.

    A page is final when the reported total is covered; without a total only a
    short page ends the listing.
    """
    for page in range(1, max_pages + 1):
        result = fetch(page, page_size)
        yield result
        if len(result.items) < page_size or not result.has_more:
            return
    logger.warning("Stopped paging after %s full pages; listing may be incomplete", max_pages)


def iter_entries(
    service: KnowledgeService,
    replica_id: str | None,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = MAX_PAGES,
) -> Iterator[KnowledgeEntry]:
    def fetch(page: int, size: int) -> EntryPage:
        return service.list_entries(replica_id, page, size)

    for result in iter_pages(fetch, page_size=page_size, max_pages=max_pages):
        yield from result.items


def list_all_entries(
    service: KnowledgeService,
    replica_id: str | None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[KnowledgeEntry]:
    return list(iter_entries(service, replica_id, page_size=page_size))


__all__ = ["iter_entries", "iter_pages", "list_all_entries", "DEFAULT_PAGE_SIZE", "MAX_PAGES"]
