"""
Lazy iteration over paginated list endpoints.

The iterator issues one GET per page, following the ``rel="next"`` link of
each response's Link header, and yields items one at a time.  It is an
explicit three-state cursor:

    HAS_BUFFERED_ITEMS --buffer empty, next link--> NEEDS_FETCH
    HAS_BUFFERED_ITEMS --buffer empty, no link----> DONE
    NEEDS_FETCH --------page fetched--------------> HAS_BUFFERED_ITEMS
    NEEDS_FETCH --------request failed------------> DONE (error raised)

DONE is terminal: once the iterator has ended or raised, every further call
raises StopAsyncIteration.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from hubclient.client.errors import DeserializeError
from hubclient.client.page import Page, decode_page
from hubclient.client.types import Method
from hubclient.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from yarl import URL

    from hubclient.client.rest_client import HubClient

logger = get_logger(__name__)

T = TypeVar("T")


class PaginationState(str, Enum):
    """Cursor state of a PaginationIterator."""

    HAS_BUFFERED_ITEMS = "HAS_BUFFERED_ITEMS"
    NEEDS_FETCH = "NEEDS_FETCH"
    DONE = "DONE"


class PaginationIterator(Generic[T]):
    """
    Async iterator over the items of a paginated endpoint.

    Usage:
        async for repo in client.paginate("/users/octocat/repos", Repository):
            ...
    """

    def __init__(self, client: HubClient, url: URL, item_type: Any = Any) -> None:
        self._client = client
        self._item_type = item_type
        self._next_url: URL | None = url
        self._items: Iterator[T] | None = None
        self._state = PaginationState.NEEDS_FETCH
        self._last_page: Page[T] | None = None
        self.pages_fetched = 0

    @property
    def state(self) -> PaginationState:
        return self._state

    @property
    def next_url(self) -> URL | None:
        return self._next_url

    @property
    def total_count(self) -> int | None:
        """total_count reported by the most recently fetched page."""
        return self._last_page.total_count if self._last_page is not None else None

    @property
    def incomplete_results(self) -> bool | None:
        """incomplete_results reported by the most recently fetched page."""
        return self._last_page.incomplete_results if self._last_page is not None else None

    def __aiter__(self) -> PaginationIterator[T]:
        return self

    async def __anext__(self) -> T:
        while True:
            if self._state is PaginationState.HAS_BUFFERED_ITEMS and self._items is not None:
                for item in self._items:
                    return item
                self._items = None
                if self._next_url is not None:
                    self._state = PaginationState.NEEDS_FETCH
                else:
                    self._state = PaginationState.DONE
            elif self._state is PaginationState.NEEDS_FETCH and self._next_url is not None:
                url, self._next_url = self._next_url, None
                try:
                    page, next_url = await self._fetch(url)
                except Exception:
                    self._state = PaginationState.DONE
                    raise
                self._last_page = page
                self._items = iter(page.items)
                self._next_url = next_url
                self._state = PaginationState.HAS_BUFFERED_ITEMS
            else:
                self._state = PaginationState.DONE
                raise StopAsyncIteration

    async def _fetch(self, url: URL) -> tuple[Page[T], URL | None]:
        """GET one page; return it with the absolute URL of the following page."""
        response = await self._client.request(Method.GET, url)
        try:
            page: Page[T] = decode_page(response.json(), self._item_type)
        except ValueError as e:
            raise DeserializeError(Method.GET, url) from e
        next_url = response.next_link()
        self.pages_fetched += 1
        logger.debug(
            "Fetched page",
            extra={
                "page": self.pages_fetched,
                "items": len(page.items),
                "has_next": next_url is not None,
            },
        )
        return page, next_url
