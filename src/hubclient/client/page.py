"""
Decoding of list-endpoint pages.

List endpoints return either a bare JSON array of items, or an object with a
single array field holding the items alongside optional ``total_count`` and
``incomplete_results`` fields (search endpoints use ``items``; others use a
resource name such as ``workflow_runs``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import orjson
from pydantic import ValidationError

from hubclient.client.codec import validate
from hubclient.client.errors import ParsePageError

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """
    One page of items.

    Attributes:
        items: Items on the page, in response order.
        total_count: Total number of matching items, when the API reports it.
        incomplete_results: Search timeout flag, when the API reports it.
    """

    items: list[T] = field(default_factory=list)
    total_count: int | None = None
    incomplete_results: bool | None = None


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _item_lists(document: dict[str, Any], item_type: Any) -> list[list[Any]]:
    """
    Array fields of an object page that validate as ``list[item_type]``.

    Arrays of some other element type (for example a list of enabled modes
    next to the items) are not candidates.
    """
    lists: list[list[Any]] = []
    for value in document.values():
        if not isinstance(value, list):
            continue
        if item_type is Any:
            lists.append(value)
            continue
        try:
            lists.append(validate(value, list[item_type]))
        except ValidationError:
            continue
    return lists


def decode_page(document: Any, item_type: Any = Any) -> Page[Any]:
    """
    Normalize a parsed page document into a Page.

    Args:
        document: Parsed JSON of one page response.
        item_type: Type each item is validated into (Any keeps raw JSON).

    Returns:
        Page with the validated items.

    Raises:
        ParsePageError: If the document is neither an array nor an object
            with exactly one array field whose elements match ``item_type``.
        pydantic.ValidationError: If an item of a bare array does not match
            ``item_type``.
    """
    if isinstance(document, list):
        return Page(items=validate(document, list[item_type]))

    if not isinstance(document, dict):
        raise ParsePageError(
            f"expected a JSON array or object page response, got {type(document).__name__}"
        )

    total_count = document.get("total_count")
    incomplete_results = document.get("incomplete_results")
    lists = _item_lists(document, item_type)
    if len(lists) != 1:
        raise ParsePageError.list_qty(len(lists))

    return Page(
        items=lists[0],
        total_count=total_count if _is_count(total_count) else None,
        incomplete_results=incomplete_results if isinstance(incomplete_results, bool) else None,
    )


def decode_page_bytes(body: bytes, item_type: Any = Any) -> Page[Any]:
    """Parse a page response body and decode it with decode_page()."""
    return decode_page(orjson.loads(body), item_type)
