"""
Error types raised by the hubclient REST client.

Every failed request surfaces as a subclass of RequestError carrying the
method and URL of the attempted request:

- PathError: a path could not be joined to the base API URL (never retried)
- SendError: transport failure once retries were exhausted
- StatusError: terminal 4xx/5xx response, with the captured body
- DeserializeError: the body was not valid JSON for the requested type, or a
  page had an ambiguous shape (never retried)
"""

from __future__ import annotations

import textwrap
from http import HTTPStatus
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from yarl import URL

    from hubclient.client.types import Method


class ClientConfigError(ValueError):
    """Raised when a ClientConfig or RetryConfig value is invalid."""


class ParseMethodError(ValueError):
    """Raised when parsing an unsupported HTTP method name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"invalid method name: {name!r}")
        self.name = name


class ParsePageError(ValueError):
    """Raised when a page response does not have a recognizable shape."""

    def __init__(self, message: str, list_count: int | None = None) -> None:
        super().__init__(message)
        self.list_count = list_count

    @classmethod
    def list_qty(cls, count: int) -> ParsePageError:
        """Object page with zero or several array-valued fields."""
        return cls(
            f"expected exactly one array of items in map page response, got {count}",
            list_count=count,
        )


class RequestError(Exception):
    """Base class for errors returned by HubClient requests."""

    # Only StatusError captures a response body.
    body: str | None = None


class PathError(RequestError):
    """Failed to construct a valid API URL from a given path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"failed to construct a GitHub API URL from path {path!r}")
        self.path = path


class SendError(RequestError):
    """Failed to perform the HTTP request.

    The underlying transport exception, if any, is chained as __cause__.
    """

    def __init__(self, method: Method, url: URL, reason: str | None = None) -> None:
        message = f"failed to make {method} request to {url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.method = method
        self.url = url
        self.reason = reason


class StatusError(RequestError):
    """The server returned a 4xx or 5xx status code.

    Attributes:
        method: HTTP method of the attempted request.
        url: URL the request was sent to.
        status: Response status code.
        body: Response body if read successfully and nonempty.  If the
            response declared a JSON content type, the body is pretty-printed.
    """

    def __init__(self, method: Method, url: URL, status: int, body: str | None = None) -> None:
        self.method = method
        self.url = url
        self.status = status
        self.body = body
        super().__init__(f"{method} request to {url} returned {status_line(status)}")

    def verbose(self) -> str:
        """Return the error message followed by the indented response body."""
        message = str(self)
        if self.body:
            message += "\n\n" + textwrap.indent(self.body, "    ") + "\n"
        return message


class DeserializeError(RequestError):
    """Failed to deserialize the response body.

    The decoding or validation error is chained as __cause__.
    """

    def __init__(self, method: Method, url: URL) -> None:
        super().__init__(f"failed to deserialize response body from {method} request to {url}")
        self.method = method
        self.url = url


def status_line(status: int) -> str:
    """Render a status code with its reason phrase, e.g. ``404 Not Found``."""
    try:
        return f"{status} {HTTPStatus(status).phrase}"
    except ValueError:
        return str(status)
