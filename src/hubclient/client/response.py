"""
HTTP response wrapper with a one-shot body, plus header helpers.

The body of an HttpResponse may be read at most once; reading it again
raises RuntimeError.  ResponseParts is the status/headers/text triple left
over once the body has been consumed, used for rate-limit inspection and for
capturing error bodies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import orjson
from aiohttp.helpers import parse_mimetype
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from hubclient.client.codec import decode_json, pretty_json
from hubclient.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = get_logger(__name__)

# <uri> followed by its parameters, up to the next link-value
_LINK_VALUE = re.compile(r"<(?P<uri>[^>]*)>(?P<params>[^<]*)")
_LINK_PARAM = re.compile(
    r';\s*(?P<name>[^\s=;,]+)\s*(?:=\s*(?P<value>"(?:[^"\\]|\\.)*"|[^;,\s]*))?'
)


def _as_headers(headers: Mapping[str, str] | None) -> CIMultiDictProxy[str]:
    if headers is None:
        return CIMultiDictProxy(CIMultiDict())
    return CIMultiDictProxy(CIMultiDict(headers))


class HttpResponse:
    """
    A received HTTP response.

    Attributes:
        status: Status code.
        headers: Case-insensitive response headers.
        url: Final URL of the response, if known.
    """

    def __init__(
        self,
        status: int,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        url: URL | str | None = None,
    ) -> None:
        self.status = status
        self.headers = _as_headers(headers)
        self.url = URL(url) if url is not None else None
        self._body: bytes | None = body

    def __repr__(self) -> str:
        return f"<HttpResponse {self.status} url={self.url}>"

    @property
    def reason(self) -> str:
        try:
            return HTTPStatus(self.status).phrase
        except ValueError:
            return ""

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status < 600

    @property
    def is_error(self) -> bool:
        return self.is_client_error or self.is_server_error

    @property
    def body_consumed(self) -> bool:
        return self._body is None

    def header(self, name: str) -> str | None:
        return self.headers.get(name)

    def read(self) -> bytes:
        """Take the body.  May be called only once."""
        if self._body is None:
            raise RuntimeError("response body has already been read")
        body, self._body = self._body, None
        return body

    def text(self) -> str | None:
        """Take the body as UTF-8 text, or None if it is not valid UTF-8."""
        try:
            return self.read().decode("utf-8")
        except UnicodeDecodeError:
            return None

    def json(self, target: Any = Any) -> Any:
        """Take the body, parse it as JSON and validate it into ``target``."""
        return decode_json(self.read(), target)

    def next_link(self) -> URL | None:
        """The ``rel="next"`` URL from the Link header(s), if any."""
        return get_next_link(self.headers.getall("Link", []), base=self.url)


@dataclass(frozen=True)
class ResponseParts:
    """Status, headers and body text of a response whose body has been read."""

    status: int
    headers: CIMultiDictProxy[str]
    text: str | None

    @classmethod
    def from_response(cls, response: HttpResponse) -> ResponseParts:
        text = None if response.body_consumed else response.text()
        return cls(status=response.status, headers=response.headers, text=text)

    def header(self, name: str) -> str | None:
        return self.headers.get(name)

    def error_body(self) -> str | None:
        """Body text as captured in a StatusError.

        None for an empty or unreadable body; pretty-printed if the response
        declared a JSON content type and the body parses; raw text otherwise.
        """
        if not self.text:
            return None
        if is_json_content_type(self.header("Content-Type")):
            try:
                return pretty_json(self.text)
            except orjson.JSONDecodeError:
                logger.debug("Error body declared as JSON failed to parse")
        return self.text


def is_json_content_type(value: str | None) -> bool:
    """True for ``application/json`` and ``application/*+json`` media types."""
    if not value:
        return False
    mimetype = parse_mimetype(value)
    return mimetype.type == "application" and (
        mimetype.subtype == "json" or mimetype.suffix == "json"
    )


def _parse_link_params(params: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for match in _LINK_PARAM.finditer(params):
        name = match.group("name").lower()
        value = match.group("value") or ""
        if value.startswith('"'):
            value = re.sub(r"\\(.)", r"\1", value[1:-1])
        # First occurrence wins
        parsed.setdefault(name, value)
    return parsed


def get_next_link(link_headers: str | list[str], base: URL | None = None) -> URL | None:
    """
    Find the ``rel="next"`` target in Link header value(s) (RFC 8288).

    Relation types are matched case-insensitively and a ``rel`` parameter may
    list several space-separated relations.  Relative targets are resolved
    against ``base`` when it is given.

    Args:
        link_headers: One Link header value, or every value of a repeated header.
        base: URL to resolve relative references against.

    Returns:
        The next-page URL, or None if no link has relation ``next``.
    """
    if isinstance(link_headers, str):
        link_headers = [link_headers]
    for header in link_headers:
        for match in _LINK_VALUE.finditer(header):
            params = _parse_link_params(match.group("params"))
            rels = params.get("rel", "").lower().split()
            if "next" not in rels:
                continue
            try:
                target = URL(match.group("uri").strip())
            except ValueError:
                logger.warning("Ignoring unparseable next link", extra={"link": header})
                return None
            if base is not None and not target.is_absolute():
                target = base.join(target)
            return target
    return None
