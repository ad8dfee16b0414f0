"""
HTTP transport for the REST client.

A transport performs exactly one HTTP call and either returns the response
(with its body fully read) or raises the low-level error.  It never retries
and never inspects status codes; that is the Retrier's job.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import aiohttp
from yarl import URL

from hubclient.client.response import HttpResponse
from hubclient.logging_config import get_logger

if TYPE_CHECKING:
    from types import SimpleNamespace

    from hubclient.client.types import ClientConfig, Method

logger = get_logger(__name__)

# Exceptions a transport may raise for a failed attempt
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (aiohttp.ClientError, TimeoutError)


class InsecureRedirectError(Exception):
    """Raised when a redirect points at a non-HTTPS URL and HTTPS is required.

    Not a transport error, so the request is not retried.
    """

    def __init__(self, location: URL) -> None:
        self.location = location
        super().__init__(f"refusing to follow redirect to non-HTTPS URL {location}")


class Transport(Protocol):
    """One-shot HTTP sender."""

    async def send(self, method: Method, url: URL, body: bytes | None = None) -> HttpResponse:
        """Send one request and return the response with its body read."""
        ...

    async def close(self) -> None:
        """Release any held connections."""
        ...


async def reject_insecure_redirect(
    session: aiohttp.ClientSession,
    trace_config_ctx: SimpleNamespace,
    params: aiohttp.TraceRequestRedirectParams,
) -> None:
    """
    on_request_redirect hook that stops a redirect to plain HTTP.

    aiohttp awaits this after a 3xx arrives and before it sends anything to
    the new location, so raising here aborts the request.
    """
    location = params.response.headers.get("Location")
    if location is None:
        return
    target = params.url.join(URL(location))
    if target.scheme != "https":
        logger.warning(
            "Refusing insecure redirect",
            extra={"method": params.method, "url": str(params.url)},
        )
        raise InsecureRedirectError(target)


class AiohttpTransport:
    """
    Transport backed by an aiohttp ClientSession.

    The session carries the client's default headers (User-Agent, Accept,
    X-GitHub-Api-Version and, when a token is configured, Authorization).
    aiohttp drops the Authorization header when a redirect leaves the
    original origin.  With ``https_only`` set, a redirect to a non-HTTPS
    location raises InsecureRedirectError before it is followed.
    """

    def __init__(self, config: ClientConfig) -> None:
        self._config = config
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_s)
            trace_configs = []
            if self._config.https_only:
                trace_config = aiohttp.TraceConfig()
                trace_config.on_request_redirect.append(reject_insecure_redirect)
                trace_configs.append(trace_config)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers=self._config.default_headers(),
                trace_configs=trace_configs,
            )
        return self._session

    async def send(self, method: Method, url: URL, body: bytes | None = None) -> HttpResponse:
        session = await self._get_session()
        headers = {"Content-Type": "application/json"} if body is not None else None
        async with session.request(method.value, url, data=body, headers=headers) as response:
            payload = await response.read()
            return HttpResponse(
                status=response.status,
                headers=response.headers,
                body=payload,
                url=response.url,
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
