"""
Async client for the GitHub REST API.

- Paths are joined to the base API URL; absolute URLs are used as-is
- Responses are decoded from JSON into caller-supplied types
- Mutating requests are spaced at least one second apart
- Transport errors, 5xx responses and rate-limit 403s are retried (see
  hubclient.client.retrier)
- Paginated endpoints are iterated lazily by following Link headers
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, TypeVar

from yarl import URL

from hubclient.client.codec import encode_payload
from hubclient.client.errors import DeserializeError, PathError, RequestError, SendError
from hubclient.client.pagination import PaginationIterator
from hubclient.client.retrier import Retrier, RetryConfig, Success
from hubclient.client.throttle import MutationThrottle, shared_throttle
from hubclient.client.transport import TRANSPORT_ERRORS, AiohttpTransport, InsecureRedirectError
from hubclient.client.types import ClientConfig, ClientMetrics, Method, ThrottleScope
from hubclient.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from hubclient.client.response import HttpResponse
    from hubclient.client.transport import Transport

logger = get_logger(__name__)

T = TypeVar("T")


class HubClient:
    """
    Async REST client with retries, rate-limit handling and pagination.

    The client owns one transport, one mutation throttle (unless a shared one
    is configured or passed in) and a set of counters.  Each logical request
    gets its own Retrier, so concurrent requests do not share retry budgets.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        retry_config: RetryConfig | None = None,
        transport: Transport | None = None,
        throttle: MutationThrottle | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        time_fn: Callable[[], float] | None = None,
        wall_time_fn: Callable[[], float] | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Client configuration.
            retry_config: Retry/backoff configuration.
            transport: Transport to send requests with (default: aiohttp).
            throttle: Mutation throttle to use.  Overrides config.throttle_scope;
                pass the same instance to several clients to share spacing.
            sleep: Coroutine used for all waits (default: asyncio.sleep).
            time_fn: Monotonic clock in seconds.
            wall_time_fn: Unix clock in seconds.
        """
        self._config = config or ClientConfig()
        self._retry_config = retry_config or RetryConfig()
        self._transport: Transport = transport or AiohttpTransport(self._config)
        self._sleep = sleep or asyncio.sleep
        self._time_fn = time_fn or time.monotonic
        self._wall_time_fn = wall_time_fn or time.time
        if throttle is not None:
            self._throttle = throttle
        elif self._config.throttle_scope is ThrottleScope.SHARED:
            self._throttle = shared_throttle(
                self._config.api_url,
                self._config.token,
                self._config.mutation_delay_s,
                time_fn=self._time_fn,
                sleep_fn=self._sleep,
            )
        else:
            self._throttle = MutationThrottle(
                delay_s=self._config.mutation_delay_s,
                _time_fn=self._time_fn,
                _sleep_fn=self._sleep,
            )
        self._metrics = ClientMetrics()

    @classmethod
    def with_token(cls, token: str, **kwargs: Any) -> HubClient:
        """Create a client that authenticates with ``token``."""
        return cls(ClientConfig(token=token), **kwargs)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def metrics(self) -> ClientMetrics:
        return self._metrics

    @property
    def throttle(self) -> MutationThrottle:
        return self._throttle

    async def close(self) -> None:
        """Close the underlying transport."""
        await self._transport.close()

    async def __aenter__(self) -> HubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def mkurl(self, path: str | URL) -> URL:
        """
        Resolve ``path`` against the base API URL.

        Absolute URLs are returned unchanged; ``"/users/octocat"`` and
        ``"users/octocat"`` both resolve to ``<api_url>/users/octocat``.

        Raises:
            PathError: If ``path`` cannot be parsed or joined.
        """
        try:
            target = path if isinstance(path, URL) else URL(path)
            if target.is_absolute():
                return target
            # A leading slash would replace the path of api_url (e.g. /api/v3/)
            return self._config.base_url.join(URL(str(target).lstrip("/")))
        except (TypeError, ValueError) as e:
            raise PathError(str(path)) from e

    async def request(
        self,
        method: Method,
        url: URL | str,
        payload: Any = None,
    ) -> HttpResponse:
        """
        Send a request to an absolute URL, retrying as needed.

        If ``method`` is mutating, first wait until at least mutation_delay_s
        has passed since the previous mutating attempt.  ``payload``, if not
        None, is serialized as JSON and sent as the body.

        Returns:
            The first non-retried, non-error response.  Its body is unread.

        Raises:
            SendError: Transport failure after retries, a non-HTTPS URL or a
                redirect to one.
            StatusError: Terminal 4xx/5xx response.
        """
        url = URL(url) if isinstance(url, str) else url
        self._metrics.requests += 1
        if self._config.https_only and url.scheme != "https":
            self._metrics.failures += 1
            raise SendError(method, url, "only HTTPS URLs are supported")
        body = encode_payload(payload) if payload is not None else None

        if method.is_mutating:
            waited = await self._throttle.wait()
            if waited > 0:
                self._metrics.mutation_waits += 1

        retrier = Retrier(
            method,
            url,
            self._retry_config,
            time_fn=self._time_fn,
            wall_time_fn=self._wall_time_fn,
        )
        while True:
            if method.is_mutating:
                self._throttle.stamp()
            logger.debug("Sending request", extra={"method": str(method), "url": str(url)})
            self._metrics.attempts += 1
            outcome: HttpResponse | Exception
            try:
                outcome = await self._transport.send(method, url, body)
            except InsecureRedirectError as e:
                self._metrics.failures += 1
                raise SendError(method, url, str(e)) from e
            except TRANSPORT_ERRORS as e:
                logger.debug(
                    "Request failed",
                    extra={"error": str(e), "attempt": retrier.attempts + 1},
                )
                outcome = e
            else:
                logger.debug("Server returned", extra={"status": outcome.status})

            try:
                decision = retrier.handle(outcome)
            except RequestError as e:
                self._metrics.failures += 1
                logger.warning(
                    "Request failed permanently",
                    extra={
                        "method": str(method),
                        "url": str(url),
                        "attempts": retrier.attempts,
                        "error": type(e).__name__,
                    },
                )
                raise

            if isinstance(decision, Success):
                if decision.response.url is None:
                    decision.response.url = url
                return decision.response

            self._metrics.retries += 1
            if decision.reason.is_rate_limit:
                self._metrics.rate_limit_waits += 1
            logger.debug(
                "Waiting and then retrying request",
                extra={"delay_s": round(decision.delay_s, 3), "reason": decision.reason.value},
            )
            await self._sleep(decision.delay_s)

    async def request_json(
        self,
        method: Method,
        path: str | URL,
        payload: Any = None,
        response_type: Any = Any,
    ) -> Any:
        """
        Send a request to ``path`` and decode the JSON response body.

        Args:
            method: HTTP method.
            path: Path relative to the base API URL, or an absolute URL.
            payload: JSON-serializable request body, or None.
            response_type: Type to validate the decoded body into
                (Any returns the raw JSON value).

        Raises:
            PathError, SendError, StatusError: See request().
            DeserializeError: If the body is not valid JSON for ``response_type``.
        """
        url = self.mkurl(path)
        response = await self.request(method, url, payload)
        try:
            return response.json(response_type)
        except ValueError as e:
            self._metrics.failures += 1
            raise DeserializeError(method, url) from e

    async def get(self, path: str | URL, response_type: Any = Any) -> Any:
        """GET ``path`` and decode the response as ``response_type``."""
        return await self.request_json(Method.GET, path, None, response_type)

    async def post(self, path: str | URL, payload: Any, response_type: Any = Any) -> Any:
        """POST ``payload`` to ``path`` and decode the response as ``response_type``."""
        return await self.request_json(Method.POST, path, payload, response_type)

    async def put(self, path: str | URL, payload: Any, response_type: Any = Any) -> Any:
        """PUT ``payload`` to ``path`` and decode the response as ``response_type``."""
        return await self.request_json(Method.PUT, path, payload, response_type)

    async def patch(self, path: str | URL, payload: Any, response_type: Any = Any) -> Any:
        """PATCH ``payload`` to ``path`` and decode the response as ``response_type``."""
        return await self.request_json(Method.PATCH, path, payload, response_type)

    async def delete(self, path: str | URL) -> None:
        """DELETE ``path``.  The response body is discarded."""
        url = self.mkurl(path)
        await self.request(Method.DELETE, url)

    def paginate(self, path: str | URL, item_type: Any = Any) -> PaginationIterator[Any]:
        """
        Iterate over the items of a paginated endpoint.

        Starts with a GET of ``path`` and follows the ``rel="next"`` links of
        the Link response headers.  Pages may be bare arrays of items or
        objects with a single array field.

        Raises:
            PathError: Immediately, if ``path`` cannot be resolved.  Request
                errors are raised from the iterator.
        """
        return PaginationIterator(self, self.mkurl(path), item_type)
