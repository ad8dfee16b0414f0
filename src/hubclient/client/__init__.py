"""Async GitHub REST API client.

Retries transport errors, 5xx and rate-limit responses, spaces mutating
requests and iterates paginated endpoints.
"""

from hubclient.client.errors import (
    ClientConfigError,
    DeserializeError,
    ParseMethodError,
    ParsePageError,
    PathError,
    RequestError,
    SendError,
    StatusError,
)
from hubclient.client.page import Page, decode_page
from hubclient.client.pagination import PaginationIterator, PaginationState
from hubclient.client.response import HttpResponse, ResponseParts, get_next_link
from hubclient.client.rest_client import HubClient
from hubclient.client.retrier import (
    Retrier,
    Retry,
    RetryConfig,
    RetryReason,
    Success,
    compute_backoff_delay,
)
from hubclient.client.throttle import MutationThrottle, clear_shared_throttles, shared_throttle
from hubclient.client.transport import AiohttpTransport, InsecureRedirectError, Transport
from hubclient.client.types import (
    DEFAULT_API_URL,
    ClientConfig,
    ClientMetrics,
    Method,
    ThrottleScope,
)

__all__ = [
    "DEFAULT_API_URL",
    "AiohttpTransport",
    "ClientConfig",
    "ClientConfigError",
    "ClientMetrics",
    "DeserializeError",
    "HttpResponse",
    "HubClient",
    "InsecureRedirectError",
    "Method",
    "MutationThrottle",
    "Page",
    "PaginationIterator",
    "PaginationState",
    "ParseMethodError",
    "ParsePageError",
    "PathError",
    "RequestError",
    "ResponseParts",
    "Retrier",
    "Retry",
    "RetryConfig",
    "RetryReason",
    "SendError",
    "StatusError",
    "Success",
    "ThrottleScope",
    "Transport",
    "clear_shared_throttles",
    "compute_backoff_delay",
    "decode_page",
    "get_next_link",
    "shared_throttle",
]
