"""
Types and configuration for the hubclient REST client.

Defaults follow GitHub's REST API recommendations:
- Accept: application/vnd.github+json
- X-GitHub-Api-Version: 2022-11-28
- At least one second between mutating requests
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from yarl import URL

from hubclient.client.errors import ClientConfigError, ParseMethodError

__version__ = "0.1.0"

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_ACCEPT = "application/vnd.github+json"
DEFAULT_API_VERSION = "2022-11-28"
DEFAULT_USER_AGENT = f"hubclient/{__version__}"

API_VERSION_HEADER = "X-GitHub-Api-Version"

# Minimum spacing between consecutive mutating requests
MUTATION_DELAY_S = 1.0


class Method(str, Enum):
    """HTTP methods supported by the client."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    def __str__(self) -> str:
        return self.value

    @property
    def is_mutating(self) -> bool:
        """True for POST, PUT, PATCH and DELETE."""
        return self is not Method.GET

    @classmethod
    def parse(cls, name: str) -> Method:
        """Parse a method from its name, case insensitive."""
        try:
            return cls(name.upper())
        except ValueError:
            raise ParseMethodError(name) from None


class ThrottleScope(str, Enum):
    """Sharing policy for the last-mutation timestamp.

    PER_CLIENT: each HubClient spaces only its own mutating requests.
    SHARED: all clients in the process with the same API URL and token share
        one timestamp.
    """

    PER_CLIENT = "per_client"
    SHARED = "shared"


def _check_header_value(name: str, value: str) -> None:
    if "\r" in value or "\n" in value:
        raise ClientConfigError(f"value supplied for header {name} is invalid")


@dataclass(frozen=True)
class ClientConfig:
    """
    Configuration for HubClient.

    Attributes:
        api_url: Base API URL that relative paths are joined to.
        token: Access token sent as ``Authorization: Bearer <token>``.
            No Authorization header is sent when None.
        user_agent: User-Agent header value.
        api_version: X-GitHub-Api-Version header value.
        accept: Accept header value.
        request_timeout_s: Total timeout for a single HTTP attempt.
        mutation_delay_s: Minimum spacing between mutating requests.
        throttle_scope: Sharing policy for the mutation throttle.
        https_only: Refuse to send requests to non-HTTPS URLs.
    """

    api_url: str = DEFAULT_API_URL
    token: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    api_version: str = DEFAULT_API_VERSION
    accept: str = DEFAULT_ACCEPT
    request_timeout_s: float = 30.0
    mutation_delay_s: float = MUTATION_DELAY_S
    throttle_scope: ThrottleScope = ThrottleScope.PER_CLIENT
    https_only: bool = True

    def __post_init__(self) -> None:
        try:
            url = URL(self.api_url)
        except (TypeError, ValueError) as e:
            raise ClientConfigError(f"api_url is not a valid URL: {self.api_url!r}") from e
        if not url.is_absolute():
            raise ClientConfigError(f"api_url must be an absolute URL, got {self.api_url!r}")
        if self.https_only and url.scheme != "https":
            raise ClientConfigError(f"api_url must use https, got {self.api_url!r}")
        if self.token is not None:
            _check_header_value("Authorization", self.token)
        _check_header_value("User-Agent", self.user_agent)
        _check_header_value(API_VERSION_HEADER, self.api_version)
        _check_header_value("Accept", self.accept)
        if self.request_timeout_s <= 0:
            raise ClientConfigError(
                f"request_timeout_s must be > 0, got {self.request_timeout_s}"
            )
        if self.mutation_delay_s < 0:
            raise ClientConfigError(
                f"mutation_delay_s must be >= 0, got {self.mutation_delay_s}"
            )

    @property
    def base_url(self) -> URL:
        """The API URL with a trailing slash so that joins append to its path."""
        url = URL(self.api_url)
        if not url.path.endswith("/"):
            url = url.with_path(url.path + "/")
        return url

    def default_headers(self) -> dict[str, str]:
        """Headers sent with every request."""
        headers = {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            API_VERSION_HEADER: self.api_version,
        }
        if self.token is not None:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


@dataclass
class ClientMetrics:
    """
    Counters for one HubClient.

    Attributes:
        requests: Logical requests started (each may span several attempts).
        attempts: Transport calls made, including retries.
        retries: Retry decisions taken.
        rate_limit_waits: Retries caused by a 403 rate-limit response.
        mutation_waits: Times a mutating request waited on the throttle.
        failures: Logical requests that ended in a RequestError.
    """

    requests: int = 0
    attempts: int = 0
    retries: int = 0
    rate_limit_waits: int = 0
    mutation_waits: int = 0
    failures: int = 0
