"""
Retry decisions for a single logical request.

Follows GitHub's guidance for dealing with rate limits:
- 403 with Retry-After: wait Retry-After + 1s
- 403 mentioning "rate limit" with X-RateLimit-Remaining: 0: wait until
  X-RateLimit-Reset + 1s
- 403 mentioning "rate limit" otherwise (secondary limit): exponential backoff
- Any other 403 or 4xx: fail immediately

Transport errors and 5xx responses are retried with exponential backoff.  A
request is retried at most max_retries times and never past total_wait_s
from its start.

The Retrier does no I/O and never sleeps: it turns an outcome into a
RetryDecision (or raises the terminal RequestError) and leaves waiting to the
caller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

from hubclient.client.errors import ClientConfigError, SendError, StatusError
from hubclient.client.response import HttpResponse, ResponseParts
from hubclient.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from yarl import URL

    from hubclient.client.types import Method

logger = get_logger(__name__)

RATELIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
RATELIMIT_RESET_HEADER = "X-RateLimit-Reset"


@dataclass
class RetryConfig:
    """Configuration for retries and exponential backoff.

    Backoff for retry n (n >= 2) is
    ``min(backoff_max_s, backoff_factor * backoff_base ** (n - 1))``;
    the first retry waits ``backoff_factor * first_retry_delay_s``.
    """

    max_retries: int = 10
    backoff_factor: float = 1.0
    backoff_base: float = 1.25
    backoff_max_s: float = 120.0
    first_retry_delay_s: float = 0.1
    total_wait_s: float = 300.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ClientConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.total_wait_s <= 0:
            raise ClientConfigError(f"total_wait_s must be > 0, got {self.total_wait_s}")
        if self.backoff_max_s < 0:
            raise ClientConfigError(f"backoff_max_s must be >= 0, got {self.backoff_max_s}")


class RetryReason(str, Enum):
    """Why a request is being retried."""

    TRANSPORT_ERROR = "transport_error"
    SERVER_ERROR = "server_error"
    RETRY_AFTER = "retry_after"
    PRIMARY_RATE_LIMIT = "primary_rate_limit"
    SECONDARY_RATE_LIMIT = "secondary_rate_limit"

    @property
    def is_rate_limit(self) -> bool:
        return self in (
            RetryReason.RETRY_AFTER,
            RetryReason.PRIMARY_RATE_LIMIT,
            RetryReason.SECONDARY_RATE_LIMIT,
        )


@dataclass(frozen=True)
class Success:
    """The request succeeded; hand the response to the caller."""

    response: HttpResponse


@dataclass(frozen=True)
class Retry:
    """Sleep for delay_s, then send the request again."""

    delay_s: float
    reason: RetryReason


RetryDecision = Union[Success, Retry]

# What one transport call produced: a response, or the exception it raised
Outcome = Union[HttpResponse, Exception]


def compute_backoff_delay(config: RetryConfig, attempts: int) -> float:
    """
    Backoff before the retry that follows attempt number ``attempts``.

    Args:
        config: Retry configuration.
        attempts: Number of attempts made so far (1 for the first attempt).

    Returns:
        Delay in seconds.
    """
    if attempts < 2:
        return config.backoff_factor * config.first_retry_delay_s
    delay = config.backoff_factor * config.backoff_base ** (attempts - 1)
    return min(max(delay, 0.0), config.backoff_max_s)


class Retrier:
    """
    Per-request retry state machine.

    Created once per logical request; tracks the attempt count and the
    deadline.  Call handle() with each transport outcome.
    """

    def __init__(
        self,
        method: Method,
        url: URL,
        config: RetryConfig | None = None,
        *,
        time_fn: Callable[[], float] | None = None,
        wall_time_fn: Callable[[], float] | None = None,
    ) -> None:
        """
        Args:
            method: Method of the request being retried.
            url: URL of the request being retried.
            config: Retry configuration.
            time_fn: Monotonic clock in seconds (for the retry budget).
            wall_time_fn: Unix clock in seconds (for X-RateLimit-Reset).
        """
        self.method = method
        self.url = url
        self._config = config or RetryConfig()
        self._time_fn = time_fn or time.monotonic
        self._wall_time_fn = wall_time_fn or time.time
        self.attempts = 0
        self.stop_time = self._time_fn() + self._config.total_wait_s

    def time_left(self) -> float:
        """Seconds remaining in the retry budget."""
        return max(0.0, self.stop_time - self._time_fn())

    def handle(self, outcome: Outcome) -> RetryDecision:
        """
        Decide what to do with the outcome of one attempt.

        Returns:
            Success if the response should be returned to the caller, or
            Retry if the request should be sent again after a delay.

        Raises:
            StatusError: Terminal 4xx/5xx response.
            SendError: Transport failure once retries are exhausted.
        """
        self.attempts += 1
        if self.attempts > self._config.max_retries:
            logger.debug("Retries exhausted", extra={"attempts": self.attempts})
            return self._finalize(outcome)
        if self._time_fn() > self.stop_time:
            logger.debug("Maximum total retry wait time exceeded")
            return self._finalize(outcome)

        backoff = compute_backoff_delay(self._config, self.attempts)

        # The body of a 403 is read once; later finalization uses the parts
        final: Outcome | ResponseParts = outcome
        if isinstance(outcome, Exception):
            delay, reason = backoff, RetryReason.TRANSPORT_ERROR
        elif outcome.status == 403:
            parts = ResponseParts.from_response(outcome)
            final = parts
            verdict = self._rate_limit_delay(parts, backoff)
            if verdict is None:
                return self._finalize(parts)
            delay, reason = verdict
            if reason is not RetryReason.SECONDARY_RATE_LIMIT and delay > self.time_left():
                logger.debug(
                    "Rate limit wait exceeds remaining retry budget",
                    extra={"delay_s": delay, "time_left_s": self.time_left()},
                )
                return self._finalize(parts)
        elif outcome.is_server_error:
            delay, reason = backoff, RetryReason.SERVER_ERROR
        elif outcome.is_client_error:
            return self._finalize(outcome)
        else:
            return Success(outcome)

        delay = max(delay, backoff)
        time_left = self.time_left()
        if time_left <= 0:
            return self._finalize(final)
        return Retry(delay_s=min(delay, time_left), reason=reason)

    def _rate_limit_delay(
        self, parts: ResponseParts, backoff: float
    ) -> tuple[float, RetryReason] | None:
        """Required delay for a 403, or None if it is not a rate-limit response."""
        retry_after = parts.header("Retry-After")
        if retry_after is not None:
            logger.debug("Server responded with 403 and Retry-After header")
            try:
                return float(int(retry_after.strip()) + 1), RetryReason.RETRY_AFTER
            except ValueError:
                return 0.0, RetryReason.RETRY_AFTER
        if parts.text is None or "rate limit" not in parts.text:
            return None
        if parts.header(RATELIMIT_REMAINING_HEADER) == "0":
            logger.debug("Primary rate limit exceeded; waiting for reset")
            reset = parts.header(RATELIMIT_RESET_HEADER)
            try:
                reset_ts = int(reset) if reset is not None else None
            except ValueError:
                reset_ts = None
            if reset_ts is None:
                return 0.0, RetryReason.PRIMARY_RATE_LIMIT
            until_reset = max(0.0, reset_ts - self._wall_time_fn())
            return until_reset + 1.0, RetryReason.PRIMARY_RATE_LIMIT
        logger.debug("Secondary rate limit triggered")
        return backoff, RetryReason.SECONDARY_RATE_LIMIT

    def _finalize(self, outcome: Outcome | ResponseParts) -> Success:
        """Turn the last outcome into the terminal result."""
        if isinstance(outcome, Exception):
            reason = str(outcome) or type(outcome).__name__
            raise SendError(self.method, self.url, reason) from outcome
        if isinstance(outcome, HttpResponse):
            if not outcome.is_error:
                return Success(outcome)
            outcome = ResponseParts.from_response(outcome)
        raise StatusError(self.method, self.url, outcome.status, outcome.error_body())
