"""
Spacing between mutating requests.

GitHub asks clients to wait at least one second between POST, PATCH, PUT and
DELETE requests.  A MutationThrottle records when the most recent mutating
attempt started; wait() blocks until the spacing has elapsed and stamp() is
called immediately before every mutating attempt, retries included.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hubclient.client.types import MUTATION_DELAY_S
from hubclient.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = get_logger(__name__)


@dataclass
class MutationThrottle:
    """
    Last-mutation timestamp with a minimum spacing.

    One instance may be shared by several clients; see ThrottleScope.  The
    lock serializing wait() belongs to the event loop that is running when
    it is first needed, and is replaced when the throttle is used from a
    later loop (for example a second ``asyncio.run()``).
    """

    delay_s: float = MUTATION_DELAY_S

    _last_mutation: float | None = field(default=None)
    _lock: asyncio.Lock | None = field(default=None, repr=False)
    _lock_loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)

    # Optional clock/sleep providers for testing
    _time_fn: Callable[[], float] | None = field(default=None, repr=False)
    _sleep_fn: Callable[[float], Awaitable[None]] | None = field(default=None, repr=False)

    def _now(self) -> float:
        if self._time_fn is not None:
            return self._time_fn()
        return time.monotonic()

    async def _sleep(self, delay_s: float) -> None:
        if self._sleep_fn is not None:
            await self._sleep_fn(delay_s)
        else:
            await asyncio.sleep(delay_s)

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @property
    def last_mutation(self) -> float | None:
        return self._last_mutation

    def get_wait_time_s(self) -> float:
        """Seconds until a mutating request may be sent (0 if now)."""
        if self._last_mutation is None:
            return 0.0
        elapsed = max(0.0, self._now() - self._last_mutation)
        return max(0.0, self.delay_s - elapsed)

    async def wait(self) -> float:
        """
        Block until delay_s has passed since the last mutating attempt.

        Returns:
            Seconds spent waiting.
        """
        async with self._get_lock():
            delay = self.get_wait_time_s()
            if delay > 0:
                logger.debug(
                    "Sleeping between mutating requests",
                    extra={"delay_s": round(delay, 3)},
                )
                await self._sleep(delay)
            return delay

    def stamp(self) -> None:
        """Record that a mutating attempt is starting now."""
        self._last_mutation = self._now()

    def reset(self) -> None:
        self._last_mutation = None


# Entries live as long as some client holds the throttle.
_SHARED_THROTTLES: weakref.WeakValueDictionary[tuple[str, str], MutationThrottle] = (
    weakref.WeakValueDictionary()
)


def shared_throttle(
    api_url: str,
    token: str | None,
    delay_s: float = MUTATION_DELAY_S,
    *,
    time_fn: Callable[[], float] | None = None,
    sleep_fn: Callable[[float], Awaitable[None]] | None = None,
) -> MutationThrottle:
    """
    Process-wide throttle for every client using ``api_url`` and ``token``.

    The first caller's ``delay_s``, ``time_fn`` and ``sleep_fn`` win for a
    given key.  A throttle is forgotten once no client references it, so a
    later client with the same key starts from a fresh timestamp.
    """
    token_key = hashlib.sha256(token.encode("utf-8")).hexdigest() if token else ""
    key = (api_url.rstrip("/"), token_key)
    throttle = _SHARED_THROTTLES.get(key)
    if throttle is None:
        throttle = MutationThrottle(delay_s=delay_s, _time_fn=time_fn, _sleep_fn=sleep_fn)
        _SHARED_THROTTLES[key] = throttle
    return throttle


def clear_shared_throttles() -> None:
    """Forget all process-wide throttles."""
    _SHARED_THROTTLES.clear()
