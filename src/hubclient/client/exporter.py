"""
Prometheus metrics exporter for HubClient.

Exports low-cardinality counters only: no method, URL, path or status labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from hubclient.client.throttle import MutationThrottle
    from hubclient.client.types import ClientMetrics


# Labels that would cause cardinality explosion
FORBIDDEN_LABELS = frozenset(
    {
        "url",
        "path",
        "endpoint",
        "query",
        "method",
        "status",
        "token",
        "user",
        "repo",
    }
)

# ClientMetrics field -> counter name
_COUNTER_FIELDS: dict[str, tuple[str, str]] = {
    "requests": ("hubclient_requests", "Logical requests started"),
    "attempts": ("hubclient_attempts", "HTTP attempts made, including retries"),
    "retries": ("hubclient_retries", "Retries scheduled after a failed attempt"),
    "rate_limit_waits": (
        "hubclient_rate_limit_waits",
        "Retries caused by a rate-limit 403 response",
    ),
    "mutation_waits": (
        "hubclient_mutation_waits",
        "Mutating requests delayed by the mutation throttle",
    ),
    "failures": ("hubclient_failures", "Logical requests that ended in an error"),
}


class MetricsExporter:
    """
    Syncs ClientMetrics counters into a Prometheus registry.

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(client.metrics, throttle=client.throttle)
        # generate_latest(registry) -> bytes for a /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()
        self._counters = {
            field_name: Counter(name, doc, registry=self._registry)
            for field_name, (name, doc) in _COUNTER_FIELDS.items()
        }
        self._throttle_wait_s = Gauge(
            "hubclient_throttle_wait_seconds",
            "Seconds until the next mutating request may be sent",
            registry=self._registry,
        )
        # Last seen values; Prometheus counters only move forward
        self._last: dict[str, int] = dict.fromkeys(_COUNTER_FIELDS, 0)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def update(
        self,
        metrics: ClientMetrics,
        *,
        throttle: MutationThrottle | None = None,
    ) -> None:
        """
        Increment counters by the change since the previous update.

        Args:
            metrics: Counters of the client being exported.
            throttle: Mutation throttle whose pending wait is exported as a gauge.
        """
        for field_name, counter in self._counters.items():
            current = getattr(metrics, field_name)
            delta = current - self._last[field_name]
            if delta > 0:
                counter.inc(delta)
            self._last[field_name] = current

        if throttle is not None:
            self._throttle_wait_s.set(throttle.get_wait_time_s())

    def reset_counter_tracking(self) -> None:
        """
        Forget last seen values (e.g. after swapping in a new client).

        Does NOT reset the Prometheus counters themselves.
        """
        self._last = dict.fromkeys(_COUNTER_FIELDS, 0)


# Note: Counters are exported with _total suffix by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {
        "hubclient_requests_total",
        "hubclient_attempts_total",
        "hubclient_retries_total",
        "hubclient_rate_limit_waits_total",
        "hubclient_mutation_waits_total",
        "hubclient_failures_total",
        "hubclient_throttle_wait_seconds",
    }
)
