"""Prometheus metrics for the automator.

Metrics are exposed at the ``/metrics`` endpoint in Prometheus format.

Metrics Defined:
- branchbot_events_handled_total: Counter of handled events by stop reason
- branchbot_steps_total: Counter of steps by step name and status
- branchbot_handler_duration_seconds: Histogram of time spent per event
"""

from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.branchbot.results import AutomationResult, StopReason


# An event is a handful of sequential API calls
DEFAULT_DURATION_BUCKETS = (
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
)


class AutomationMetrics:
    """Container for the automator's Prometheus metrics.

    Supports custom registries so tests do not collide on the default
    one.

    Attributes:
        registry: The Prometheus registry for these metrics.
        events_handled_total: Counter labelled by stop_reason.
        steps_total: Counter labelled by step and status.
        handler_duration_seconds: Histogram of per-event duration.

    Example:
        >>> metrics = AutomationMetrics(registry=CollectorRegistry())
        >>> metrics.record_result(result, duration_seconds=0.8)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.events_handled_total = Counter(
            "branchbot_events_handled_total",
            "Total number of issues.labeled events handled",
            labelnames=["stop_reason"],
            registry=self.registry,
        )

        self.steps_total = Counter(
            "branchbot_steps_total",
            "Total number of automation steps by outcome",
            labelnames=["step", "status"],
            registry=self.registry,
        )

        self.handler_duration_seconds = Histogram(
            "branchbot_handler_duration_seconds",
            "Time spent handling one event in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_result(self, result: AutomationResult, duration_seconds: float) -> None:
        """Record one finished run, successful or not."""
        stop_reason = result.stop_reason or StopReason.FAILED
        self.events_handled_total.labels(stop_reason=stop_reason.value).inc()
        for step in result.steps:
            self.steps_total.labels(
                step=step.step.value,
                status=step.status.value,
            ).inc()
        self.handler_duration_seconds.observe(duration_seconds)


_default_metrics: Optional[AutomationMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> AutomationMetrics:
    """Get the global metrics instance, or a new one for a custom registry."""
    global _default_metrics

    if registry is not None:
        return AutomationMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = AutomationMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)
