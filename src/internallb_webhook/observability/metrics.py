"""
Prometheus metrics for the internal load balancer webhook.

This module provides metrics for admission decisions and for the webhook's
registration with the API server. The metrics are served from the webhook's
own HTTPS server on ``/metrics``.
"""

import logging

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Global metrics registry
_metrics_registry: CollectorRegistry | None = None

ADMISSION_REQUESTS_TOTAL = Counter(
    "internallb_webhook_admission_requests_total",
    "Total number of admission requests handled",
    ["webhook", "result"],
    registry=None,  # Registered in get_metrics_registry()
)

ADMISSION_DURATION = Histogram(
    "internallb_webhook_admission_duration_seconds",
    "Time spent handling admission requests",
    ["webhook"],
    buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.5],
    registry=None,
)

ADMISSION_PATCHES_TOTAL = Counter(
    "internallb_webhook_patches_total",
    "Total number of Services patched with the policy annotation",
    [],
    registry=None,
)

REGISTRATION_ATTEMPTS_TOTAL = Counter(
    "internallb_webhook_registration_attempts_total",
    "Total number of webhook configuration registration attempts",
    ["kind", "result"],
    registry=None,
)


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the global metrics registry."""
    global _metrics_registry

    if _metrics_registry is None:
        _metrics_registry = CollectorRegistry()
        for metric in [
            ADMISSION_REQUESTS_TOTAL,
            ADMISSION_DURATION,
            ADMISSION_PATCHES_TOTAL,
            REGISTRATION_ATTEMPTS_TOTAL,
        ]:
            _metrics_registry.register(metric)

    return _metrics_registry


def render_metrics() -> bytes:
    """Render all webhook metrics in the Prometheus text format."""
    return generate_latest(get_metrics_registry())


class MetricsCollector:
    """Records metrics for the webhook."""

    def __init__(self):
        self.registry = get_metrics_registry()

    def record_admission(
        self, webhook: str, result: str, duration: float, patched: bool = False
    ) -> None:
        """
        Record one handled admission request.

        Args:
            webhook: Which webhook handled the request (validate or mutate)
            result: Outcome (allowed, denied, error, rejected)
            duration: Time spent handling the request in seconds
            patched: Whether a JSON-Patch was returned
        """
        ADMISSION_REQUESTS_TOTAL.labels(webhook=webhook, result=result).inc()
        ADMISSION_DURATION.labels(webhook=webhook).observe(duration)
        if patched:
            ADMISSION_PATCHES_TOTAL.inc()

    def record_registration_attempt(self, kind: str, success: bool) -> None:
        """
        Record an attempt to register a webhook configuration.

        Args:
            kind: Configuration kind (ValidatingWebhookConfiguration, ...)
            success: Whether the attempt succeeded
        """
        result = "success" if success else "failure"
        REGISTRATION_ATTEMPTS_TOTAL.labels(kind=kind, result=result).inc()


# Global metrics collector instance
metrics_collector = MetricsCollector()
