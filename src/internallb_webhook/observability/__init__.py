"""
Observability utilities for the internal load balancer webhook.

This module provides metrics and structured logging capabilities for
production monitoring and troubleshooting.
"""

from .logging import set_correlation_id, setup_structured_logging
from .metrics import get_metrics_registry, metrics_collector, render_metrics

__all__ = [
    "get_metrics_registry",
    "metrics_collector",
    "render_metrics",
    "set_correlation_id",
    "setup_structured_logging",
]
