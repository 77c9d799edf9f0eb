"""
Service layer for the internal load balancer webhook.

This module provides the long-running interactions with the control plane
that happen next to, not inside, the admission path.
"""

from .webhook_registrar import WebhookRegistrar

__all__ = [
    "WebhookRegistrar",
]
