"""
Error handling module for the internal load balancer webhook.

This module provides the error hierarchy used to tell fatal startup failures
apart from retryable control plane errors and protocol errors.
"""

from .webhook_errors import (
    AdmissionDecodeError,
    ConfigurationError,
    IdentityError,
    KubernetesAPIError,
    RegistrationError,
    TemporaryError,
    WebhookError,
)

__all__ = [
    "WebhookError",
    "TemporaryError",
    "ConfigurationError",
    "IdentityError",
    "KubernetesAPIError",
    "RegistrationError",
    "AdmissionDecodeError",
]
