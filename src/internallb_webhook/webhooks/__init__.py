"""
Admission webhooks for core/v1 Services.

- ``services``: the validating and mutating admission decisions
- ``server``: the HTTPS server that dispatches AdmissionReviews to them
"""

from .server import WebhookServer
from .services import ADMISSION_HANDLERS, mutate_service, validate_service

__all__ = [
    "ADMISSION_HANDLERS",
    "WebhookServer",
    "mutate_service",
    "validate_service",
]
