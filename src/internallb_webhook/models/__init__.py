"""
Models package - Pydantic models for type-safe admission handling.

Defines data models for:
- The AdmissionReview envelope (request and response)
- The Service object under review
- The annotation policy
"""

from .admission import (
    SERVICE_RESOURCE,
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    GroupVersionKind,
    GroupVersionResource,
    Status,
)
from .policy import AnnotationPolicy
from .service import ObjectMeta, Service, ServiceSpec

__all__ = [
    "SERVICE_RESOURCE",
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "AnnotationPolicy",
    "GroupVersionKind",
    "GroupVersionResource",
    "ObjectMeta",
    "Service",
    "ServiceSpec",
    "Status",
]
