"""
Admission decisions for core/v1 Services.

Both entry points are pure functions of the admission request and the
annotation policy: they do no I/O and never raise on well-formed JSON of
the wrong shape. ``None`` means no decision could be made; the HTTP layer
turns that into an error envelope.

- ``validate_service`` denies LoadBalancer Services missing the annotation
- ``mutate_service`` patches the annotation onto LoadBalancer Services
"""

import copy
import logging
from collections.abc import Callable
from typing import Any

import jsonpatch
from pydantic import ValidationError

from internallb_webhook.constants import DENIAL_REASON, WEBHOOK_MUTATE, WEBHOOK_VALIDATE
from internallb_webhook.models.admission import (
    SERVICE_RESOURCE,
    AdmissionRequest,
    AdmissionResponse,
)
from internallb_webhook.models.policy import AnnotationPolicy
from internallb_webhook.models.service import Service

logger = logging.getLogger(__name__)

AdmitFunc = Callable[[AdmissionRequest, AnnotationPolicy], AdmissionResponse | None]


def decode_service(request: AdmissionRequest) -> Service | None:
    """
    Decode the Service under review.

    The webhook configuration only asks the API server for services, so a
    request for any other resource means the registration is wrong.

    Args:
        request: Admission request received from the API server

    Returns:
        The decoded Service, or None if the request is not about a Service
        or the object cannot be decoded
    """
    if request.resource != SERVICE_RESOURCE:
        logger.error(
            f"Expected resource to be {SERVICE_RESOURCE}, got {request.resource}",
            extra={"uid": request.uid, "operation": request.operation},
        )
        return None

    try:
        return Service.model_validate(request.raw_object)
    except ValidationError as e:
        logger.error(
            f"Failed to decode Service in admission request {request.uid}: {e}",
            extra={
                "uid": request.uid,
                "operation": request.operation,
                "error_type": type(e).__name__,
            },
        )
        return None


def validate_service(
    request: AdmissionRequest, policy: AnnotationPolicy
) -> AdmissionResponse | None:
    """
    Decide whether a Service may be admitted.

    LoadBalancer Services are allowed only when their annotations contain
    the configured key with the configured value. All other Service types
    are always allowed.

    Args:
        request: Admission request received from the API server
        policy: Annotation the Service must carry

    Returns:
        Allowing or denying admission response, or None if no decision
        could be made
    """
    service = decode_service(request)
    if service is None:
        return None

    if not service.is_load_balancer:
        return AdmissionResponse.allow(request.uid)

    if policy.matches(service.metadata.annotations):
        logger.debug(f"LoadBalancer service {service.display_name} carries {policy}")
        return AdmissionResponse.allow(request.uid)

    logger.info(
        f"Denying LoadBalancer service {service.display_name}: missing {policy}",
        extra={
            "uid": request.uid,
            "operation": request.operation,
            "resource_name": service.metadata.name or request.name,
            "namespace": service.metadata.namespace or request.namespace,
        },
    )
    return AdmissionResponse.deny(request.uid, DENIAL_REASON)


def build_annotation_patch(
    service_object: dict[str, Any], policy: AnnotationPolicy
) -> bytes | None:
    """
    Build a JSON-Patch that sets the policy annotation on a Service.

    Existing annotations are preserved: when the annotation map already
    exists only the single key is added or replaced.

    Args:
        service_object: The Service exactly as submitted
        policy: Annotation to set

    Returns:
        Serialized JSON-Patch document, or None if the annotation is
        already present with the expected value
    """
    patched = copy.deepcopy(service_object)
    metadata = patched.setdefault("metadata", {})
    annotations = dict(metadata.get("annotations") or {})
    annotations[policy.key] = policy.value
    metadata["annotations"] = annotations

    patch = jsonpatch.JsonPatch.from_diff(service_object, patched)
    if not patch.patch:
        return None
    return patch.to_string().encode("utf-8")


def mutate_service(
    request: AdmissionRequest, policy: AnnotationPolicy
) -> AdmissionResponse | None:
    """
    Add the policy annotation to LoadBalancer Services.

    Args:
        request: Admission request received from the API server
        policy: Annotation to inject

    Returns:
        Allowing admission response, carrying a JSON-Patch for LoadBalancer
        Services that lack the annotation, or None if no decision could be
        made
    """
    service = decode_service(request)
    if service is None:
        return None

    if not service.is_load_balancer:
        return AdmissionResponse.allow(request.uid)

    patch = build_annotation_patch(request.raw_object, policy)
    if patch is None:
        logger.debug(f"LoadBalancer service {service.display_name} already carries {policy}")
        return AdmissionResponse.allow(request.uid)

    logger.info(
        f"Patching LoadBalancer service {service.display_name} with {policy}",
        extra={
            "uid": request.uid,
            "operation": request.operation,
            "resource_name": service.metadata.name or request.name,
            "namespace": service.metadata.namespace or request.namespace,
        },
    )
    return AdmissionResponse.allow(request.uid, patch=patch)


ADMISSION_HANDLERS: dict[str, AdmitFunc] = {
    WEBHOOK_VALIDATE: validate_service,
    WEBHOOK_MUTATE: mutate_service,
}
