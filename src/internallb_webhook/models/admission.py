"""
AdmissionReview envelope models.

These models mirror the ``admission.k8s.io`` v1 and v1beta1 wire format
exchanged with the API server. Both versions share the same field layout,
so a single set of models serves both; the response envelope echoes the
version the request arrived with.
"""

import base64
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    model_validator,
)

from internallb_webhook.constants import (
    ADMISSION_API_VERSION_V1,
    ADMISSION_REVIEW_KIND,
    PATCH_TYPE_JSON_PATCH,
    SERVICE_GROUP,
    SERVICE_RESOURCE_PLURAL,
    SERVICE_VERSION,
)


class GroupVersionResource(BaseModel):
    """Identifies the API resource an admission request is about."""

    model_config = ConfigDict(frozen=True)

    group: str = ""
    version: str = ""
    resource: str = ""

    def __str__(self) -> str:
        return f"{self.group}/{self.version}, Resource={self.resource}"


class GroupVersionKind(BaseModel):
    """Identifies the kind of the object under review."""

    model_config = ConfigDict(frozen=True)

    group: str = ""
    version: str = ""
    kind: str = ""


SERVICE_RESOURCE = GroupVersionResource(
    group=SERVICE_GROUP, version=SERVICE_VERSION, resource=SERVICE_RESOURCE_PLURAL
)


class AdmissionRequest(BaseModel):
    """The request half of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str = Field("", description="Correlation token echoed in the response")
    kind: GroupVersionKind | None = None
    resource: GroupVersionResource = Field(default_factory=GroupVersionResource)
    sub_resource: str | None = Field(None, alias="subResource")
    name: str | None = None
    namespace: str | None = None
    operation: str = ""
    raw_object: Any = Field(
        None, alias="object", description="Serialized object under review"
    )
    raw_old_object: Any = Field(None, alias="oldObject")
    dry_run: bool | None = Field(None, alias="dryRun")


class Status(BaseModel):
    """Subset of a Kubernetes ``Status`` used to explain a response."""

    code: int | None = None
    reason: str | None = None
    message: str | None = None


class AdmissionResponse(BaseModel):
    """
    The response half of an AdmissionReview.

    A response either denies with a reason or allows with an optional
    JSON-Patch; never both. Use the ``allow``, ``deny`` and ``error``
    constructors rather than building one by hand.
    """

    model_config = ConfigDict(populate_by_name=True)

    uid: str = ""
    allowed: bool = False
    result: Status | None = Field(None, alias="status")
    patch: bytes | None = None
    patch_type: str | None = Field(None, alias="patchType")

    @model_validator(mode="after")
    def check_decision(self) -> "AdmissionResponse":
        if self.patch is not None and not self.allowed:
            raise ValueError("a denying admission response cannot carry a patch")
        if (self.patch is None) != (self.patch_type is None):
            raise ValueError("patch and patchType must be set together")
        if self.patch_type is not None and self.patch_type != PATCH_TYPE_JSON_PATCH:
            raise ValueError(f"unsupported patch type: {self.patch_type}")
        return self

    @field_serializer("patch")
    def serialize_patch(self, patch: bytes | None) -> str | None:
        # []byte fields are base64 encoded on the wire
        if patch is None:
            return None
        return base64.b64encode(patch).decode("ascii")

    @classmethod
    def allow(cls, uid: str, patch: bytes | None = None) -> "AdmissionResponse":
        """Allow the request, optionally patching the object."""
        return cls(
            uid=uid,
            allowed=True,
            patch=patch,
            patch_type=PATCH_TYPE_JSON_PATCH if patch is not None else None,
        )

    @classmethod
    def deny(cls, uid: str, reason: str) -> "AdmissionResponse":
        """Deny the request; the reason is shown to the submitting user."""
        return cls(
            uid=uid,
            allowed=False,
            result=Status(code=403, reason=reason, message=reason),
        )

    @classmethod
    def error(cls, uid: str, message: str) -> "AdmissionResponse":
        """Report that no decision could be made for the request."""
        return cls(uid=uid, allowed=False, result=Status(message=message))

    @property
    def denied(self) -> bool:
        return not self.allowed


class AdmissionReview(BaseModel):
    """The envelope wrapping one admission request/response pair."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(ADMISSION_API_VERSION_V1, alias="apiVersion")
    kind: str = ADMISSION_REVIEW_KIND
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    @classmethod
    def reply(
        cls, response: AdmissionResponse, api_version: str | None = None
    ) -> "AdmissionReview":
        """Build the envelope sent back to the API server."""
        return cls(
            api_version=api_version or ADMISSION_API_VERSION_V1,
            kind=ADMISSION_REVIEW_KIND,
            response=response,
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire field names, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
