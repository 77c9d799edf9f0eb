"""Unit tests for the AdmissionReview envelope models."""

import base64

import pytest
from pydantic import ValidationError

from internallb_webhook.constants import (
    ADMISSION_API_VERSION_V1,
    ADMISSION_API_VERSION_V1BETA1,
    DENIAL_REASON,
)
from internallb_webhook.models import (
    SERVICE_RESOURCE,
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    GroupVersionResource,
)

PATCH = b'[{"op": "add", "path": "/metadata/annotations", "value": {"a": "b"}}]'


class TestAdmissionResponse:
    """Tests for response construction and its invariants."""

    def test_allow_without_patch(self):
        response = AdmissionResponse.allow("abc")

        assert response.allowed is True
        assert response.patch is None
        assert response.patch_type is None
        assert response.result is None

    def test_allow_with_patch_sets_patch_type(self):
        response = AdmissionResponse.allow("abc", patch=PATCH)

        assert response.patch == PATCH
        assert response.patch_type == "JSONPatch"

    def test_deny_carries_reason_and_forbidden_code(self):
        response = AdmissionResponse.deny("abc", DENIAL_REASON)

        assert response.denied
        assert response.result.code == 403
        assert response.result.reason == DENIAL_REASON
        assert response.result.message == DENIAL_REASON

    def test_error_carries_message_only(self):
        response = AdmissionResponse.error("abc", "failed to decode")

        assert response.allowed is False
        assert response.result.message == "failed to decode"
        assert response.result.code is None

    def test_denial_with_patch_is_rejected(self):
        with pytest.raises(ValidationError, match="cannot carry a patch"):
            AdmissionResponse(uid="abc", allowed=False, patch=PATCH, patch_type="JSONPatch")

    def test_patch_without_type_is_rejected(self):
        with pytest.raises(ValidationError, match="set together"):
            AdmissionResponse(uid="abc", allowed=True, patch=PATCH)

    def test_unknown_patch_type_is_rejected(self):
        with pytest.raises(ValidationError, match="unsupported patch type"):
            AdmissionResponse(uid="abc", allowed=True, patch=PATCH, patch_type="MergePatch")


class TestWireFormat:
    """Tests for serialization of the response envelope."""

    def test_patch_is_base64_encoded(self):
        wire = AdmissionReview.reply(AdmissionResponse.allow("abc", patch=PATCH)).to_wire()

        response = wire["response"]
        assert base64.b64decode(response["patch"]) == PATCH
        assert response["patchType"] == "JSONPatch"
        assert "status" not in response

    def test_denial_serializes_status(self):
        wire = AdmissionReview.reply(AdmissionResponse.deny("abc", DENIAL_REASON)).to_wire()

        assert wire["response"] == {
            "uid": "abc",
            "allowed": False,
            "status": {"code": 403, "reason": DENIAL_REASON, "message": DENIAL_REASON},
        }

    def test_envelope_defaults_to_v1(self):
        wire = AdmissionReview.reply(AdmissionResponse.allow("abc")).to_wire()

        assert wire["apiVersion"] == ADMISSION_API_VERSION_V1
        assert wire["kind"] == "AdmissionReview"
        assert "request" not in wire

    def test_envelope_echoes_requested_version(self):
        review = AdmissionReview.reply(
            AdmissionResponse.allow("abc"), api_version=ADMISSION_API_VERSION_V1BETA1
        )

        assert review.to_wire()["apiVersion"] == ADMISSION_API_VERSION_V1BETA1


class TestAdmissionRequest:
    """Tests for decoding the request half."""

    def test_wire_names_are_decoded(self, make_review, make_service):
        payload = make_review(make_service(), operation="UPDATE")["request"]
        payload["dryRun"] = True

        request = AdmissionRequest.model_validate(payload)

        assert request.operation == "UPDATE"
        assert request.dry_run is True
        assert request.raw_object["kind"] == "Service"
        assert request.resource == SERVICE_RESOURCE

    def test_unknown_fields_are_ignored(self):
        request = AdmissionRequest.model_validate(
            {"uid": "abc", "userInfo": {"username": "admin"}, "options": {}}
        )

        assert request.uid == "abc"

    def test_resource_comparison(self):
        pods = GroupVersionResource(group="", version="v1", resource="pods")

        assert pods != SERVICE_RESOURCE
        assert str(SERVICE_RESOURCE) == "/v1, Resource=services"
