"""
Unit tests for the Service admission decisions.

The decisions are pure functions of the admission request and the policy,
so no server or cluster is needed.
"""

import json

import jsonpatch
import pytest

from internallb_webhook.constants import DENIAL_REASON, WEBHOOK_MUTATE, WEBHOOK_VALIDATE
from internallb_webhook.models import AnnotationPolicy
from internallb_webhook.webhooks.services import (
    ADMISSION_HANDLERS,
    build_annotation_patch,
    decode_service,
    mutate_service,
    validate_service,
)

ANNOTATION_KEY = "service.beta.kubernetes.io/azure-load-balancer-internal"


def apply_response_patch(obj: dict, response) -> dict:
    """Apply the JSON-Patch carried by a response to the submitted object."""
    return jsonpatch.apply_patch(obj, json.loads(response.patch))


class TestValidateService:
    """Tests for the validating decision."""

    def test_load_balancer_without_annotation_is_denied(
        self, make_service, make_request, policy
    ):
        request = make_request(make_service(annotations=None))

        response = validate_service(request, policy)

        assert response is not None
        assert response.allowed is False
        assert response.uid == request.uid != ""
        assert response.result.code == 403
        assert response.result.reason == DENIAL_REASON
        assert response.result.message == DENIAL_REASON
        assert response.patch is None

    def test_load_balancer_with_annotation_is_allowed(
        self, make_service, make_request, policy
    ):
        request = make_request(make_service(annotations={ANNOTATION_KEY: "true"}))

        response = validate_service(request, policy)

        assert response.allowed is True
        assert response.result is None
        assert response.patch is None

    def test_load_balancer_with_wrong_value_is_denied(
        self, make_service, make_request, policy
    ):
        request = make_request(make_service(annotations={ANNOTATION_KEY: "false"}))

        response = validate_service(request, policy)

        assert response.allowed is False
        assert response.result.message == DENIAL_REASON

    def test_unrelated_annotations_do_not_satisfy_policy(
        self, make_service, make_request, policy
    ):
        request = make_request(make_service(annotations={"team": "payments"}))

        assert validate_service(request, policy).allowed is False

    @pytest.mark.parametrize("service_type", ["ClusterIP", "NodePort", "ExternalName", None])
    def test_other_service_types_are_allowed(
        self, make_service, make_request, policy, service_type
    ):
        request = make_request(make_service(service_type=service_type))

        response = validate_service(request, policy)

        assert response.allowed is True
        assert response.result is None

    def test_update_is_validated_like_create(self, make_service, make_request, policy):
        request = make_request(make_service(), operation="UPDATE")

        assert validate_service(request, policy).allowed is False

    def test_custom_policy(self, make_service, make_request):
        custom = AnnotationPolicy(key="example.com/lb", value="internal")
        request = make_request(make_service(annotations={"example.com/lb": "internal"}))

        assert validate_service(request, custom).allowed is True


class TestMutateService:
    """Tests for the mutating decision."""

    def test_patch_adds_annotation_map(self, make_service, make_request, policy):
        service = make_service(annotations=None)
        request = make_request(service)

        response = mutate_service(request, policy)

        assert response.allowed is True
        assert response.uid == request.uid != ""
        assert response.patch_type == "JSONPatch"
        patched = apply_response_patch(service, response)
        assert patched["metadata"]["annotations"] == {ANNOTATION_KEY: "true"}

    def test_patch_preserves_existing_annotations(
        self, make_service, make_request, policy
    ):
        service = make_service(annotations={"team": "payments", "tier": "web"})
        request = make_request(service)

        response = mutate_service(request, policy)

        operations = json.loads(response.patch)
        assert all(op["path"] != "/metadata/annotations" for op in operations)
        patched = apply_response_patch(service, response)
        assert patched["metadata"]["annotations"] == {
            "team": "payments",
            "tier": "web",
            ANNOTATION_KEY: "true",
        }

    def test_patch_escapes_slash_in_annotation_key(
        self, make_service, make_request, policy
    ):
        service = make_service(annotations={"team": "payments"})
        request = make_request(service)

        response = mutate_service(request, policy)

        operations = json.loads(response.patch)
        assert operations == [
            {
                "op": "add",
                "path": "/metadata/annotations/service.beta.kubernetes.io~1azure-load-balancer-internal",
                "value": "true",
            }
        ]

    def test_wrong_value_is_replaced(self, make_service, make_request, policy):
        service = make_service(annotations={ANNOTATION_KEY: "false"})
        request = make_request(service)

        response = mutate_service(request, policy)

        patched = apply_response_patch(service, response)
        assert patched["metadata"]["annotations"][ANNOTATION_KEY] == "true"

    def test_already_annotated_service_is_not_patched(
        self, make_service, make_request, policy
    ):
        request = make_request(make_service(annotations={ANNOTATION_KEY: "true"}))

        response = mutate_service(request, policy)

        assert response.allowed is True
        assert response.patch is None
        assert response.patch_type is None

    @pytest.mark.parametrize("service_type", ["ClusterIP", "NodePort", None])
    def test_other_service_types_are_not_patched(
        self, make_service, make_request, policy, service_type
    ):
        request = make_request(make_service(service_type=service_type))

        response = mutate_service(request, policy)

        assert response.allowed is True
        assert response.patch is None

    def test_patch_leaves_rest_of_object_untouched(
        self, make_service, make_request, policy
    ):
        service = make_service()
        request = make_request(service)

        response = mutate_service(request, policy)

        patched = apply_response_patch(service, response)
        assert patched["spec"] == service["spec"]
        assert patched["metadata"]["name"] == "web"


class TestNoDecision:
    """Requests the decisions cannot be made for."""

    @pytest.mark.parametrize("admit", [validate_service, mutate_service])
    def test_wrong_resource_yields_no_decision(
        self, make_service, make_request, policy, admit
    ):
        request = make_request(
            make_service(),
            resource={"group": "", "version": "v1", "resource": "pods"},
        )

        assert admit(request, policy) is None

    @pytest.mark.parametrize("admit", [validate_service, mutate_service])
    def test_malformed_object_yields_no_decision(self, make_request, policy, admit):
        request = make_request({"metadata": {"annotations": "not-a-map"}})

        assert admit(request, policy) is None

    def test_missing_object_yields_no_decision(self, make_request, policy):
        request = make_request(None)

        assert decode_service(request) is None


class TestBuildAnnotationPatch:
    """Tests for the JSON-Patch builder."""

    def test_null_annotations_are_replaced(self, policy):
        service = {"metadata": {"name": "web", "annotations": None}}

        patch = build_annotation_patch(service, policy)

        patched = jsonpatch.apply_patch(service, json.loads(patch))
        assert patched["metadata"]["annotations"] == {ANNOTATION_KEY: "true"}

    def test_input_is_not_modified(self, policy):
        service = {"metadata": {"name": "web"}}

        build_annotation_patch(service, policy)

        assert service == {"metadata": {"name": "web"}}


def test_handlers_are_keyed_by_webhook():
    """Server dispatch table maps webhook names to decisions."""
    assert ADMISSION_HANDLERS[WEBHOOK_VALIDATE] is validate_service
    assert ADMISSION_HANDLERS[WEBHOOK_MUTATE] is mutate_service
