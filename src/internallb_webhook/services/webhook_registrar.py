"""
Self-registration of the webhook with the API server.

Creates or replaces the ValidatingWebhookConfiguration and
MutatingWebhookConfiguration that make the API server call this webhook
for CREATE and UPDATE of core/v1 services. Registration runs in the
background next to the server; transient API failures are retried with
exponential backoff. If registration ultimately fails the process keeps
serving, but the API server will not send it any admission requests.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from internallb_webhook.constants import (
    ADMISSION_REVIEW_VERSIONS,
    FAILURE_POLICY_FAIL,
    FAILURE_POLICY_IGNORE,
    MUTATE_PATH,
    SERVICE_GROUP,
    SERVICE_OPERATIONS,
    SERVICE_RESOURCE_PLURAL,
    SERVICE_VERSION,
    SIDE_EFFECTS_NONE,
    VALIDATE_PATH,
    WEBHOOK_MUTATE,
    WEBHOOK_NAME_DOMAIN,
    WEBHOOK_VALIDATE,
)
from internallb_webhook.errors import RegistrationError, TemporaryError, WebhookError
from internallb_webhook.observability.metrics import metrics_collector
from internallb_webhook.settings import Settings
from internallb_webhook.utils.kubernetes import to_kubernetes_error

logger = logging.getLogger(__name__)

VALIDATING_KIND = "ValidatingWebhookConfiguration"
MUTATING_KIND = "MutatingWebhookConfiguration"
REGISTRATION_LABELS = {"app.kubernetes.io/managed-by": "internallb-webhook"}


class WebhookRegistrar:
    """Creates or updates the webhook configurations for this webhook."""

    def __init__(
        self,
        k8s_client: client.ApiClient,
        ca_bundle_b64: str,
        name: str,
        service_name: str,
        service_namespace: str,
        service_port: int = 443,
        webhook_url: str = "",
        validating_failure_policy: str = FAILURE_POLICY_FAIL,
        mutating_failure_policy: str = FAILURE_POLICY_IGNORE,
        timeout_seconds: int = 5,
        max_attempts: int = 8,
        initial_delay: float = 1.0,
        backoff_factor: float = 2.0,
    ):
        """
        Initialize webhook registrar.

        Args:
            k8s_client: Kubernetes API client
            ca_bundle_b64: Base64 CA bundle the API server uses to trust us
            name: Name of both webhook configuration objects
            service_name: Service the API server calls
            service_namespace: Namespace of that Service
            service_port: Port of that Service
            webhook_url: Base URL to call instead of the Service reference
            validating_failure_policy: Fail or Ignore for the validating webhook
            mutating_failure_policy: Fail or Ignore for the mutating webhook
            timeout_seconds: Call timeout the API server applies
            max_attempts: Attempts per configuration before giving up
            initial_delay: Delay before the first retry in seconds
            backoff_factor: Multiplier for the delay between retries
        """
        self.api = client.AdmissionregistrationV1Api(k8s_client)
        self.ca_bundle_b64 = ca_bundle_b64
        self.name = name
        self.service_name = service_name
        self.service_namespace = service_namespace
        self.service_port = service_port
        self.webhook_url = webhook_url
        self.validating_failure_policy = validating_failure_policy
        self.mutating_failure_policy = mutating_failure_policy
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor

    @classmethod
    def from_settings(
        cls, settings: Settings, k8s_client: client.ApiClient, ca_bundle_b64: str
    ) -> "WebhookRegistrar":
        return cls(
            k8s_client=k8s_client,
            ca_bundle_b64=ca_bundle_b64,
            name=settings.webhook_name,
            service_name=settings.service_name,
            service_namespace=settings.service_namespace,
            service_port=settings.service_port,
            webhook_url=settings.webhook_url,
            validating_failure_policy=settings.validating_failure_policy,
            mutating_failure_policy=settings.mutating_failure_policy,
            timeout_seconds=settings.webhook_timeout_seconds,
            max_attempts=settings.registration_max_attempts,
            initial_delay=settings.registration_initial_delay,
            backoff_factor=settings.registration_backoff_factor,
        )

    def webhook_name(self, webhook: str) -> str:
        """Fully qualified webhook name, e.g. ``validate.internallb-webhook.<domain>``."""
        return f"{webhook}.{self.name}.{WEBHOOK_NAME_DOMAIN}"

    def client_config(self, path: str) -> client.AdmissionregistrationV1WebhookClientConfig:
        if self.webhook_url:
            return client.AdmissionregistrationV1WebhookClientConfig(
                url=f"{self.webhook_url.rstrip('/')}{path}",
                ca_bundle=self.ca_bundle_b64,
            )
        return client.AdmissionregistrationV1WebhookClientConfig(
            service=client.AdmissionregistrationV1ServiceReference(
                name=self.service_name,
                namespace=self.service_namespace,
                path=path,
                port=self.service_port,
            ),
            ca_bundle=self.ca_bundle_b64,
        )

    def rules(self) -> list[client.V1RuleWithOperations]:
        return [
            client.V1RuleWithOperations(
                api_groups=[SERVICE_GROUP],
                api_versions=[SERVICE_VERSION],
                operations=list(SERVICE_OPERATIONS),
                resources=[SERVICE_RESOURCE_PLURAL],
                scope="Namespaced",
            )
        ]

    def validating_configuration(self) -> client.V1ValidatingWebhookConfiguration:
        return client.V1ValidatingWebhookConfiguration(
            metadata=client.V1ObjectMeta(name=self.name, labels=REGISTRATION_LABELS),
            webhooks=[
                client.V1ValidatingWebhook(
                    name=self.webhook_name(WEBHOOK_VALIDATE),
                    admission_review_versions=list(ADMISSION_REVIEW_VERSIONS),
                    side_effects=SIDE_EFFECTS_NONE,
                    failure_policy=self.validating_failure_policy,
                    timeout_seconds=self.timeout_seconds,
                    client_config=self.client_config(VALIDATE_PATH),
                    rules=self.rules(),
                )
            ],
        )

    def mutating_configuration(self) -> client.V1MutatingWebhookConfiguration:
        return client.V1MutatingWebhookConfiguration(
            metadata=client.V1ObjectMeta(name=self.name, labels=REGISTRATION_LABELS),
            webhooks=[
                client.V1MutatingWebhook(
                    name=self.webhook_name(WEBHOOK_MUTATE),
                    admission_review_versions=list(ADMISSION_REVIEW_VERSIONS),
                    side_effects=SIDE_EFFECTS_NONE,
                    failure_policy=self.mutating_failure_policy,
                    timeout_seconds=self.timeout_seconds,
                    reinvocation_policy="Never",
                    client_config=self.client_config(MUTATE_PATH),
                    rules=self.rules(),
                )
            ],
        )

    def _create_or_replace(
        self,
        kind: str,
        body: Any,
        create: Callable[..., Any],
        read: Callable[..., Any],
        replace: Callable[..., Any],
    ) -> None:
        """
        Create a configuration, replacing it if it already exists.

        Raises:
            TemporaryError: On throttling, server errors or connection failures
            KubernetesAPIError: On other API errors
        """
        try:
            try:
                create(body)
                logger.info(f"Created {kind} {self.name}")
            except ApiException as e:
                if e.status != 409:
                    raise
                existing = read(self.name)
                body.metadata.resource_version = existing.metadata.resource_version
                replace(self.name, body)
                logger.info(f"Updated {kind} {self.name}")
        except (ApiException, HTTPError, OSError) as e:
            error = to_kubernetes_error(f"register {kind} {self.name}", e)
            if error.retryable:
                raise TemporaryError(str(error), cause=e) from e
            raise error from e

    def register_validating(self) -> None:
        self._create_or_replace(
            VALIDATING_KIND,
            self.validating_configuration(),
            self.api.create_validating_webhook_configuration,
            self.api.read_validating_webhook_configuration,
            self.api.replace_validating_webhook_configuration,
        )

    def register_mutating(self) -> None:
        self._create_or_replace(
            MUTATING_KIND,
            self.mutating_configuration(),
            self.api.create_mutating_webhook_configuration,
            self.api.read_mutating_webhook_configuration,
            self.api.replace_mutating_webhook_configuration,
        )

    async def register(self) -> bool:
        """
        Register both webhook configurations.

        Returns:
            True if both configurations are in place
        """
        results = [
            await self._register_with_retry(VALIDATING_KIND, self.register_validating),
            await self._register_with_retry(MUTATING_KIND, self.register_mutating),
        ]
        return all(results)

    async def _register_with_retry(
        self, kind: str, operation: Callable[[], None]
    ) -> bool:
        """
        Run one registration with exponential backoff on temporary errors.

        Args:
            kind: Configuration kind, for logging and metrics
            operation: Blocking registration call

        Returns:
            True on success; False after logging a RegistrationError
        """
        delay = self.initial_delay
        last_error: WebhookError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await asyncio.to_thread(operation)
                metrics_collector.record_registration_attempt(kind, success=True)
                return True
            except TemporaryError as e:
                metrics_collector.record_registration_attempt(kind, success=False)
                last_error = e
                if attempt == self.max_attempts:
                    break
                logger.warning(
                    f"Registering {kind} attempt {attempt} failed, retrying in {delay}s: {e}",
                    extra={"configuration": kind, "attempt": attempt},
                )
                await asyncio.sleep(delay)
                delay *= self.backoff_factor
            except WebhookError as e:
                metrics_collector.record_registration_attempt(kind, success=False)
                last_error = e
                break

        error = RegistrationError(
            f"{kind} {self.name} is not registered; the API server will not call "
            f"this webhook: {last_error}",
            cause=last_error,
        )
        logger.error(str(error), extra={"configuration": kind, "error_type": "RegistrationError"})
        return False
