"""Centralized webhook settings using pydantic-settings.

This module provides a single source of truth for all webhook configuration
loaded from environment variables. Command-line flags are layered on top by
passing them as init arguments, which take priority over the environment.
Settings are frozen once constructed and handed explicitly to the
components that need them.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from internallb_webhook.constants import (
    CERT_SOURCE_CSR,
    CERT_SOURCE_FILES,
    CSR_DEFAULT_SIGNER_NAME,
    DEFAULT_ANNOTATION_KEY,
    DEFAULT_ANNOTATION_VALUE,
    DEFAULT_CA_CERT_FILE,
    DEFAULT_CERT_DIR,
    DEFAULT_KEYPAIR_NAME,
    DEFAULT_PORT,
    DEFAULT_SERVER_CERT_FILE,
    DEFAULT_SERVER_KEY_FILE,
    DEFAULT_WEBHOOK_NAME,
    DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
    FAILURE_POLICY_FAIL,
    FAILURE_POLICY_IGNORE,
)
from internallb_webhook.models.policy import AnnotationPolicy


class Settings(BaseSettings):
    """Webhook configuration loaded from environment variables.

    All settings default to the values existing deployments rely on.
    Override via environment variables as documented per field, or via the
    command-line flags parsed in ``internallb_webhook.app``.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # HTTPS server
    port: int = Field(
        default=DEFAULT_PORT,
        validation_alias="PORT",
        description="Port the HTTPS webhook server listens on",
    )
    host: str = Field(
        default="0.0.0.0",
        validation_alias="HOST",
        description="Host address to bind the webhook server",
    )

    # Policy
    annotation_key: str = Field(
        default=DEFAULT_ANNOTATION_KEY,
        validation_alias="SVC_ANNOTATION_KEY",
        description="Service annotation key to match or mutate",
    )
    annotation_value: str = Field(
        default=DEFAULT_ANNOTATION_VALUE,
        validation_alias="SVC_ANNOTATION_VALUE",
        description="Service annotation value to match or mutate",
    )

    # Identity material
    cert_source: str = Field(
        default=CERT_SOURCE_FILES,
        validation_alias="CERT_SOURCE",
        description="Where the serving certificate comes from (files or csr)",
    )
    keypair_name: str = Field(
        default=DEFAULT_KEYPAIR_NAME,
        validation_alias="KEYPAIR_NAME",
        description="Certificate and key pair name",
    )
    cert_dir: str = Field(
        default=DEFAULT_CERT_DIR,
        validation_alias="CERT_DIR",
        description="Directory the issued certificate and key pair is written to",
    )
    ca_cert_file: str = Field(
        default=DEFAULT_CA_CERT_FILE,
        validation_alias="CA_CERT_FILE",
        description="CA bundle the API server uses to trust the webhook",
    )
    server_key_file: str = Field(
        default=DEFAULT_SERVER_KEY_FILE,
        validation_alias="SERVER_KEY_FILE",
        description="PEM private key of the serving certificate",
    )
    server_cert_file: str = Field(
        default=DEFAULT_SERVER_CERT_FILE,
        validation_alias="SERVER_CERT_FILE",
        description="PEM serving certificate",
    )

    # Certificate signing requests (cert_source=csr)
    csr_signer_name: str = Field(
        default=CSR_DEFAULT_SIGNER_NAME,
        validation_alias="CSR_SIGNER_NAME",
        description="Signer requested for the serving certificate",
    )
    csr_auto_approve: bool = Field(
        default=False,
        validation_alias="CSR_AUTO_APPROVE",
        description="Approve the webhook's own CertificateSigningRequest",
    )
    csr_timeout_seconds: float = Field(
        default=300.0,
        validation_alias="CSR_TIMEOUT_SECONDS",
        description="How long to wait for the certificate to be issued",
    )
    csr_poll_interval: float = Field(
        default=2.0,
        validation_alias="CSR_POLL_INTERVAL",
        description="Seconds between CertificateSigningRequest status polls",
    )

    # Webhook registration
    register_webhooks: bool = Field(
        default=True,
        validation_alias="REGISTER_WEBHOOKS",
        description="Create or update the webhook configurations on startup",
    )
    webhook_name: str = Field(
        default=DEFAULT_WEBHOOK_NAME,
        validation_alias="WEBHOOK_NAME",
        description="Name of the Validating/MutatingWebhookConfiguration objects",
    )
    service_name: str = Field(
        default=DEFAULT_WEBHOOK_NAME,
        validation_alias="SERVICE_NAME",
        description="Name of the Service fronting the webhook pods",
    )
    service_namespace: str = Field(
        default="kube-system",
        validation_alias="POD_NAMESPACE",
        description="Namespace of the Service fronting the webhook pods",
    )
    service_port: int = Field(
        default=443,
        validation_alias="SERVICE_PORT",
        description="Port of the Service fronting the webhook pods",
    )
    webhook_url: str = Field(
        default="",
        validation_alias="WEBHOOK_URL",
        description="Base URL the API server calls instead of the service reference",
    )
    validating_failure_policy: str = Field(
        default=FAILURE_POLICY_FAIL,
        validation_alias="VALIDATING_FAILURE_POLICY",
        description="Failure policy of the validating webhook (Fail or Ignore)",
    )
    mutating_failure_policy: str = Field(
        default=FAILURE_POLICY_IGNORE,
        validation_alias="MUTATING_FAILURE_POLICY",
        description="Failure policy of the mutating webhook (Fail or Ignore)",
    )
    webhook_timeout_seconds: int = Field(
        default=DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
        ge=1,
        le=30,
        validation_alias="WEBHOOK_TIMEOUT_SECONDS",
        description="Timeout the API server applies to each webhook call",
    )
    registration_max_attempts: int = Field(
        default=8,
        ge=1,
        validation_alias="REGISTRATION_MAX_ATTEMPTS",
        description="Attempts made to register the webhook configurations",
    )
    registration_initial_delay: float = Field(
        default=1.0,
        validation_alias="REGISTRATION_INITIAL_DELAY",
        description="Delay in seconds before the first registration retry",
    )
    registration_backoff_factor: float = Field(
        default=2.0,
        validation_alias="REGISTRATION_BACKOFF_FACTOR",
        description="Multiplier applied to the delay between registration retries",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Log liveness probe and metrics scrape requests",
    )

    @field_validator("cert_source")
    @classmethod
    def validate_cert_source(cls, v: str) -> str:
        if v not in (CERT_SOURCE_FILES, CERT_SOURCE_CSR):
            raise ValueError(
                f"cert_source must be '{CERT_SOURCE_FILES}' or '{CERT_SOURCE_CSR}'"
            )
        return v

    @field_validator("validating_failure_policy", "mutating_failure_policy")
    @classmethod
    def validate_failure_policy(cls, v: str) -> str:
        if v not in (FAILURE_POLICY_FAIL, FAILURE_POLICY_IGNORE):
            raise ValueError(
                f"failure policy must be '{FAILURE_POLICY_FAIL}' or '{FAILURE_POLICY_IGNORE}'"
            )
        return v

    @field_validator("annotation_key")
    @classmethod
    def validate_annotation_key(cls, v: str) -> str:
        if not v:
            raise ValueError("annotation_key must not be empty")
        return v

    @property
    def policy(self) -> AnnotationPolicy:
        """Annotation policy enforced by the decision engine."""
        return AnnotationPolicy(key=self.annotation_key, value=self.annotation_value)
