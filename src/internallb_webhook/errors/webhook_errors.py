"""
Webhook error hierarchy with categorization and retry logic.

This module defines the error types used throughout the webhook, providing
clear categorization between fatal startup failures, retryable control
plane failures and protocol errors that are turned into admission responses.
"""


class WebhookError(Exception):
    """
    Base error class for all webhook-related exceptions.

    Provides categorization, retry behavior, and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = False,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize webhook error.

        Args:
            message: Human-readable error description
            category: Error category (configuration, identity, api, protocol)
            retryable: Whether the failed operation may succeed when retried
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class TemporaryError(WebhookError):
    """Temporary error that should be retried."""

    def __init__(
        self,
        message: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category="temporary",
            retryable=True,
            user_action=user_action
            or "Wait for automatic retry or check system status",
            cause=cause,
        )


class ConfigurationError(WebhookError):
    """Error in webhook configuration."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            category="configuration",
            retryable=False,
            user_action=user_action or "Review and correct configuration",
        )


class IdentityError(WebhookError):
    """The serving certificate, key or CA bundle could not be obtained.

    Always fatal: the webhook must not start serving without a valid identity.
    """

    def __init__(
        self,
        message: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category="identity",
            retryable=False,
            user_action=user_action
            or "Check the mounted certificate secrets or the CertificateSigningRequest",
            cause=cause,
        )


class KubernetesAPIError(WebhookError):
    """Error communicating with Kubernetes API."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        reason: str | None = None,
        cause: Exception | None = None,
    ):
        if reason:
            message = f"{message} (reason: {reason})"

        # Throttling and server-side failures are worth retrying; other
        # client errors (Forbidden, Invalid, ...) are not.
        retryable = not status or status == 429 or status >= 500

        super().__init__(
            message=f"Kubernetes API error: {message}",
            category="api",
            retryable=retryable,
            user_action="Check RBAC permissions and cluster connectivity",
            cause=cause,
        )
        self.status = status
        self.reason = reason


class RegistrationError(WebhookError):
    """Webhook configurations could not be registered with the API server."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="registration",
            retryable=False,
            user_action=(
                "The API server will not call this webhook until the "
                "webhook configurations are registered; check RBAC for "
                "admissionregistration.k8s.io"
            ),
            cause=cause,
        )


class AdmissionDecodeError(WebhookError):
    """An AdmissionReview envelope or the object under review could not be decoded."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="protocol",
            retryable=False,
            cause=cause,
        )
