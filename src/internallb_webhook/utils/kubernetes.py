"""
Kubernetes utilities for the internal load balancer webhook.

This module provides helper functions for interacting with the Kubernetes API:
- Kubernetes client management and configuration
- Access to the cluster CA the API server's serving certificate chains to
- Translating client exceptions into the webhook's error hierarchy
"""

import logging
from pathlib import Path

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from internallb_webhook.constants import SERVICE_ACCOUNT_CA_FILE
from internallb_webhook.errors import IdentityError, KubernetesAPIError

logger = logging.getLogger(__name__)


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    This function handles both in-cluster and local development configurations.

    Returns:
        Configured Kubernetes API client
    """
    try:
        # Try in-cluster config first (when running in a pod)
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            # Fall back to local kubeconfig (for development)
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def cluster_ca_bundle(k8s_client: client.ApiClient) -> bytes:
    """
    Read the cluster CA bundle from the client configuration.

    Certificates issued through the CSR API chain to this CA, so it is the
    bundle the API server needs to trust the webhook.

    Args:
        k8s_client: Kubernetes API client

    Returns:
        PEM encoded CA bundle

    Raises:
        IdentityError: If the CA bundle cannot be read
    """
    ca_path = k8s_client.configuration.ssl_ca_cert or SERVICE_ACCOUNT_CA_FILE
    try:
        ca_bundle = Path(ca_path).read_bytes()
    except OSError as e:
        raise IdentityError(
            f"Failed to read cluster CA bundle from {ca_path}: {e}", cause=e
        ) from e

    if not ca_bundle.strip():
        raise IdentityError(f"Cluster CA bundle {ca_path} is empty")
    return ca_bundle


def to_kubernetes_error(
    action: str, error: ApiException | HTTPError | OSError
) -> KubernetesAPIError:
    """
    Convert a Kubernetes client failure into a KubernetesAPIError.

    Args:
        action: What was being attempted, for the error message
        error: Exception raised by the kubernetes client

    Returns:
        Error carrying the HTTP status (None for connection failures)
    """
    if isinstance(error, ApiException):
        return KubernetesAPIError(
            f"Failed to {action}", status=error.status, reason=error.reason, cause=error
        )
    return KubernetesAPIError(f"Failed to {action}: {error}", cause=error)
