#!/usr/bin/env python3
"""
Internal load balancer webhook - main entry point.

Startup runs in a fixed order:
1. Settings from the environment, overridden by command-line flags
2. Structured logging
3. Serving identity (fatal on failure)
4. HTTPS server, with webhook registration running in the background

Usage:
    python -m internallb_webhook.app --port 8443
    internallb-webhook --svcannotationkey example.com/internal --svcannotationvalue "true"

Environment Variables:
    PORT, SVC_ANNOTATION_KEY, SVC_ANNOTATION_VALUE, CERT_SOURCE, ...
    (see internallb_webhook.settings)
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Callable, Sequence

from kubernetes import client, config
from pydantic import ValidationError

from internallb_webhook.constants import CERT_SOURCE_CSR, CERT_SOURCE_FILES
from internallb_webhook.errors import ConfigurationError, IdentityError
from internallb_webhook.observability.logging import setup_structured_logging
from internallb_webhook.services.webhook_registrar import WebhookRegistrar
from internallb_webhook.settings import Settings
from internallb_webhook.utils.certificate_issuer import CertificateIssuer
from internallb_webhook.utils.identity import IdentityMaterial, load_identity_from_files
from internallb_webhook.utils.kubernetes import get_kubernetes_client
from internallb_webhook.webhooks.server import WebhookServer

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], client.ApiClient]


def build_parser() -> argparse.ArgumentParser:
    """Command-line flags; single-dash spellings are kept for existing manifests."""
    parser = argparse.ArgumentParser(
        prog="internallb-webhook",
        description="Admission webhook enforcing an annotation on LoadBalancer Services",
    )
    parser.add_argument("-port", "--port", dest="port", type=int, help="webserver port")
    parser.add_argument(
        "-keypairname",
        "--keypairname",
        dest="keypair_name",
        help="certificate and key pair name",
    )
    parser.add_argument(
        "-certdir", "--certdir", dest="cert_dir", help="certificate and key directory"
    )
    parser.add_argument(
        "-svcannotationkey",
        "--svcannotationkey",
        dest="annotation_key",
        help="service annotation key to match or mutate",
    )
    parser.add_argument(
        "-svcannotationvalue",
        "--svcannotationvalue",
        dest="annotation_value",
        help="service annotation value to match or mutate",
    )
    parser.add_argument(
        "--cert-source",
        dest="cert_source",
        choices=[CERT_SOURCE_FILES, CERT_SOURCE_CSR],
        help="load the serving certificate from files or request it through the CSR API",
    )
    parser.add_argument(
        "--no-register",
        dest="register_webhooks",
        action="store_const",
        const=False,
        help="do not create or update the webhook configurations",
    )
    parser.add_argument("--log-level", dest="log_level", help="log level")
    return parser


def load_settings(argv: Sequence[str] | None = None) -> Settings:
    """
    Build settings from the environment and command-line flags.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Frozen settings; flags take priority over environment variables
    """
    args = build_parser().parse_args(argv)
    overrides = {key: value for key, value in vars(args).items() if value is not None}
    return Settings(**overrides)


def configure_logging(settings: Settings) -> None:
    """Configure structured logging for the webhook based on settings."""
    setup_structured_logging(
        log_level=settings.log_level.upper(),
        enable_json_formatting=settings.json_logs,
        correlation_id_enabled=settings.correlation_ids,
        log_health_probes=settings.log_health_probes,
    )


def provide_identity(
    settings: Settings, client_factory: ClientFactory = get_kubernetes_client
) -> IdentityMaterial:
    """
    Obtain the serving identity with the configured strategy.

    Args:
        settings: Webhook settings
        client_factory: Builds the Kubernetes client for the CSR strategy

    Returns:
        Immutable identity material

    Raises:
        IdentityError: If no valid identity can be obtained
    """
    if settings.cert_source == CERT_SOURCE_FILES:
        return load_identity_from_files(
            settings.ca_cert_file, settings.server_key_file, settings.server_cert_file
        )

    try:
        k8s_client = client_factory()
    except config.ConfigException as e:
        raise IdentityError(
            f"Cannot request a serving certificate without cluster access: {e}", cause=e
        ) from e

    issuer = CertificateIssuer(
        k8s_client=k8s_client,
        service_name=settings.service_name,
        namespace=settings.service_namespace,
        cert_dir=settings.cert_dir,
        keypair_name=settings.keypair_name,
        signer_name=settings.csr_signer_name,
        auto_approve=settings.csr_auto_approve,
        timeout=settings.csr_timeout_seconds,
        poll_interval=settings.csr_poll_interval,
    )
    return issuer.issue()


async def register_webhooks(
    settings: Settings,
    identity: IdentityMaterial,
    client_factory: ClientFactory = get_kubernetes_client,
) -> bool:
    """
    Register the webhook configurations with the API server.

    Returns:
        True if both configurations are registered
    """
    try:
        k8s_client = await asyncio.to_thread(client_factory)
    except config.ConfigException as e:
        logger.error(
            f"Webhook configurations are not registered; the API server will not "
            f"call this webhook: {e}",
            extra={"error_type": "RegistrationError"},
        )
        return False

    registrar = WebhookRegistrar.from_settings(settings, k8s_client, identity.ca_bundle_b64)
    registered = await registrar.register()
    if registered:
        logger.info(f"Webhook configurations {settings.webhook_name} registered")
    return registered


def _log_registration_failure(task: asyncio.Task) -> None:
    """Log a registration task that died with an unexpected exception."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(
            f"Webhook registration failed; the API server will not call this webhook: {error}",
            exc_info=error,
            extra={"error_type": type(error).__name__},
        )


async def run(
    settings: Settings,
    identity: IdentityMaterial,
    client_factory: ClientFactory = get_kubernetes_client,
    stop_event: asyncio.Event | None = None,
) -> None:
    """
    Serve admission requests until stopped.

    Args:
        settings: Webhook settings
        identity: Serving identity
        client_factory: Builds the Kubernetes client for registration
        stop_event: Stops the server when set; SIGINT/SIGTERM are wired to a
            fresh event when omitted
    """
    if stop_event is None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop_event.set)

    server = WebhookServer(
        policy=settings.policy,
        port=settings.port,
        host=settings.host,
        ssl_context=identity.ssl_context(),
    )

    async with server:
        registration: asyncio.Task | None = None
        if settings.register_webhooks:
            registration = asyncio.create_task(
                register_webhooks(settings, identity, client_factory)
            )
            registration.add_done_callback(_log_registration_failure)
        else:
            logger.info("Webhook registration disabled; configurations are managed externally")

        await stop_event.wait()
        logger.info("Received shutdown signal")

        if registration is not None and not registration.done():
            registration.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await registration


def main(argv: Sequence[str] | None = None) -> None:
    """
    Main entry point for the webhook.

    Exits with status 1 when no serving identity can be obtained and with
    status 2 on invalid configuration.
    """
    try:
        settings = load_settings(argv)
    except ValidationError as e:
        error = ConfigurationError(f"Invalid configuration: {e}")
        print(str(error), file=sys.stderr)
        sys.exit(2)

    configure_logging(settings)
    logger.info(f"Starting webserver on port {settings.port}")
    logger.info(f"Service annotation to match/mutate: {settings.policy}")

    try:
        identity = provide_identity(settings)
    except IdentityError as e:
        logger.critical(f"Cannot start without a serving identity: {e}")
        sys.exit(1)

    try:
        asyncio.run(run(settings, identity))
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.error(f"Webhook failed with error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
