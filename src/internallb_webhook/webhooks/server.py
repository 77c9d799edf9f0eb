"""
HTTPS server for the admission webhooks.

Terminates TLS with the webhook's identity material, decodes the
AdmissionReview envelope, dispatches to the decision engine by route and
writes the envelope back. The API server must always receive a well-formed
envelope, so decode failures and missing decisions are reported inside the
envelope with HTTP 200 rather than as transport errors.
"""

import json
import logging
import ssl
import time

from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    json_response,
)
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import ValidationError

from internallb_webhook.constants import (
    HEALTHZ_PATH,
    JSON_CONTENT_TYPE,
    METRICS_PATH,
    MUTATE_PATH,
    MUTATE_ROOT_PATH,
    NO_DECISION_MESSAGE,
    VALIDATE_PATH,
    WEBHOOK_MUTATE,
    WEBHOOK_VALIDATE,
)
from internallb_webhook.errors import AdmissionDecodeError
from internallb_webhook.models.admission import AdmissionResponse, AdmissionReview
from internallb_webhook.models.policy import AnnotationPolicy
from internallb_webhook.observability.logging import (
    generate_correlation_id,
    set_correlation_id,
)
from internallb_webhook.observability.metrics import metrics_collector, render_metrics
from internallb_webhook.webhooks.services import ADMISSION_HANDLERS

logger = logging.getLogger(__name__)

# Kubernetes objects are capped at 1.5MiB; leave room for oldObject and the envelope
CLIENT_MAX_SIZE = 4 * 1024 * 1024


def describe_validation_error(error: ValidationError) -> str:
    """
    Summarize a validation error for the user who submitted the object.

    The API server shows ``status.message`` verbatim, so documentation links
    and input echoes are left out.
    """
    problems = []
    for detail in error.errors(include_url=False, include_input=False):
        location = ".".join(str(part) for part in detail["loc"])
        problems.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(problems)


def decode_review(body: bytes) -> AdmissionReview:
    """
    Decode an inbound AdmissionReview envelope.

    Args:
        body: Raw HTTP request body

    Returns:
        The decoded envelope, guaranteed to carry a request

    Raises:
        AdmissionDecodeError: If the body is not a valid AdmissionReview
    """
    try:
        review = AdmissionReview.model_validate_json(body)
    except ValidationError as e:
        raise AdmissionDecodeError(
            f"failed to decode AdmissionReview: {describe_validation_error(e)}", cause=e
        ) from e

    if review.request is None:
        raise AdmissionDecodeError("failed to decode AdmissionReview: missing request")
    return review


def recover_uid(body: bytes) -> str:
    """Best-effort extraction of ``request.uid`` from an undecodable envelope."""
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return ""
    if not isinstance(payload, dict):
        return ""
    request = payload.get("request")
    if not isinstance(request, dict):
        return ""
    uid = request.get("uid")
    return uid if isinstance(uid, str) else ""


def _outcome(response: AdmissionResponse, decided: bool) -> str:
    if not decided:
        return "error"
    return "allowed" if response.allowed else "denied"


class WebhookServer:
    """HTTP(S) server exposing the validating and mutating webhooks."""

    def __init__(
        self,
        policy: AnnotationPolicy,
        port: int = 8443,
        host: str = "0.0.0.0",
        ssl_context: ssl.SSLContext | None = None,
    ):
        """
        Initialize webhook server.

        Args:
            policy: Annotation policy handed to the decision engine
            port: Port to listen on
            host: Host interface to bind to
            ssl_context: Server TLS context; plain HTTP when None
        """
        self.policy = policy
        self.port = port
        self.host = host
        self.ssl_context = ssl_context
        self.app = Application(client_max_size=CLIENT_MAX_SIZE)
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes for the webhook server."""
        self.app.router.add_post(VALIDATE_PATH, self._validate_handler)
        self.app.router.add_post(MUTATE_PATH, self._mutate_handler)
        self.app.router.add_post(MUTATE_ROOT_PATH, self._mutate_handler)
        self.app.router.add_get(HEALTHZ_PATH, self._healthz_handler)
        self.app.router.add_get(METRICS_PATH, self._metrics_handler)

    async def _validate_handler(self, request: Request) -> Response:
        return await self.serve(request, WEBHOOK_VALIDATE)

    async def _mutate_handler(self, request: Request) -> Response:
        return await self.serve(request, WEBHOOK_MUTATE)

    async def _healthz_handler(self, request: Request) -> Response:
        """Handle /healthz endpoint for Kubernetes liveness probes."""
        return Response(text="ok")

    async def _metrics_handler(self, request: Request) -> Response:
        """Handle /metrics endpoint for Prometheus scraping."""
        return Response(
            body=render_metrics(), headers={"Content-Type": CONTENT_TYPE_LATEST}
        )

    async def _read_body(self, request: Request) -> bytes:
        if not request.can_read_body:
            return b""
        try:
            return await request.read()
        except Exception as e:
            logger.warning(f"Failed to read admission request body: {e}")
            return b""

    async def serve(self, request: Request, webhook: str) -> Response:
        """
        Serve one admission call.

        Args:
            request: Inbound HTTP request
            webhook: Which decision to apply (validate or mutate)

        Returns:
            HTTP response carrying the AdmissionReview envelope
        """
        start_time = time.monotonic()
        body = await self._read_body(request)

        if request.content_type != JSON_CONTENT_TYPE:
            content_type = request.headers.get("Content-Type", "")
            logger.error(
                f"contentType={content_type}, expect {JSON_CONTENT_TYPE}",
                extra={"webhook": webhook, "http_status": 415},
            )
            metrics_collector.record_admission(
                webhook, "rejected", time.monotonic() - start_time
            )
            return Response(status=415)

        review = self.handle_review(body, webhook)
        return json_response(review.to_wire())

    def handle_review(self, body: bytes, webhook: str) -> AdmissionReview:
        """
        Turn a raw request body into the AdmissionReview sent back.

        Never raises: every failure is reported inside the envelope.

        Args:
            body: Raw HTTP request body
            webhook: Which decision to apply (validate or mutate)

        Returns:
            Response envelope, echoing the request uid and apiVersion
        """
        start_time = time.monotonic()
        try:
            review = decode_review(body)
        except AdmissionDecodeError as e:
            uid = recover_uid(body)
            set_correlation_id(uid[:8] or generate_correlation_id())
            logger.error(str(e), extra={"uid": uid, "webhook": webhook})
            metrics_collector.record_admission(
                webhook, "error", time.monotonic() - start_time
            )
            return AdmissionReview.reply(AdmissionResponse.error(uid, str(e)))

        admission_request = review.request
        uid = admission_request.uid
        set_correlation_id(uid[:8] or generate_correlation_id())

        admit = ADMISSION_HANDLERS[webhook]
        try:
            response = admit(admission_request, self.policy)
        except Exception as e:
            logger.error(
                f"Admission {webhook} failed for request {uid}: {e}",
                exc_info=True,
                extra={"uid": uid, "webhook": webhook, "error_type": type(e).__name__},
            )
            response = None

        decided = response is not None
        if response is None:
            response = AdmissionResponse.error(uid, NO_DECISION_MESSAGE)

        outcome = _outcome(response, decided)
        metrics_collector.record_admission(
            webhook,
            outcome,
            time.monotonic() - start_time,
            patched=response.patch is not None,
        )
        logger.info(
            f"Admission {webhook} {admission_request.operation} "
            f"{admission_request.namespace or ''}/{admission_request.name or ''}: "
            f"{outcome}",
            extra={
                "uid": uid,
                "webhook": webhook,
                "operation": admission_request.operation,
                "resource_name": admission_request.name,
                "namespace": admission_request.namespace,
                "allowed": response.allowed,
            },
        )
        return AdmissionReview.reply(response, api_version=review.api_version)

    async def start(self) -> None:
        """Start the webhook server."""
        try:
            self.runner = AppRunner(self.app)
            await self.runner.setup()

            self.site = TCPSite(
                self.runner, self.host, self.port, ssl_context=self.ssl_context
            )
            await self.site.start()

            scheme = "https" if self.ssl_context else "http"
            logger.info(f"Webhook server started on {scheme}://{self.host}:{self.port}")
            if not self.ssl_context:
                logger.warning(
                    "Webhook server is serving plain HTTP; the API server only calls HTTPS webhooks"
                )

        except Exception as e:
            logger.error(f"Failed to start webhook server: {e}")
            raise

    async def stop(self) -> None:
        """Stop the webhook server."""
        try:
            if self.site:
                await self.site.stop()
                self.site = None

            if self.runner:
                await self.runner.cleanup()
                self.runner = None

            logger.info("Webhook server stopped")
        except Exception as e:
            logger.error(f"Error stopping webhook server: {e}")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()
