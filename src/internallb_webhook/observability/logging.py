"""
Structured logging utilities for the internal load balancer webhook.

This module provides correlation ID tracking and structured log formatting.
Each admission request is logged under a correlation ID derived from its
AdmissionReview uid so a single call can be followed through the logs.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable for tracking correlation IDs across async operations
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Paths that should be filtered from access logs (health probes)
HEALTH_PROBE_PATHS = frozenset({"/healthz", "/metrics"})

# Extra attributes copied into the JSON document when present on a record
STRUCTURED_FIELDS = (
    "uid",
    "webhook",
    "operation",
    "resource_name",
    "namespace",
    "allowed",
    "duration",
    "error_type",
    "http_status",
    "attempt",
    "configuration",
)


class HealthProbeFilter(logging.Filter):
    """
    Drop access log lines for liveness probes and metrics scrapes.

    The kubelet and Prometheus hit ``/healthz`` and ``/metrics`` every few
    seconds; admission calls are the only requests worth an access line.
    """

    def __init__(self, suppress_health_logs: bool = True):
        """
        Initialize health probe filter.

        Args:
            suppress_health_logs: If False, every record passes
        """
        super().__init__()
        self.suppress_health_logs = suppress_health_logs

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Decide whether a record is a probe request line.

        Only the request target of an access line is matched, so admission
        logs mentioning a probe path elsewhere in the text are kept.

        Args:
            record: The log record to process

        Returns:
            False for probe request lines, True otherwise
        """
        if not self.suppress_health_logs:
            return True

        message = record.getMessage()
        for path in HEALTH_PROBE_PATHS:
            if f" {path} " in message or f" {path}?" in message:
                return False
        return True


class CorrelationIDFilter(logging.Filter):
    """
    Stamp each record with the correlation ID of the current context.

    Admission handling sets the ID from the AdmissionReview uid; records
    emitted outside a request (startup, registration) get a fresh ID that
    then sticks to that context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Attach ``record.correlation_id``.

        Args:
            record: The log record to process

        Returns:
            Always True; the filter only annotates
        """
        current_correlation_id = correlation_id.get()
        if not current_correlation_id:
            current_correlation_id = set_correlation_id(generate_correlation_id())

        record.correlation_id = current_correlation_id
        return True


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for webhook logs.

    Emits one JSON document per record with the correlation ID and any
    admission fields passed through ``extra`` (uid, webhook, operation, ...),
    so a single AdmissionReview can be followed in a log aggregator.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as structured JSON.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted log message
        """
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data.update(
            {
                field: getattr(record, field)
                for field in STRUCTURED_FIELDS
                if hasattr(record, field)
            }
        )
        return json.dumps(log_data, default=str)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID.

    Returns:
        Unique correlation ID string
    """
    return str(uuid.uuid4())[:8]  # Short 8-character ID for readability


def set_correlation_id(corr_id: str) -> str:
    """
    Set the correlation ID for the current context.

    Args:
        corr_id: Correlation ID to set

    Returns:
        The correlation ID that was set
    """
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    """Get the current correlation ID, or empty string if none set."""
    return correlation_id.get("")


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
    log_health_probes: bool = False,
) -> None:
    """
    Set up structured logging for the webhook.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Whether to use JSON formatting
        correlation_id_enabled: Whether to enable correlation ID tracking
        log_health_probes: Whether to log health probe requests (default: False)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()

    if enable_json_formatting:
        formatter = StructuredFormatter()
    elif correlation_id_enabled:
        formatter = logging.Formatter(
            "%(asctime)s - %(correlation_id)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)

    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    if not log_health_probes:
        handler.addFilter(HealthProbeFilter(suppress_health_logs=True))

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Set specific logger levels for third-party libraries
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    # aiohttp.access stays at the root level; probe lines are dropped by HealthProbeFilter
    logging.getLogger("aiohttp.server").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.web").setLevel(logging.WARNING)
