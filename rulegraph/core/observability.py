"""
Observability module for the rule-graph engine.

Provides:
- Structured logging with JSON format and correlation IDs
- Caller context (correlation_id, tenant_id) carried in context variables
- Prometheus metrics for rule-graph evaluations

The engine performs no I/O; collaborators that host it scrape
metrics_payload() or register the registry with their own exporter.

Usage:
    from rulegraph.core.observability import (
        configure_structured_logging,
        set_correlation_id,
        metrics,
    )
"""

import json
import logging
from contextvars import ContextVar
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

# ============================================================================
# Context Variables for Caller Tracking
# ============================================================================

# Correlation ID - links all logs emitted for one business operation
_correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")

# Tenant the evaluated rule set belongs to
_tenant_id_ctx: ContextVar[str] = ContextVar("tenant_id", default="")


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return _correlation_id_ctx.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id_ctx.set(correlation_id)


def get_tenant_id() -> str:
    """Get the current tenant ID from context."""
    return _tenant_id_ctx.get()


def set_tenant_id(tenant_id: str) -> None:
    """Set the tenant ID for the current context."""
    _tenant_id_ctx.set(tenant_id)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "message",
        "asctime",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - correlation_id: Caller correlation ID (if set)
    - tenant_id: Tenant of the evaluated rule set (if set)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Python logging LogRecord

        Returns:
            JSON-formatted log string
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        tenant_id = get_tenant_id()
        if tenant_id:
            log_entry["tenant_id"] = tenant_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["function"] = record.funcName
        log_entry["line"] = record.lineno

        # These come from logger.info("msg", extra={"key": "value"})
        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO", structured: bool = True) -> None:
    """
    Configure root logger, with JSON formatting unless structured is False.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Emit JSON lines (True) or the plain logging format
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger.addHandler(handler)


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with the host application's metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics for rule-graph evaluations.

    - Evaluation count by status (success/error) and aggregate result
    - Evaluation latency
    - Rule-set size per evaluation
    - Findings emitted by severity
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        """Initialize all metrics with proper labels."""
        self.registry = registry

        self.evaluations_total = Counter(
            "rulegraph_evaluations_total",
            "Total rule-graph evaluations",
            ["status", "result"],
            registry=self.registry,
        )

        self.evaluation_duration_seconds = Histogram(
            "rulegraph_evaluation_duration_seconds",
            "Rule-graph evaluation duration in seconds",
            buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0),
            registry=self.registry,
        )

        self.evaluation_rules_count = Histogram(
            "rulegraph_evaluation_rules_count",
            "Number of rule definitions evaluated per run",
            buckets=(1, 5, 10, 25, 50, 100, 250, 500),
            registry=self.registry,
        )

        self.findings_total = Counter(
            "rulegraph_findings_total",
            "Findings emitted by severity",
            ["severity"],
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)


def metrics_payload() -> bytes:
    """
    Prometheus exposition payload for the engine registry.

    Hosts serve this with media type "text/plain; version=0.0.4; charset=utf-8".
    """
    return generate_latest(_registry)

