"""
Monitoring Infrastructure: Structured Logging & Prometheus Metrics

Configures structlog for JSON event output (used by the side channel for
selection and recommendation events) and loguru for service logs, and
exposes a Prometheus metrics collector for pipeline KPIs.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from loguru import logger
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


def configure_structlog(level: str = "INFO") -> None:
    """
    Configure structlog for JSON-based structured event logging.

    Sets up processors for:
    - Timestamping (ISO 8601)
    - Log level formatting
    - Exception formatting with stack traces
    - JSON rendering
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure process-wide logging.

    Replaces loguru's default sink with one matching the configured level
    and format, then configures structlog with the same level.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), serialize=log_format == "json")
    configure_structlog(level)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structlog logger instance bound with a name context.

    Args:
        name: Logger name (typically module __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


class MetricsCollector:
    """
    Prometheus metrics collector for pipeline observability.

    Tracks:
    - Cache hits and misses per pool
    - External call attempts, failures and health per service
    - Generation batch durations and article outcomes
    - Model selections and recommendation confidence
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collector.

        Args:
            registry: Prometheus registry; a private one is created when omitted
        """
        self.registry = registry or CollectorRegistry()

        # Cache metrics
        self.cache_hits_total = Counter(
            "cache_hits_total", "Total cache hits", labelnames=["pool"], registry=self.registry
        )

        self.cache_misses_total = Counter(
            "cache_misses_total", "Total cache misses", labelnames=["pool"], registry=self.registry
        )

        # External call metrics
        self.external_calls_total = Counter(
            "external_calls_total",
            "Wrapped external calls by final outcome",
            labelnames=["service", "operation", "status"],
            registry=self.registry,
        )

        self.external_call_attempts = Histogram(
            "external_call_attempts",
            "Attempts needed per wrapped external call",
            buckets=[1, 2, 3, 4, 5, 8],
            labelnames=["service"],
            registry=self.registry,
        )

        self.service_consecutive_failures = Gauge(
            "service_consecutive_failures",
            "Consecutive failures per external service",
            labelnames=["service"],
            registry=self.registry,
        )

        # Generation metrics
        self.generation_duration_seconds = Histogram(
            "generation_duration_seconds",
            "Personalized generation batch duration",
            buckets=[1, 5, 10, 30, 60, 120, 300, 600],
            registry=self.registry,
        )

        self.articles_generated_total = Counter(
            "articles_generated_total",
            "Articles by generation outcome",
            labelnames=["category", "status"],
            registry=self.registry,
        )

        # Selection and recommendation metrics
        self.model_selections_total = Counter(
            "model_selections_total",
            "Model selections by winning model",
            labelnames=["model", "task_type"],
            registry=self.registry,
        )

        self.recommendation_confidence = Histogram(
            "recommendation_confidence",
            "Confidence of recommendation batches",
            buckets=[40, 50, 60, 70, 80, 90, 95],
            registry=self.registry,
        )

        log = get_logger(__name__)
        log.info("metrics_collector_initialized", metrics_type="prometheus")

    def record_cache_hit(self, pool: str) -> None:
        self.cache_hits_total.labels(pool=pool).inc()

    def record_cache_miss(self, pool: str) -> None:
        self.cache_misses_total.labels(pool=pool).inc()

    def record_external_call(
        self,
        service: str,
        operation: str,
        success: bool,
        attempts: int,
        consecutive_failures: int,
    ) -> None:
        """
        Record the final outcome of a wrapped external call.

        Args:
            service: External service name (e.g. "document_source")
            operation: Operation name
            success: Whether the call eventually succeeded
            attempts: Attempts made, including the first
            consecutive_failures: Failure streak after this outcome
        """
        status = "success" if success else "failure"
        self.external_calls_total.labels(service=service, operation=operation, status=status).inc()
        self.external_call_attempts.labels(service=service).observe(attempts)
        self.service_consecutive_failures.labels(service=service).set(consecutive_failures)

    def record_generation_batch(self, duration_seconds: float) -> None:
        self.generation_duration_seconds.observe(duration_seconds)

    def record_article_outcome(self, category: str, success: bool) -> None:
        status = "success" if success else "failure"
        self.articles_generated_total.labels(category=category, status=status).inc()

    def record_model_selection(self, model: str, task_type: str) -> None:
        self.model_selections_total.labels(model=model, task_type=task_type).inc()

    def record_recommendation_confidence(self, confidence: float) -> None:
        self.recommendation_confidence.observe(confidence)

    def export_metrics(self) -> bytes:
        """
        Export metrics in Prometheus format.

        Returns:
            Prometheus-formatted metrics payload
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Summary of registered metric families."""
        families = list(self.registry.collect())
        return {
            "metrics_initialized": True,
            "total_metrics": len(families),
            "names": sorted(f.name for f in families),
        }
