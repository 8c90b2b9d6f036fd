"""
Monitoring Infrastructure: Loguru Sinks and Prometheus Metrics

Configures the process-wide loguru sink (human-readable text for local runs,
serialized JSON for log shippers) and exposes engine KPIs through
prometheus_client:
- Review generation requests and latency per provider
- Template regenerations per trigger
- Model discovery cache hits, misses and fallbacks
"""

import sys
from typing import Any, Dict, Optional

from loguru import logger
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from config.settings import MonitoringSettings

TEXT_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(settings: Optional[MonitoringSettings] = None) -> None:
    """
    Replace loguru's default sink according to monitoring settings.

    ``diagnose`` is disabled so exception traces never render local variables
    (which may hold API keys).
    """
    settings = settings or MonitoringSettings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format=TEXT_LOG_FORMAT,
        serialize=settings.log_format == "json",
        backtrace=False,
        diagnose=False,
    )
    logger.debug(
        f"Logging configured | level={settings.log_level} | format={settings.log_format}"
    )


class MetricsCollector:
    """
    Prometheus metrics for the review engine.

    Each collector owns its registry, so multiple containers (and tests) can
    coexist in one process without duplicate-timeseries errors.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, enabled: bool = True):
        self.registry = registry or CollectorRegistry()
        self.enabled = enabled

        # Generation metrics
        self.generation_requests_total = Counter(
            "review_generation_requests_total",
            "Total review generation requests",
            labelnames=["provider", "outcome"],
            registry=self.registry,
        )

        self.generation_latency_seconds = Histogram(
            "review_generation_latency_seconds",
            "Provider round-trip latency for review generation",
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
            labelnames=["provider"],
            registry=self.registry,
        )

        self.reviews_generated_total = Counter(
            "reviews_generated_total",
            "Total reviews returned by providers",
            labelnames=["provider"],
            registry=self.registry,
        )

        # Template pool metrics
        self.template_regenerations_total = Counter(
            "template_regenerations_total",
            "Template generation attempts by the lifecycle manager",
            labelnames=["trigger", "outcome"],
            registry=self.registry,
        )

        self.pending_regenerations = Gauge(
            "pending_template_regenerations",
            "Background regenerations currently in flight",
            registry=self.registry,
        )

        # Discovery metrics
        self.discovery_events_total = Counter(
            "model_discovery_events_total",
            "Model discovery cache hits, misses and fallbacks",
            labelnames=["provider", "event"],
            registry=self.registry,
        )

        logger.debug(f"MetricsCollector initialized | enabled={enabled}")

    def record_generation(
        self,
        provider: str,
        outcome: str,
        latency_seconds: Optional[float] = None,
        review_count: int = 0,
    ) -> None:
        """
        Record one orchestrator call.

        Args:
            provider: Provider name (e.g., "openai")
            outcome: "success", "failure" or "rejected"
            latency_seconds: Provider round-trip time, when a call was made
            review_count: Reviews returned on success
        """
        if not self.enabled:
            return
        self.generation_requests_total.labels(provider=provider, outcome=outcome).inc()
        if latency_seconds is not None:
            self.generation_latency_seconds.labels(provider=provider).observe(latency_seconds)
        if review_count:
            self.reviews_generated_total.labels(provider=provider).inc(review_count)

    def record_regeneration(self, trigger: str, outcome: str) -> None:
        if self.enabled:
            self.template_regenerations_total.labels(trigger=trigger, outcome=outcome).inc()

    def update_pending_regenerations(self, count: int) -> None:
        if self.enabled:
            self.pending_regenerations.set(count)

    def record_discovery_event(self, provider: str, event: str) -> None:
        """Record a discovery cache event ("hit", "miss" or "fallback")."""
        if self.enabled:
            self.discovery_events_total.labels(provider=provider, event=event).inc()

    def export_metrics(self) -> bytes:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Current value of a sample, or None if it was never recorded."""
        return self.registry.get_sample_value(name, labels or {})

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {
            "metrics_enabled": self.enabled,
            "pending_regenerations": self.get_sample_value("pending_template_regenerations"),
        }
