"""
Metrics Collector with Prometheus Integration

Counters, histograms and gauges for the delivery engine:
- Post job outcomes and attempt latency per platform
- Webhook delivery outcomes
- Rate limiter denials per operation
- Provider health (1 = healthy, 0 = unhealthy)
- Degrade chain stage selected per capability
- Integration sync runs
- Background loop iteration errors

Metric objects are module level because prometheus_client registers them
once per process; MetricsCollector is the only writer and is built by the
ServiceContainer.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from src.core.config.settings import Settings, get_settings
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

JOBS_TOTAL = Counter(
    'publishing_jobs_total',
    'Post job state transitions',
    ['platform', 'status']
)

JOB_ATTEMPT_DURATION = Histogram(
    'publishing_job_attempt_duration_seconds',
    'Duration of a single publish attempt',
    ['platform'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
)

WEBHOOK_DELIVERIES_TOTAL = Counter(
    'publishing_webhook_deliveries_total',
    'Webhook delivery attempt outcomes',
    ['status']
)

RATE_LIMIT_DENIED = Counter(
    'publishing_rate_limit_denied_total',
    'Requests denied by the sliding window rate limiter',
    ['operation']
)

PROVIDER_HEALTH = Gauge(
    'publishing_provider_health',
    'Provider health (1=healthy, 0=unhealthy)',
    ['provider']
)

FALLBACK_STAGE_TOTAL = Counter(
    'publishing_fallback_stage_total',
    'Degrade chain stage that produced the result',
    ['capability', 'stage']
)

SYNC_RUNS_TOTAL = Counter(
    'publishing_sync_runs_total',
    'Integration sync runs',
    ['platform', 'status']
)

LOOP_ERRORS_TOTAL = Counter(
    'publishing_loop_errors_total',
    'Background loop iterations that raised',
    ['loop']
)

APP_INFO = Info(
    'publishing_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    Usage:
        metrics = MetricsCollector()
        metrics.record_job("twitter", "succeeded")
        metrics.observe_attempt_duration("twitter", 0.42)
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized")

    # =========================================================================
    # Jobs
    # =========================================================================

    def record_job(self, platform: str, status: str) -> None:
        JOBS_TOTAL.labels(platform=platform, status=status).inc()

    def observe_attempt_duration(self, platform: str, duration_seconds: float) -> None:
        JOB_ATTEMPT_DURATION.labels(platform=platform).observe(duration_seconds)

    # =========================================================================
    # Webhooks
    # =========================================================================

    def record_webhook_delivery(self, status: str) -> None:
        WEBHOOK_DELIVERIES_TOTAL.labels(status=status).inc()

    # =========================================================================
    # Rate Limiting / Health / Fallback
    # =========================================================================

    def record_rate_limit_denied(self, operation: str) -> None:
        RATE_LIMIT_DENIED.labels(operation=operation).inc()

    def set_provider_health(self, provider: str, healthy: bool) -> None:
        PROVIDER_HEALTH.labels(provider=provider).set(1 if healthy else 0)

    def record_fallback_stage(self, capability: str, stage: str) -> None:
        FALLBACK_STAGE_TOTAL.labels(capability=capability, stage=stage).inc()

    # =========================================================================
    # Sync / Loops
    # =========================================================================

    def record_sync_run(self, platform: str, status: str) -> None:
        SYNC_RUNS_TOTAL.labels(platform=platform, status=status).inc()

    def record_loop_error(self, loop: str) -> None:
        LOOP_ERRORS_TOTAL.labels(loop=loop).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """Prometheus text exposition of the default registry."""
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST
