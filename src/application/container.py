"""
Service Container

Builds every engine service exactly once from Settings and wires them
together. The FastAPI lifespan owns one container and stores it on
app.state; nothing in the engine reaches for a module-level singleton.

Background loops (all owned by the Supervisor):
    job-dispatch            JobScheduler.dispatch_due_jobs
    job-lease-reaper        JobScheduler.recover_stale_jobs
    webhook-sweep           WebhookDispatcher.process_pending_deliveries
    webhook-lease-reaper    WebhookDispatcher.recover_stale_deliveries
    provider-health-probe   ImageGenerationService.probe_providers
    sync:<integration_id>   one per active integration (SyncOrchestrator)

Usage:
    container = ServiceContainer(get_settings())
    await container.start()
    ...
    await container.shutdown()
"""

import httpx
from redis.exceptions import RedisError

from src.core.config.settings import Settings
from src.core.interfaces.clock import Clock, utcnow
from src.core.interfaces.collaborators import (
    ContentAdapter,
    CredentialCipher,
    FernetCredentialCipher,
    PassthroughContentAdapter,
)
from src.core.logging.logger import get_logger
from src.core.resilience.health_tracker import ProviderHealthTracker
from src.core.resilience.rate_limiter import RedisWindowStore, SlidingWindowRateLimiter
from src.core.resilience.retry import RetryExecutor, RetryPolicy
from src.core.resilience.supervisor import PeriodicTask, Supervisor
from src.delivery.webhook_dispatcher import WebhookDispatcher
from src.infrastructure.cache.redis_client import RedisConnection
from src.infrastructure.database.session import Database
from src.infrastructure.monitoring.health_checker import HealthChecker
from src.infrastructure.monitoring.metrics_collector import MetricsCollector
from src.integrations.connectors import ConnectorRegistry
from src.integrations.sync_orchestrator import SyncOrchestrator
from src.publishing.publisher import PublisherRegistry
from src.routing.fallback_router import FallbackRouter
from src.routing.image_generation import ImageGenerationService
from src.routing.image_providers import GeminiImagenProvider, OpenAIDalleProvider, StabilityAIProvider
from src.routing.stock_images import StockImageSearch
from src.scheduling.job_scheduler import JobScheduler

logger = get_logger(__name__)


class ServiceContainer:
    """
    Explicit wiring of the delivery engine.

    Registries are created empty; callers register publishers and sync
    connectors before start() so the loops can resolve them.

    Args:
        settings: Loaded application settings
        database: Pre-built Database (tests pass a SQLite one)
        http_client: Shared outbound client (tests pass a MockTransport one)
        cipher: Credential cipher; defaults to Fernet when a key is configured
        content_adapter: Content adaptation collaborator
        clock: Time source shared by every service
    """

    def __init__(
        self,
        settings: Settings,
        database: Database | None = None,
        http_client: httpx.AsyncClient | None = None,
        cipher: CredentialCipher | None = None,
        content_adapter: ContentAdapter | None = None,
        publishers: PublisherRegistry | None = None,
        connectors: ConnectorRegistry | None = None,
        clock: Clock = utcnow,
    ):
        self.settings = settings
        self._owns_http_client = http_client is None
        self._started = False

        db_settings = settings.database
        scheduler_settings = settings.scheduler
        webhook_settings = settings.webhooks
        limit_settings = settings.rate_limit
        image_settings = settings.image_generation
        sync_settings = settings.sync

        self.metrics = MetricsCollector(settings)
        self.database = database or Database(
            db_settings.DATABASE_URL,
            echo=db_settings.DATABASE_ECHO,
            pool_size=db_settings.DATABASE_POOL_SIZE,
        )
        self.http_client = http_client or httpx.AsyncClient(follow_redirects=False)

        # Redis is connected in start(); until then windows are process local
        self.redis: RedisConnection | None = None
        if limit_settings.RATE_LIMIT_BACKEND == "redis":
            self.redis = RedisConnection(limit_settings.REDIS_URL)

        self.rate_limiter = SlidingWindowRateLimiter(
            default_limit=limit_settings.RATE_LIMIT_DEFAULT_LIMIT,
            window_seconds=limit_settings.RATE_LIMIT_WINDOW_SECONDS,
            clock=clock,
            metrics=self.metrics,
        )
        self.health_tracker = ProviderHealthTracker(
            failure_threshold=settings.health.HEALTH_FAILURE_THRESHOLD,
            clock=clock,
            metrics=self.metrics,
        )
        self.retry_executor = RetryExecutor()
        self.supervisor = Supervisor(metrics=self.metrics)

        self.publishers = publishers or PublisherRegistry()
        self.connectors = connectors or ConnectorRegistry()

        if cipher is None and settings.app.CREDENTIALS_ENCRYPTION_KEY:
            cipher = FernetCredentialCipher(settings.app.CREDENTIALS_ENCRYPTION_KEY)
        if cipher is None:
            logger.warning("No credential cipher configured; publishers and connectors receive empty credentials")
        self.cipher = cipher

        self.dispatcher = WebhookDispatcher(
            self.database,
            self.rate_limiter,
            http_client=self.http_client,
            retry_executor=self.retry_executor,
            health_tracker=self.health_tracker,
            metrics=self.metrics,
            clock=clock,
            default_timeout_ms=webhook_settings.WEBHOOK_DEFAULT_TIMEOUT_MS,
            min_timeout_ms=webhook_settings.WEBHOOK_MIN_TIMEOUT_MS,
            max_timeout_ms=webhook_settings.WEBHOOK_MAX_TIMEOUT_MS,
            sweep_batch_size=webhook_settings.WEBHOOK_SWEEP_BATCH_SIZE,
            lease_margin_seconds=webhook_settings.WEBHOOK_LEASE_MARGIN_SECONDS,
        )

        self.scheduler = JobScheduler(
            self.database,
            self.rate_limiter,
            self.publishers,
            cipher=self.cipher,
            content_adapter=content_adapter or PassthroughContentAdapter(),
            retry_executor=self.retry_executor,
            retry_policy=RetryPolicy(
                max_attempts=scheduler_settings.SCHEDULER_DEFAULT_MAX_ATTEMPTS,
                initial_delay_ms=scheduler_settings.SCHEDULER_RETRY_INITIAL_DELAY_MS,
                backoff_multiplier=scheduler_settings.SCHEDULER_RETRY_BACKOFF_MULTIPLIER,
                max_delay_ms=scheduler_settings.SCHEDULER_RETRY_MAX_DELAY_MS,
            ),
            events=self.dispatcher,
            metrics=self.metrics,
            clock=clock,
            batch_size=scheduler_settings.SCHEDULER_BATCH_SIZE,
            max_concurrency=scheduler_settings.SCHEDULER_MAX_CONCURRENCY,
            lease_seconds=scheduler_settings.SCHEDULER_LEASE_SECONDS,
        )

        self.router = FallbackRouter(self.health_tracker)
        timeout = image_settings.IMAGE_PROVIDER_TIMEOUT_SECONDS
        self.image_service = ImageGenerationService(
            self.router,
            [
                GeminiImagenProvider(image_settings.GOOGLE_API_KEY, self.http_client, timeout),
                OpenAIDalleProvider(image_settings.OPENAI_API_KEY, timeout),
                StabilityAIProvider(image_settings.STABILITY_API_KEY, self.http_client, timeout),
            ],
            stock_search=StockImageSearch.from_keys(
                self.http_client,
                unsplash_key=image_settings.UNSPLASH_ACCESS_KEY,
                pexels_key=image_settings.PEXELS_API_KEY,
                pixabay_key=image_settings.PIXABAY_API_KEY,
                rate_limiter=self.rate_limiter,
            ),
            rate_limiter=self.rate_limiter,
            metrics=self.metrics,
            clock=clock,
            cache_ttl_seconds=image_settings.IMAGE_CACHE_TTL_SECONDS,
            max_provider_attempts=image_settings.IMAGE_MAX_PROVIDER_ATTEMPTS,
            provider_timeout_seconds=timeout,
        )

        self.orchestrator = SyncOrchestrator(
            self.database,
            self.rate_limiter,
            self.connectors,
            self.supervisor,
            self.health_tracker,
            retry_executor=self.retry_executor,
            retry_policy=RetryPolicy(max_attempts=sync_settings.SYNC_RETRY_MAX_ATTEMPTS),
            cipher=self.cipher,
            metrics=self.metrics,
            clock=clock,
            overdue_seconds=sync_settings.SYNC_OVERDUE_SECONDS,
        )

        self.health_checker = HealthChecker(
            self.database,
            self.scheduler,
            self.dispatcher,
            self.health_tracker,
            supervisor=self.supervisor,
            orchestrator=self.orchestrator,
            image_service=self.image_service,
            redis=self.redis,
            version=settings.app.APP_VERSION,
            environment=settings.app.ENVIRONMENT,
        )

        logger.info(
            "Service container built",
            publishers=self.publishers.platforms(),
            connectors=self.connectors.platforms(),
            rate_limit_backend=limit_settings.RATE_LIMIT_BACKEND,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def started(self) -> bool:
        return self._started

    async def connect_backends(self) -> None:
        """
        Connect Redis when configured.

        A failed connection keeps the in-memory windows and logs a warning;
        rate limiting stays per process until the next restart.
        """
        if self.redis is None:
            return
        try:
            client = await self.redis.connect()
        except (RedisError, OSError) as e:
            logger.warning(
                "Redis unavailable, using in-memory rate limit windows",
                error=str(e),
                error_type=type(e).__name__,
            )
            self.redis = None
            return
        self.rate_limiter.use_store(RedisWindowStore(client))

    def register_loops(self) -> None:
        """Register the global background loops with the supervisor."""
        scheduler_settings = self.settings.scheduler
        self.supervisor.add(PeriodicTask(
            "job-dispatch",
            self.scheduler.dispatch_due_jobs,
            scheduler_settings.SCHEDULER_POLL_INTERVAL_SECONDS,
        ))
        self.supervisor.add(PeriodicTask(
            "job-lease-reaper",
            self.scheduler.recover_stale_jobs,
            max(1.0, scheduler_settings.SCHEDULER_LEASE_SECONDS / 2),
        ))
        self.supervisor.add(PeriodicTask(
            "webhook-sweep",
            self.dispatcher.process_pending_deliveries,
            self.settings.webhooks.WEBHOOK_SWEEP_INTERVAL_SECONDS,
        ))
        self.supervisor.add(PeriodicTask(
            "webhook-lease-reaper",
            self.dispatcher.recover_stale_deliveries,
            max(1.0, self.settings.webhooks.WEBHOOK_LEASE_MARGIN_SECONDS / 2),
        ))
        self.supervisor.add(PeriodicTask(
            "provider-health-probe",
            self.image_service.probe_providers,
            self.settings.health.HEALTH_PROBE_INTERVAL_SECONDS,
            run_immediately=False,
        ))

    async def start(self, run_workers: bool = True) -> None:
        """
        Ensure the schema, connect backends and start the loops.

        Args:
            run_workers: False for API-only processes; no loops are started
        """
        if self._started:
            return
        await self.database.create_all()
        await self.connect_backends()

        if run_workers:
            self.register_loops()
            await self.supervisor.start()
            if self.settings.sync.SYNC_ENABLED:
                started = await self.orchestrator.start_all()
                logger.info("Integration sync loops started", count=started)
        else:
            logger.info("Background workers disabled for this process")

        self._started = True
        logger.info("Service container started", tasks=self.supervisor.names())

    async def shutdown(self) -> None:
        """Stop the loops, then release outbound clients and the database."""
        await self.supervisor.stop()
        await self.image_service.aclose()
        await self.dispatcher.close()
        if self._owns_http_client:
            await self.http_client.aclose()
        if self.redis is not None:
            await self.redis.disconnect()
        await self.database.dispose()
        self._started = False
        logger.info("Service container shut down")
