"""
Job Scheduler - Durable Post Job Queue

Turns a schedule request into one post job per platform and advances jobs
through their state machine.

Architecture:
    JobScheduler (Public API)
        ├── schedule_jobs       (idempotent creation, insert-or-ignore)
        ├── dispatch_due_jobs   (one pass of the dispatch loop)
        ├── recover_stale_jobs  (claim lease reaper)
        └── cancel_job / get_job / list_jobs / job_counts

State Machine:
    pending -> processing            claim (conditional UPDATE, attempts + 1)
    processing -> succeeded          publisher accepted the post
    processing -> pending            failed attempt with attempts < max_attempts,
                                     run_at moved forward by the backoff delay
    processing -> failed             failed attempt with attempts == max_attempts
    processing -> pending            rate limit denial (attempt refunded)
    pending -> cancelled             external cancel command

Claim Semantics:
    The claim is `UPDATE post_jobs SET status='processing' ... WHERE id=:id
    AND status='pending' AND attempts < max_attempts`. Exactly one worker
    sees rowcount == 1; every other worker skips the job. All later
    transitions are conditional on status='processing' as well.

Crash Recovery:
    A claim carries a lease. Jobs still in processing after the lease
    expired are returned to pending (or failed once attempts are exhausted)
    by recover_stale_jobs, which the supervisor runs periodically.
"""

import asyncio
import hashlib
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from sqlalchemy import and_, func, select, update

from src.core.config.constants import (
    SUPPORTED_PLATFORMS,
    AlertSeverity,
    AlertType,
    IntegrationStatus,
    JobStatus,
    LogLevel,
    WebhookEvent,
    publish_operation,
)
from src.core.exceptions import (
    EmptyContentError,
    IntegrationNotConnectedError,
    JobNotFoundError,
    PublishFailedError,
    UnsupportedPlatformError,
    ValidationError,
    failure_severity,
)
from src.core.interfaces.clock import Clock, utcnow
from src.core.interfaces.collaborators import (
    ContentAdapter,
    CredentialCipher,
    PassthroughContentAdapter,
    decrypt_credentials,
)
from src.core.logging.logger import get_logger
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.core.resilience.retry import RetryExecutor, RetryPolicy
from src.infrastructure.database.models import Integration, PostJob
from src.infrastructure.database.session import Database
from src.integrations.activity import add_alert, add_log
from src.publishing.publisher import PublisherRegistry, PublishResult

logger = get_logger(__name__)


class EventSink(Protocol):
    """Anything that can fan an event out to an integration's webhooks."""

    async def emit_event(self, integration_id: str, event: str, payload: dict[str, Any]) -> list[Any]:
        ...


@dataclass
class ScheduleResult:
    """
    Outcome of a schedule request.

    Attributes:
        created: Job ids for every requested platform, existing ones included
        due_now: Subset of created whose run_at is not in the future
        newly_created: Subset of created inserted by this call
    """
    created: list[str] = field(default_factory=list)
    due_now: list[str] = field(default_factory=list)
    newly_created: list[str] = field(default_factory=list)

    @property
    def process_immediately(self) -> bool:
        return bool(self.due_now)


@dataclass
class DispatchSummary:
    """Counts for one dispatch pass."""
    selected: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    deferred: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded + self.retried + self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected": self.selected,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "retried": self.retried,
            "failed": self.failed,
            "deferred": self.deferred,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def make_idempotency_key(user_id: str, post_id: str | None, run_at: datetime, platform: str) -> str:
    """
    Deterministic job key: SHA-256 of "user:post|ad-hoc:runAt ISO:platform".

    run_at is normalized to UTC so the same instant in different offsets
    yields the same key.
    """
    instant = ensure_utc(run_at).isoformat()
    raw = f"{user_id}:{post_id or 'ad-hoc'}:{instant}:{platform}"
    return hashlib.sha256(raw.encode()).hexdigest()


def ensure_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class JobScheduler:
    """
    Durable, idempotent post job queue.

    Usage:
        scheduler = JobScheduler(database, rate_limiter, publishers, cipher)
        result = await scheduler.schedule_jobs("user-1", ["twitter", "linkedin"], "Hello", run_at)
        summary = await scheduler.dispatch_due_jobs()
    """

    def __init__(
        self,
        database: Database,
        rate_limiter: SlidingWindowRateLimiter,
        publishers: PublisherRegistry,
        cipher: CredentialCipher | None = None,
        content_adapter: ContentAdapter | None = None,
        retry_executor: RetryExecutor | None = None,
        retry_policy: RetryPolicy | None = None,
        events: EventSink | None = None,
        metrics: Any | None = None,
        clock: Clock = utcnow,
        batch_size: int = 50,
        max_concurrency: int = 5,
        lease_seconds: int = 300,
        publish_timeout_seconds: float = 30.0,
    ):
        self._db = database
        self._limiter = rate_limiter
        self._publishers = publishers
        self._cipher = cipher
        self._adapter = content_adapter or PassthroughContentAdapter()
        self._retry = retry_executor or RetryExecutor()
        self._policy = retry_policy or RetryPolicy()
        self._events = events
        self._metrics = metrics
        self._clock = clock
        self._batch_size = batch_size
        self._max_concurrency = max(1, max_concurrency)
        self._lease = timedelta(seconds=lease_seconds)
        self._publish_timeout = publish_timeout_seconds

    @property
    def default_max_attempts(self) -> int:
        return self._policy.max_attempts

    def set_event_sink(self, events: EventSink) -> None:
        self._events = events

    # =========================================================================
    # Creation
    # =========================================================================

    async def schedule_jobs(
        self,
        user_id: str,
        platforms: list[str],
        content: str,
        run_at: datetime,
        post_id: str | None = None,
        media: list[str] | None = None,
        options: dict[str, Any] | None = None,
        max_attempts: int | None = None,
    ) -> ScheduleResult:
        """
        Create one job per platform with insert-or-ignore semantics.

        Re-submitting an identical request creates nothing and reports the
        existing job ids.

        Raises:
            ValidationError: Empty content, no platforms, or an unsupported platform
        """
        if not content or not content.strip():
            raise EmptyContentError("Content must not be empty")
        if not platforms:
            raise ValidationError("At least one platform is required")
        unsupported = sorted({p for p in platforms if p not in SUPPORTED_PLATFORMS})
        if unsupported:
            raise UnsupportedPlatformError(
                f"Unsupported platform: {', '.join(unsupported)}",
                details={"platforms": unsupported, "supported": sorted(SUPPORTED_PLATFORMS)},
            )

        run_at = ensure_utc(run_at)
        media = list(media or [])
        max_attempts = max_attempts or self._policy.max_attempts
        ordered_platforms = list(dict.fromkeys(platforms))

        rows: list[dict[str, Any]] = []
        for platform in ordered_platforms:
            adapted = await self._adapter.adapt(content, platform, options, media)
            if adapted.warnings:
                logger.info("Content adapted with warnings", platform=platform, warnings=adapted.warnings)
            now = self._clock()
            rows.append({
                "id": str(uuid.uuid4()),
                "idempotency_key": make_idempotency_key(user_id, post_id, run_at, platform),
                "user_id": user_id,
                "post_id": post_id,
                "platform": platform,
                "run_at": run_at,
                "status": JobStatus.PENDING.value,
                "attempts": 0,
                "max_attempts": max_attempts,
                "content": adapted.content,
                "media_refs": media,
                "created_at": now,
                "updated_at": now,
            })

        keys = [row["idempotency_key"] for row in rows]
        generated = {row["idempotency_key"]: row["id"] for row in rows}

        async with self._db.session() as session:
            for row in rows:
                await session.execute(self._db.insert_ignore(PostJob, ["idempotency_key"]).values(**row))

            existing = (
                await session.execute(
                    select(PostJob.idempotency_key, PostJob.id, PostJob.status, PostJob.run_at)
                    .where(PostJob.idempotency_key.in_(keys))
                )
            ).all()

        by_key = {r.idempotency_key: r for r in existing}
        now = self._clock()
        result = ScheduleResult()
        for key in keys:
            row = by_key[key]
            result.created.append(row.id)
            if row.id == generated[key]:
                result.newly_created.append(row.id)
            if row.status == JobStatus.PENDING.value and row.run_at <= now:
                result.due_now.append(row.id)

        logger.info(
            "Jobs scheduled",
            user_id=user_id,
            post_id=post_id,
            platforms=ordered_platforms,
            created=len(result.created),
            newly_created=len(result.newly_created),
            due_now=len(result.due_now),
        )
        return result

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch_due_jobs(self) -> DispatchSummary:
        """
        One pass of the dispatch loop.

        Selects due pending jobs ordered by run_at and processes them with
        bounded concurrency. A failure of one job never affects the others.
        """
        now = self._clock()
        async with self._db.session() as session:
            job_ids = list(
                (
                    await session.execute(
                        select(PostJob.id)
                        .where(
                            PostJob.status == JobStatus.PENDING.value,
                            PostJob.run_at <= now,
                            PostJob.attempts < PostJob.max_attempts,
                        )
                        .order_by(PostJob.run_at.asc())
                        .limit(self._batch_size)
                    )
                ).scalars()
            )

        summary = DispatchSummary(selected=len(job_ids))
        if not job_ids:
            return summary

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(job_id: str) -> str:
            async with semaphore:
                return await self.process_job(job_id)

        outcomes = await asyncio.gather(*(run(job_id) for job_id in job_ids), return_exceptions=True)

        for job_id, outcome in zip(job_ids, outcomes):
            if isinstance(outcome, BaseException):
                summary.errors.append(f"Job {job_id}: {outcome}")
                logger.error("Job processing raised", job_id=job_id, error=str(outcome))
                continue
            if outcome == "succeeded":
                summary.succeeded += 1
            elif outcome == "retry":
                summary.retried += 1
            elif outcome == "failed":
                summary.failed += 1
            elif outcome == "deferred":
                summary.deferred += 1
            else:
                summary.skipped += 1

        logger.info("Dispatch pass complete", **{k: v for k, v in summary.to_dict().items() if k != "errors"})
        return summary

    async def claim_job(self, job_id: str) -> bool:
        """Atomically move a due job from pending to processing. True for exactly one caller."""
        now = self._clock()
        async with self._db.session() as session:
            result = await session.execute(
                update(PostJob)
                .where(
                    PostJob.id == job_id,
                    PostJob.status == JobStatus.PENDING.value,
                    PostJob.attempts < PostJob.max_attempts,
                )
                .values(
                    status=JobStatus.PROCESSING.value,
                    attempts=PostJob.attempts + 1,
                    lease_expires_at=now + self._lease,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def process_job(self, job_id: str) -> str:
        """
        Claim and publish a single job.

        Returns:
            One of "succeeded", "retry", "failed", "deferred", "skipped"
        """
        if not await self.claim_job(job_id):
            logger.debug("Job already claimed, skipping", job_id=job_id)
            return "skipped"

        job = await self._load_job(job_id)
        logger.info("Job claimed", job_id=job.id, platform=job.platform, attempt=job.attempts)

        decision = await self._limiter.check_and_consume(job.user_id, publish_operation(job.platform))
        if not decision.allowed:
            await self._release_deferred(job, decision.retry_after_seconds)
            return "deferred"

        integration: Integration | None = None
        started = time.perf_counter()
        try:
            integration = await self._find_integration(job.user_id, job.platform)
            result = await self._publish(job, integration)
        except Exception as e:
            if self._metrics is not None:
                self._metrics.observe_attempt_duration(job.platform, time.perf_counter() - started)
            return await self._record_failure(job, integration, e)

        if self._metrics is not None:
            self._metrics.observe_attempt_duration(job.platform, time.perf_counter() - started)
        return await self._record_success(job, integration, result)

    async def _load_job(self, job_id: str) -> PostJob:
        async with self._db.session() as session:
            job = await session.get(PostJob, job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}", details={"job_id": job_id})
        return job

    async def _find_integration(self, user_id: str, platform: str) -> Integration:
        async with self._db.session() as session:
            integration = (
                await session.execute(
                    select(Integration)
                    .where(
                        Integration.user_id == user_id,
                        Integration.platform == platform,
                        Integration.is_active.is_(True),
                        Integration.status == IntegrationStatus.CONNECTED.value,
                    )
                    .order_by(Integration.created_at.asc())
                    .limit(1)
                )
            ).scalar_one_or_none()
        if integration is None:
            raise IntegrationNotConnectedError(
                f"No connected integration found for platform: {platform}",
                details={"user_id": user_id, "platform": platform},
            )
        return integration

    async def _publish(self, job: PostJob, integration: Integration) -> PublishResult:
        publisher = self._publishers.get(job.platform)
        credentials: dict[str, Any] = {}
        if integration.encrypted_credentials and self._cipher is not None:
            credentials = decrypt_credentials(self._cipher, integration.encrypted_credentials)

        result = await asyncio.wait_for(
            publisher.publish(credentials, job.content, list(job.media_refs or [])),
            timeout=self._publish_timeout,
        )
        if not result.success:
            raise PublishFailedError(
                result.error or "Publishing failed",
                details={"job_id": job.id, "platform": job.platform},
            )
        return result

    async def _release_deferred(self, job: PostJob, retry_after_seconds: int) -> None:
        """Return a rate limited job to pending without counting the attempt."""
        now = self._clock()
        async with self._db.session() as session:
            await session.execute(
                update(PostJob)
                .where(PostJob.id == job.id, PostJob.status == JobStatus.PROCESSING.value)
                .values(
                    status=JobStatus.PENDING.value,
                    attempts=PostJob.attempts - 1,
                    run_at=now + timedelta(seconds=retry_after_seconds),
                    lease_expires_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        logger.info(
            "Job deferred by rate limit",
            job_id=job.id,
            platform=job.platform,
            retry_after_seconds=retry_after_seconds,
        )

    async def _record_success(
        self, job: PostJob, integration: Integration | None, result: PublishResult
    ) -> str:
        now = self._clock()
        async with self._db.session() as session:
            await session.execute(
                update(PostJob)
                .where(PostJob.id == job.id, PostJob.status == JobStatus.PROCESSING.value)
                .values(
                    status=JobStatus.SUCCEEDED.value,
                    remote_id=result.remote_id,
                    remote_url=result.url,
                    last_error=None,
                    lease_expires_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )

        logger.info("Job succeeded", job_id=job.id, platform=job.platform, attempts=job.attempts)
        if self._metrics is not None:
            self._metrics.record_job(job.platform, JobStatus.SUCCEEDED.value)

        if integration is not None:
            await self._emit(integration.id, WebhookEvent.POST_PUBLISHED, {
                **self._event_payload(job, now),
                "remote_id": result.remote_id,
                "url": result.url,
            })
        return "succeeded"

    async def _record_failure(self, job: PostJob, integration: Integration | None, error: Exception) -> str:
        now = self._clock()
        message = str(error) or type(error).__name__
        policy = RetryPolicy(
            max_attempts=job.max_attempts,
            initial_delay_ms=self._policy.initial_delay_ms,
            backoff_multiplier=self._policy.backoff_multiplier,
            max_delay_ms=self._policy.max_delay_ms,
        )
        next_run = self._retry.next_attempt_at(policy, job.attempts, now)
        log = getattr(logger, failure_severity(error))

        if next_run is not None:
            async with self._db.session() as session:
                await session.execute(
                    update(PostJob)
                    .where(PostJob.id == job.id, PostJob.status == JobStatus.PROCESSING.value)
                    .values(
                        status=JobStatus.PENDING.value,
                        run_at=next_run,
                        last_error=message,
                        lease_expires_at=None,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
            log(
                "Job attempt failed, retry scheduled",
                job_id=job.id,
                platform=job.platform,
                attempt=job.attempts,
                max_attempts=job.max_attempts,
                next_run_at=next_run.isoformat(),
                error=message,
                error_type=type(error).__name__,
            )
            if self._metrics is not None:
                self._metrics.record_job(job.platform, "retry")
            return "retry"

        async with self._db.session() as session:
            await session.execute(
                update(PostJob)
                .where(PostJob.id == job.id, PostJob.status == JobStatus.PROCESSING.value)
                .values(
                    status=JobStatus.FAILED.value,
                    last_error=message,
                    lease_expires_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if integration is not None:
                add_log(session, integration.id, LogLevel.ERROR, f"Publishing failed: {message}", {
                    "job_id": job.id,
                    "platform": job.platform,
                    "attempts": job.attempts,
                })
                add_alert(
                    session,
                    integration.id,
                    AlertType.ERROR,
                    "Post publishing failed",
                    f"Job {job.id} for {job.platform} failed after {job.attempts} attempts: {message}",
                    AlertSeverity.HIGH,
                    {"job_id": job.id, "post_id": job.post_id},
                )

        logger.error(
            "Job failed permanently",
            job_id=job.id,
            platform=job.platform,
            attempts=job.attempts,
            error=message,
            error_type=type(error).__name__,
        )
        if self._metrics is not None:
            self._metrics.record_job(job.platform, JobStatus.FAILED.value)

        if integration is not None:
            await self._emit(integration.id, WebhookEvent.POST_FAILED, {
                **self._event_payload(job, now),
                "error": message,
            })
        return "failed"

    def _event_payload(self, job: PostJob, now: datetime) -> dict[str, Any]:
        return {
            "job_id": job.id,
            "post_id": job.post_id,
            "user_id": job.user_id,
            "platform": job.platform,
            "attempts": job.attempts,
            "timestamp": now.isoformat(),
        }

    async def _emit(self, integration_id: str, event: WebhookEvent, payload: dict[str, Any]) -> None:
        if self._events is None:
            return
        try:
            await self._events.emit_event(integration_id, event.value, payload)
        except Exception as e:
            logger.warning(
                "Webhook event emission failed",
                integration_id=integration_id,
                webhook_event=event.value,
                error=str(e),
            )

    # =========================================================================
    # Recovery
    # =========================================================================

    async def recover_stale_jobs(self) -> dict[str, int]:
        """
        Return jobs whose claim lease expired to pending.

        A job whose lease expired on its final attempt is marked failed.
        """
        now = self._clock()
        stale = and_(
            PostJob.status == JobStatus.PROCESSING.value,
            PostJob.lease_expires_at.is_not(None),
            PostJob.lease_expires_at < now,
        )
        async with self._db.session() as session:
            requeued = await session.execute(
                update(PostJob)
                .where(stale, PostJob.attempts < PostJob.max_attempts)
                .values(
                    status=JobStatus.PENDING.value,
                    run_at=now,
                    lease_expires_at=None,
                    last_error="Claim lease expired",
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            failed = await session.execute(
                update(PostJob)
                .where(stale, PostJob.attempts >= PostJob.max_attempts)
                .values(
                    status=JobStatus.FAILED.value,
                    lease_expires_at=None,
                    last_error="Claim lease expired on final attempt",
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )

        counts = {"requeued": requeued.rowcount or 0, "failed": failed.rowcount or 0}
        if counts["requeued"] or counts["failed"]:
            logger.warning("Recovered stale jobs", **counts)
        return counts

    # =========================================================================
    # Commands & Queries
    # =========================================================================

    async def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a pending job.

        Returns:
            False when the job is already claimed or finished

        Raises:
            JobNotFoundError: Unknown job id
        """
        now = self._clock()
        async with self._db.session() as session:
            result = await session.execute(
                update(PostJob)
                .where(PostJob.id == job_id, PostJob.status == JobStatus.PENDING.value)
                .values(status=JobStatus.CANCELLED.value, lease_expires_at=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.info("Job cancelled", job_id=job_id)
                return True
            exists = await session.get(PostJob, job_id)

        if exists is None:
            raise JobNotFoundError(f"Job not found: {job_id}", details={"job_id": job_id})
        logger.info("Job not cancellable", job_id=job_id, status=exists.status)
        return False

    async def get_job(self, job_id: str) -> PostJob:
        return await self._load_job(job_id)

    async def list_jobs(self, user_id: str, status: str | None = None, limit: int = 100) -> list[PostJob]:
        query = select(PostJob).where(PostJob.user_id == user_id)
        if status:
            query = query.where(PostJob.status == status)
        query = query.order_by(PostJob.run_at.desc()).limit(limit)
        async with self._db.session() as session:
            return list((await session.execute(query)).scalars())

    async def job_counts(self) -> dict[str, int]:
        """Number of jobs per status; every status is present."""
        counts = {status.value: 0 for status in JobStatus}
        async with self._db.session() as session:
            rows = (
                await session.execute(select(PostJob.status, func.count()).group_by(PostJob.status))
            ).all()
        for status, count in rows:
            counts[status] = count
        return counts
