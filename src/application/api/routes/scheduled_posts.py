"""
Scheduled Posts Routes
======================

HTTP surface of the Job Scheduler.

    POST /scheduled-posts                     create one job per platform
    POST /scheduled-posts/process             run one dispatch pass now
    GET  /scheduled-posts/jobs?userId=...     list a user's jobs
    GET  /scheduled-posts/jobs/{job_id}       job status
    POST /scheduled-posts/jobs/{job_id}/cancel

REQUEST LIFECYCLE:
------------------
The create endpoint returns as soon as the jobs are durably stored.
Publishing happens in the dispatch loop; when some jobs are already due
the handler also schedules one dispatch pass as a FastAPI background task
so they do not wait for the next loop tick. Publish failures never turn
into an error on this response.
"""

from fastapi import APIRouter, BackgroundTasks, Query

from src.application.api.dependencies import SchedulerDep
from src.application.api.models.scheduling import (
    CancelJobResponse,
    DispatchResponse,
    JobResponse,
    ScheduleRequest,
    ScheduleResponse,
)
from src.application.validators import ScheduleRequestValidator
from src.core.config.constants import JobStatus
from src.core.exceptions import ValidationError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/scheduled-posts", tags=["Scheduled Posts"])

_validator = ScheduleRequestValidator()


@router.post("", response_model=ScheduleResponse)
async def create_scheduled_posts(
    body: ScheduleRequest,
    scheduler: SchedulerDep,
    background_tasks: BackgroundTasks,
):
    """
    Schedule a post on one or more platforms.

    Idempotent: re-sending the same (user, post, date, platforms) creates
    nothing new and returns the existing job ids.

    HTTP Status Codes:
        200: Jobs stored (new or existing)
        400: Unsupported platform, empty content or unparseable date
        422: Malformed body
    """
    run_at = _validator.validate(
        user_id=body.user_id,
        content=body.content,
        platforms=body.platforms,
        schedule_date=body.schedule_date,
        options=body.options_dict(),
    )

    result = await scheduler.schedule_jobs(
        user_id=body.user_id,
        platforms=body.platforms,
        content=body.content,
        run_at=run_at,
        post_id=body.post_id,
        media=body.media_urls,
        options=body.options_dict(),
    )

    if result.process_immediately:
        background_tasks.add_task(scheduler.dispatch_due_jobs)

    return ScheduleResponse(
        success=True,
        message=f"Scheduled {len(result.created)} post jobs",
        process_immediately=result.process_immediately,
        job_ids=result.created,
        due_job_ids=result.due_now,
    )


@router.post("/process", response_model=DispatchResponse)
async def process_due_jobs(scheduler: SchedulerDep):
    """
    Run one dispatch pass synchronously and return its counts.

    Used by cron-style triggers and by operators; the background loop
    performs the same pass on its own interval.
    """
    summary = await scheduler.dispatch_due_jobs()
    return DispatchResponse(**summary.to_dict())


@router.get("/jobs", response_model=list[JobResponse])
async def list_jobs(
    scheduler: SchedulerDep,
    user_id: str = Query(..., alias="userId"),
    status: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
):
    if status is not None and status not in {s.value for s in JobStatus}:
        raise ValidationError(
            f"Unknown job status: {status}",
            details={"field": "status", "allowed": [s.value for s in JobStatus]},
        )
    jobs = await scheduler.list_jobs(user_id, status=status, limit=limit)
    return [JobResponse.from_job(job) for job in jobs]


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, scheduler: SchedulerDep):
    """Job status; 404 when the id is unknown."""
    return JobResponse.from_job(await scheduler.get_job(job_id))


@router.post("/jobs/{job_id}/cancel", response_model=CancelJobResponse)
async def cancel_job(job_id: str, scheduler: SchedulerDep):
    """
    Cancel a job that has not been claimed yet.

    `cancelled` is false when the job is already processing or finished.
    """
    cancelled = await scheduler.cancel_job(job_id)
    return CancelJobResponse(job_id=job_id, cancelled=cancelled)
