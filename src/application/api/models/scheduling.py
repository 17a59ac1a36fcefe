"""
Scheduled Posts API Models
==========================

Request/response bodies for the scheduling endpoints.

CAMELCASE ON THE WIRE:
----------------------
Callers (the CRUD layer and the web client) send camelCase JSON. Fields
declare a camelCase alias and `populate_by_name=True`, so:
- requests may use either `scheduleDate` or `schedule_date`
- responses are serialized by alias (FastAPI's default), i.e. camelCase

STRUCTURE VS SEMANTICS:
-----------------------
The models only check structure (types, required fields) and FastAPI
turns failures into 422. Domain rules (supported platforms, ISO-8601
date, non-empty content) live in ScheduleRequestValidator and map to 400.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.infrastructure.database.models import PostJob

# ============================================================================
# REQUEST MODELS
# ============================================================================


class ScheduleOptions(BaseModel):
    """Content adaptation hints forwarded to the ContentAdapter."""

    model_config = ConfigDict(populate_by_name=True)

    tone: str | None = Field(default=None, description="professional, casual, friendly or authoritative")
    include_call_to_action: bool | None = Field(default=None, alias="includeCallToAction")
    target_audience: str | None = Field(default=None, alias="targetAudience")


class ScheduleRequest(BaseModel):
    """
    Bulk schedule request: one job is created per platform.

    Re-sending the same request is safe; existing jobs are reported, not
    duplicated.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": "user-42",
                "postId": "2b1f0c4e-6a0e-4f3f-9a57-8f1d2f7c9b10",
                "content": "We just shipped scheduled publishing!",
                "platforms": ["twitter", "linkedin"],
                "scheduleDate": "2026-10-19T09:00:00Z",
                "mediaUrls": [],
                "options": {"tone": "friendly"},
            }
        },
    )

    user_id: str = Field(..., alias="userId", description="Owner of the post")
    post_id: str | None = Field(default=None, alias="postId", description="Source post; omitted for ad-hoc posts")
    content: str = Field(..., description="Post text before platform adaptation")
    platforms: list[str] = Field(..., description="Target platforms")
    schedule_date: str = Field(..., alias="scheduleDate", description="ISO-8601 publish time")
    media_urls: list[str] = Field(default_factory=list, alias="mediaUrls", description="Ordered media references")
    options: ScheduleOptions | None = None

    def options_dict(self) -> dict[str, Any]:
        if self.options is None:
            return {}
        return self.options.model_dump(exclude_none=True)


# ============================================================================
# RESPONSE MODELS
# ============================================================================


class ScheduleResponse(BaseModel):
    """
    Returned as soon as the jobs are durably created.

    Publishing outcomes are visible later through the job status endpoint,
    never as an error on this response.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    process_immediately: bool = Field(..., alias="processImmediately")
    job_ids: list[str] = Field(default_factory=list, alias="jobIds")
    due_job_ids: list[str] = Field(default_factory=list, alias="dueJobIds")


class DispatchResponse(BaseModel):
    """Counts for one dispatch pass triggered through the API."""

    selected: int
    processed: int
    succeeded: int
    retried: int
    failed: int
    deferred: int
    skipped: int
    errors: list[str] = Field(default_factory=list)


class JobResponse(BaseModel):
    """Status view of one PostJob (content is omitted)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(..., alias="userId")
    post_id: str | None = Field(default=None, alias="postId")
    platform: str
    run_at: datetime = Field(..., alias="runAt")
    status: str
    attempts: int
    max_attempts: int = Field(..., alias="maxAttempts")
    last_error: str | None = Field(default=None, alias="lastError")
    remote_id: str | None = Field(default=None, alias="remoteId")
    remote_url: str | None = Field(default=None, alias="remoteUrl")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @classmethod
    def from_job(cls, job: PostJob) -> "JobResponse":
        return cls(
            id=job.id,
            user_id=job.user_id,
            post_id=job.post_id,
            platform=job.platform,
            run_at=job.run_at,
            status=job.status,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            last_error=job.last_error,
            remote_id=job.remote_id,
            remote_url=job.remote_url,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class CancelJobResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    cancelled: bool
