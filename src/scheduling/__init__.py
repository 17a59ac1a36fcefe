"""
Scheduling Module

Durable, idempotent post job queue and its dispatch loop.
"""

from src.scheduling.job_scheduler import (
    DispatchSummary,
    JobScheduler,
    ScheduleResult,
    make_idempotency_key,
)

__all__ = ["JobScheduler", "ScheduleResult", "DispatchSummary", "make_idempotency_key"]
