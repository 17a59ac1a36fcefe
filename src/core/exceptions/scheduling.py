"""
Scheduling Exceptions

Errors raised while creating and dispatching post jobs.
"""

from src.core.exceptions.base import PublishingEngineError


class SchedulingError(PublishingEngineError):
    """Base exception for job scheduling errors."""
    pass


class JobNotFoundError(SchedulingError):
    """Raised when a post job id does not exist."""
    pass


class PublisherNotRegisteredError(SchedulingError):
    """Raised when no Publisher is registered for a platform."""
    pass


class IntegrationNotConnectedError(SchedulingError):
    """Raised when the user has no active connected integration for the job's platform."""
    pass


class PublishFailedError(SchedulingError):
    """Raised when the platform publisher reports an unsuccessful publish."""
    pass
