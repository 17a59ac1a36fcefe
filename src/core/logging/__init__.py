from .logger import (
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)

__all__ = [
    "clear_correlation_id",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
]
