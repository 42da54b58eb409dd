"""Utility modules for logging, timing and retries."""
from .logging_config import (
    setup_logging,
    parse_log_level,
    timed,
    perf_logger,
)
from .retry import with_retry

__all__ = [
    "setup_logging",
    "parse_log_level",
    "timed",
    "perf_logger",
    "with_retry",
]
