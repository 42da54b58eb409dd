"""Logging configuration for wg-apply.

Provides:
- Console output for operators (the `[#] ip ...` command trail)
- Optional file logging with rotation
- A timing decorator feeding a separate performance logger

Environment Variables (read through wg_apply.config.settings):
    WGAPPLY_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    WGAPPLY_LOG_FILE: Path to log file (default: no file logging)

Usage:
    from wg_apply.utils.logging_config import setup_logging, timed

    setup_logging("INFO")  # Call once at startup

    @timed("update_routes")
    def update_routes(self, ...):
        ...
"""
import functools
import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("wg_apply.perf")

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-25s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_log_level(level: str) -> int:
    """Map a level name to a logging level, defaulting to INFO."""
    return getattr(logging, str(level).upper(), logging.INFO)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler at the requested level
    - File handler with rotation (DEBUG level) when log_file is given
    """
    log_level = parse_log_level(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger("wg_apply")
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.debug(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )


def timed(operation: str) -> Callable:
    """Decorator to log execution time of a function.

    Args:
        operation: Name of the operation (e.g., "update_addresses")

    Usage:
        @timed("ensure_link")
        def ensure_link(self, network):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.debug(f"{operation:20s} | {elapsed:8.2f}ms | FAIL: {e}")
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.debug(f"{operation:20s} | {elapsed:8.2f}ms | OK")
            return result

        return wrapper

    return decorator
