"""
FITDUEL Shared Utilities

Logging configuration, endpoint decorators and time helpers.
"""

import asyncio
import logging
import sys
import time
from datetime import datetime, timezone
from functools import wraps

from fastapi import HTTPException


# ============================================
# Logging Configuration
# ============================================

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(name: str = "fitduel", level: int = logging.INFO) -> logging.Logger:
    """
    Set up a configured logger with console output.

    Usage:
        logger = setup_logger(__name__)
        logger.info("Session started")
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(console_handler)

    return logger


logger = setup_logger("fitduel")


# ============================================
# Decorators
# ============================================

def _log_elapsed(name: str, start: float) -> None:
    logger.debug(f"{name} executed in {(time.perf_counter() - start) * 1000:.2f}ms")


def log_execution_time(func):
    """Decorator to log endpoint execution time at debug level."""
    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            _log_elapsed(func.__name__, start)

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            _log_elapsed(func.__name__, start)

    return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper


def _as_http_error(name: str, error: Exception) -> HTTPException:
    """Bad input (ValueError) becomes a 400; anything else is logged and becomes a 500."""
    if isinstance(error, ValueError):
        return HTTPException(status_code=400, detail=str(error))
    logger.exception(f"Unhandled error in {name}: {error}")
    return HTTPException(status_code=500, detail="Internal server error")


def handle_exceptions(func):
    """Decorator translating engine exceptions into HTTP errors. HTTPExceptions pass through."""
    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except Exception as e:
            raise _as_http_error(func.__name__, e) from e

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except HTTPException:
            raise
        except Exception as e:
            raise _as_http_error(func.__name__, e) from e

    return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper


# ============================================
# Time Helpers
# ============================================

def get_now() -> datetime:
    """Current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def get_now_iso() -> str:
    return get_now().isoformat()
