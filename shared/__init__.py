"""
FITDUEL Shared Module

Common utilities used across all services.
"""

from .utils import (
    setup_logger,
    handle_exceptions,
    log_execution_time,
    get_now,
    get_now_iso,
)

__all__ = [
    'setup_logger',
    'handle_exceptions',
    'log_execution_time',
    'get_now',
    'get_now_iso',
]
