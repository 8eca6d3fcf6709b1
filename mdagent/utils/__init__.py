"""
Shared utilities: logging and the exception hierarchy.
"""

from .logger import (
    apply_settings,
    bind_context,
    get_logger,
    log_context,
    logger,
    set_log_level,
    setup_logger,
)

__all__ = [
    "get_logger",
    "setup_logger",
    "logger",
    "apply_settings",
    "set_log_level",
    "bind_context",
    "log_context",
]
