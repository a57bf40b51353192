"""
Normalization context logger.

Provides logging interface for the normalization context with automatic [normalize] prefix.
"""

from loguru import logger

CONTEXT_PREFIX = "[normalize]"


def _log_debug(message: str) -> None:
    """Log debug message with [normalize] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [normalize] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def log_shape_repair(kind: str, field_name: str, dropped: int) -> None:
    """Log entries dropped while coercing a field."""
    if dropped:
        _log_debug(f"{kind}: dropped {dropped} unresolvable entries from '{field_name}'")


def log_format_failure(kind: str, detail: str) -> None:
    _log_warning(f"{kind}: invalid response format ({detail})")
