"""
Persistence context logger.

Provides logging interface for the persistence context with automatic [persist] prefix.
"""

from loguru import logger

CONTEXT_PREFIX = "[persist]"


def _log_info(message: str) -> None:
    """Log info message with [persist] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [persist] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [persist] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [persist] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [persist] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")
