"""
Research context logger.

Provides logging interface for the research context with automatic [research] prefix.
"""

from loguru import logger

from jobsmith.utils.logger import format_fields
from jobsmith.utils.timestamp import format_age

CONTEXT_PREFIX = "[research]"


def _log_info(message: str) -> None:
    """Log info message with [research] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [research] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [research] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [research] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [research] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level research-specific logging helpers


def log_cache_decision(company_key: str, decision: str, cached_at: str = None) -> None:
    """Log the fresh/stale/miss decision for a lookup."""
    age = format_age(cached_at) if cached_at else None
    _log_info(f"cache {decision}: {format_fields(company=company_key, cached_at=cached_at, age=age)}")


def log_write_through(company_key: str, stage: str, error: Exception = None) -> None:
    """Log a background write-through stage (company upsert or cache save)."""
    if error is None:
        _log_debug(f"write-through {stage} ok: {format_fields(company=company_key)}")
    else:
        _log_error(f"write-through {stage} failed: {format_fields(company=company_key, error=error)}")
