"""
Generation context logger.

Provides logging interface for generation workflows with automatic [generate] prefix.
All generation modules should import from this module, not from utils.logger directly.
"""

from pathlib import Path

from loguru import logger

from jobsmith.utils.logger import format_fields
from jobsmith.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[generate]"


def setup_generation_logger(log_dir: Path = None, provider: str = None) -> Path:
    """
    Setup logger for generation workflows.

    Args:
        log_dir: Directory for log files (defaults to LOGS_PATH)
        provider: AI provider name recorded in the provenance header

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="generate",
        log_dir=log_dir,
        extra_provenance={"AI provider": provider} if provider else None,
    )


# Wrapper functions with automatic [generate] prefix


def _log_info(message: str) -> None:
    """Log info message with [generate] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [generate] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [generate] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [generate] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [generate] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level workflow logging helpers


def log_workflow_start(kind: str, user_id: str, **fields) -> None:
    _log_info(f"{kind} start: {format_fields(user=user_id, **fields)}")


def log_generation_ok(kind: str, user_id: str, model: str, tokens: int, latency_ms: int) -> None:
    _log_info(
        f"{kind} generation ok: "
        f"{format_fields(user=user_id, model=model, tokens=tokens, latency_ms=latency_ms)}"
    )


def log_workflow_error(kind: str, user_id: str, category: str, message: str) -> None:
    """Log a workflow's terminal error."""
    _log_error(f"{kind} failed: {format_fields(user=user_id, category=category, error=message)}")


def log_security_event(kind: str, user_id: str, job_id: int, owner_id: str) -> None:
    """Log an ownership violation distinctly from validation errors."""
    logger.bind(security=True).warning(
        f"{CONTEXT_PREFIX} SECURITY ownership denied: "
        f"{format_fields(kind=kind, user=user_id, job=job_id, owner=owner_id)}"
    )


def log_workflow_success(kind: str, user_id: str, persisted: bool, artifact_id=None) -> None:
    _log_success(
        f"{kind} done: {format_fields(user=user_id, persisted=persisted, artifact_id=artifact_id)}"
    )
