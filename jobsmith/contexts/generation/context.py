"""
Context gathering for generation workflows.

Reads the job, profile, and history rows a prompt needs. Required reads turn
failures into WorkflowErrors; optional enrichment soft-fails to empty data
with a logged warning.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from jobsmith.contexts.generation.errors import FORBIDDEN, INTERNAL, NOT_FOUND, WorkflowError
from jobsmith.contexts.generation.logger import _log_debug, _log_warning, log_security_event
from jobsmith.contexts.persistence import PROFILE_TABLES, DataAccess, DataAccessError
from jobsmith.utils.timeouts import call_with_timeout


def _detail(error: Exception) -> str:
    return error.detail if isinstance(error, DataAccessError) else str(error)


def fetch_owned_job(data: DataAccess, kind: str, user_id: str, job_id: int) -> Dict[str, Any]:
    """
    Fetch a job and assert the caller owns it.

    Ownership is only asserted once the record is retrieved: an infrastructure
    failure is "internal", never a false ownership denial.

    Raises:
        WorkflowError: internal (query failed), not_found, or forbidden
    """
    try:
        job = data.get_job(job_id)
    except Exception as e:
        raise WorkflowError(INTERNAL, f"job query failed: {_detail(e)}") from e

    if not job:
        raise WorkflowError(NOT_FOUND, "job not found")

    owner_id = job.get("user_id")
    if owner_id and owner_id != user_id:
        log_security_event(kind, user_id, job_id, owner_id)
        raise WorkflowError(FORBIDDEN, "job does not belong to user")
    return job


def fetch_profile(data: DataAccess, user_id: str) -> Dict[str, Any]:
    """
    Fetch the caller's profile (required context).

    Raises:
        WorkflowError: internal (query failed) or not_found
    """
    try:
        profile = data.get_profile(user_id)
    except Exception as e:
        raise WorkflowError(INTERNAL, f"profile query failed: {_detail(e)}") from e
    if not profile:
        raise WorkflowError(NOT_FOUND, "profile not found")
    return profile


def gather_history(
    data: DataAccess,
    user_id: str,
    required: Iterable[str] = (),
    tables: Iterable[str] = PROFILE_TABLES,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Read history tables for a user.

    Args:
        data: Data-access collaborator
        user_id: Caller
        required: Tables whose read failure fails the workflow
        tables: Tables to read

    Returns:
        Mapping of table name to rows (empty list when an optional read failed)

    Raises:
        WorkflowError: internal "<table> query failed: <msg>" for required tables
    """
    required = set(required)
    history = {}
    for table in tables:
        try:
            history[table] = data.list_rows(table, user_id) or []
        except Exception as e:
            if table in required:
                raise WorkflowError(INTERNAL, f"{table} query failed: {_detail(e)}") from e
            _log_warning(f"Optional {table} read failed, continuing without it: {_detail(e)}")
            history[table] = []
    return history


def fetch_enrichment(
    fn: Callable[[], Optional[Dict[str, Any]]], timeout_s: float, description: str
) -> Optional[Dict[str, Any]]:
    """
    Run an optional enrichment lookup on a worker thread with a deadline.

    Any failure or timeout is logged and yields None; the workflow continues
    without the enrichment.
    """
    try:
        result = call_with_timeout(fn, timeout_s, description)
    except Exception as e:
        _log_warning(f"{description} unavailable, continuing without it: {e}")
        return None
    _log_debug(f"{description}: {'found' if result else 'none'}")
    return result
