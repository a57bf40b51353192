"""Workflow error taxonomy for the generation context."""

from typing import Optional

# Error categories. Each workflow returns an artifact or exactly one error.
UNAUTHENTICATED = "unauthenticated"
BAD_REQUEST = "bad_request"
FORBIDDEN = "forbidden"
NOT_FOUND = "not_found"
INTERNAL = "internal"
AI_ERROR = "ai_error"
FORMAT = "format"
RATE_LIMITED = "rate_limited"

CATEGORIES = (
    UNAUTHENTICATED,
    BAD_REQUEST,
    FORBIDDEN,
    NOT_FOUND,
    INTERNAL,
    AI_ERROR,
    FORMAT,
    RATE_LIMITED,
)


class WorkflowError(Exception):
    """
    Terminal failure of a generation workflow.

    Raised inside a workflow to short-circuit the remaining steps; the
    orchestrator converts it into a WorkflowResult with ``error`` set.

    Attributes:
        category: One of CATEGORIES (how the caller should react)
        message: Stable, caller-visible message (e.g., "missing jobId")
        retry_after_sec: Seconds to wait before retrying (rate_limited only)
    """

    def __init__(self, category: str, message: str, retry_after_sec: Optional[int] = None):
        if category not in CATEGORIES:
            raise ValueError(f"Unknown workflow error category: {category}")
        self.category = category
        self.message = message
        self.retry_after_sec = retry_after_sec
        super().__init__(message)

    def to_dict(self) -> dict:
        error = {"category": self.category, "message": self.message}
        if self.retry_after_sec is not None:
            error["retry_after_sec"] = self.retry_after_sec
        return error

    def __repr__(self) -> str:
        return f"WorkflowError({self.category!r}, {self.message!r})"
