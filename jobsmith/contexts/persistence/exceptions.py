"""Custom exceptions for the persistence context."""

from typing import Optional


class PersistenceError(Exception):
    """
    Raised when a storage read or write fails.

    Callers treat persistence as best effort: this error is caught at the
    workflow and cache call sites and reduced to ``persisted = False``.

    Attributes:
        operation: Gateway operation that failed (e.g., "insert_artifact")
        table: Table involved, when known
        detail: Underlying error message
    """

    def __init__(self, operation: str, detail: str, table: Optional[str] = None):
        self.operation = operation
        self.table = table
        self.detail = detail

        location = f" on {table}" if table else ""
        super().__init__(f"{operation} failed{location}: {detail}")


class DataAccessError(Exception):
    """
    Raised when a data-access read fails (as opposed to returning no rows).

    Attributes:
        table: Table that was queried
        detail: Underlying error message
    """

    def __init__(self, table: str, detail: str):
        self.table = table
        self.detail = detail
        super().__init__(f"{table} query failed: {detail}")
