"""
Persistence Context

Responsibilities:
- Best-effort writes of generated artifacts to the SQLite store
- Durable company rows and the volatile company research cache
- Read-only data access for profile, job, and history rows

Owns: Storage schema, connection handling, storage error reporting
Never: Decides whether a request succeeds (callers downgrade failures to flags)
"""

from jobsmith.contexts.persistence.data_access import DataAccess, SQLiteDataAccess
from jobsmith.contexts.persistence.exceptions import DataAccessError, PersistenceError
from jobsmith.contexts.persistence.gateway import PersistenceGateway, normalize_company_name
from jobsmith.contexts.persistence.schema import ARTIFACT_KINDS, PROFILE_TABLES

__all__ = [
    # Gateway
    "PersistenceGateway",
    "normalize_company_name",
    # Data access
    "DataAccess",
    "SQLiteDataAccess",
    # Schema constants
    "ARTIFACT_KINDS",
    "PROFILE_TABLES",
    # Errors
    "PersistenceError",
    "DataAccessError",
]
