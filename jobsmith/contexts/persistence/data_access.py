"""
Data-access collaborator for context gathering.

The orchestrator reads profile, job, and history rows through the DataAccess
interface. SQLiteDataAccess implements it over the same database file as the
persistence gateway; tests substitute in-memory fakes.

Missing records are returned as None (or an empty list). Infrastructure
failures raise DataAccessError so callers can tell "absent" from "unreadable".
"""

import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from jobsmith.contexts.persistence.exceptions import DataAccessError
from jobsmith.contexts.persistence.schema import PROFILE_TABLES

# Sort order used when listing each profile table
_ORDER_BY = {
    "employment": "start_date ASC",
    "education": "graduation_date ASC",
    "skills": "id ASC",
    "projects": "id DESC",
    "certifications": "date_earned DESC",
}


class DataAccess(ABC):
    """Read-only access to a user's stored profile data and jobs."""

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_job(self, job_id: int) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_rows(self, table: str, user_id: str) -> List[Dict[str, Any]]:
        """Rows of a profile table (employment, education, skills, projects, certifications)."""
        pass


class SQLiteDataAccess(DataAccess):
    """
    DataAccess over a SQLite database created by PersistenceGateway.initialize().

    Args:
        db_path: Path to the database file
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def _query(self, table: str, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise DataAccessError(table, str(e)) from e
        conn.row_factory = sqlite3.Row
        try:
            return [dict(row) for row in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as e:
            raise DataAccessError(table, str(e)) from e
        finally:
            conn.close()

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query("profiles", "SELECT * FROM profiles WHERE user_id = ?", (user_id,))
        return rows[0] if rows else None

    def get_job(self, job_id: int) -> Optional[Dict[str, Any]]:
        rows = self._query("jobs", "SELECT * FROM jobs WHERE id = ?", (job_id,))
        return rows[0] if rows else None

    def list_rows(self, table: str, user_id: str) -> List[Dict[str, Any]]:
        if table not in PROFILE_TABLES:
            raise ValueError(f"Unknown profile table: {table}")
        return self._query(
            table,
            f"SELECT * FROM {table} WHERE user_id = ? ORDER BY {_ORDER_BY[table]}",
            (user_id,),
        )
