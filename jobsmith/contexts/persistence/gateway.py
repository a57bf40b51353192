"""
Artifact persistence gateway.

Translates in-memory artifacts and company research into writes against the
SQLite store. The store is optional: when JOBSMITH_DB_PATH is not configured,
can_persist() is False and callers skip writes without treating that as an
error. Every storage failure surfaces as PersistenceError so call sites can
downgrade it to ``persisted = False``.

Each operation opens its own short-lived connection, so the gateway can be used
from background threads.
"""

import json
import os
import re
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from dotenv import load_dotenv

from jobsmith.contexts.persistence.exceptions import PersistenceError
from jobsmith.contexts.persistence.logger import _log_debug, _log_info
from jobsmith.contexts.persistence.schema import artifact_schema, profile_schema, research_schema
from jobsmith.utils.timestamp import now_utc

load_dotenv()


def normalize_company_name(name: str) -> str:
    """Cache key for a company: lower-cased, trimmed, inner whitespace collapsed."""
    return re.sub(r"\s+", " ", name or "").strip().lower()


def _stamp(dt: datetime) -> str:
    # Fixed-width ISO strings so stored timestamps compare correctly as text
    return dt.isoformat(timespec="microseconds")


def _dumps(value: Any, operation: str, table: str) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise PersistenceError(operation, f"cannot encode JSON: {e}", table) from e


def _loads(text: Optional[str], operation: str, table: str) -> Any:
    try:
        return json.loads(text) if text is not None else {}
    except (TypeError, ValueError) as e:
        raise PersistenceError(operation, f"corrupt JSON column: {e}", table) from e


class PersistenceGateway:
    """
    SQLite-backed store for artifacts, company info, and the research cache.

    Args:
        db_path: Database file (default: JOBSMITH_DB_PATH env var; unset disables persistence)
        size_labels: Bucket labels accepted by companies.size (default: size policy labels)
        clock: UTC time source (injectable for tests)
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        size_labels: Optional[List[str]] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        if db_path is None and os.getenv("JOBSMITH_DB_PATH"):
            db_path = Path(os.getenv("JOBSMITH_DB_PATH"))
        self.db_path = Path(db_path) if db_path is not None else None
        self._size_labels = size_labels
        self._clock = clock

    def can_persist(self) -> bool:
        """Pure configuration check: is a store configured?"""
        return self.db_path is not None

    @contextmanager
    def _connect(self, operation: str, table: Optional[str] = None) -> Iterator[sqlite3.Connection]:
        if not self.can_persist():
            raise PersistenceError(operation, "persistence not configured", table)
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=10)
        except sqlite3.Error as e:
            raise PersistenceError(operation, str(e), table) from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(operation, str(e), table) from e
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create all tables if missing (idempotent)."""
        if not self.can_persist():
            raise PersistenceError("initialize", "persistence not configured")
        if self._size_labels is None:
            from jobsmith.contexts.normalization.size_policy import get_default_policy

            self._size_labels = [bucket.label for bucket in get_default_policy().buckets]

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        statements = artifact_schema() + research_schema(self._size_labels) + profile_schema()
        with self._connect("initialize") as conn:
            for statement in statements:
                conn.execute(statement)
        _log_info(f"Schema ready at {self.db_path}")

    # =========================================================================
    # ARTIFACTS
    # =========================================================================

    def insert_artifact(
        self,
        user_id: str,
        job_id: Optional[int],
        kind: str,
        content: Dict[str, Any],
        title: Optional[str] = None,
        prompt: Optional[str] = None,
        model: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[str] = None,
    ) -> int:
        """
        Insert one artifact row.

        Returns:
            New artifact id

        Raises:
            PersistenceError: If the store is unavailable or rejects the row
        """
        content_json = _dumps(content, "insert_artifact", "ai_artifacts")
        metadata_json = _dumps(metadata or {}, "insert_artifact", "ai_artifacts")
        with self._connect("insert_artifact", "ai_artifacts") as conn:
            cursor = conn.execute(
                """
                INSERT INTO ai_artifacts
                    (user_id, job_id, kind, title, prompt, model, content, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    job_id,
                    kind,
                    title,
                    prompt,
                    model,
                    content_json,
                    metadata_json,
                    created_at or _stamp(self._clock()),
                ),
            )
            artifact_id = cursor.lastrowid
        _log_debug(f"Inserted {kind} artifact {artifact_id} for user {user_id}")
        return artifact_id

    def get_latest_artifact(
        self, user_id: str, job_id: Optional[int], kind: str
    ) -> Optional[Dict[str, Any]]:
        """Most recent artifact of a kind for a user's job, or None."""
        with self._connect("get_latest_artifact", "ai_artifacts") as conn:
            row = conn.execute(
                """
                SELECT * FROM ai_artifacts
                WHERE user_id = ? AND job_id IS ? AND kind = ?
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (user_id, job_id, kind),
            ).fetchone()
        return _artifact_from_row(row) if row else None

    def list_artifacts(
        self, user_id: str, kind: Optional[str] = None, limit: int = 20
    ) -> List[Dict[str, Any]]:
        """A user's artifacts, newest first, optionally filtered by kind."""
        sql = "SELECT * FROM ai_artifacts WHERE user_id = ?"
        params: list = [user_id]
        if kind:
            sql += " AND kind = ?"
            params.append(kind)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._connect("list_artifacts", "ai_artifacts") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_artifact_from_row(row) for row in rows]

    # =========================================================================
    # COMPANY RESEARCH
    # =========================================================================

    def upsert_company_info(self, research: Dict[str, Any]) -> int:
        """
        Insert or update the durable company row from normalized research.

        Args:
            research: Canonical company research content (companyName required)

        Returns:
            Company id
        """
        name = research.get("companyName")
        if not name:
            raise PersistenceError("upsert_company_info", "companyName is required", "companies")

        now = _stamp(self._clock())
        company_data = {
            "culture": research.get("culture"),
            "leadership": research.get("leadership") or [],
            "products": research.get("products") or [],
        }
        company_json = _dumps(company_data, "upsert_company_info", "companies")
        with self._connect("upsert_company_info", "companies") as conn:
            conn.execute(
                """
                INSERT INTO companies (
                    name, normalized_name, industry, size, location, founded,
                    website, description, mission, company_data, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(normalized_name) DO UPDATE SET
                    name = excluded.name,
                    industry = excluded.industry,
                    size = excluded.size,
                    location = excluded.location,
                    founded = excluded.founded,
                    website = excluded.website,
                    description = excluded.description,
                    mission = excluded.mission,
                    company_data = excluded.company_data,
                    updated_at = excluded.updated_at
                """,
                (
                    name,
                    normalize_company_name(name),
                    research.get("industry"),
                    research.get("size"),
                    research.get("location"),
                    research.get("founded"),
                    research.get("website"),
                    research.get("description"),
                    research.get("mission"),
                    company_json,
                    now,
                    now,
                ),
            )
            row = conn.execute(
                "SELECT id FROM companies WHERE normalized_name = ?",
                (normalize_company_name(name),),
            ).fetchone()
        return row["id"]

    def save_company_research(
        self,
        company_id: int,
        research_data: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
        generated_at: Optional[datetime] = None,
    ) -> None:
        """
        Write (or supersede) the research cache row for a company.

        Args:
            company_id: Id from upsert_company_info()
            research_data: Volatile research payload (news, companyData)
            metadata: Provenance (model, source)
            generated_at: Cache timestamp (default: now)
        """
        now = _stamp(self._clock())
        cached_at = _stamp(generated_at) if generated_at else now
        table = "company_research_cache"
        research_json = _dumps(research_data, "save_company_research", table)
        metadata_json = _dumps(metadata or {}, "save_company_research", table)
        with self._connect("save_company_research", table) as conn:
            conn.execute(
                """
                INSERT INTO company_research_cache
                    (company_id, research_data, metadata, generated_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(company_id) DO UPDATE SET
                    research_data = excluded.research_data,
                    metadata = excluded.metadata,
                    generated_at = excluded.generated_at,
                    updated_at = excluded.updated_at
                """,
                (
                    company_id,
                    research_json,
                    metadata_json,
                    cached_at,
                    now,
                    now,
                ),
            )

    def get_company_research(self, company_name: str) -> Optional[Dict[str, Any]]:
        """
        Read the cached research entry for a company, regardless of age.

        Returns:
            Entry dict (companyName, industry, size, ..., companyData, news, cachedAt)
            or None when no entry exists
        """
        with self._connect("get_company_research", "company_research_cache") as conn:
            row = conn.execute(
                """
                SELECT c.id AS company_id, c.name, c.industry, c.size, c.location,
                       c.founded, c.website, c.description, c.mission,
                       r.research_data, r.metadata, r.generated_at, r.access_count
                FROM companies c
                JOIN company_research_cache r ON r.company_id = c.id
                WHERE c.normalized_name = ?
                """,
                (normalize_company_name(company_name),),
            ).fetchone()

        if row is None:
            return None

        table = "company_research_cache"
        research_data = _loads(row["research_data"], "get_company_research", table)
        metadata = _loads(row["metadata"], "get_company_research", table)
        if not isinstance(research_data, dict):
            raise PersistenceError("get_company_research", "research_data is not an object", table)
        return {
            "companyId": row["company_id"],
            "companyName": row["name"],
            "industry": row["industry"],
            "size": row["size"],
            "location": row["location"],
            "founded": row["founded"],
            "website": row["website"],
            "description": row["description"],
            "companyData": research_data.get("companyData") or {"mission": row["mission"]},
            "news": research_data.get("news") or [],
            "cachedAt": row["generated_at"],
            "accessCount": row["access_count"],
            "metadata": metadata,
        }

    def get_company(self, company_name: str) -> Optional[Dict[str, Any]]:
        """Durable company row (no research payload), or None."""
        with self._connect("get_company", "companies") as conn:
            row = conn.execute(
                "SELECT * FROM companies WHERE normalized_name = ?",
                (normalize_company_name(company_name),),
            ).fetchone()
        if row is None:
            return None
        company = dict(row)
        company["company_data"] = _loads(company["company_data"], "get_company", "companies")
        return company

    def record_research_access(self, company_id: int) -> None:
        """Bump access statistics for a cache hit."""
        with self._connect("record_research_access", "company_research_cache") as conn:
            conn.execute(
                """
                UPDATE company_research_cache
                SET access_count = access_count + 1, last_accessed_at = ?
                WHERE company_id = ?
                """,
                (_stamp(self._clock()), company_id),
            )

    def purge_expired_research(self, ttl: timedelta) -> int:
        """
        Delete cache rows older than ttl. Company rows are kept.

        This is an operator maintenance action; lookups never delete entries.

        Returns:
            Number of rows deleted
        """
        cutoff = _stamp(self._clock() - ttl)
        with self._connect("purge_expired_research", "company_research_cache") as conn:
            cursor = conn.execute(
                "DELETE FROM company_research_cache WHERE generated_at <= ?", (cutoff,)
            )
            deleted = cursor.rowcount
        _log_info(f"Purged {deleted} expired research entries (older than {ttl})")
        return deleted


def _artifact_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    artifact = dict(row)
    artifact["content"] = _loads(artifact["content"], "read_artifact", "ai_artifacts")
    artifact["metadata"] = _loads(artifact["metadata"], "read_artifact", "ai_artifacts")
    return artifact
