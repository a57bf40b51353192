"""Shared fakes and fixtures for JOBSMITH tests."""

import json
import threading
import time

import pytest

from jobsmith.contexts.persistence import DataAccess, DataAccessError, PersistenceError, PersistenceGateway
from jobsmith.utils.llm import GenerationResult

USER = "user-1"
OTHER_USER = "user-2"


class FakeGenerator:
    """
    Generation capability that returns canned results per kind.

    Args:
        results: {kind: GenerationResult | dict | str}; dicts become parsed JSON,
                 strings become raw text
        error: Exception raised by every call instead of returning
        delay_s: Sleep before answering
    """

    provider_name = "fake"

    def __init__(self, results=None, error=None, delay_s=0.0):
        self.results = results or {}
        self.error = error
        self.delay_s = delay_s
        self.calls = []
        self._lock = threading.Lock()

    def generate(self, kind, prompt, options=None):
        with self._lock:
            self.calls.append({"kind": kind, "prompt": prompt, "options": options})
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.error is not None:
            raise self.error

        result = self.results[kind]
        if isinstance(result, GenerationResult):
            return result
        if isinstance(result, str):
            return GenerationResult(text=result, tokens=42, model="fake-model")
        return GenerationResult(text=json.dumps(result), json=result, tokens=42, model="fake-model")

    @property
    def call_count(self):
        with self._lock:
            return len(self.calls)


class FakeDataAccess(DataAccess):
    """In-memory DataAccess with injectable failures."""

    def __init__(self, profiles=None, jobs=None, rows=None, failures=None):
        self.profiles = profiles or {}
        self.jobs = jobs or {}
        self.rows = rows or {}
        self.failures = failures or {}

    def get_profile(self, user_id):
        if "profiles" in self.failures:
            raise self.failures["profiles"]
        return self.profiles.get(user_id)

    def get_job(self, job_id):
        if "jobs" in self.failures:
            raise self.failures["jobs"]
        return self.jobs.get(job_id)

    def list_rows(self, table, user_id):
        if table in self.failures:
            raise self.failures[table]
        return [row for row in self.rows.get(table, []) if row.get("user_id") == user_id]


class FakeGateway:
    """Records artifact inserts; optionally unconfigured or failing."""

    def __init__(self, configured=True, fail_with=None):
        self.configured = configured
        self.fail_with = fail_with
        self.inserted = []

    def can_persist(self):
        return self.configured

    def insert_artifact(self, **fields):
        if self.fail_with is not None:
            raise self.fail_with
        self.inserted.append(fields)
        return len(self.inserted)

    def get_company_research(self, company_name):
        return None


@pytest.fixture
def sample_data():
    """A user with a profile, one owned job (42), one foreign job (7), and history rows."""
    return FakeDataAccess(
        profiles={USER: {"user_id": USER, "full_name": "Ada Lovelace", "summary": "Engineer"}},
        jobs={
            42: {
                "id": 42,
                "user_id": USER,
                "job_title": "Data Engineer",
                "company_name": "Acme Robotics",
                "job_description": "Build pipelines.",
            },
            7: {"id": 7, "user_id": OTHER_USER, "job_title": "Chef", "company_name": "Diner"},
        },
        rows={
            "skills": [{"user_id": USER, "skill_name": "Python"}, {"user_id": USER, "skill_name": "SQL"}],
            "employment": [
                {"user_id": USER, "id": 1, "job_title": "Analyst", "company_name": "Initech",
                 "start_date": "2019-01-01", "end_date": "2022-06-01"}
            ],
        },
    )


@pytest.fixture
def fake_generator():
    """Factory for FakeGenerator instances."""
    return FakeGenerator


@pytest.fixture
def fake_gateway():
    """Factory for FakeGateway instances."""
    return FakeGateway


@pytest.fixture
def db_gateway(tmp_path):
    """PersistenceGateway over a fresh SQLite file with the schema created."""
    gateway = PersistenceGateway(tmp_path / "jobsmith.db")
    gateway.initialize()
    return gateway


@pytest.fixture
def persistence_error():
    return PersistenceError("insert_artifact", "database is locked", "ai_artifacts")


@pytest.fixture
def data_access_error():
    return DataAccessError("jobs", "connection refused")
