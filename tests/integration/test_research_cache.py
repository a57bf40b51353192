"""Integration tests for the company research cache over a SQLite store."""

import sqlite3
import threading
from datetime import timedelta

import pytest

from jobsmith.contexts.normalization import InvalidResponseFormatError
from jobsmith.contexts.persistence import PersistenceError, PersistenceGateway
from jobsmith.contexts.research import ResearchCache
from jobsmith.utils.background import BackgroundTaskQueue
from jobsmith.utils.llm import GenerationOptions
from jobsmith.utils.timestamp import now_utc

ACME = {
    "companyName": "Acme Robotics",
    "industry": "Robotics",
    "size": "1000+",
    "location": "Austin, TX",
    "founded": 2009,
    "mission": "Build helpful robots",
    "culture": {"type": "startup", "values": ["Ownership"]},
    "leadership": [{"name": "Jane Doe", "title": "CEO"}],
    "products": ["Arm-1"],
    "news": [{"title": "Acme raises Series C", "date": "2025-01-02"}],
}


def seed(gateway, age=timedelta(0), name="Acme Robotics"):
    """Write a cache entry for a company generated `age` ago."""
    company_id = gateway.upsert_company_info(
        {"companyName": name, "industry": "Old industry", "size": "51-200"}
    )
    gateway.save_company_research(
        company_id,
        {"companyData": {"mission": "Old mission"}, "news": []},
        {"source": "api"},
        generated_at=now_utc() - age,
    )
    return company_id


class FakeRetriever:
    def __init__(self, text=""):
        self.text = text
        self.names = []

    def fetch(self, company_name):
        self.names.append(company_name)
        return self.text


@pytest.fixture
def make_cache(db_gateway, fake_generator):
    """Factory for a cache over the test database; returns (cache, generator)."""

    def _make(results=None, gateway=None, retriever=None, **kwargs):
        generator = kwargs.pop("generator", None) or fake_generator(
            results or {"company_research": ACME}
        )
        cache = ResearchCache(
            generator,
            gateway or db_gateway,
            BackgroundTaskQueue(),
            retriever=retriever,
            **kwargs,
        )
        return cache, generator

    return _make


# =============================================================================
# FRESHNESS
# =============================================================================


@pytest.mark.integration
def test_miss_generates_and_writes_through(make_cache, db_gateway):
    """Test a miss: live lookup tagged api, then company row and cache entry written."""
    cache, generator = make_cache()

    outcome = cache.lookup("Acme Robotics")

    assert outcome.source == "api"
    assert outcome.content["cacheHit"] is False
    assert outcome.content["size"] == "1001-5000"
    assert generator.call_count == 1
    assert cache.wait_for_writes(timeout=5)

    company = db_gateway.get_company("Acme Robotics")
    assert company["size"] == "1001-5000"
    assert company["industry"] == "Robotics"
    entry = db_gateway.get_company_research("acme robotics")
    assert entry["companyData"]["mission"] == "Build helpful robots"
    assert entry["news"][0]["title"] == "Acme raises Series C"
    assert entry["metadata"]["source"] == "api"


@pytest.mark.integration
def test_fresh_hit_skips_generation(make_cache, db_gateway):
    """Test that a fresh entry is served without retrieval or generation."""
    seed(db_gateway, age=timedelta(days=1))
    retriever = FakeRetriever("ignored")
    cache, generator = make_cache(retriever=retriever)

    outcome = cache.lookup("  ACME   robotics ")

    assert outcome.source == "cached"
    assert outcome.content["cacheHit"] is True
    assert outcome.content["mission"] == "Old mission"
    assert generator.call_count == 0
    assert retriever.names == []

    assert cache.wait_for_writes(timeout=5)
    assert db_gateway.get_company_research("Acme Robotics")["accessCount"] == 1


@pytest.mark.integration
def test_stale_entry_is_refreshed(make_cache, db_gateway):
    """Test that an entry older than the TTL triggers a live lookup that supersedes it."""
    seed(db_gateway, age=timedelta(days=8))
    old_cached_at = db_gateway.get_company_research("Acme Robotics")["cachedAt"]
    cache, generator = make_cache(ttl=timedelta(days=7))

    outcome = cache.lookup("Acme Robotics")

    assert outcome.source == "api"
    assert generator.call_count == 1
    assert cache.wait_for_writes(timeout=5)

    entry = db_gateway.get_company_research("Acme Robotics")
    assert entry["cachedAt"] > old_cached_at
    assert entry["size"] == "1001-5000"
    assert entry["companyData"]["mission"] == "Build helpful robots"


@pytest.mark.integration
def test_stale_entry_survives_failed_refresh(make_cache, db_gateway, fake_generator):
    """Test that lookups never delete stale entries, even when the refresh fails."""
    seed(db_gateway, age=timedelta(days=30))
    cache, _ = make_cache(generator=fake_generator(error=RuntimeError("provider down")))

    with pytest.raises(RuntimeError, match="provider down"):
        cache.lookup("Acme Robotics")

    assert db_gateway.get_company_research("Acme Robotics")["companyData"]["mission"] == "Old mission"


@pytest.mark.integration
def test_sequential_lookups_generate_once(make_cache):
    """Test that a lookup right after a live lookup waits for its write and hits."""
    cache, generator = make_cache()

    first = cache.lookup("Acme Robotics")
    second = cache.lookup("acme robotics")

    assert (first.source, second.source) == ("api", "cached")
    assert generator.call_count == 1


@pytest.mark.integration
def test_concurrent_lookups_generate_once(make_cache, fake_generator):
    """Test that concurrent lookups for one company issue a single generation call."""
    generator = fake_generator({"company_research": ACME}, delay_s=0.1)
    cache, _ = make_cache(generator=generator)
    outcomes = []

    def run():
        outcomes.append(cache.lookup("Acme Robotics"))

    threads = [threading.Thread(target=run) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert generator.call_count == 1
    assert sorted(o.source for o in outcomes) == ["api", "cached", "cached"]


# =============================================================================
# NO-RESULT AND FAILURE PATHS
# =============================================================================


@pytest.mark.integration
def test_not_found_writes_nothing(make_cache, db_gateway):
    """Test that the not-found sentinel is returned and never cached."""
    cache, generator = make_cache(results={"company_research": "COMPANY_NOT_FOUND"})

    outcome = cache.lookup("Nonexistent Widgets LLC")

    assert outcome.not_found
    assert outcome.content is None
    assert outcome.write is None
    assert cache.wait_for_writes(timeout=5)
    assert db_gateway.get_company("Nonexistent Widgets LLC") is None

    cache.lookup("Nonexistent Widgets LLC")
    assert generator.call_count == 2


@pytest.mark.integration
def test_invalid_output_raises_and_writes_nothing(make_cache, db_gateway):
    """Test that unparseable research output raises a format error."""
    cache, _ = make_cache(results={"company_research": "Acme is a nice company."})

    with pytest.raises(InvalidResponseFormatError):
        cache.lookup("Acme Robotics")
    assert db_gateway.get_company("Acme Robotics") is None


@pytest.mark.integration
def test_generation_timeout(make_cache, fake_generator):
    """Test that a slow generation call raises TimeoutError."""
    cache, _ = make_cache(generator=fake_generator({"company_research": ACME}, delay_s=0.5))

    with pytest.raises(TimeoutError, match="generation timed out"):
        cache.lookup("Acme Robotics", options=GenerationOptions(timeout_s=0.05))


@pytest.mark.integration
def test_retrieved_content_and_hints_reach_prompt(make_cache):
    """Test that retrieval output and context hints are part of the prompt."""
    retriever = FakeRetriever("Acme builds industrial robot arms in Texas.")
    cache, generator = make_cache(retriever=retriever)

    outcome = cache.lookup("Acme Robotics", context={"industry": "Robotics"})

    prompt = generator.calls[0]["prompt"]
    assert retriever.names == ["Acme Robotics"]
    assert "Supporting content:\nAcme builds industrial robot arms in Texas." in prompt
    assert "Industry hint: Robotics" in prompt
    assert outcome.prompt == prompt


class FailingUpsertGateway(PersistenceGateway):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.saves = []

    def upsert_company_info(self, research):
        raise PersistenceError("upsert_company_info", "database is locked", "companies")

    def save_company_research(self, *args, **kwargs):
        self.saves.append(args)
        super().save_company_research(*args, **kwargs)


class FailingSaveGateway(PersistenceGateway):
    def save_company_research(self, *args, **kwargs):
        raise PersistenceError("save_company_research", "disk full", "company_research_cache")


class FailingReadGateway(PersistenceGateway):
    def get_company_research(self, company_name):
        raise PersistenceError("get_company_research", "database is locked", "company_research_cache")


@pytest.mark.integration
def test_upsert_failure_skips_cache_save(make_cache, db_gateway):
    """Test that the cache entry is not saved when the company upsert fails."""
    gateway = FailingUpsertGateway(db_gateway.db_path)
    cache, _ = make_cache(gateway=gateway)

    outcome = cache.lookup("Acme Robotics")

    assert outcome.source == "api"
    assert cache.wait_for_writes(timeout=5)
    assert isinstance(outcome.write.exception(), PersistenceError)
    assert gateway.saves == []
    assert db_gateway.get_company_research("Acme Robotics") is None


@pytest.mark.integration
def test_save_failure_keeps_company_row(make_cache, db_gateway):
    """Test that a failed cache save leaves the upserted company row in place."""
    cache, _ = make_cache(gateway=FailingSaveGateway(db_gateway.db_path))

    outcome = cache.lookup("Acme Robotics")

    assert outcome.source == "api"
    assert cache.wait_for_writes(timeout=5)
    assert db_gateway.get_company("Acme Robotics") is not None
    assert db_gateway.get_company_research("Acme Robotics") is None


@pytest.mark.integration
def test_read_failure_is_treated_as_miss(make_cache, db_gateway):
    """Test that an unreadable cache falls through to a live lookup."""
    cache, generator = make_cache(gateway=FailingReadGateway(db_gateway.db_path))

    assert cache.lookup("Acme Robotics").source == "api"
    assert generator.call_count == 1


@pytest.mark.integration
def test_unconfigured_store_never_writes(make_cache, monkeypatch):
    """Test that without a store every lookup is live and nothing is scheduled."""
    monkeypatch.delenv("JOBSMITH_DB_PATH", raising=False)
    cache, generator = make_cache(gateway=PersistenceGateway())

    assert cache.lookup("Acme Robotics").write is None
    assert cache.lookup("Acme Robotics").source == "api"
    assert cache.get_cached("Acme Robotics") is None
    assert generator.call_count == 2


# =============================================================================
# ENRICHMENT READS AND MAINTENANCE
# =============================================================================


@pytest.mark.integration
def test_get_cached_ignores_age(make_cache, db_gateway):
    """Test that enrichment reads return prior research regardless of age."""
    seed(db_gateway, age=timedelta(days=90))
    cache, generator = make_cache()

    content = cache.get_cached("Acme Robotics")

    assert content["mission"] == "Old mission"
    assert content["cacheHit"] is True
    assert generator.call_count == 0
    assert cache.get_cached("Unknown Co") is None


@pytest.mark.integration
def test_purge_expired(make_cache, db_gateway):
    """Test that purge removes only entries older than the TTL and keeps company rows."""
    seed(db_gateway, age=timedelta(days=10), name="Old Co")
    seed(db_gateway, age=timedelta(days=1), name="New Co")
    cache, _ = make_cache(ttl=timedelta(days=7))

    assert cache.purge_expired() == 1
    assert db_gateway.get_company_research("Old Co") is None
    assert db_gateway.get_company_research("New Co") is not None
    assert db_gateway.get_company("Old Co") is not None


@pytest.mark.integration
def test_corrupt_entry_is_treated_as_miss(make_cache, db_gateway):
    """Test that an undecodable cache row falls through to a live lookup that replaces it."""
    seed(db_gateway, age=timedelta(days=1))
    conn = sqlite3.connect(str(db_gateway.db_path))
    try:
        conn.execute("UPDATE company_research_cache SET research_data = 'not json'")
        conn.commit()
    finally:
        conn.close()
    cache, generator = make_cache()

    outcome = cache.lookup("Acme Robotics")

    assert outcome.source == "api"
    assert generator.call_count == 1
    assert cache.wait_for_writes(timeout=5)
    assert db_gateway.get_company_research("Acme Robotics")["companyData"]["mission"] == "Build helpful robots"


@pytest.mark.integration
def test_key_locks_released_after_lookup(make_cache, db_gateway):
    """Test that per-company locks do not accumulate across lookups."""
    seed(db_gateway, age=timedelta(days=1))
    cache, _ = make_cache(results={"company_research": "COMPANY_NOT_FOUND"})

    cache.lookup("Acme Robotics")
    for i in range(5):
        cache.lookup(f"Unknown Co {i}")

    assert cache._key_locks == {}
    assert cache._key_users == {}
