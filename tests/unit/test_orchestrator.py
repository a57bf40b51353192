"""Unit tests for the generation orchestrator with in-memory collaborators."""

import threading
import time
from datetime import datetime, timezone

import pytest

from jobsmith.contexts.generation import GenerationOrchestrator
from jobsmith.contexts.normalization import InvalidResponseFormatError
from jobsmith.contexts.persistence import DataAccessError
from jobsmith.contexts.research import ResearchOutcome
from jobsmith.utils.counters import GenerationCounters

USER = "user-1"

RESUME_JSON = {
    "summary": "Data engineer",
    "ordered_skills": [{"name": "Python"}, "SQL"],
    "sections": {"experience": [{"employment_id": 1, "role": "Analyst", "bullets": ["Built X", "Led Y"]}]},
}
COVER_LETTER_JSON = {
    "sections": {"opening": "Dear Acme,", "body": ["I build pipelines."], "closing": "Best, Ada"}
}
SALARY_JSON = {"range": {"low": 100000, "high": 140000}, "trend": "rising"}
ACME_RESEARCH = {
    "companyName": "Acme Robotics",
    "mission": "Build helpful robots",
    "culture": {"values": ["Ownership"]},
    "products": ["Arm-1"],
    "news": [],
}


class StubResearchCache:
    """Research cache double: canned lookup outcome and enrichment behaviour."""

    def __init__(self, outcome=None, lookup_error=None, cached=None, cached_error=None):
        self.outcome = outcome
        self.lookup_error = lookup_error
        self.cached = cached
        self.cached_error = cached_error
        self.lookups = []

    def lookup(self, company_name, context=None, options=None):
        self.lookups.append((company_name, context))
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.outcome

    def get_cached(self, company_name):
        if self.cached_error is not None:
            raise self.cached_error
        return self.cached


@pytest.fixture
def build(sample_data, fake_gateway):
    """Factory for an orchestrator wired to fakes; returns (orchestrator, gateway)."""

    def _build(generator, gateway=None, research_cache=None, **kwargs):
        gateway = gateway or fake_gateway()
        orchestrator = GenerationOrchestrator(
            generator=generator,
            data_access=sample_data,
            gateway=gateway,
            research_cache=research_cache or StubResearchCache(),
            counters=GenerationCounters(),
            **kwargs,
        )
        return orchestrator, gateway

    return _build


# =============================================================================
# SUCCESS PATHS
# =============================================================================


@pytest.mark.unit
def test_generate_resume_success(build, fake_generator):
    """Test a resume run: prompt context, normalization, persistence, and metadata."""
    generator = fake_generator({"resume": RESUME_JSON})
    orchestrator, gateway = build(generator)

    result = orchestrator.generate_resume(USER, 42, {"tone": "concise", "variant": "B"})

    assert result.ok
    artifact = result.artifact
    assert artifact.kind == "resume"
    assert artifact.persisted is True
    assert artifact.id == 1
    assert artifact.preview == "• Built X\n• Led Y"
    assert artifact.content["ordered_skills"] == ["Python", "SQL"]
    assert artifact.metadata["provider"] == "fake"
    assert artifact.metadata["model"] == "fake-model"
    assert artifact.metadata["tokens"] == 42
    assert artifact.metadata["variant"] == "B"
    assert artifact.metadata["artifact_id"] == 1

    prompt = generator.calls[0]["prompt"]
    assert "Target role: Data Engineer" in prompt
    assert "Skills: Python, SQL" in prompt
    assert "Tone: concise" in prompt
    assert artifact.metadata["prompt_preview"] == prompt[:400]

    stored = gateway.inserted[0]
    assert stored["kind"] == "resume"
    assert stored["job_id"] == 42
    assert stored["title"] == "AI Resume for Data Engineer"
    assert orchestrator.counters.snapshot() == {
        "generate_total": 1,
        "generate_success": 1,
        "generate_fail": 0,
    }


@pytest.mark.unit
def test_numeric_string_job_id_accepted(build, fake_generator):
    """Test that "42" is accepted as a job id."""
    orchestrator, gateway = build(fake_generator({"resume": RESUME_JSON}))
    assert orchestrator.generate_resume(USER, "42").ok
    assert gateway.inserted[0]["job_id"] == 42


@pytest.mark.unit
def test_user_prompt_additions_appended(build, fake_generator):
    """Test that caller prompt additions reach the generation call."""
    generator = fake_generator({"resume": RESUME_JSON})
    orchestrator, _ = build(generator)
    orchestrator.generate_resume(USER, 42, {"prompt": "Mention Airflow"})

    assert generator.calls[0]["prompt"].endswith("User Additions:\nMention Airflow")


@pytest.mark.unit
def test_cover_letter_uses_prior_company_research(build, fake_generator):
    """Test that cached company research enriches the cover letter prompt."""
    generator = fake_generator({"cover_letter": COVER_LETTER_JSON})
    orchestrator, _ = build(generator, research_cache=StubResearchCache(cached=ACME_RESEARCH))

    result = orchestrator.generate_cover_letter(USER, 42, {"length": "brief"})

    assert result.ok
    assert result.artifact.metadata["company_research_used"] is True
    assert result.artifact.preview == "Dear Acme,"
    prompt = generator.calls[0]["prompt"]
    assert "Mission: Build helpful robots" in prompt
    assert "Length: brief" in prompt


@pytest.mark.unit
def test_cover_letter_enrichment_failure_is_soft(build, fake_generator):
    """Test that a failing enrichment lookup does not fail the cover letter."""
    generator = fake_generator({"cover_letter": COVER_LETTER_JSON})
    cache = StubResearchCache(cached_error=RuntimeError("store unreachable"))
    orchestrator, _ = build(generator, research_cache=cache)

    result = orchestrator.generate_cover_letter(USER, 42)

    assert result.ok
    assert result.artifact.metadata["company_research_used"] is False
    assert "Company research for" not in generator.calls[0]["prompt"]


@pytest.mark.unit
def test_cover_letter_abandons_slow_enrichment(build, fake_generator):
    """Test that a slow enrichment read is abandoned at its deadline and the letter proceeds."""
    release = threading.Event()

    class SlowResearchCache(StubResearchCache):
        def get_cached(self, company_name):
            release.wait(5)
            return ACME_RESEARCH

    generator = fake_generator({"cover_letter": COVER_LETTER_JSON})
    orchestrator, _ = build(generator, research_cache=SlowResearchCache(), enrichment_timeout_s=0.05)

    started = time.perf_counter()
    try:
        result = orchestrator.generate_cover_letter(USER, 42)
    finally:
        release.set()
    elapsed = time.perf_counter() - started

    assert result.ok
    assert result.artifact.metadata["company_research_used"] is False
    assert "Mission: Build helpful robots" not in generator.calls[0]["prompt"]
    assert elapsed < 1.0


@pytest.mark.unit
def test_tailor_experience_stored_as_resume(build, fake_generator):
    """Test that tailored experience is stored under the resume kind with a subkind."""
    payload = {"roles": [{"employment_id": 1, "role": "Analyst", "bullets": ["Rewrote A"]}]}
    orchestrator, gateway = build(fake_generator({"experience_tailoring": payload}))

    result = orchestrator.tailor_experience(USER, 42)

    assert result.ok
    assert result.artifact.kind == "experience_tailoring"
    assert result.artifact.metadata["subkind"] == "experience_tailoring"
    assert gateway.inserted[0]["kind"] == "resume"
    assert result.artifact.preview == "• Rewrote A"


@pytest.mark.unit
def test_optional_history_failure_is_soft(build, fake_generator, sample_data, data_access_error):
    """Test that a failing optional table read is skipped."""
    sample_data.failures["education"] = data_access_error
    orchestrator, _ = build(fake_generator({"resume": RESUME_JSON}))
    assert orchestrator.generate_resume(USER, 42).ok


@pytest.mark.unit
def test_research_salary_success(build, fake_generator):
    """Test salary research normalization and the api source tag."""
    generator = fake_generator({"salary_research": SALARY_JSON})
    orchestrator, gateway = build(generator)

    result = orchestrator.research_salary(USER, "Data Engineer", "Austin, TX", "4")

    assert result.ok
    assert result.artifact.content["range"] == {"low": 100000, "avg": 120000, "high": 140000}
    assert result.artifact.metadata["source"] == "api"
    assert gateway.inserted[0]["job_id"] is None
    assert "Years of experience: 4" in generator.calls[0]["prompt"]


@pytest.mark.unit
def test_research_company_passes_through_cache(build, fake_generator):
    """Test that company research reports the cache source and hit flag."""
    outcome = ResearchOutcome(content=dict(ACME_RESEARCH, cacheHit=True), source="cached")
    cache = StubResearchCache(outcome=outcome)
    generator = fake_generator()
    orchestrator, gateway = build(generator, research_cache=cache)

    result = orchestrator.research_company(USER, "  Acme Robotics ")

    assert result.ok
    assert result.artifact.metadata["source"] == "cached"
    assert result.artifact.metadata["cacheHit"] is True
    assert cache.lookups == [("Acme Robotics", {})]
    assert generator.call_count == 0
    assert gateway.inserted[0]["kind"] == "company_research"


@pytest.mark.unit
def test_research_company_with_job_hints(build, fake_generator, sample_data):
    """Test that a referenced job contributes prompt hints after an ownership check."""
    sample_data.jobs[42]["industry"] = "Robotics"
    outcome = ResearchOutcome(content=dict(ACME_RESEARCH, cacheHit=False), source="api")
    cache = StubResearchCache(outcome=outcome)
    orchestrator, _ = build(fake_generator(), research_cache=cache)

    assert orchestrator.research_company(USER, "Acme Robotics", job_id=42).ok
    assert cache.lookups[0][1]["industry"] == "Robotics"

    result = orchestrator.research_company(USER, "Acme Robotics", job_id=7)
    assert result.error.category == "forbidden"
    assert len(cache.lookups) == 1


# =============================================================================
# ERROR PATHS
# =============================================================================


@pytest.mark.unit
@pytest.mark.parametrize("user_id", [None, ""])
def test_unauthenticated(build, fake_generator, user_id):
    """Test that a missing user id is rejected before any work."""
    generator = fake_generator({"resume": RESUME_JSON})
    orchestrator, _ = build(generator)

    result = orchestrator.generate_resume(user_id, 42)

    assert result.error.category == "unauthenticated"
    assert generator.call_count == 0


@pytest.mark.unit
@pytest.mark.parametrize(
    "job_id, message",
    [
        (None, "missing jobId"),
        ("  ", "missing jobId"),
        ("abc", "jobId must be a number"),
        (True, "jobId must be a number"),
        (4.5, "jobId must be a number"),
    ],
)
def test_invalid_job_id(build, fake_generator, job_id, message):
    """Test job id validation messages."""
    generator = fake_generator({"resume": RESUME_JSON})
    orchestrator, _ = build(generator)

    result = orchestrator.generate_resume(USER, job_id)

    assert result.error.category == "bad_request"
    assert result.error.message == message
    assert generator.call_count == 0


@pytest.mark.unit
def test_foreign_job_forbidden(build, fake_generator):
    """Test that another user's job is forbidden and no generation happens."""
    generator = fake_generator({"cover_letter": COVER_LETTER_JSON})
    orchestrator, gateway = build(generator)

    result = orchestrator.generate_cover_letter(USER, 7)

    assert result.error.category == "forbidden"
    assert result.error.message == "job does not belong to user"
    assert generator.call_count == 0
    assert gateway.inserted == []
    assert orchestrator.counters.snapshot()["generate_fail"] == 1


@pytest.mark.unit
def test_missing_job_not_found(build, fake_generator):
    """Test that an unknown job id is not_found."""
    orchestrator, _ = build(fake_generator({"resume": RESUME_JSON}))
    result = orchestrator.generate_resume(USER, 999)
    assert (result.error.category, result.error.message) == ("not_found", "job not found")


@pytest.mark.unit
def test_job_query_failure_is_internal(build, fake_generator, sample_data, data_access_error):
    """Test that a failing job read is internal, not a false ownership denial."""
    sample_data.failures["jobs"] = data_access_error
    orchestrator, _ = build(fake_generator({"resume": RESUME_JSON}))

    result = orchestrator.generate_resume(USER, 42)

    assert result.error.category == "internal"
    assert result.error.message == "job query failed: connection refused"


@pytest.mark.unit
def test_missing_profile_not_found(build, fake_generator, sample_data):
    """Test that a user without a profile gets not_found."""
    sample_data.profiles.clear()
    orchestrator, _ = build(fake_generator({"resume": RESUME_JSON}))
    result = orchestrator.generate_resume(USER, 42)
    assert (result.error.category, result.error.message) == ("not_found", "profile not found")


@pytest.mark.unit
def test_required_history_failure_is_internal(build, fake_generator, sample_data):
    """Test that skills optimization fails when the skills read fails."""
    sample_data.failures["skills"] = DataAccessError("skills", "disk I/O error")
    generator = fake_generator({"skills_optimization": {"recommended": []}})
    orchestrator, _ = build(generator)

    result = orchestrator.optimize_skills(USER, 42)

    assert result.error.category == "internal"
    assert result.error.message == "skills query failed: disk I/O error"
    assert generator.call_count == 0


@pytest.mark.unit
def test_generation_error_is_ai_error(build, fake_generator):
    """Test that a generation failure maps to ai_error and counts as a failure."""
    orchestrator, gateway = build(fake_generator(error=RuntimeError("boom")))

    result = orchestrator.generate_resume(USER, 42)

    assert result.error.category == "ai_error"
    assert result.error.message == "AI error: boom"
    assert gateway.inserted == []
    assert orchestrator.counters.snapshot() == {
        "generate_total": 1,
        "generate_success": 0,
        "generate_fail": 1,
    }


@pytest.mark.unit
def test_generation_timeout_is_ai_error(build, fake_generator, monkeypatch):
    """Test that a generation call past its deadline is reported as an AI error."""
    monkeypatch.setenv("AI_TIMEOUT_MS", "50")
    orchestrator, _ = build(fake_generator({"resume": RESUME_JSON}, delay_s=0.5))

    result = orchestrator.generate_resume(USER, 42)

    assert result.error.category == "ai_error"
    assert "timed out" in result.error.message


@pytest.mark.unit
def test_unparseable_salary_is_format_error(build, fake_generator):
    """Test that prose salary output is a format error with the stable message."""
    orchestrator, _ = build(fake_generator({"salary_research": "It depends."}))

    result = orchestrator.research_salary(USER, "Data Engineer")

    assert result.error.category == "format"
    assert result.error.message == "Invalid AI response format"


@pytest.mark.unit
@pytest.mark.parametrize(
    "title, years, message",
    [
        ("", None, "missing title"),
        ("   ", None, "missing title"),
        ("Engineer", "lots", "experienceYears must be a number"),
        ("Engineer", -1, "experienceYears must not be negative"),
    ],
)
def test_salary_validation(build, fake_generator, title, years, message):
    """Test salary research input validation."""
    orchestrator, _ = build(fake_generator({"salary_research": SALARY_JSON}))
    result = orchestrator.research_salary(USER, title, experience_years=years)
    assert (result.error.category, result.error.message) == ("bad_request", message)


@pytest.mark.unit
@pytest.mark.parametrize("company_name", [None, "", "   "])
def test_research_company_requires_name(build, fake_generator, company_name):
    """Test that company research needs a company name."""
    orchestrator, _ = build(fake_generator())
    result = orchestrator.research_company(USER, company_name)
    assert (result.error.category, result.error.message) == ("bad_request", "missing companyName")


@pytest.mark.unit
def test_research_company_not_found(build, fake_generator):
    """Test that the not-found sentinel surfaces as not_found."""
    cache = StubResearchCache(outcome=ResearchOutcome(not_found=True))
    orchestrator, gateway = build(fake_generator(), research_cache=cache)

    result = orchestrator.research_company(USER, "Nonexistent Widgets LLC")

    assert (result.error.category, result.error.message) == ("not_found", "company not found")
    assert gateway.inserted == []


@pytest.mark.unit
def test_research_company_format_and_ai_errors(build, fake_generator):
    """Test that cache lookup failures map to format or ai_error."""
    cache = StubResearchCache(lookup_error=InvalidResponseFormatError("company_research", "bad"))
    orchestrator, _ = build(fake_generator(), research_cache=cache)
    assert orchestrator.research_company(USER, "Acme").error.category == "format"

    cache.lookup_error = TimeoutError("generation timed out after 30s")
    result = orchestrator.research_company(USER, "Acme")
    assert result.error.category == "ai_error"
    assert result.error.message == "AI error: generation timed out after 30s"


# =============================================================================
# RATE LIMITING AND PERSISTENCE
# =============================================================================


@pytest.mark.unit
def test_rate_limited_leaves_counters_untouched(build, fake_generator):
    """Test that a rate-limited call returns retry_after and is not counted."""
    generator = fake_generator({"resume": RESUME_JSON})
    orchestrator, _ = build(generator, rate_limit_max=1, rate_limit_window_s=60)

    assert orchestrator.generate_resume(USER, 42).ok
    result = orchestrator.generate_resume(USER, 42)

    assert result.error.category == "rate_limited"
    assert 1 <= result.error.retry_after_sec <= 60
    assert result.to_dict()["error"]["retry_after_sec"] == result.error.retry_after_sec
    assert generator.call_count == 1
    assert orchestrator.counters.snapshot() == {
        "generate_total": 1,
        "generate_success": 1,
        "generate_fail": 0,
    }


@pytest.mark.unit
def test_rate_limit_buckets_per_kind(build, fake_generator):
    """Test that one kind's limit does not block another kind."""
    generator = fake_generator({"resume": RESUME_JSON, "cover_letter": COVER_LETTER_JSON})
    orchestrator, _ = build(generator, rate_limit_max=1)

    assert orchestrator.generate_resume(USER, 42).ok
    assert orchestrator.generate_cover_letter(USER, 42).ok


@pytest.mark.unit
def test_persistence_failure_still_returns_artifact(build, fake_generator, fake_gateway, persistence_error):
    """Test that a storage failure only flips the persisted flag."""
    gateway = fake_gateway(fail_with=persistence_error)
    orchestrator, _ = build(fake_generator({"resume": RESUME_JSON}), gateway=gateway)

    result = orchestrator.generate_resume(USER, 42)

    assert result.ok
    assert result.artifact.persisted is False
    assert result.artifact.metadata["persisted"] is False
    assert "artifact_id" not in result.artifact.metadata
    assert str(result.artifact.id).startswith("tmp-")
    assert orchestrator.counters.snapshot()["generate_success"] == 1


@pytest.mark.unit
def test_unconfigured_persistence_skips_write(build, fake_generator, fake_gateway):
    """Test that no write is attempted when persistence is not configured."""
    gateway = fake_gateway(configured=False)
    orchestrator, _ = build(fake_generator({"resume": RESUME_JSON}), gateway=gateway)

    result = orchestrator.generate_resume(USER, 42)

    assert result.ok
    assert result.artifact.persisted is False
    assert gateway.inserted == []


@pytest.mark.unit
def test_unexpected_error_is_internal(build, fake_generator, fake_gateway):
    """Test that an unanticipated collaborator error becomes an internal error with balanced counters."""
    gateway = fake_gateway(fail_with=TypeError("unsupported operand"))
    orchestrator, _ = build(fake_generator({"resume": RESUME_JSON}), gateway=gateway)

    result = orchestrator.generate_resume(USER, 42)

    assert not result.ok
    assert result.error.category == "internal"
    assert result.error.message == "internal error: unsupported operand"
    assert orchestrator.counters.snapshot() == {
        "generate_total": 1,
        "generate_success": 0,
        "generate_fail": 1,
    }


@pytest.mark.unit
def test_created_at_is_fixed_width(build, fake_generator):
    """Test that timestamps keep microseconds even when they are zero."""

    def clock():
        return datetime(2025, 1, 1, tzinfo=timezone.utc)

    orchestrator, gateway = build(fake_generator({"resume": RESUME_JSON}), clock=clock)

    result = orchestrator.generate_resume(USER, 42)

    assert result.artifact.created_at == "2025-01-01T00:00:00.000000+00:00"
    assert gateway.inserted[0]["created_at"] == result.artifact.created_at
