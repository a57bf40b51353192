"""
Generation orchestrator: one workflow per artifact kind.

Every workflow runs the same envelope, short-circuiting on the first failure:

    0. Rate limit per (kind, user)            -> rate_limited (counters untouched)
    1. Authorization (user id present)        -> unauthenticated
    2. Validation (job id, company, title)    -> bad_request
    3. Ownership of the referenced job        -> forbidden / not_found / internal
    4. Context gathering (profile, history, optional enrichment)
    5. Generation (time-bounded)              -> ai_error "AI error: <message>"
    6. Normalization                          -> format "Invalid AI response format"
    7. Persistence (best effort)              -> metadata.persisted flag only
    8. Response assembly (preview + metadata)

Company research replaces steps 4-6 with the research cache; salary research
skips ownership and context gathering.

Usage:
    orchestrator = GenerationOrchestrator(
        generator=get_provider(),
        data_access=SQLiteDataAccess(db_path),
        gateway=PersistenceGateway(db_path),
    )
    result = orchestrator.generate_resume(user_id, job_id, {"tone": "concise"})
    if result.ok:
        print(result.artifact.preview)
"""

import os
import time
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

from dotenv import load_dotenv

from jobsmith.contexts.generation.context import (
    fetch_enrichment,
    fetch_owned_job,
    fetch_profile,
    gather_history,
)
from jobsmith.contexts.generation.errors import (
    AI_ERROR,
    BAD_REQUEST,
    FORMAT,
    INTERNAL,
    NOT_FOUND,
    RATE_LIMITED,
    UNAUTHENTICATED,
    WorkflowError,
)
from jobsmith.contexts.generation.logger import (
    _log_debug,
    _log_warning,
    log_generation_ok,
    log_workflow_error,
    log_workflow_start,
    log_workflow_success,
)
from jobsmith.contexts.generation.models import (
    COMPANY_RESEARCH,
    COVER_LETTER,
    EXPERIENCE_TAILORING,
    RESUME,
    SALARY_RESEARCH,
    SKILLS_OPTIMIZATION,
    STORAGE_KIND,
    ArtifactResponse,
    GenerationRequest,
    WorkflowResult,
)
from jobsmith.contexts.generation.preview import make_preview
from jobsmith.contexts.generation.prompts import (
    build_cover_letter_prompt,
    build_experience_tailoring_prompt,
    build_resume_prompt,
    build_salary_research_prompt,
    build_skills_optimization_prompt,
)
from jobsmith.contexts.normalization import (
    InvalidResponseFormatError,
    SizeBucketPolicy,
    normalize_generation,
)
from jobsmith.contexts.persistence import DataAccess, PersistenceError, PersistenceGateway
from jobsmith.contexts.research import ContentRetriever, ResearchCache, extract_company_name
from jobsmith.utils.background import BackgroundTaskQueue
from jobsmith.utils.counters import GenerationCounters
from jobsmith.utils.llm import GenerationOptions, GenerationResult, LLMProvider
from jobsmith.utils.rate_limiter import RateLimiter
from jobsmith.utils.sanitize import append_user_additions, env_number, sanitize_prompt, select_model
from jobsmith.utils.timeouts import call_with_timeout
from jobsmith.utils.timestamp import now_utc

load_dotenv()
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "5"))
RATE_LIMIT_WINDOW_S = float(os.getenv("RATE_LIMIT_WINDOW_S", "60"))
ENRICHMENT_TIMEOUT_S = float(os.getenv("ENRICHMENT_TIMEOUT_S", "3"))

PROMPT_PREVIEW_CHARS = 400
STORED_PROMPT_CHARS = 2000

# Per job kind: prompt builder, required history tables, artifact title prefix
_JOB_WORKFLOWS = {
    RESUME: (build_resume_prompt, (), "AI Resume"),
    COVER_LETTER: (build_cover_letter_prompt, (), "Cover Letter"),
    SKILLS_OPTIMIZATION: (build_skills_optimization_prompt, ("skills",), "Skills Optimization"),
    EXPERIENCE_TAILORING: (build_experience_tailoring_prompt, ("employment",), "Tailored Experience"),
}


def generation_options(model: Optional[str]) -> GenerationOptions:
    """Generation settings from AI_* env vars, read per call."""
    return GenerationOptions(
        model=model,
        temperature=env_number("AI_TEMPERATURE", 0.2),
        max_tokens=int(env_number("AI_MAX_TOKENS", 800)),
        timeout_s=env_number("AI_TIMEOUT_MS", 30_000) / 1000,
        max_retries=int(env_number("AI_MAX_RETRIES", 2)) + 1,
    )


class GenerationOrchestrator:
    """
    Runs generation workflows against injected collaborators.

    Args:
        generator: Generation capability (LLMProvider or any object with generate())
        data_access: Profile/job reads for context gathering
        gateway: Persistence gateway (artifacts, research cache)
        research_cache: Company research cache (default: built from generator + gateway)
        rate_limiter: Per-(kind, user) limiter (default: in-memory sliding window)
        counters: Generation counters (default: fresh instance)
        background: Queue for detached work (default: new queue)
        size_policy: Company size policy (default: SIZE_BUCKETS_PATH policy)
        rate_limit_max: Requests per window (default: RATE_LIMIT_MAX)
        rate_limit_window_s: Window length (default: RATE_LIMIT_WINDOW_S)
        enrichment_timeout_s: Deadline for optional enrichment (default: ENRICHMENT_TIMEOUT_S)
        clock: UTC time source
    """

    def __init__(
        self,
        generator: LLMProvider,
        data_access: DataAccess,
        gateway: PersistenceGateway,
        research_cache: Optional[ResearchCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        counters: Optional[GenerationCounters] = None,
        background: Optional[BackgroundTaskQueue] = None,
        size_policy: Optional[SizeBucketPolicy] = None,
        rate_limit_max: Optional[int] = None,
        rate_limit_window_s: Optional[float] = None,
        enrichment_timeout_s: Optional[float] = None,
        clock: Callable = now_utc,
    ):
        self.generator = generator
        self.data = data_access
        self.gateway = gateway
        self.background = background or BackgroundTaskQueue()
        self.size_policy = size_policy
        self.research_cache = research_cache or ResearchCache(
            generator,
            gateway,
            self.background,
            retriever=ContentRetriever(),
            size_policy=size_policy,
            clock=clock,
        )
        self.rate_limiter = rate_limiter or RateLimiter()
        self.counters = counters or GenerationCounters()
        self.rate_limit_max = RATE_LIMIT_MAX if rate_limit_max is None else rate_limit_max
        self.rate_limit_window_s = (
            RATE_LIMIT_WINDOW_S if rate_limit_window_s is None else rate_limit_window_s
        )
        self.enrichment_timeout_s = (
            ENRICHMENT_TIMEOUT_S if enrichment_timeout_s is None else enrichment_timeout_s
        )
        self._clock = clock

    @property
    def provider_name(self) -> str:
        return getattr(self.generator, "provider_name", None) or os.getenv("AI_PROVIDER", "openai")

    # =========================================================================
    # PUBLIC WORKFLOWS
    # =========================================================================

    def generate_resume(self, user_id: str, job_id: Any, options: Optional[dict] = None) -> WorkflowResult:
        """Tailor a resume to a job the caller owns."""
        return self._run(GenerationRequest(user_id, RESUME, job_id, options or {}), self._job_workflow)

    def generate_cover_letter(
        self, user_id: str, job_id: Any, options: Optional[dict] = None
    ) -> WorkflowResult:
        """Write a cover letter, enriched with prior company research when available."""
        return self._run(
            GenerationRequest(user_id, COVER_LETTER, job_id, options or {}), self._job_workflow
        )

    def optimize_skills(self, user_id: str, job_id: Any, options: Optional[dict] = None) -> WorkflowResult:
        """Analyze skill fit; the caller's skills list is required context."""
        return self._run(
            GenerationRequest(user_id, SKILLS_OPTIMIZATION, job_id, options or {}), self._job_workflow
        )

    def tailor_experience(
        self, user_id: str, job_id: Any, options: Optional[dict] = None
    ) -> WorkflowResult:
        """Rewrite experience bullets; employment history is required context."""
        return self._run(
            GenerationRequest(user_id, EXPERIENCE_TAILORING, job_id, options or {}),
            self._job_workflow,
        )

    def research_company(
        self,
        user_id: str,
        company_name: str,
        job_id: Any = None,
        options: Optional[dict] = None,
    ) -> WorkflowResult:
        """Company research through the research cache."""
        request = GenerationRequest(
            user_id, COMPANY_RESEARCH, job_id, options or {}, company_name=company_name
        )
        return self._run(request, self._company_workflow)

    def research_salary(
        self,
        user_id: str,
        title: str,
        location: Optional[str] = None,
        experience_years: Any = None,
        options: Optional[dict] = None,
    ) -> WorkflowResult:
        """Salary market research for a role title."""
        request = GenerationRequest(
            user_id,
            SALARY_RESEARCH,
            options=options or {},
            title=title,
            location=location,
            experience_years=experience_years,
        )
        return self._run(request, self._salary_workflow)

    # =========================================================================
    # ENVELOPE
    # =========================================================================

    def _run(
        self, request: GenerationRequest, workflow: Callable[[GenerationRequest], ArtifactResponse]
    ) -> WorkflowResult:
        kind = request.kind
        bucket = f"{kind}:{request.user_id or 'anonymous'}"
        decision = self.rate_limiter.check_limit(bucket, self.rate_limit_max, self.rate_limit_window_s)
        if not decision.ok:
            error = WorkflowError(RATE_LIMITED, "rate limited", decision.retry_after_sec)
            log_workflow_error(kind, request.user_id, error.category, error.message)
            return WorkflowResult(error=error)

        self.counters.record_start()
        log_workflow_start(kind, request.user_id, job=request.job_id, company=request.company_name)
        try:
            artifact = workflow(request)
        except WorkflowError as e:
            self.counters.record_failure()
            log_workflow_error(kind, request.user_id, e.category, e.message)
            return WorkflowResult(error=e)
        except Exception as e:
            self.counters.record_failure()
            error = WorkflowError(INTERNAL, f"internal error: {e}")
            log_workflow_error(kind, request.user_id, error.category, error.message)
            return WorkflowResult(error=error)

        self.counters.record_success()
        log_workflow_success(kind, request.user_id, artifact.persisted, artifact.metadata.get("artifact_id"))
        return WorkflowResult(artifact=artifact)

    # =========================================================================
    # WORKFLOWS
    # =========================================================================

    def _job_workflow(self, request: GenerationRequest) -> ArtifactResponse:
        """Resume, cover letter, skills optimization, and experience tailoring."""
        kind = request.kind
        build_prompt, required_tables, title_prefix = _JOB_WORKFLOWS[kind]

        user_id = _authorize(request)
        job_id = _validate_job_id(request.job_id)

        job = fetch_owned_job(self.data, kind, user_id, job_id)
        profile = fetch_profile(self.data, user_id)
        context = {"profile": profile, "job": job}
        context.update(gather_history(self.data, user_id, required=required_tables))
        if kind == COVER_LETTER:
            context["company_research"] = self._company_enrichment(job)

        prompt = sanitize_prompt(
            append_user_additions(build_prompt(context, request.options), request.options.get("prompt"))
        )
        result, model, latency_ms = self._generate(kind, prompt, request)
        content = self._normalize(kind, result)

        extra = {"subkind": EXPERIENCE_TAILORING} if kind == EXPERIENCE_TAILORING else {}
        if kind == COVER_LETTER:
            extra["company_research_used"] = context["company_research"] is not None

        return self._finish(
            request,
            content,
            job_id=job_id,
            title=f"{title_prefix} for {job.get('job_title') or 'Target Role'}",
            prompt=prompt,
            model=result.model or model,
            tokens=result.tokens,
            latency_ms=latency_ms,
            extra_metadata=extra,
        )

    def _company_workflow(self, request: GenerationRequest) -> ArtifactResponse:
        user_id = _authorize(request)
        company_name = (request.company_name or "").strip() if isinstance(request.company_name, str) else ""
        if not company_name:
            raise WorkflowError(BAD_REQUEST, "missing companyName")

        job_id = None
        hints = {}
        if request.job_id not in (None, ""):
            job_id = _validate_job_id(request.job_id)
            job = fetch_owned_job(self.data, request.kind, user_id, job_id)
            hints = {"industry": job.get("industry"), "job_description": job.get("job_description")}

        model = select_model(request.options)
        started = time.perf_counter()
        try:
            outcome = self.research_cache.lookup(company_name, hints, generation_options(model))
        except InvalidResponseFormatError as e:
            _log_debug(f"company research format failure: {e.detail}")
            raise WorkflowError(FORMAT, InvalidResponseFormatError.user_message) from e
        except Exception as e:
            raise WorkflowError(AI_ERROR, f"AI error: {e}") from e
        latency_ms = int((time.perf_counter() - started) * 1000)

        if outcome.not_found:
            raise WorkflowError(NOT_FOUND, "company not found")

        return self._finish(
            request,
            outcome.content,
            job_id=job_id,
            title=f"Company Research: {outcome.content.get('companyName') or company_name}",
            prompt=outcome.prompt,
            model=outcome.model or model,
            tokens=outcome.tokens,
            latency_ms=latency_ms,
            extra_metadata={"source": outcome.source, "cacheHit": outcome.source == "cached"},
        )

    def _salary_workflow(self, request: GenerationRequest) -> ArtifactResponse:
        _authorize(request)
        title = request.title.strip() if isinstance(request.title, str) else ""
        if not title:
            raise WorkflowError(BAD_REQUEST, "missing title")
        experience_years = _validate_experience_years(request.experience_years)

        prompt = sanitize_prompt(
            append_user_additions(
                build_salary_research_prompt(title, request.location, experience_years, request.options),
                request.options.get("prompt"),
            )
        )
        result, model, latency_ms = self._generate(SALARY_RESEARCH, prompt, request)
        content = self._normalize(SALARY_RESEARCH, result)

        return self._finish(
            request,
            content,
            job_id=None,
            title=f"Salary Research: {title}",
            prompt=prompt,
            model=result.model or model,
            tokens=result.tokens,
            latency_ms=latency_ms,
            extra_metadata={"source": "api"},
        )

    # =========================================================================
    # STEPS
    # =========================================================================

    def _company_enrichment(self, job: dict) -> Optional[Dict[str, Any]]:
        """Prior company research for a cover letter; never fails the workflow."""
        company_name = job.get("company_name") or extract_company_name(
            job.get("job_title"), job.get("job_description")
        )
        if not company_name:
            return None
        return fetch_enrichment(
            lambda: self.research_cache.get_cached(company_name),
            self.enrichment_timeout_s,
            "company research enrichment",
        )

    def _generate(
        self, kind: str, prompt: str, request: GenerationRequest
    ) -> Tuple[GenerationResult, Optional[str], int]:
        """Call the generation capability with a deadline; any failure is an AI error."""
        model = select_model(request.options)
        options = generation_options(model)
        started = time.perf_counter()
        try:
            result = call_with_timeout(
                self.generator.generate, options.timeout_s, "generation", kind, prompt, options
            )
        except Exception as e:
            raise WorkflowError(AI_ERROR, f"AI error: {e}") from e

        latency_ms = int((time.perf_counter() - started) * 1000)
        log_generation_ok(kind, request.user_id, result.model or model, result.tokens, latency_ms)
        return result, model, latency_ms

    def _normalize(self, kind: str, result: GenerationResult) -> Dict[str, Any]:
        try:
            normalized = normalize_generation(kind, result, self.size_policy)
        except InvalidResponseFormatError as e:
            raise WorkflowError(FORMAT, InvalidResponseFormatError.user_message) from e
        if normalized.not_found:
            raise WorkflowError(NOT_FOUND, f"{kind.replace('_', ' ')} not found")
        return normalized.content

    def _persist(
        self, request: GenerationRequest, content: dict, job_id, title, prompt, model, metadata
    ) -> Tuple[bool, Optional[int]]:
        """Best-effort artifact write; failures only flip the persisted flag."""
        if not self.gateway.can_persist():
            return False, None
        try:
            artifact_id = self.gateway.insert_artifact(
                user_id=request.user_id,
                job_id=job_id,
                kind=STORAGE_KIND[request.kind],
                content=content,
                title=title,
                prompt=(prompt or "")[:STORED_PROMPT_CHARS] or None,
                model=model,
                metadata=metadata,
                created_at=metadata["generated_at"],
            )
        except PersistenceError as e:
            _log_warning(f"{request.kind} artifact not persisted: {e}")
            return False, None
        return True, artifact_id

    def _finish(
        self,
        request: GenerationRequest,
        content: Dict[str, Any],
        job_id: Optional[int],
        title: str,
        prompt: Optional[str],
        model: Optional[str],
        tokens: Optional[int],
        latency_ms: int,
        extra_metadata: Dict[str, Any],
    ) -> ArtifactResponse:
        """Persist (best effort) and assemble the response."""
        created_at = self._clock().isoformat(timespec="microseconds")
        metadata = {
            "generated_at": created_at,
            "provider": self.provider_name,
            "model": model,
            "tokens": tokens,
            "prompt_preview": (prompt or "")[:PROMPT_PREVIEW_CHARS],
            "latency_ms": latency_ms,
        }
        if request.options.get("variant") is not None:
            metadata["variant"] = request.options["variant"]
        metadata.update(extra_metadata)

        persisted, artifact_id = self._persist(request, content, job_id, title, prompt, model, metadata)
        metadata["persisted"] = persisted
        if persisted:
            metadata["artifact_id"] = artifact_id

        return ArtifactResponse(
            id=artifact_id if persisted else f"tmp-{uuid.uuid4().hex[:12]}",
            kind=request.kind,
            created_at=created_at,
            preview=make_preview(content),
            content=content,
            persisted=persisted,
            metadata=metadata,
        )


# =============================================================================
# VALIDATION
# =============================================================================


def _authorize(request: GenerationRequest) -> str:
    if not request.user_id:
        raise WorkflowError(UNAUTHENTICATED, "unauthenticated")
    return request.user_id


def _validate_job_id(job_id: Any) -> int:
    """Job ids must be present and numeric ("42" and 42 are both accepted)."""
    if job_id is None or (isinstance(job_id, str) and not job_id.strip()):
        raise WorkflowError(BAD_REQUEST, "missing jobId")
    if isinstance(job_id, bool):
        raise WorkflowError(BAD_REQUEST, "jobId must be a number")
    if isinstance(job_id, int):
        return job_id
    if isinstance(job_id, float) and job_id.is_integer():
        return int(job_id)
    if isinstance(job_id, str) and job_id.strip().isdigit():
        return int(job_id.strip())
    raise WorkflowError(BAD_REQUEST, "jobId must be a number")


def _validate_experience_years(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise WorkflowError(BAD_REQUEST, "experienceYears must be a number")
    try:
        years = float(value)
    except (TypeError, ValueError):
        raise WorkflowError(BAD_REQUEST, "experienceYears must be a number") from None
    if years < 0:
        raise WorkflowError(BAD_REQUEST, "experienceYears must not be negative")
    return years
