"""
Time-bounded company research cache with non-blocking write-through.

Per lookup key (normalized company name):

    Fresh-Hit       entry exists and now - cachedAt < TTL
                    -> return it tagged "cached"; no retrieval, no generation
    Miss-or-Stale   no entry, or entry too old
                    -> retrieve content (best effort), generate, normalize
                       not found -> "no result", nothing written
                       success   -> return tagged "api"; a background task
                                    upserts the company row, then saves the
                                    cache entry (only if the upsert succeeded)

Stale entries are never deleted by a lookup; a later successful write
supersedes them. purge_expired() is a separate maintenance operation.

Lookups for the same key are serialized, and a lookup that finds a write still
running for its key waits (bounded) for that write before reading the store,
so repeated lookups within the TTL issue a single generation call.
"""

import os
import threading
from concurrent.futures import Future, wait
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, Optional

from dotenv import load_dotenv

from jobsmith.contexts.normalization import SizeBucketPolicy, normalize_generation
from jobsmith.contexts.persistence import (
    PersistenceError,
    PersistenceGateway,
    normalize_company_name,
)
from jobsmith.contexts.research.logger import (
    _log_debug,
    _log_info,
    _log_warning,
    log_cache_decision,
    log_write_through,
)
from jobsmith.contexts.research.prompts import build_company_research_prompt
from jobsmith.contexts.research.retrieval import ContentRetriever
from jobsmith.utils.background import BackgroundTaskQueue
from jobsmith.utils.llm import GenerationOptions, LLMProvider
from jobsmith.utils.sanitize import sanitize_prompt
from jobsmith.utils.timeouts import call_with_timeout
from jobsmith.utils.timestamp import is_fresh, now_utc

load_dotenv()
RESEARCH_CACHE_TTL_DAYS = float(os.getenv("RESEARCH_CACHE_TTL_DAYS", "7"))
PENDING_WRITE_WAIT_S = float(os.getenv("PENDING_WRITE_WAIT_S", "5"))


@dataclass
class ResearchOutcome:
    """
    Result of a research cache lookup.

    Exactly one of: content with a source ("cached" or "api"), or not_found.
    ``write`` is the scheduled write-through task for "api" results, if any.
    """

    content: Optional[Dict[str, Any]] = None
    source: Optional[str] = None
    not_found: bool = False
    tokens: Optional[int] = None
    model: Optional[str] = None
    prompt: Optional[str] = None
    write: Optional[Future] = None


class ResearchCache:
    """
    Company research cache in front of retrieval + generation.

    Args:
        generator: Generation capability (LLMProvider or any object with generate())
        gateway: Persistence gateway for company rows and cache entries
        background: Queue that runs write-through tasks
        retriever: Content retriever (None skips retrieval)
        size_policy: Company size bucket policy for normalization
        ttl: Freshness window (default: RESEARCH_CACHE_TTL_DAYS)
        pending_wait_s: Max wait for an in-flight write (default: PENDING_WRITE_WAIT_S)
        clock: UTC time source (injectable for tests)
    """

    def __init__(
        self,
        generator: LLMProvider,
        gateway: PersistenceGateway,
        background: BackgroundTaskQueue,
        retriever: Optional[ContentRetriever] = None,
        size_policy: Optional[SizeBucketPolicy] = None,
        ttl: Optional[timedelta] = None,
        pending_wait_s: Optional[float] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.generator = generator
        self.gateway = gateway
        self.background = background
        self.retriever = retriever
        self.size_policy = size_policy
        self.ttl = ttl if ttl is not None else timedelta(days=RESEARCH_CACHE_TTL_DAYS)
        self.pending_wait_s = PENDING_WRITE_WAIT_S if pending_wait_s is None else pending_wait_s
        self._clock = clock

        self._pending_writes: Dict[str, Future] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._key_users: Dict[str, int] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def lookup(
        self,
        company_name: str,
        context: Optional[dict] = None,
        options: Optional[GenerationOptions] = None,
    ) -> ResearchOutcome:
        """
        Return company research from the cache or a live lookup.

        Args:
            company_name: Company to research
            context: Optional prompt hints (industry, job_description)
            options: Generation options for a live lookup

        Returns:
            ResearchOutcome (cached, api, or not_found)

        Raises:
            InvalidResponseFormatError: If the live result cannot be normalized
            Exception: Whatever the generation capability raised (including TimeoutError)
        """
        key = normalize_company_name(company_name)
        with self._locked(key):
            self._await_pending_write(key)

            entry = self._read_entry(company_name)
            if entry is not None and is_fresh(entry["cachedAt"], self.ttl, now=self._clock()):
                log_cache_decision(key, "hit", entry["cachedAt"])
                self._record_access(key, entry)
                return ResearchOutcome(content=entry_to_content(entry), source="cached")

            log_cache_decision(key, "stale" if entry else "miss", entry["cachedAt"] if entry else None)
            return self._live_lookup(key, company_name, context, options)

    def get_cached(self, company_name: str) -> Optional[Dict[str, Any]]:
        """
        Read prior research for a company without generating, regardless of age.

        Used for optional enrichment. Storage errors propagate so the caller
        can treat the enrichment as failed.

        Returns:
            Canonical content with cacheHit=True, or None
        """
        if not self.gateway.can_persist():
            return None
        entry = self.gateway.get_company_research(company_name)
        return entry_to_content(entry) if entry else None

    def purge_expired(self) -> int:
        """Delete cache entries older than the TTL (operator maintenance)."""
        return self.gateway.purge_expired_research(self.ttl)

    def wait_for_writes(self, timeout: Optional[float] = None) -> bool:
        """Block until scheduled write-through tasks finish."""
        return self.background.wait_for_all(timeout)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _live_lookup(
        self,
        key: str,
        company_name: str,
        context: Optional[dict],
        options: Optional[GenerationOptions],
    ) -> ResearchOutcome:
        retrieved = self.retriever.fetch(company_name) if self.retriever else ""
        prompt = sanitize_prompt(build_company_research_prompt(company_name, retrieved, context))

        options = options or GenerationOptions()
        result = call_with_timeout(
            self.generator.generate,
            options.timeout_s,
            "generation",
            "company_research",
            prompt,
            options,
        )

        normalized = normalize_generation(
            "company_research", result, self.size_policy, subject=company_name
        )
        if normalized.not_found:
            _log_info(f"No research found for {key!r}; nothing cached")
            return ResearchOutcome(
                not_found=True, tokens=result.tokens, model=result.model, prompt=prompt
            )

        content = dict(normalized.content)
        content["cacheHit"] = False
        write = self._schedule_write(key, content, {"model": result.model, "source": "api"})
        return ResearchOutcome(
            content=content,
            source="api",
            tokens=result.tokens,
            model=result.model,
            prompt=prompt,
            write=write,
        )

    def _schedule_write(self, key: str, content: dict, metadata: dict) -> Optional[Future]:
        if not self.gateway.can_persist():
            _log_debug(f"Persistence not configured; skipping write-through for {key!r}")
            return None

        research = {k: v for k, v in content.items() if k != "cacheHit"}
        future = self.background.submit(
            f"research-write:{key}", self._write_through, key, research, metadata
        )
        with self._lock:
            self._pending_writes[key] = future
        future.add_done_callback(lambda f: self._clear_pending(key, f))
        return future

    def _write_through(self, key: str, research: dict, metadata: dict) -> None:
        """Upsert the company row, then save the cache entry. Runs in the background."""
        try:
            company_id = self.gateway.upsert_company_info(research)
        except PersistenceError as e:
            log_write_through(key, "company upsert", e)
            raise
        log_write_through(key, "company upsert")

        research_data = {
            "companyData": {
                "mission": research.get("mission"),
                "culture": research.get("culture"),
                "leadership": research.get("leadership") or [],
                "products": research.get("products") or [],
            },
            "news": research.get("news") or [],
        }
        try:
            self.gateway.save_company_research(company_id, research_data, metadata)
        except PersistenceError as e:
            log_write_through(key, "cache save", e)
            raise
        log_write_through(key, "cache save")

    def _clear_pending(self, key: str, future: Future) -> None:
        with self._lock:
            if self._pending_writes.get(key) is future:
                del self._pending_writes[key]
            self._prune_key_lock(key)

    def _await_pending_write(self, key: str) -> None:
        with self._lock:
            pending = self._pending_writes.get(key)
        if pending is None:
            return
        _, not_done = wait([pending], timeout=self.pending_wait_s)
        if not_done:
            _log_warning(f"Write for {key!r} still running after {self.pending_wait_s:g}s")

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        """Hold the per-key lock; it is dropped once unused and no write is pending."""
        with self._lock:
            lock = self._key_locks.setdefault(key, threading.Lock())
            self._key_users[key] = self._key_users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._lock:
                self._key_users[key] -= 1
                self._prune_key_lock(key)

    def _prune_key_lock(self, key: str) -> None:
        # Caller holds self._lock
        if self._key_users.get(key, 0) == 0 and key not in self._pending_writes:
            self._key_users.pop(key, None)
            self._key_locks.pop(key, None)

    def _read_entry(self, company_name: str) -> Optional[Dict[str, Any]]:
        """Stored entry for a company; storage failures read as a miss."""
        if not self.gateway.can_persist():
            return None
        try:
            return self.gateway.get_company_research(company_name)
        except PersistenceError as e:
            _log_warning(f"Cache read failed, treating as miss: {e}")
            return None

    def _record_access(self, key: str, entry: dict) -> None:
        company_id = entry.get("companyId")
        if company_id is not None:
            self.background.submit(
                f"research-access:{key}", self.gateway.record_research_access, company_id
            )


def entry_to_content(entry: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a stored cache entry into canonical company research content."""
    company_data = entry.get("companyData") or {}
    return {
        "companyName": entry.get("companyName"),
        "industry": entry.get("industry"),
        "size": entry.get("size"),
        "location": entry.get("location"),
        "founded": entry.get("founded"),
        "website": entry.get("website"),
        "description": entry.get("description"),
        "mission": company_data.get("mission"),
        "culture": company_data.get("culture"),
        "leadership": company_data.get("leadership") or [],
        "products": company_data.get("products") or [],
        "news": entry.get("news") or [],
        "cachedAt": entry.get("cachedAt"),
        "cacheHit": True,
    }
