"""
Research Context

Responsibilities:
- Serves company research from a time-bounded cache
- Performs live lookups on miss or stale entries (retrieval + generation + normalization)
- Writes successful lookups back through the persistence gateway in the background
- Retrieves best-effort supporting content about a company

Owns: Freshness decisions, write-through scheduling, per-company lookup coalescing
Never: Deletes entries during a lookup, caches "not found" results
"""

from jobsmith.contexts.research.cache import ResearchCache, ResearchOutcome, entry_to_content
from jobsmith.contexts.research.prompts import build_company_research_prompt, extract_company_name
from jobsmith.contexts.research.retrieval import ContentRetriever, extract_text

__all__ = [
    # Cache
    "ResearchCache",
    "ResearchOutcome",
    "entry_to_content",
    # Retrieval
    "ContentRetriever",
    "extract_text",
    # Prompt helpers
    "build_company_research_prompt",
    "extract_company_name",
]
