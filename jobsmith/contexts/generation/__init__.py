"""
Generation Context

Responsibilities:
- Runs one workflow per artifact kind (resume, cover letter, skills optimization,
  experience tailoring, company research, salary research)
- Enforces rate limits, authorization, input validation, and job ownership
- Gathers profile and job context, builds and sanitizes prompts
- Calls the generation capability with a deadline
- Assembles responses with previews and provenance metadata

Owns: Workflow envelope, error taxonomy, prompt text, generation counters
Never: Repairs model output itself (delegates to normalization), fails a request on storage errors
"""

from jobsmith.contexts.generation.errors import CATEGORIES, WorkflowError
from jobsmith.contexts.generation.models import (
    KINDS,
    ArtifactResponse,
    GenerationRequest,
    WorkflowResult,
)
from jobsmith.contexts.generation.orchestrator import GenerationOrchestrator, generation_options
from jobsmith.contexts.generation.preview import make_preview

__all__ = [
    # Orchestration
    "GenerationOrchestrator",
    "generation_options",
    # Data structures
    "GenerationRequest",
    "ArtifactResponse",
    "WorkflowResult",
    "KINDS",
    # Errors
    "WorkflowError",
    "CATEGORIES",
    # Helpers
    "make_preview",
]
