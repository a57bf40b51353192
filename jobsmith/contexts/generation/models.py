"""
Data structures for generation workflows.

GenerationRequest is the validated input to one workflow run; WorkflowResult
is its single-shape output (an ArtifactResponse or a WorkflowError, never both).
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Union

from jobsmith.contexts.generation.errors import WorkflowError

# Artifact kinds
RESUME = "resume"
COVER_LETTER = "cover_letter"
SKILLS_OPTIMIZATION = "skills_optimization"
EXPERIENCE_TAILORING = "experience_tailoring"
COMPANY_RESEARCH = "company_research"
SALARY_RESEARCH = "salary_research"

KINDS = (
    RESUME,
    COVER_LETTER,
    SKILLS_OPTIMIZATION,
    EXPERIENCE_TAILORING,
    COMPANY_RESEARCH,
    SALARY_RESEARCH,
)

# Storage kind per workflow kind (the artifact table only accepts primary kinds)
STORAGE_KIND = {kind: kind for kind in KINDS}
STORAGE_KIND[EXPERIENCE_TAILORING] = RESUME


@dataclass
class GenerationRequest:
    """
    Input to one workflow run.

    ``options`` carries caller tuning: model, tone, focus, length, culture,
    prompt (user additions appended to the built prompt), variant.
    """

    user_id: Optional[str]
    kind: str
    job_id: Any = None
    options: Dict[str, Any] = field(default_factory=dict)
    company_name: Optional[str] = None
    title: Optional[str] = None
    location: Optional[str] = None
    experience_years: Optional[Union[int, float]] = None


@dataclass
class ArtifactResponse:
    """Caller-visible artifact: content plus preview and provenance metadata."""

    id: Union[int, str]
    kind: str
    created_at: str
    preview: str
    content: Dict[str, Any]
    persisted: bool
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkflowResult:
    """Either an artifact or exactly one error."""

    artifact: Optional[ArtifactResponse] = None
    error: Optional[WorkflowError] = None

    def __post_init__(self):
        if (self.artifact is None) == (self.error is None):
            raise ValueError("WorkflowResult needs exactly one of artifact or error")

    @property
    def ok(self) -> bool:
        return self.artifact is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"artifact": self.artifact.to_dict()}
        return {"error": self.error.to_dict()}
