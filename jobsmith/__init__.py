"""
JOBSMITH - Job-search artifact generation with research caching

Combines a user's stored profile with a target job description and a generative
text model to produce resumes, cover letters, tailoring advice, and company or
salary research.

Architecture:
- Normalization Context: Repairs model output into canonical content shapes
- Research Context: Time-bounded company research cache with write-through
- Persistence Context: Best-effort writes of artifacts and cache rows
- Generation Context: Per-kind workflows (validate, gather, generate, normalize, persist)
"""

__version__ = "0.1.0"
