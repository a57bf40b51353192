"""
Normalization Context

Responsibilities:
- Extracts structured payloads from generation output (code fences, strict parse)
- Detects the "subject not found" sentinel for research kinds
- Coerces drifted field shapes (wrapped strings, skill objects) to canonical types
- Maps free-text company sizes onto configurable canonical buckets

Owns: Canonical content shapes per artifact kind, company size bucket policy
Never: Calls the generation capability, reads or writes storage
"""

from jobsmith.contexts.normalization.exceptions import InvalidResponseFormatError
from jobsmith.contexts.normalization.normalizer import (
    NOT_FOUND_SENTINELS,
    NormalizationResult,
    extract_payload,
    is_not_found_sentinel,
    normalize_generation,
)
from jobsmith.contexts.normalization.size_policy import (
    SizeBucket,
    SizeBucketPolicy,
    get_default_policy,
)

__all__ = [
    # Normalization entry points
    "normalize_generation",
    "extract_payload",
    "is_not_found_sentinel",
    "NormalizationResult",
    "NOT_FOUND_SENTINELS",
    # Size policy
    "SizeBucket",
    "SizeBucketPolicy",
    "get_default_policy",
    # Errors
    "InvalidResponseFormatError",
]
