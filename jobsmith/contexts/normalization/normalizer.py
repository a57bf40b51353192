"""
Structured-text normalizer for generation output.

Takes the generation capability's raw result (a parsed payload, fenced JSON
text, or free text) and produces the canonical content shape for an artifact
kind. Normalization either returns canonical content, reports "not found" for
the research sentinel, or raises InvalidResponseFormatError. There is no
partial success.

Design principle: extract the payload first (sentinel check, fence stripping,
strict parse), then shape it with one function per kind built from the
per-field coercions in fields.py.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from jobsmith.contexts.normalization.exceptions import InvalidResponseFormatError
from jobsmith.contexts.normalization.fields import (
    BULLET_KEYS,
    coerce_bullets,
    coerce_number,
    coerce_record_list,
    coerce_string_list,
    coerce_text,
    coerce_year,
    parse_json_text,
    strip_code_fences,
)
from jobsmith.contexts.normalization.logger import log_format_failure, log_shape_repair
from jobsmith.contexts.normalization.size_policy import SizeBucketPolicy, get_default_policy
from jobsmith.utils.llm import GenerationResult

# Literal responses meaning "the model has no basis to answer"
NOT_FOUND_SENTINELS = {"COMPANY_NOT_FOUND", "NOT_FOUND"}

# Kinds whose output must parse as structured data
STRUCTURED_KINDS = {"company_research", "salary_research"}

# Resume fields that hold lists of skills
RESUME_SKILL_FIELDS = ("ordered_skills", "emphasize_skills", "add_skills", "ats_keywords")

SKILLS_OPTIMIZATION_LIST_FIELDS = (
    "recommended",
    "emphasized",
    "gaps",
    "emphasize_skills",
    "add_skills",
    "ats_keywords",
    "ordered_skills",
)


@dataclass
class NormalizationResult:
    """Outcome of normalizing one generation result."""

    content: Optional[dict] = None
    not_found: bool = False


# =============================================================================
# PAYLOAD EXTRACTION
# =============================================================================


def is_not_found_sentinel(value: Any) -> bool:
    """
    Check whether a raw value is the "subject not found" sentinel.

    Recognized forms: the bare sentinel text (optionally quoted or fenced), a
    JSON string holding it, or an object with ``status``/``error`` set to it
    (or ``status: "not_found"``).
    """
    if isinstance(value, str):
        text = strip_code_fences(value).strip().strip("\"'").strip()
        return text.upper() in NOT_FOUND_SENTINELS
    if isinstance(value, dict):
        for key in ("status", "error", "result"):
            marker = value.get(key)
            if isinstance(marker, str) and marker.strip().upper() in NOT_FOUND_SENTINELS:
                return True
    return False


def extract_payload(kind: str, result: GenerationResult) -> Any:
    """
    Get the structured payload out of a generation result.

    Args:
        kind: Artifact kind (decides whether unparseable text is fatal)
        result: Raw generation result

    Returns:
        Parsed payload, or ``{"text": ...}`` for free-text kinds

    Raises:
        InvalidResponseFormatError: If a structured kind's text does not parse
    """
    if result.json is not None:
        return result.json

    text = result.text or ""
    try:
        return parse_json_text(text)
    except json.JSONDecodeError as e:
        if kind in STRUCTURED_KINDS:
            log_format_failure(kind, f"JSON parse failed: {e}")
            raise InvalidResponseFormatError(kind, f"JSON parse failed: {e}", text)
        return {"text": text.strip()}


def normalize_generation(
    kind: str,
    result: GenerationResult,
    size_policy: SizeBucketPolicy = None,
    subject: Optional[str] = None,
) -> NormalizationResult:
    """
    Normalize a generation result into the canonical content for a kind.

    This is the main entry point for normalization.

    Args:
        kind: Artifact kind ("resume", "cover_letter", ...)
        result: Raw generation result
        size_policy: Company size policy (company research only)
        subject: Requested subject name (company research fallback name)

    Returns:
        NormalizationResult with content, or not_found=True for the sentinel

    Raises:
        InvalidResponseFormatError: If the output cannot be shaped
        ValueError: If kind is unknown
    """
    if kind not in _NORMALIZERS:
        raise ValueError(f"Unknown artifact kind: {kind}")

    if kind in STRUCTURED_KINDS and (
        is_not_found_sentinel(result.json) or is_not_found_sentinel(result.text or "")
    ):
        return NormalizationResult(not_found=True)

    payload = extract_payload(kind, result)
    if kind in STRUCTURED_KINDS and is_not_found_sentinel(payload):
        return NormalizationResult(not_found=True)

    if not isinstance(payload, dict):
        log_format_failure(kind, f"expected an object, got {type(payload).__name__}")
        raise InvalidResponseFormatError(
            kind, f"expected an object, got {type(payload).__name__}", result.text
        )

    if kind == "company_research":
        content = normalize_company_research(
            payload, size_policy or get_default_policy(), subject=subject
        )
    else:
        content = _NORMALIZERS[kind](payload)
    return NormalizationResult(content=content)


# =============================================================================
# PER-KIND SHAPING
# =============================================================================


def normalize_resume(payload: dict) -> dict:
    """
    Shape resume output.

    - summary: str or object-wrapped str -> trimmed str (absent if unresolvable)
    - skill lists: strings or keyed objects -> list[str]
    - sections.experience[].bullets -> list[str]; empty rows dropped
    """
    out = dict(payload)

    if "summary" in out:
        summary = coerce_text(out["summary"])
        if summary is None:
            # Fall back to the first top-level bullet when the summary is unusable
            summary = next(iter(coerce_bullets(out.get("bullets"))), None)
        if summary is None:
            del out["summary"]
        else:
            out["summary"] = summary
    elif "text" in out and isinstance(out["text"], str):
        # Free-text response: use the first paragraph as the summary
        first_paragraph = _split_paragraphs(out["text"])[:1]
        if first_paragraph:
            out["summary"] = first_paragraph[0]

    for key in RESUME_SKILL_FIELDS:
        if key in out or key == "ordered_skills":
            before = out.get(key)
            out[key] = coerce_string_list(before)
            if isinstance(before, list):
                log_shape_repair("resume", key, len(before) - len(out[key]))

    if "bullets" in out:
        out["bullets"] = coerce_bullets(out["bullets"])

    sections = out.get("sections")
    sections = dict(sections) if isinstance(sections, dict) else {}
    sections["experience"] = _normalize_experience_rows(sections.get("experience"))
    out["sections"] = sections

    return out


def normalize_cover_letter(payload: dict) -> dict:
    """
    Shape cover letter output into sections {opening, body[], closing}.

    Accepts sections nested under "sections" or at the top level, body given as
    a string or a list of (wrapped) paragraphs, or a single free-text letter
    that is split on blank lines.
    """
    source = payload.get("sections") if isinstance(payload.get("sections"), dict) else payload

    opening = coerce_text(source.get("opening"))
    closing = coerce_text(source.get("closing"))
    body = coerce_string_list(source.get("body"), BULLET_KEYS)

    if opening is None and not body and closing is None:
        text = coerce_text(payload.get("text")) or coerce_text(payload.get("letter")) or ""
        paragraphs = _split_paragraphs(text)
        if len(paragraphs) == 1:
            opening, body, closing = paragraphs[0], [], ""
        elif paragraphs:
            opening, body, closing = paragraphs[0], paragraphs[1:-1], paragraphs[-1]

    sections = {"opening": opening or "", "body": body, "closing": closing or ""}

    metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    word_count = coerce_number(metadata.get("wordCount"))
    if word_count is None:
        word_count = sum(
            len(part.split()) for part in [sections["opening"], *body, sections["closing"]]
        )

    return {
        "sections": sections,
        "metadata": {"wordCount": int(word_count), "tone": coerce_text(metadata.get("tone"))},
    }


def normalize_skills_optimization(payload: dict) -> dict:
    """Shape skills analysis output: every skill list -> list[str], score -> number."""
    out = dict(payload)
    for key in SKILLS_OPTIMIZATION_LIST_FIELDS:
        if key in out or key in ("recommended", "emphasized", "gaps"):
            out[key] = coerce_string_list(out.get(key))

    score = coerce_number(out.get("score"))
    out["score"] = score
    if "summary" in out:
        out["summary"] = coerce_text(out["summary"])
    return out


def normalize_experience_tailoring(payload: dict) -> dict:
    """
    Shape tailored experience output into {roles: [...]}.

    Roles may arrive under "roles", "experience", or "sections.experience".
    """
    rows = payload.get("roles")
    if rows is None:
        rows = payload.get("experience")
    if rows is None and isinstance(payload.get("sections"), dict):
        rows = payload["sections"].get("experience")

    out = {k: v for k, v in payload.items() if k not in ("roles", "experience", "sections")}
    out["roles"] = _normalize_experience_rows(rows)
    return out


def normalize_company_research(
    payload: dict, size_policy: SizeBucketPolicy, subject: Optional[str] = None
) -> dict:
    """
    Shape company research output into the canonical company profile.

    Company size is mapped onto the policy's buckets; unmappable sizes become None.
    """
    company_name = coerce_text(payload.get("companyName") or payload.get("name")) or subject
    if not company_name:
        raise InvalidResponseFormatError("company_research", "missing companyName")

    raw_size = payload.get("size", payload.get("employees"))
    size = size_policy.resolve(raw_size if not isinstance(raw_size, dict) else coerce_text(raw_size))

    return {
        "companyName": company_name,
        "industry": coerce_text(payload.get("industry")) or None,
        "size": size,
        "location": coerce_text(payload.get("location") or payload.get("headquarters")) or None,
        "founded": coerce_year(payload.get("founded", payload.get("foundedYear"))),
        "website": coerce_text(payload.get("website")) or None,
        "description": coerce_text(payload.get("description")) or None,
        "mission": coerce_text(payload.get("mission")) or None,
        "culture": _normalize_culture(payload.get("culture")),
        "leadership": coerce_record_list(
            payload.get("leadership"),
            "name",
            {"name": ("name", "fullName"), "title": ("title", "role", "position"), "bio": ("bio",)},
        ),
        "products": coerce_string_list(payload.get("products"), ("name", "product", "title", "text")),
        "news": coerce_record_list(
            payload.get("news"),
            "title",
            {
                "title": ("title", "headline"),
                "summary": ("summary", "description", "text"),
                "date": ("date", "published"),
                "category": ("category", "type"),
                "url": ("url", "link"),
            },
        ),
    }


def normalize_salary_research(payload: dict) -> dict:
    """
    Shape salary research output into {range, totalComp, trend, recommendation}.

    The range may be nested under "range" or given as top-level low/avg/high.
    A missing average is derived from low and high. A range without any usable
    number is an invalid format.
    """
    source = payload.get("range") if isinstance(payload.get("range"), dict) else payload
    low = coerce_number(source.get("low", source.get("min")))
    high = coerce_number(source.get("high", source.get("max")))
    avg = coerce_number(source.get("avg", source.get("average", source.get("median"))))

    if avg is None and low is not None and high is not None:
        avg = (low + high) / 2
        avg = int(avg) if float(avg).is_integer() else avg

    if low is None and avg is None and high is None:
        log_format_failure("salary_research", "no salary range values")
        raise InvalidResponseFormatError("salary_research", "no salary range values")

    total_comp = payload.get("totalComp", payload.get("total_comp"))
    if isinstance(total_comp, dict):
        total_comp = {k: coerce_number(v) for k, v in total_comp.items()}
    else:
        total_comp = coerce_number(total_comp)

    return {
        "range": {"low": low, "avg": avg, "high": high},
        "totalComp": total_comp,
        "trend": coerce_text(payload.get("trend")) or None,
        "recommendation": coerce_text(payload.get("recommendation")) or None,
    }


# =============================================================================
# HELPERS
# =============================================================================


def _normalize_experience_rows(rows: Any) -> list[dict]:
    """Coerce experience rows; rows with no bullets and no role/company are dropped."""
    if not isinstance(rows, list):
        return []

    normalized = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        entry = {
            "employment_id": row.get("employment_id"),
            "role": coerce_text(row.get("role", row.get("title"))) or None,
            "company": coerce_text(row.get("company")) or None,
            "dates": coerce_text(row.get("dates")) or None,
            "bullets": coerce_bullets(row.get("bullets")),
        }
        if entry["bullets"] or entry["role"] or entry["company"]:
            normalized.append(entry)
    return normalized


def _normalize_culture(value: Any) -> dict:
    if isinstance(value, str):
        return {"type": None, "remotePolicy": None, "values": [], "perks": [], "summary": value.strip()}
    if not isinstance(value, dict):
        return {"type": None, "remotePolicy": None, "values": [], "perks": []}
    return {
        "type": coerce_text(value.get("type")) or None,
        "remotePolicy": coerce_text(value.get("remotePolicy")) or None,
        "values": coerce_string_list(value.get("values")),
        "perks": coerce_string_list(value.get("perks")),
    }


def _split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in re.split(r"\n\s*\n", text or "") if p.strip()]


_NORMALIZERS: dict[str, Callable[[dict], dict]] = {
    "resume": normalize_resume,
    "cover_letter": normalize_cover_letter,
    "skills_optimization": normalize_skills_optimization,
    "experience_tailoring": normalize_experience_tailoring,
    "company_research": None,  # needs the size policy; dispatched explicitly
    "salary_research": normalize_salary_research,
}
