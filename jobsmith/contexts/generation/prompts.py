"""
Prompt builders for generation workflows.

Pure string-building functions: each takes the gathered context (profile, job,
history rows, optional enrichment) plus caller options and returns the user
prompt. Every builder states the JSON contract the normalizer expects.
"""

import re
from typing import Any, Iterable, Optional


def _safe(value: Any, max_len: int = 1500) -> str:
    """Collapse whitespace and cap length."""
    text = re.sub(r"\s+", " ", str(value if value is not None else "")).strip()
    return text[:max_len] + " …" if len(text) > max_len else text


def _join(values: Iterable[Any], max_items: int = 12, max_len: int = 100) -> str:
    items = [_safe(v, max_len) for v in list(values or [])[:max_items]]
    return ", ".join(item for item in items if item)


def _year(date_value: Any) -> str:
    match = re.search(r"\d{4}", str(date_value or ""))
    return match.group(0) if match else ""


def _job_block(job: dict) -> str:
    return "\n".join(
        [
            f"Target role: {_safe(job.get('job_title'))}",
            f"Company: {_safe(job.get('company_name'))}",
            f"Job description:\n{_safe(job.get('job_description'), 2000)}",
        ]
    )


def _candidate_block(context: dict) -> str:
    profile = context.get("profile") or {}
    lines = [
        f"Candidate: {_safe(profile.get('full_name'))}",
        f"Headline: {_safe(profile.get('headline'))}",
        f"Summary: {_safe(profile.get('summary'), 800)}",
    ]

    skills = context.get("skills") or []
    if skills:
        lines.append(f"Skills: {_join([s.get('skill_name') for s in skills], max_items=30)}")

    employment = context.get("employment") or []
    if employment:
        lines.append("Experience:")
        for row in employment[:6]:
            dates = f"{_year(row.get('start_date'))}-{_year(row.get('end_date')) or 'Present'}"
            lines.append(
                f"- [id {row.get('id')}] {_safe(row.get('job_title'))} at "
                f"{_safe(row.get('company_name'))} ({dates}): "
                f"{_safe(row.get('job_description'), 300)}"
            )

    education = context.get("education") or []
    if education:
        lines.append("Education:")
        for row in education[:3]:
            lines.append(
                f"- {_safe(row.get('degree_type'))} in {_safe(row.get('field_of_study'))}, "
                f"{_safe(row.get('institution_name'))} {_year(row.get('graduation_date'))}".rstrip()
            )

    projects = context.get("projects") or []
    if projects:
        lines.append("Projects:")
        for row in projects[:4]:
            role = f" ({_safe(row.get('role'))})" if row.get("role") else ""
            lines.append(f"- {_safe(row.get('proj_name'))}{role}: {_safe(row.get('tech_and_skills'), 200)}")

    certifications = context.get("certifications") or []
    if certifications:
        lines.append(
            "Certifications: "
            + _join(
                [f"{c.get('name')} - {c.get('issuing_org')}" if c.get("issuing_org") else c.get("name")
                 for c in certifications],
                max_items=5,
            )
        )
    return "\n".join(lines)


def _style_lines(options: dict) -> list[str]:
    lines = [f"Tone: {_safe(options.get('tone') or 'professional', 40)}"]
    if options.get("focus"):
        lines.append(f"Focus: {_safe(options['focus'], 200)}")
    return lines


# =============================================================================
# BUILDERS
# =============================================================================


def build_resume_prompt(context: dict, options: Optional[dict] = None) -> str:
    """Resume tailoring prompt."""
    options = options or {}
    return "\n\n".join(
        [
            "Tailor this candidate's resume to the target job.",
            _job_block(context.get("job") or {}),
            _candidate_block(context),
            "\n".join(_style_lines(options)),
            "Return JSON: {\"summary\": str, \"ordered_skills\": [str], \"emphasize_skills\": [str], "
            "\"add_skills\": [str], \"ats_keywords\": [str], \"sections\": {\"experience\": "
            "[{\"employment_id\": int, \"role\": str, \"company\": str, \"dates\": str, \"bullets\": [str]}]}}",
        ]
    )


def build_cover_letter_prompt(context: dict, options: Optional[dict] = None) -> str:
    """
    Cover letter prompt.

    Uses prior company research from ``context["company_research"]`` when present.
    """
    options = options or {}
    parts = [
        "Write a cover letter for this candidate and job.",
        _job_block(context.get("job") or {}),
        _candidate_block(context),
    ]

    research = context.get("company_research")
    if research:
        culture = research.get("culture") or {}
        news = [item.get("title") for item in (research.get("news") or [])[:2] if isinstance(item, dict)]
        parts.append(
            "\n".join(
                line
                for line in [
                    f"Company research for {_safe(research.get('companyName'))}:",
                    f"Mission: {_safe(research.get('mission'))}" if research.get("mission") else "",
                    f"Values: {_join(culture.get('values'))}" if culture.get("values") else "",
                    f"Products: {_join(research.get('products'))}" if research.get("products") else "",
                    f"Recent news: {_join(news, max_len=150)}" if news else "",
                ]
                if line
            )
        )

    style = _style_lines(options)
    if options.get("length"):
        style.append(f"Length: {_safe(options['length'], 20)}")
    if options.get("culture"):
        style.append(f"Company culture: {_safe(options['culture'], 40)}")
    parts.append("\n".join(style))
    parts.append(
        "Return JSON: {\"sections\": {\"opening\": str, \"body\": [str], \"closing\": str}, "
        "\"metadata\": {\"wordCount\": int, \"tone\": str}}"
    )
    return "\n\n".join(parts)


def build_skills_optimization_prompt(context: dict, options: Optional[dict] = None) -> str:
    """Skills gap / emphasis analysis prompt."""
    options = options or {}
    return "\n\n".join(
        [
            "Analyze how the candidate's skills fit the target job.",
            _job_block(context.get("job") or {}),
            _candidate_block(context),
            "\n".join(_style_lines(options)),
            "Return JSON: {\"emphasized\": [str], \"recommended\": [str], \"gaps\": [str], "
            "\"ats_keywords\": [str], \"ordered_skills\": [str], \"score\": number (0-100), "
            "\"summary\": str}",
        ]
    )


def build_experience_tailoring_prompt(context: dict, options: Optional[dict] = None) -> str:
    """Experience bullet rewriting prompt."""
    options = options or {}
    return "\n\n".join(
        [
            "Rewrite the candidate's experience bullets for the target job. "
            "Keep one entry per role and reference its id as employment_id.",
            _job_block(context.get("job") or {}),
            _candidate_block(context),
            "\n".join(_style_lines(options)),
            "Return JSON: {\"roles\": [{\"employment_id\": int, \"role\": str, \"company\": str, "
            "\"dates\": str, \"bullets\": [str]}]}",
        ]
    )


def build_salary_research_prompt(
    title: str,
    location: Optional[str] = None,
    experience_years: Optional[float] = None,
    options: Optional[dict] = None,
) -> str:
    """Salary market research prompt."""
    lines = [f"Estimate the current market salary for: {_safe(title, 200)}"]
    if location:
        lines.append(f"Location: {_safe(location, 200)}")
    if experience_years is not None:
        lines.append(f"Years of experience: {experience_years:g}")
    lines.append(
        "Return JSON: {\"range\": {\"low\": number, \"avg\": number, \"high\": number}, "
        "\"totalComp\": number, \"trend\": str, \"recommendation\": str}. "
        "Amounts are annual USD."
    )
    return "\n\n".join(lines)
