"""Prompt building and input helpers for company research."""

import re
from typing import Optional

COMPANY_RESEARCH_FIELDS = (
    '{"companyName": str, "industry": str, "size": str (employee count or range), '
    '"location": str, "founded": int, "website": str, "description": str, "mission": str, '
    '"culture": {"type": str, "remotePolicy": str, "values": [str], "perks": [str]}, '
    '"leadership": [{"name": str, "title": str}], "products": [str], '
    '"news": [{"title": str, "summary": str, "date": str, "category": str}]}'
)


def build_company_research_prompt(
    company_name: str, retrieved_content: str = "", context: Optional[dict] = None
) -> str:
    """
    Build the company research prompt.

    Args:
        company_name: Company to research
        retrieved_content: Supporting text from content retrieval (may be empty)
        context: Optional hints (industry, job_description)
    """
    context = context or {}
    lines = [
        f"Research the company: {company_name}",
        f"Return JSON with this shape: {COMPANY_RESEARCH_FIELDS}",
    ]
    if context.get("industry"):
        lines.append(f"Industry hint: {context['industry']}")
    if context.get("job_description"):
        lines.append(f"Job posting excerpt:\n{context['job_description'][:1500]}")
    if retrieved_content:
        lines.append(f"Supporting content:\n{retrieved_content}")
    else:
        lines.append("No supporting content was retrieved; rely on what you know.")
    lines.append('If you have no basis to describe this company, respond with "COMPANY_NOT_FOUND".')
    return "\n\n".join(lines)


def extract_company_name(job_title: str = None, job_description: str = None) -> Optional[str]:
    """
    Guess a company name from a job title or description.

    Tries "<role> at <Company>" in the title, then "About <Company>" and
    "<Company> is ..." in the description.

    Returns:
        Company name, or None if no clear candidate is found
    """
    if job_title:
        match = re.search(r"\s+at\s+(.+?)(?:\s*[-|]|$)", job_title, re.IGNORECASE)
        if match:
            return match.group(1).strip()

    if job_description:
        match = re.search(r"[Aa]bout\s+([A-Z][a-zA-Z0-9\s&,.-]+?)(?:\n|:|\.|,)", job_description)
        if match:
            return match.group(1).strip()
        match = re.search(r"^([A-Z][a-zA-Z0-9\s&,.-]+?)\s+is\s+", job_description, re.MULTILINE)
        if match:
            return match.group(1).strip()

    return None
