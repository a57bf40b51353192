"""Short human-readable excerpts of artifact content."""

import json

PREVIEW_MAX_CHARS = 400
PREVIEW_BULLETS = 3


def make_preview(content: dict, max_chars: int = PREVIEW_MAX_CHARS) -> str:
    """
    Build a preview for an artifact.

    Preference order: the first three experience bullets (resume rows or
    tailored roles), a top-level ``bullets`` list, a cover letter's opening
    paragraph, then a JSON dump truncated to max_chars with an ellipsis.
    """
    bullets = _first_bullets(content)
    if bullets:
        return "\n".join(f"• {bullet}" for bullet in bullets)

    sections = content.get("sections") if isinstance(content, dict) else None
    if isinstance(sections, dict) and isinstance(sections.get("opening"), str) and sections["opening"]:
        return _truncate(sections["opening"], max_chars)

    return _truncate(json.dumps(content, ensure_ascii=False, default=str), max_chars)


def _first_bullets(content: dict) -> list[str]:
    if not isinstance(content, dict):
        return []

    rows = []
    sections = content.get("sections")
    if isinstance(sections, dict) and isinstance(sections.get("experience"), list):
        rows = sections["experience"]
    elif isinstance(content.get("roles"), list):
        rows = content["roles"]

    bullets = []
    for row in rows:
        if isinstance(row, dict):
            bullets.extend(b for b in row.get("bullets") or [] if isinstance(b, str))
        if len(bullets) >= PREVIEW_BULLETS:
            break

    if not bullets and isinstance(content.get("bullets"), list):
        bullets = [b for b in content["bullets"] if isinstance(b, str)]
    return bullets[:PREVIEW_BULLETS]


def _truncate(text: str, max_chars: int) -> str:
    return text if len(text) <= max_chars else text[:max_chars] + "…"
