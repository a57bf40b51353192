"""Prompt sanitization, model selection, and numeric env parsing."""

import os
import re
from typing import Optional

MAX_PROMPT_CHARS = 16_000

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")
_OPENAI_STYLE_KEY = re.compile(r"sk-[A-Za-z0-9_\-]{16,}")
_KEY_ASSIGNMENT = re.compile(r"(api[_-]?key)\s*[:=]\s*[A-Za-z0-9_\-]{12,}", re.IGNORECASE)


def redact_secrets(text: str) -> str:
    """Replace API-key-like strings (``sk-...``, ``api_key=...``) with placeholders."""
    text = _OPENAI_STYLE_KEY.sub("[REDACTED_KEY]", text)
    return _KEY_ASSIGNMENT.sub(r"\1=[REDACTED]", text)


def sanitize_prompt(prompt: str, max_len: int = MAX_PROMPT_CHARS) -> str:
    """
    Make an assembled prompt safe to send.

    Control characters (except tab, newline, carriage return) become spaces,
    secrets are redacted, and the result is capped at max_len characters
    (ending in an ellipsis when truncated).
    """
    cleaned = redact_secrets(_CONTROL_CHARS.sub(" ", prompt or ""))
    if len(cleaned) > max_len:
        return cleaned[: max_len - 1] + "…"
    return cleaned


def append_user_additions(prompt: str, additions: Optional[str]) -> str:
    """Append a caller-supplied prompt snippet under a "User Additions" heading."""
    additions = (additions or "").strip()
    if not additions:
        return prompt
    return f"{prompt}\n\nUser Additions:\n{additions}"


def env_number(name: str, default: float) -> float:
    """Read a numeric env var, falling back to default when unset or invalid."""
    raw = os.getenv(name)
    try:
        value = float(raw) if raw is not None and raw.strip() else default
    except ValueError:
        return default
    if value != value or value in (float("inf"), float("-inf")):
        return default
    return value


def allowed_models() -> list[str]:
    """Models callers may request, from the comma-separated ALLOWED_AI_MODELS."""
    raw = os.getenv("ALLOWED_AI_MODELS", "")
    return [model.strip() for model in raw.split(",") if model.strip()]


def select_model(options: Optional[dict]) -> Optional[str]:
    """
    Pick the model for a call.

    The requested ``options["model"]`` wins when ALLOWED_AI_MODELS is empty or
    lists it; otherwise AI_MODEL (or None for the provider default).
    """
    requested = ((options or {}).get("model") or "").strip()
    allowed = allowed_models()
    if requested and (not allowed or requested in allowed):
        return requested
    return os.getenv("AI_MODEL") or None
