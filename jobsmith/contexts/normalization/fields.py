"""
Per-field coercion functions for generation output.

Models drift between a few recognized shapes for the same field. Each function
here accepts the known variants explicitly and reduces them to one canonical
Python type:

    text field     str | {<text key>: str}            -> str | None
    string list    [str | {<item key>: str}, ...]     -> list[str]
    number         int | float | "$120,000" | "120k"  -> int | float | None

Anything outside the recognized variants is dropped, never fabricated.
"""

import json
import re
from typing import Any, Iterable, Optional

# Keys under which a wrapped string is looked up, in priority order
TEXT_KEYS = ("text", "content", "value", "summary", "description")
SKILL_KEYS = ("name", "skill", "skill_name", "label", "value", "text", "keyword")
BULLET_KEYS = ("text", "bullet", "content", "value", "description")

# Nested wrappers deeper than this are treated as unresolvable
MAX_WRAP_DEPTH = 3

_FENCED_BLOCK = re.compile(r"```(?:[\w-]+(?=\s))?\s*(.*?)\s*```", re.DOTALL)
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def strip_code_fences(text: str) -> str:
    """
    Remove a surrounding markdown code fence from model output.

    Handles ```` ```json\\n{...}\\n``` ```` as well as prose around a single
    fenced block. Text without fences is returned stripped.
    """
    text = text.strip()
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()

    # Unterminated fence (truncated output): drop the opening marker only
    if text.startswith("```"):
        text = re.sub(r"^```(?:[\w-]+(?=\s))?\s*", "", text)
    return text.strip()


def parse_json_text(text: str) -> Any:
    """
    Strictly parse JSON after stripping code fences.

    Raises:
        json.JSONDecodeError: If the remainder is not valid JSON
    """
    return json.loads(strip_code_fences(text))


def coerce_text(value: Any, keys: Iterable[str] = TEXT_KEYS, _depth: int = 0) -> Optional[str]:
    """
    Reduce a bare or wrapped string to a trimmed string.

    Args:
        value: str, or dict wrapping a str under one of ``keys``
        keys: Wrapper keys to try, in order

    Returns:
        Trimmed string, or None when no string can be resolved
    """
    if isinstance(value, str):
        return value.strip()

    if isinstance(value, dict) and _depth < MAX_WRAP_DEPTH:
        for key in keys:
            if key in value:
                resolved = coerce_text(value[key], keys, _depth + 1)
                if resolved is not None:
                    return resolved
    return None


def coerce_string_list(value: Any, keys: Iterable[str] = SKILL_KEYS) -> list[str]:
    """
    Reduce a list of bare or wrapped strings to a flat list of strings.

    Order is preserved. Entries that cannot be resolved to a non-empty string
    are dropped. A single bare string is treated as a one-item list.

    Args:
        value: list of str / dict entries (or a single str)
        keys: Wrapper keys to try for dict entries

    Returns:
        List of trimmed strings (never longer than the input)
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []

    keys = tuple(keys)
    result = []
    for entry in value:
        text = coerce_text(entry, keys)
        if text:
            result.append(text)
    return result


def coerce_bullets(value: Any) -> list[str]:
    """Reduce a bullet list (strings or wrapped strings) to a list of strings."""
    return coerce_string_list(value, BULLET_KEYS)


def coerce_number(value: Any) -> Optional[int | float]:
    """
    Reduce a numeric value or a formatted numeric string to a number.

    Accepts ints, floats, and strings such as "$120,000", "120k", "1.2M".
    Booleans are rejected.

    Returns:
        int when the value is integral, float otherwise, or None
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        return None

    cleaned = value.strip().lower().replace(",", "").replace("$", "")
    match = _NUMBER.search(cleaned)
    if not match:
        return None

    number = float(match.group(0))
    suffix = cleaned[match.end() : match.end() + 1]
    if suffix == "k":
        number *= 1_000
    elif suffix == "m":
        number *= 1_000_000

    return int(number) if number.is_integer() else number


def coerce_year(value: Any) -> Optional[int]:
    """Reduce a founding year ("2010", 2010, "founded in 2010") to an int."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1000 <= value <= 9999 else None
    if isinstance(value, str):
        match = re.search(r"\b(\d{4})\b", value)
        if match:
            return int(match.group(1))
    return None


def coerce_record_list(
    value: Any, primary_key: str, text_keys: dict[str, Iterable[str]]
) -> list[dict]:
    """
    Reduce a list of loosely shaped records to dicts of optional strings.

    Bare strings become ``{primary_key: string}``. Dict entries keep the fields
    named in ``text_keys`` (each coerced with its own wrapper keys). Records
    without a resolvable primary field are dropped.

    Args:
        value: list of str / dict entries
        primary_key: Field that must resolve for a record to be kept
        text_keys: Mapping of output field -> candidate input keys

    Returns:
        List of record dicts
    """
    if not isinstance(value, (list, tuple)):
        return []

    records = []
    for entry in value:
        if isinstance(entry, str):
            text = entry.strip()
            if text:
                records.append({primary_key: text})
            continue
        if not isinstance(entry, dict):
            continue

        record = {}
        for field_name, candidates in text_keys.items():
            for candidate in candidates:
                if candidate in entry:
                    resolved = coerce_text(entry[candidate])
                    if resolved:
                        record[field_name] = resolved
                        break
        if record.get(primary_key):
            records.append(record)
    return records
