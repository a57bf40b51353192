"""Custom exceptions for the normalization context."""

from typing import Optional


class InvalidResponseFormatError(ValueError):
    """
    Raised when generation output cannot be shaped into a kind's canonical content.

    The user-facing message is always "Invalid AI response format"; the detail
    and a truncated snippet of the offending text are kept for logs.

    Attributes:
        kind: Artifact kind being normalized
        detail: Why normalization failed
        snippet: Start of the raw text that failed to parse
    """

    user_message = "Invalid AI response format"

    def __init__(self, kind: str, detail: str, raw_text: Optional[str] = None):
        self.kind = kind
        self.detail = detail
        self.snippet = None
        if raw_text:
            self.snippet = raw_text[:200] + "..." if len(raw_text) > 200 else raw_text

        parts = [f"{self.user_message} ({kind}): {detail}"]
        if self.snippet:
            parts.append(f"Raw text:\n{self.snippet}")
        super().__init__("\n".join(parts))
