"""
Shared utilities for JOBSMITH.

Common functionality used across contexts:
- LLM provider abstraction (generation capability)
- Logging setup
- Timestamps
- Counters, rate limiting, background tasks
"""

from jobsmith.utils.timestamp import is_fresh, now_exact, now_utc

__all__ = ["is_fresh", "now_exact", "now_utc"]
