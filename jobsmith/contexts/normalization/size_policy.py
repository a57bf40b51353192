"""
Company size bucket policy.

Maps free-text or loosely bucketed company sizes ("1000+", "about 250
employees", "5,001-10,000", "startup") onto the canonical buckets accepted by
the companies table. Bucket boundaries and aliases are configuration, loaded
from size_buckets.yaml (override with SIZE_BUCKETS_PATH).

Resolution order:
    1. Exact canonical label (after removing commas, spaces, "employees")
    2. Alias table (case-insensitive)
    3. Numeric: "A-B" -> bucket containing B, "N+" -> bucket containing N+1,
       a lone number ("about 250") -> bucket containing it. Counts may carry
       k, m, thousand or million. Numbers inside other text ("Fortune 500")
       are not employee counts.
    4. Otherwise None (the column accepts NULL)
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from omegaconf import OmegaConf

load_dotenv()
DEFAULT_SIZE_BUCKETS_PATH = Path(__file__).parent / "size_buckets.yaml"
SIZE_BUCKETS_PATH = Path(os.getenv("SIZE_BUCKETS_PATH", str(DEFAULT_SIZE_BUCKETS_PATH)))

_NUMBER = r"\d+(?:\.\d+)?(?:k|m|thousand|million)?"
_RANGE = re.compile(rf"^({_NUMBER})-({_NUMBER})$")
_OPEN_ENDED = re.compile(rf"^({_NUMBER})\+$")
_OVER = re.compile(rf"^(?:over|morethan|above)({_NUMBER})\+?$")
_SINGLE = re.compile(rf"^(?:about|around|approximately|approx\.?|roughly|~)?({_NUMBER})$")

_MAGNITUDES = {"k": 1_000, "thousand": 1_000, "m": 1_000_000, "million": 1_000_000}


@dataclass(frozen=True)
class SizeBucket:
    label: str
    min: int
    max: Optional[int]

    def contains(self, count: int) -> bool:
        return count >= self.min and (self.max is None or count <= self.max)


class SizeBucketPolicy:
    """Configurable mapping from raw company sizes to canonical buckets."""

    def __init__(self, buckets: list[SizeBucket], aliases: dict[str, str] = None):
        if not buckets:
            raise ValueError("Size bucket policy needs at least one bucket")
        self.buckets = sorted(buckets, key=lambda b: b.min)
        self.labels = {b.label for b in self.buckets}
        self.aliases = {k.strip().lower(): v for k, v in (aliases or {}).items()}

        unknown = set(self.aliases.values()) - self.labels
        if unknown:
            raise ValueError(f"Size aliases point to unknown buckets: {sorted(unknown)}")

    @classmethod
    def from_yaml(cls, config_path: Path = None) -> "SizeBucketPolicy":
        """
        Load a policy from YAML.

        Args:
            config_path: Path to the policy file (defaults to SIZE_BUCKETS_PATH)
        """
        if config_path is None:
            config_path = SIZE_BUCKETS_PATH

        config = OmegaConf.to_container(OmegaConf.load(config_path), resolve=True)
        buckets = [
            SizeBucket(label=str(b["label"]), min=int(b["min"]), max=_optional_int(b.get("max")))
            for b in config["buckets"]
        ]
        return cls(buckets, aliases=config.get("aliases") or {})

    def bucket_for_count(self, count: int) -> Optional[str]:
        """Return the label of the bucket containing an employee count."""
        for bucket in self.buckets:
            if bucket.contains(count):
                return bucket.label
        return None

    def resolve(self, raw: Any) -> Optional[str]:
        """
        Map a raw size value to a canonical bucket label.

        Args:
            raw: str, int, or None as produced by the model

        Returns:
            Canonical label, or None when the value cannot be mapped
        """
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float)):
            return self.bucket_for_count(int(raw))
        if not isinstance(raw, str):
            return None

        text = raw.strip()
        if not text:
            return None
        if text in self.labels:
            return text

        lowered = text.lower()
        if lowered in self.aliases:
            return self.aliases[lowered]

        compact = re.sub(r"[,\s]|employees?|people|staff", "", lowered)
        compact = compact.replace("–", "-").replace("to", "-")
        if compact in self.labels:
            return compact
        if compact in self.aliases:
            return self.aliases[compact]

        match = _RANGE.match(compact)
        if match:
            return self.bucket_for_count(_to_count(match.group(2)))

        match = _OPEN_ENDED.match(compact) or _OVER.match(compact)
        if match:
            return self.bucket_for_count(_to_count(match.group(1)) + 1)

        match = _SINGLE.match(compact)
        if match:
            return self.bucket_for_count(_to_count(match.group(1)))

        return None


def _to_count(token: str) -> int:
    for suffix in sorted(_MAGNITUDES, key=len, reverse=True):
        if token.endswith(suffix):
            return int(float(token[: -len(suffix)]) * _MAGNITUDES[suffix])
    return int(float(token))


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


_default_policy: Optional[SizeBucketPolicy] = None


def get_default_policy() -> SizeBucketPolicy:
    """Load (once) and return the policy from SIZE_BUCKETS_PATH."""
    global _default_policy
    if _default_policy is None:
        _default_policy = SizeBucketPolicy.from_yaml()
    return _default_policy
