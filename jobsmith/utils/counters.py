"""Process-wide generation counters used for observability."""

import threading
from dataclasses import dataclass, field


@dataclass
class GenerationCounters:
    """
    Lock-protected counters for generation workflows.

    Counters never influence control flow. Instances are injected into the
    orchestrator so tests can assert on isolated counts.
    """

    generate_total: int = 0
    generate_success: int = 0
    generate_fail: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_start(self) -> None:
        with self._lock:
            self.generate_total += 1

    def record_success(self) -> None:
        with self._lock:
            self.generate_success += 1

    def record_failure(self) -> None:
        with self._lock:
            self.generate_fail += 1

    def snapshot(self) -> dict[str, int]:
        """Return a consistent copy of all counters."""
        with self._lock:
            return {
                "generate_total": self.generate_total,
                "generate_success": self.generate_success,
                "generate_fail": self.generate_fail,
            }
