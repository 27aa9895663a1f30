"""Best-effort progress and ETA estimates for a generation cycle.

These numbers are purely cosmetic. Completion is signalled only by the
generation result itself; nothing should depend on the estimates.
"""

from __future__ import annotations


def estimate_duration_ms(word_count: int, incremental: bool = False) -> int:
    """Rough wall-clock estimate for one generation cycle."""
    if incremental:
        return max(2_000, min(8_000, word_count * 30))
    return max(3_000, min(15_000, word_count * 50))


class ProgressEstimator:
    """Time-based progress that climbs towards 90% and only completes on demand."""

    CEILING = 90

    def __init__(self, started_ms: int, estimated_ms: int) -> None:
        self.started_ms = started_ms
        self.estimated_ms = max(1, estimated_ms)
        self._last = 0
        self._done = False

    def percent(self, now_ms: int) -> int:
        if self._done:
            return 100
        elapsed = max(0, now_ms - self.started_ms)
        value = min(self.CEILING, int(elapsed * 100 / self.estimated_ms))
        # never move backwards
        self._last = max(self._last, value)
        return self._last

    def eta_ms(self, now_ms: int) -> int:
        if self._done:
            return 0
        return max(0, self.started_ms + self.estimated_ms - now_ms)

    def complete(self) -> None:
        self._done = True
