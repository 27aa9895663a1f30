"""Data models for structured summaries."""

from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field
from typing import Any


def new_summary_id() -> str:
    return f"summary_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"


@dataclass
class Topic:
    """A named discussion topic with its supporting points."""

    name: str
    points: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "points": list(self.points)}


@dataclass
class SummaryFragment:
    """Structured output of a single generation call.

    List fields are always lists (possibly empty), never ``None``.
    """

    content: str = ""
    key_points: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    quotes: list[str] = field(default_factory=list)
    topics: list[Topic] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.content
            or self.key_points
            or self.decisions
            or self.action_items
            or self.quotes
            or self.topics
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase keys of the model's output contract."""
        return {
            "content": self.content,
            "keyPoints": list(self.key_points),
            "decisions": list(self.decisions),
            "actionItems": list(self.action_items),
            "quotes": list(self.quotes),
            "topics": [t.to_dict() for t in self.topics],
        }


@dataclass
class RunningSummary(SummaryFragment):
    """The latest merged, user-facing summary of a session.

    ``previous_id`` is a lookup-only back-reference to the summary this one
    was derived from.
    """

    id: str = field(default_factory=new_summary_id)
    generated_at_ms: int = 0
    processing_time_ms: int = 0
    is_incremental: bool = False
    previous_id: str | None = None
    segment_count: int = 0

    @classmethod
    def from_fragment(
        cls,
        fragment: SummaryFragment,
        *,
        generated_at_ms: int,
        processing_time_ms: int = 0,
        is_incremental: bool = False,
        previous_id: str | None = None,
        segment_count: int = 0,
    ) -> RunningSummary:
        return cls(
            content=fragment.content,
            key_points=list(fragment.key_points),
            decisions=list(fragment.decisions),
            action_items=list(fragment.action_items),
            quotes=list(fragment.quotes),
            topics=[Topic(t.name, list(t.points)) for t in fragment.topics],
            generated_at_ms=generated_at_ms,
            processing_time_ms=processing_time_ms,
            is_incremental=is_incremental,
            previous_id=previous_id,
            segment_count=segment_count,
        )

    def snapshot(self) -> RunningSummary:
        """Independent copy handed to readers outside the pipeline."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "id": self.id,
                "generatedAtMs": self.generated_at_ms,
                "processingTimeMs": self.processing_time_ms,
                "isIncremental": self.is_incremental,
                "previousId": self.previous_id,
                "segmentCount": self.segment_count,
            }
        )
        return data


def summary_stats(summary: SummaryFragment | None) -> dict[str, Any] | None:
    """Word and section counts for display alongside a summary."""
    if summary is None:
        return None
    counts = {
        "keyPointsCount": len(summary.key_points),
        "decisionsCount": len(summary.decisions),
        "actionItemsCount": len(summary.action_items),
        "quotesCount": len(summary.quotes),
        "topicsCount": len(summary.topics),
    }
    stats: dict[str, Any] = {
        "wordCount": len(summary.content.split()),
        "sectionsCount": sum(counts.values()),
        **counts,
    }
    if isinstance(summary, RunningSummary):
        stats["processingTimeMs"] = summary.processing_time_ms
        stats["generatedAtMs"] = summary.generated_at_ms
        stats["isIncremental"] = summary.is_incremental
    return stats
