"""Pipeline configuration: mode/state enums and immutable tuning dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.config import Settings


class GenerationMode(str, Enum):
    """Kind of request sent to the generation service."""

    FRESH = "fresh"
    INCREMENTAL = "incremental"
    CONSOLIDATION = "consolidation"


class OrchestratorState(str, Enum):
    """Lifecycle of a single summarization cycle."""

    IDLE = "idle"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ChunkingConfig:
    """Bounds for chunks handed to the model."""

    target_duration_ms: int = 30_000
    max_chunk_chars: int = 8_000
    overlap_words: int = 50

    def __post_init__(self) -> None:
        if self.target_duration_ms <= 0:
            raise ValueError("target_duration_ms must be positive")
        if self.max_chunk_chars <= 0:
            raise ValueError("max_chunk_chars must be positive")
        if self.overlap_words < 0:
            raise ValueError("overlap_words must be >= 0")


@dataclass(frozen=True)
class SchedulerConfig:
    """Rate limit and retry policy for outbound generation calls."""

    requests_per_minute: int = 15
    window_ms: int = 60_000
    max_retries: int = 3
    base_delay_ms: int = 1_000
    max_delay_ms: int = 10_000
    request_timeout_ms: int = 60_000

    def __post_init__(self) -> None:
        if self.requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 0 or self.max_delay_ms < self.base_delay_ms:
            raise ValueError("retry delays must satisfy 0 <= base_delay_ms <= max_delay_ms")
        if self.request_timeout_ms <= 0:
            raise ValueError("request_timeout_ms must be positive")


@dataclass(frozen=True)
class MergeLimits:
    """Caps applied to every list field of a merged summary."""

    max_content_words: int = 200
    key_points: int = 10
    decisions: int = 10
    action_items: int = 10
    quotes: int = 5
    topics: int = 8

    def __post_init__(self) -> None:
        for name in ("max_content_words", "key_points", "decisions", "action_items", "quotes", "topics"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


@dataclass(frozen=True)
class TriggerPolicy:
    """When the orchestrator decides to summarize in auto mode."""

    auto_generate: bool = True
    min_segments: int = 10
    min_words: int = 100
    interval_ms: int = 30_000

    def __post_init__(self) -> None:
        if self.min_segments < 0 or self.min_words < 0 or self.interval_ms < 0:
            raise ValueError("trigger thresholds must be >= 0")


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for one summarization session.

    Defaults mirror the behaviour described for the live pipeline: 30s / 8000
    character chunks with a 50-word overlap, 15 requests per minute, and the
    10/10/10/5/8 caps on merged lists.
    """

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    limits: MergeLimits = field(default_factory=MergeLimits)
    trigger: TriggerPolicy = field(default_factory=TriggerPolicy)
    max_retained_segments: int = 2_000

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        """Build a PipelineConfig from application settings."""
        return cls(
            chunking=ChunkingConfig(
                target_duration_ms=settings.chunk_target_duration_ms,
                max_chunk_chars=settings.chunk_max_chars,
                overlap_words=settings.chunk_overlap_words,
            ),
            scheduler=SchedulerConfig(
                requests_per_minute=settings.requests_per_minute,
                max_retries=settings.max_retries,
                base_delay_ms=settings.retry_base_delay_ms,
                max_delay_ms=settings.retry_max_delay_ms,
                request_timeout_ms=settings.request_timeout_ms,
            ),
            limits=MergeLimits(
                max_content_words=settings.max_content_words,
                key_points=settings.max_key_points,
                decisions=settings.max_decisions,
                action_items=settings.max_action_items,
                quotes=settings.max_quotes,
                topics=settings.max_topics,
            ),
            trigger=TriggerPolicy(
                auto_generate=settings.auto_generate,
                min_segments=settings.min_segments,
                min_words=settings.min_words,
                interval_ms=settings.summary_interval_ms,
            ),
            max_retained_segments=settings.max_retained_segments,
        )
