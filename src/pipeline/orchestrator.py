"""Decide when to summarize and drive one generation cycle end to end.

A cycle goes ChunkBuilder -> PromptComposer -> RequestScheduler ->
ResponseParser -> SummaryMerger. Only one cycle runs per session at a time;
the running summary is replaced only when a cycle succeeds.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from src.generation.client import TextGenerator
from src.generation.errors import GenerationError, classify_error
from src.generation.scheduler import RequestScheduler
from src.ingestion.chunking import build_chunks, tail_words
from src.ingestion.models import TranscriptSegment
from src.ingestion.segment_store import SegmentStore
from src.pipeline.events import (
    EventBus,
    GenerationFailed,
    GenerationProgress,
    GenerationStarted,
    GenerationSucceeded,
)
from src.pipeline.progress import ProgressEstimator, estimate_duration_ms
from src.pipeline_config import GenerationMode, OrchestratorState, PipelineConfig
from src.summarization.merger import SummaryMerger
from src.summarization.models import RunningSummary, SummaryFragment
from src.summarization.parser import ResponseParser
from src.summarization.prompts import PromptComposer

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class CycleStatus(str, Enum):
    """How a call to generate ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CycleOutcome:
    """Typed result of a generation request.

    ``summary`` is a snapshot on success; ``error`` is set on failure.
    ``reason`` explains a skip (already generating, nothing new, ...).
    """

    status: CycleStatus
    summary: RunningSummary | None = None
    error: GenerationError | None = None
    reason: str = ""


class _CycleCancelled(Exception):
    pass


class SummarizationOrchestrator:
    """State machine that owns the running summary of one session.

    States go Idle -> Generating -> (Succeeded | Failed) -> Idle. Asking to
    generate while a cycle is in flight is a no-op. :meth:`cancel` is
    cooperative: the in-flight scheduler call still completes, but its
    result is discarded.
    """

    def __init__(
        self,
        store: SegmentStore,
        scheduler: RequestScheduler,
        generator: TextGenerator,
        *,
        config: PipelineConfig | None = None,
        events: EventBus | None = None,
        session_id: str = "default",
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.generator = generator
        self.config = config or PipelineConfig()
        self.events = events or EventBus()
        self.session_id = session_id
        self._clock = clock or wall_clock_ms

        limits = self.config.limits
        self.composer = PromptComposer(max_words=limits.max_content_words)
        self.parser = ResponseParser(limits.max_content_words)
        self.merger = SummaryMerger(limits, self.composer, self.parser)

        self.state = OrchestratorState.IDLE
        self.custom_instructions: str | None = None
        self.last_error: GenerationError | None = None
        self._summary: RunningSummary | None = None
        self._cycle_token = 0
        self._progress: ProgressEstimator | None = None

    # -- queries -----------------------------------------------------------

    @property
    def current_summary(self) -> RunningSummary | None:
        """A copy of the running summary; mutating it never affects the pipeline."""
        return self._summary.snapshot() if self._summary is not None else None

    @property
    def is_generating(self) -> bool:
        return self.state is OrchestratorState.GENERATING

    def progress(self) -> tuple[int, int]:
        """Best-effort ``(percent, eta_ms)`` for the cycle in flight, else ``(0, 0)``."""
        if not self.is_generating or self._progress is None:
            return 0, 0
        now = self._clock()
        return self._progress.percent(now), self._progress.eta_ms(now)

    def should_generate(self, now_ms: int | None = None) -> bool:
        """Auto-mode trigger policy."""
        trigger = self.config.trigger
        if self.store.final_count < trigger.min_segments or self.store.total_words < trigger.min_words:
            return False
        if self._summary is None:
            return True
        if not self.store.unsummarized_segments():
            return False
        now = self._clock() if now_ms is None else now_ms
        return now - self._summary.generated_at_ms >= trigger.interval_ms

    # -- commands ----------------------------------------------------------

    async def maybe_generate(self, now_ms: int | None = None) -> CycleOutcome:
        """Run a cycle if auto mode is on and the trigger policy is met."""
        if not self.config.trigger.auto_generate:
            return CycleOutcome(CycleStatus.SKIPPED, reason="auto generation disabled")
        if self.is_generating:
            return CycleOutcome(CycleStatus.SKIPPED, reason="already generating")
        if not self.should_generate(now_ms):
            return CycleOutcome(CycleStatus.SKIPPED, reason="trigger thresholds not met")
        if not self.scheduler.can_accept_more():
            logger.info("Scheduler is saturated, deferring summary for session %s", self.session_id)
            return CycleOutcome(CycleStatus.SKIPPED, reason="scheduler saturated")
        return await self.generate()

    async def generate(self) -> CycleOutcome:
        """Summarize now: incremental when a summary exists, fresh otherwise."""
        if self._summary is None:
            return await self._run_cycle(GenerationMode.FRESH)
        return await self._run_cycle(GenerationMode.INCREMENTAL)

    async def regenerate(self) -> CycleOutcome:
        """Rebuild the summary from every retained final segment, replacing it."""
        return await self._run_cycle(GenerationMode.FRESH)

    def cancel(self) -> bool:
        """Discard the result of the cycle in flight; returns False when idle."""
        if not self.is_generating:
            return False
        self._cycle_token += 1
        self._progress = None
        self.state = OrchestratorState.IDLE
        logger.warning("Summary generation cancelled for session %s", self.session_id)
        self.events.publish(
            GenerationFailed(self.session_id, message="Summary generation cancelled", cancelled=True)
        )
        return True

    def reset(self) -> None:
        """Forget the running summary (session clear)."""
        self.cancel()
        self._summary = None
        self.last_error = None
        self.state = OrchestratorState.IDLE

    # -- cycle -------------------------------------------------------------

    async def _run_cycle(self, mode: GenerationMode) -> CycleOutcome:
        if self.is_generating:
            logger.info("Generation already in progress for session %s, request dropped", self.session_id)
            return CycleOutcome(CycleStatus.SKIPPED, reason="already generating")

        incremental = mode is GenerationMode.INCREMENTAL
        segments = self.store.unsummarized_segments() if incremental else self.store.get_final_segments()
        if not segments:
            return CycleOutcome(CycleStatus.SKIPPED, reason="no new transcript segments")

        self._cycle_token += 1
        token = self._cycle_token
        through = self.store.final_count
        previous = self._summary
        words = sum(segment.word_count for segment in segments)
        started = self._clock()
        estimate = estimate_duration_ms(words, incremental)

        self.state = OrchestratorState.GENERATING
        self._progress = ProgressEstimator(started, estimate)
        logger.info(
            "Starting %s summary for session %s (%d segments, %d words)",
            mode.value,
            self.session_id,
            len(segments),
            words,
        )
        self.events.publish(
            GenerationStarted(
                self.session_id,
                mode=mode,
                segment_count=len(segments),
                word_count=words,
                estimated_duration_ms=estimate,
            )
        )

        try:
            if incremental and previous is not None:
                fragment = await self._summarize_incremental(segments, previous, token)
            else:
                fragment = await self._summarize_fresh(segments, token)
        except _CycleCancelled:
            logger.info("Discarding result of cancelled cycle for session %s", self.session_id)
            return CycleOutcome(CycleStatus.CANCELLED)
        except Exception as exc:
            if token != self._cycle_token:
                return CycleOutcome(CycleStatus.CANCELLED)
            return self._fail(classify_error(exc))

        if token != self._cycle_token:
            logger.info("Discarding result of cancelled cycle for session %s", self.session_id)
            return CycleOutcome(CycleStatus.CANCELLED)

        now = self._clock()
        elapsed = max(0, now - started)
        if incremental and previous is not None:
            summary = self.merger.merge_incremental(
                previous, fragment, generated_at_ms=now, processing_time_ms=elapsed, segment_count=through
            )
        else:
            summary = RunningSummary.from_fragment(
                fragment,
                generated_at_ms=now,
                processing_time_ms=elapsed,
                is_incremental=False,
                previous_id=previous.id if previous is not None else None,
                segment_count=through,
            )

        self._summary = summary
        self.store.mark_summarized(through)
        self.last_error = None
        if self._progress is not None:
            self._progress.complete()
            self._report_progress(token, "complete")
        self._progress = None
        self.state = OrchestratorState.SUCCEEDED
        logger.info("Summary %s ready for session %s in %dms", summary.id, self.session_id, elapsed)
        snapshot = summary.snapshot()
        self.events.publish(GenerationSucceeded(self.session_id, summary=snapshot))
        self.state = OrchestratorState.IDLE
        return CycleOutcome(CycleStatus.SUCCEEDED, summary=snapshot)

    def _fail(self, error: GenerationError) -> CycleOutcome:
        self.last_error = error
        self._progress = None
        self.state = OrchestratorState.FAILED
        logger.warning(
            "Summary generation failed for session %s (%s): %s",
            self.session_id,
            "permanent" if error.permanent else "transient",
            error.message,
        )
        self.events.publish(GenerationFailed(self.session_id, message=error.message, permanent=error.permanent))
        self.state = OrchestratorState.IDLE
        return CycleOutcome(CycleStatus.FAILED, error=error)

    async def _request(self, prompt: str, token: int) -> str:
        raw = await self.scheduler.submit(lambda: self.generator.generate_text(prompt))
        if token != self._cycle_token:
            raise _CycleCancelled
        return raw

    def _report_progress(self, token: int, stage: str) -> None:
        if token != self._cycle_token or self._progress is None:
            return
        percent, eta = self.progress()
        self.events.publish(GenerationProgress(self.session_id, percent=percent, eta_ms=eta, stage=stage))

    def _overlap_before(self, segments: Sequence[TranscriptSegment]) -> str:
        """Tail of the already-summarized text that precedes ``segments``."""
        overlap_words = self.config.chunking.overlap_words
        retained = self.store.get_final_segments()
        end = len(retained) - len(segments)
        if overlap_words == 0 or end <= 0:
            return ""
        preceding = retained[max(0, end - overlap_words) : end]
        return tail_words(" ".join(segment.text for segment in preceding), overlap_words)

    async def _summarize_chunks(self, segments: Sequence[TranscriptSegment], token: int) -> list[SummaryFragment]:
        chunks = build_chunks(segments, self.config.chunking)
        fragments: list[SummaryFragment] = []
        for chunk in chunks:
            prompt = self.composer.compose_fresh(chunk.prompt_text, self.custom_instructions)
            raw = await self._request(prompt, token)
            fragments.append(self.parser.parse(raw))
            self._report_progress(token, f"chunk {chunk.chunk_index + 1}/{len(chunks)}")
        return fragments

    async def _consolidate(self, fragments: list[SummaryFragment], token: int) -> SummaryFragment:
        async def generate(prompt: str) -> str:
            return await self._request(prompt, token)

        fragment = await self.merger.consolidate(fragments, generate)
        if token != self._cycle_token:
            raise _CycleCancelled
        return fragment

    async def _summarize_fresh(self, segments: Sequence[TranscriptSegment], token: int) -> SummaryFragment:
        fragments = await self._summarize_chunks(segments, token)
        return await self._consolidate(fragments, token)

    async def _summarize_incremental(
        self, segments: Sequence[TranscriptSegment], previous: RunningSummary, token: int
    ) -> SummaryFragment:
        overlap = self._overlap_before(segments)
        chunks = build_chunks(segments, self.config.chunking, overlap_prefix=overlap)
        # Fold each chunk into the summary built so far
        running: SummaryFragment = previous
        for chunk in chunks:
            prompt = self.composer.compose_incremental(chunk.prompt_text, running, self.custom_instructions)
            raw = await self._request(prompt, token)
            running = self.merger.fold(running, self.parser.parse(raw))
            stage = "incremental update" if len(chunks) == 1 else f"chunk {chunk.chunk_index + 1}/{len(chunks)}"
            self._report_progress(token, stage)
        return running
