"""Per-session wiring of the pipeline and the process-level session registry."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Protocol

from src.generation.client import TextGenerator
from src.generation.scheduler import RequestScheduler
from src.ingestion.models import RecognitionEvent, TranscriptSegment
from src.ingestion.segment_store import DEFAULT_FINALIZE_CONFIDENCE, SegmentStore
from src.pipeline.events import EventBus, SegmentFinalized
from src.pipeline.orchestrator import CycleOutcome, SummarizationOrchestrator
from src.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


class SessionListener(Protocol):
    def attach(self, events: EventBus, session_id: str) -> None: ...


def _coerce_event(event: RecognitionEvent | Mapping[str, Any]) -> RecognitionEvent:
    if isinstance(event, RecognitionEvent):
        return event
    return RecognitionEvent(
        text=str(event.get("text") or ""),
        confidence=float(event.get("confidence") or 0.0),
        timestamp_ms=int(event.get("timestamp_ms", event.get("timestampMs")) or 0),
        is_final=bool(event.get("is_final", event.get("isFinal", False))),
        duration_ms=event.get("duration_ms", event.get("durationMs")),
    )


class SummarizationSession:
    """One live meeting: its segments, its running summary and its events.

    Sessions never share a SegmentStore or orchestrator; only the
    RequestScheduler passed in may be shared across sessions.
    """

    def __init__(
        self,
        scheduler: RequestScheduler,
        generator: TextGenerator,
        *,
        config: PipelineConfig | None = None,
        session_id: str | None = None,
        events: EventBus | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.id = session_id or f"session_{uuid.uuid4().hex[:12]}"
        self.config = config or PipelineConfig()
        self.events = events or EventBus()
        self.store = SegmentStore(self.config.max_retained_segments)
        self.orchestrator = SummarizationOrchestrator(
            self.store,
            scheduler,
            generator,
            config=self.config,
            events=self.events,
            session_id=self.id,
            clock=clock,
        )
        self.status = SessionStatus.RECORDING

    @property
    def custom_instructions(self) -> str | None:
        return self.orchestrator.custom_instructions

    def set_custom_instructions(self, instructions: str | None) -> None:
        """Replace the default summarization prompt for later cycles."""
        self.orchestrator.custom_instructions = instructions.strip() if instructions and instructions.strip() else None

    def handle_recognition_event(self, event: RecognitionEvent | Mapping[str, Any]) -> TranscriptSegment | None:
        """Route an interim or final recognition event into the segment store.

        Returns the resulting segment, or None when the event was ignored
        (session not recording, empty text, stale interim).
        """
        if self.status is not SessionStatus.RECORDING:
            logger.debug("Session %s is %s, recognition event ignored", self.id, self.status.value)
            return None
        event = _coerce_event(event)
        if not event.is_final:
            return self.store.append_interim(event.text, event.confidence, event.timestamp_ms)

        before = self.store.final_count
        segment = self.store.finalize(event.text, event.confidence, event.timestamp_ms, event.duration_ms)
        if segment is not None and self.store.final_count > before:
            self.events.publish(SegmentFinalized(self.id, segment=segment))
        return segment

    def finalize_pending(self) -> TranscriptSegment | None:
        """Commit any lingering interim text as a final segment."""
        before = self.store.final_count
        segment = self.store.finalize_interim(DEFAULT_FINALIZE_CONFIDENCE)
        if segment is not None and self.store.final_count > before:
            self.events.publish(SegmentFinalized(self.id, segment=segment))
        return segment

    async def maybe_summarize(self) -> CycleOutcome:
        return await self.orchestrator.maybe_generate()

    def pause(self) -> None:
        self.finalize_pending()
        if self.status is SessionStatus.RECORDING:
            self.status = SessionStatus.PAUSED

    def resume(self) -> None:
        self.status = SessionStatus.RECORDING

    def stop(self) -> None:
        self.finalize_pending()
        self.status = SessionStatus.STOPPED
        logger.info("Session %s stopped with %d final segments", self.id, self.store.final_count)

    def clear(self) -> None:
        """Drop all transcript state and the running summary."""
        self.orchestrator.reset()
        self.store.clear()
        logger.info("Session %s cleared", self.id)


class SessionRegistry:
    """Process-wide session table sharing one RequestScheduler."""

    def __init__(
        self,
        scheduler: RequestScheduler,
        generator: TextGenerator,
        config: PipelineConfig | None = None,
        listeners: list[SessionListener] | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.generator = generator
        self.config = config or PipelineConfig()
        self.listeners = listeners or []
        self._sessions: dict[str, SummarizationSession] = {}

    def create(self, custom_instructions: str | None = None) -> SummarizationSession:
        session = SummarizationSession(self.scheduler, self.generator, config=self.config)
        session.set_custom_instructions(custom_instructions)
        for listener in self.listeners:
            listener.attach(session.events, session.id)
        self._sessions[session.id] = session
        logger.info("Created session %s", session.id)
        return session

    def get(self, session_id: str) -> SummarizationSession:
        """Look up a session; raises KeyError when unknown."""
        return self._sessions[session_id]

    def remove(self, session_id: str) -> None:
        session = self._sessions.pop(session_id)
        session.orchestrator.cancel()
        logger.info("Removed session %s", session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    async def aclose(self) -> None:
        for session in self._sessions.values():
            session.orchestrator.cancel()
        self._sessions.clear()
        await self.scheduler.aclose()
