"""Pydantic request/response schemas for the Live Meeting Summary API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.generation.scheduler import SchedulerStatus
from src.ingestion.models import TranscriptSegment
from src.pipeline.session import SessionStatus, SummarizationSession
from src.pipeline_config import OrchestratorState
from src.summarization.models import RunningSummary, summary_stats


class CreateSessionRequest(BaseModel):
    """Request body for POST /api/sessions."""

    custom_instructions: str | None = None


class CustomInstructionsRequest(BaseModel):
    """Request body for PUT /api/sessions/{id}/instructions."""

    custom_instructions: str | None = None


class RecognitionEventRequest(BaseModel):
    """One interim or final result from the speech recognizer."""

    text: str = ""
    confidence: float = 0.0
    timestamp_ms: int = 0
    is_final: bool = False
    duration_ms: int | None = None


class SegmentResponse(BaseModel):
    id: str
    text: str
    timestamp_ms: int
    duration_ms: int
    confidence: float
    confidence_level: str
    is_final: bool

    @classmethod
    def from_segment(cls, segment: TranscriptSegment) -> SegmentResponse:
        return cls(
            id=segment.id,
            text=segment.text,
            timestamp_ms=segment.timestamp_ms,
            duration_ms=segment.duration_ms,
            confidence=segment.confidence,
            confidence_level=segment.confidence_level,
            is_final=segment.is_final,
        )


class EventResponse(BaseModel):
    """Response body for POST /api/sessions/{id}/events."""

    accepted: bool
    segment: SegmentResponse | None = None


class SessionResponse(BaseModel):
    """Current state of one session."""

    id: str
    status: SessionStatus
    state: OrchestratorState
    final_segments: int
    total_words: int
    interim_text: str | None = None
    has_summary: bool = False
    progress: int = 0
    eta_ms: int = 0
    custom_instructions: str | None = None

    @classmethod
    def from_session(cls, session: SummarizationSession) -> SessionResponse:
        percent, eta = session.orchestrator.progress()
        interim = session.store.get_interim()
        return cls(
            id=session.id,
            status=session.status,
            state=session.orchestrator.state,
            final_segments=session.store.final_count,
            total_words=session.store.total_words,
            interim_text=interim.text if interim is not None else None,
            has_summary=session.orchestrator.current_summary is not None,
            progress=percent,
            eta_ms=eta,
            custom_instructions=session.custom_instructions,
        )


class TopicResponse(BaseModel):
    name: str
    points: list[str] = []


class SummaryResponse(BaseModel):
    """A running summary snapshot plus display statistics."""

    id: str
    content: str
    key_points: list[str] = []
    decisions: list[str] = []
    action_items: list[str] = []
    quotes: list[str] = []
    topics: list[TopicResponse] = []
    generated_at_ms: int
    processing_time_ms: int
    is_incremental: bool
    previous_id: str | None = None
    segment_count: int = 0
    stats: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_summary(cls, summary: RunningSummary) -> SummaryResponse:
        return cls(
            id=summary.id,
            content=summary.content,
            key_points=summary.key_points,
            decisions=summary.decisions,
            action_items=summary.action_items,
            quotes=summary.quotes,
            topics=[TopicResponse(name=t.name, points=t.points) for t in summary.topics],
            generated_at_ms=summary.generated_at_ms,
            processing_time_ms=summary.processing_time_ms,
            is_incremental=summary.is_incremental,
            previous_id=summary.previous_id,
            segment_count=summary.segment_count,
            stats=summary_stats(summary) or {},
        )


class SchedulerStatusResponse(BaseModel):
    """Response body for GET /api/scheduler/status."""

    requests_in_window: int
    limit: int
    queue_length: int
    can_make_request: bool
    wait_time_ms: int
    in_flight: bool

    @classmethod
    def from_status(cls, status: SchedulerStatus) -> SchedulerStatusResponse:
        return cls(
            requests_in_window=status.requests_in_window,
            limit=status.limit,
            queue_length=status.queue_length,
            can_make_request=status.can_make_request,
            wait_time_ms=status.wait_time_ms,
            in_flight=status.in_flight,
        )
