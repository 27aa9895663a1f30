"""Session endpoints: lifecycle, recognition events and summaries."""

from __future__ import annotations

from enum import Enum

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from src.api.models import (
    CreateSessionRequest,
    CustomInstructionsRequest,
    EventResponse,
    RecognitionEventRequest,
    SchedulerStatusResponse,
    SegmentResponse,
    SessionResponse,
    SummaryResponse,
)
from src.pipeline.orchestrator import CycleStatus
from src.pipeline.session import SessionRegistry, SummarizationSession
from src.summarization.rendering import render_plain_text

router = APIRouter()


class SessionAction(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    CLEAR = "clear"


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _get_session(registry: SessionRegistry, session_id: str) -> SummarizationSession:
    try:
        return registry.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Session not found") from exc


@router.post("/api/sessions", response_model=SessionResponse, status_code=201)
async def create_session(
    body: CreateSessionRequest | None = None,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionResponse:
    """Start a new recording session."""
    session = registry.create(body.custom_instructions if body else None)
    return SessionResponse.from_session(session)


@router.get("/api/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionResponse:
    return SessionResponse.from_session(_get_session(registry, session_id))


@router.delete("/api/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> None:
    _get_session(registry, session_id)
    registry.remove(session_id)


@router.post("/api/sessions/{session_id}/events", response_model=EventResponse)
async def post_event(
    session_id: str,
    event: RecognitionEventRequest,
    background_tasks: BackgroundTasks,
    registry: SessionRegistry = Depends(get_registry),
) -> EventResponse:
    """Feed one recognition event; a new final segment may trigger a summary in the background."""
    session = _get_session(registry, session_id)
    before = session.store.final_count
    segment = session.handle_recognition_event(event.model_dump())
    if segment is None:
        return EventResponse(accepted=False)
    if session.store.final_count > before:
        background_tasks.add_task(session.maybe_summarize)
    return EventResponse(accepted=True, segment=SegmentResponse.from_segment(segment))


@router.put("/api/sessions/{session_id}/instructions", response_model=SessionResponse)
async def set_instructions(
    session_id: str,
    body: CustomInstructionsRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionResponse:
    session = _get_session(registry, session_id)
    session.set_custom_instructions(body.custom_instructions)
    return SessionResponse.from_session(session)


@router.post("/api/sessions/{session_id}/summary", response_model=SummaryResponse)
async def generate_summary(
    session_id: str,
    regenerate: bool = False,
    registry: SessionRegistry = Depends(get_registry),
) -> SummaryResponse:
    """Generate (or with ``regenerate=true`` fully rebuild) the running summary now.

    Permanent generation failures (bad credentials, rejected requests) map
    to 502 so clients can prompt for reconfiguration; transient ones to 503.
    """
    session = _get_session(registry, session_id)
    orchestrator = session.orchestrator
    outcome = await (orchestrator.regenerate() if regenerate else orchestrator.generate())

    if outcome.status is CycleStatus.FAILED and outcome.error is not None:
        status_code = 502 if outcome.error.permanent else 503
        raise HTTPException(
            status_code=status_code, detail=f"LLM unavailable: {outcome.error.message}"
        ) from outcome.error
    if outcome.summary is not None:
        return SummaryResponse.from_summary(outcome.summary)

    current = orchestrator.current_summary
    if current is not None and outcome.status is CycleStatus.SKIPPED:
        return SummaryResponse.from_summary(current)
    raise HTTPException(status_code=409, detail=outcome.reason or f"Summary generation {outcome.status.value}")


@router.get("/api/sessions/{session_id}/summary", response_model=SummaryResponse)
async def get_summary(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> SummaryResponse:
    summary = _get_session(registry, session_id).orchestrator.current_summary
    if summary is None:
        raise HTTPException(status_code=404, detail="No summary yet")
    return SummaryResponse.from_summary(summary)


@router.get("/api/sessions/{session_id}/summary.txt", response_class=PlainTextResponse)
async def export_summary(
    session_id: str,
    include_metadata: bool = False,
    registry: SessionRegistry = Depends(get_registry),
) -> str:
    """Plain-text export of the current summary."""
    summary = _get_session(registry, session_id).orchestrator.current_summary
    if summary is None:
        raise HTTPException(status_code=404, detail="No summary yet")
    return render_plain_text(summary, include_metadata=include_metadata)


@router.post("/api/sessions/{session_id}/{action}", response_model=SessionResponse)
async def session_action(
    session_id: str,
    action: SessionAction,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionResponse:
    """Pause, resume, stop or clear a session."""
    session = _get_session(registry, session_id)
    if action is SessionAction.PAUSE:
        session.pause()
    elif action is SessionAction.RESUME:
        session.resume()
    elif action is SessionAction.STOP:
        session.stop()
    else:
        session.clear()
    return SessionResponse.from_session(session)


@router.get("/api/scheduler/status", response_model=SchedulerStatusResponse)
async def scheduler_status(registry: SessionRegistry = Depends(get_registry)) -> SchedulerStatusResponse:
    return SchedulerStatusResponse.from_status(registry.scheduler.status())
