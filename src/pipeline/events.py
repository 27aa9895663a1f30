"""Typed pipeline events and a small synchronous event bus."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from src.ingestion.models import TranscriptSegment
from src.pipeline_config import GenerationMode
from src.summarization.models import RunningSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineEvent:
    session_id: str


@dataclass(frozen=True)
class SegmentFinalized(PipelineEvent):
    segment: TranscriptSegment


@dataclass(frozen=True)
class GenerationStarted(PipelineEvent):
    mode: GenerationMode
    segment_count: int
    word_count: int
    estimated_duration_ms: int


@dataclass(frozen=True)
class GenerationProgress(PipelineEvent):
    """Cosmetic progress report; carries no correctness guarantee."""

    percent: int
    eta_ms: int
    stage: str


@dataclass(frozen=True)
class GenerationSucceeded(PipelineEvent):
    summary: RunningSummary


@dataclass(frozen=True)
class GenerationFailed(PipelineEvent):
    message: str
    permanent: bool = False
    cancelled: bool = False


E = TypeVar("E", bound=PipelineEvent)
Listener = Callable[[Any], None]


class EventBus:
    """Deliver events to listeners registered per event type.

    Listeners registered for :class:`PipelineEvent` receive every event.
    A listener that raises is logged and skipped; it never breaks the
    pipeline or other listeners.
    """

    def __init__(self) -> None:
        self._listeners: dict[type[PipelineEvent], list[Listener]] = defaultdict(list)

    def subscribe(self, event_type: type[E], listener: Callable[[E], None]) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners[event_type].append(listener)
        return lambda: self.unsubscribe(event_type, listener)

    def unsubscribe(self, event_type: type[PipelineEvent], listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def publish(self, event: PipelineEvent) -> None:
        for event_type, listeners in list(self._listeners.items()):
            if not isinstance(event, event_type):
                continue
            for listener in list(listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Listener for %s failed", type(event).__name__)
