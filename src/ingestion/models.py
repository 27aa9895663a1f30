"""Data models for the transcript side of the pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field


def new_segment_id() -> str:
    """Opaque unique token for a transcript segment."""
    return f"segment_{uuid.uuid4().hex[:12]}"


def count_words(text: str) -> int:
    """Whitespace word count (empty text counts as zero)."""
    return len(text.split())


@dataclass(frozen=True)
class TranscriptSegment:
    """One unit of recognized speech.

    Interim segments are replaced wholesale while an utterance is still being
    recognized; final segments are immutable once appended.
    """

    id: str
    text: str
    timestamp_ms: int
    confidence: float
    is_final: bool
    duration_ms: int = 0

    @property
    def end_ms(self) -> int:
        return self.timestamp_ms + self.duration_ms

    @property
    def word_count(self) -> int:
        return count_words(self.text)

    @property
    def confidence_level(self) -> str:
        if self.confidence >= 0.9:
            return "high"
        if self.confidence >= 0.7:
            return "medium"
        if self.confidence >= 0.5:
            return "low"
        return "very-low"


@dataclass(frozen=True)
class RecognitionEvent:
    """A raw result pushed by the speech-recognition collaborator."""

    text: str
    confidence: float = 0.0
    timestamp_ms: int = 0
    is_final: bool = False
    duration_ms: int | None = None


@dataclass
class Chunk:
    """A bounded group of final segments prepared for one model call.

    ``segments`` references the store's segment objects rather than copying
    their text. ``text`` covers only this chunk's own segments; the tail of the
    previous chunk travels separately in ``overlap_prefix``.
    """

    segments: tuple[TranscriptSegment, ...]
    text: str
    start_ms: int
    end_ms: int
    overlap_prefix: str = ""
    chunk_index: int = 0
    oversized: bool = field(default=False)

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    @property
    def prompt_text(self) -> str:
        """Text sent to the model: overlap context followed by the new text."""
        if self.overlap_prefix:
            return f"{self.overlap_prefix} {self.text}".strip()
        return self.text
