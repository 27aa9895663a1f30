"""Ordered store of interim and final transcript segments for one session."""

from __future__ import annotations

import logging
import math

from src.ingestion.models import TranscriptSegment, count_words, new_segment_id

logger = logging.getLogger(__name__)

# Confidence assigned when text is finalized without a recognizer score
# (e.g. lingering interim text flushed on stop).
DEFAULT_FINALIZE_CONFIDENCE = 0.8


def _clamp_confidence(value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def _clamp_ms(value: int | float | None) -> int:
    if value is None:
        return 0
    try:
        value = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, value)


def _normalize(text: str) -> str:
    return " ".join(text.split()).lower()


class SegmentStore:
    """Holds the ordered transcript segments of a session.

    At most one interim segment exists at a time. Final segments are
    append-only and never mutated. Malformed input (empty text, out-of-range
    confidence, negative times) is clamped or ignored rather than rejected.

    For long sessions, final segments that have already been summarized are
    archived once more than ``max_retained`` finals are held; segments still
    awaiting summarization are never dropped.
    """

    def __init__(self, max_retained: int = 2_000) -> None:
        self.max_retained = max(1, max_retained)
        self._finals: list[TranscriptSegment] = []
        self._interim: TranscriptSegment | None = None
        self._archived = 0
        self._summarized = 0  # absolute index of the first unsummarized final
        self._total_words = 0

    # ------------------------------------------------------------------
    # Recognition input
    # ------------------------------------------------------------------

    def append_interim(
        self, text: str, confidence: float, timestamp_ms: int
    ) -> TranscriptSegment | None:
        """Replace the current interim segment with a new one.

        Returns the interim segment now in flight, or ``None`` if the event
        was ignored (empty text or a late interim for an already-final
        utterance).
        """
        text = (text or "").strip()
        if not text:
            return None
        timestamp_ms = _clamp_ms(timestamp_ms)

        last = self._finals[-1] if self._finals else None
        if self._interim is None and last is not None:
            if timestamp_ms < last.timestamp_ms or _normalize(text) == _normalize(last.text):
                logger.debug("Ignoring late interim for finalized utterance: %r", text[:40])
                return None

        segment_id = self._interim.id if self._interim is not None else new_segment_id()
        self._interim = TranscriptSegment(
            id=segment_id,
            text=text,
            timestamp_ms=timestamp_ms,
            confidence=_clamp_confidence(confidence),
            is_final=False,
        )
        return self._interim

    def finalize(
        self,
        text: str,
        confidence: float,
        timestamp_ms: int,
        duration_ms: int | None = None,
    ) -> TranscriptSegment | None:
        """Commit a final segment, consuming the interim one if it belongs to it.

        Finalizing the same text twice in a row is a no-op: the second call
        returns the already-committed segment. When ``duration_ms`` is not
        supplied it is inferred from the gap since the previous final segment.
        """
        text = (text or "").strip()
        interim = self._interim
        if not text and interim is not None:
            text = interim.text
        if not text:
            return None

        timestamp_ms = _clamp_ms(timestamp_ms)
        last = self._finals[-1] if self._finals else None

        if interim is None and last is not None and _normalize(text) == _normalize(last.text):
            logger.debug("Duplicate finalize ignored for segment %s", last.id)
            return last

        # A final older than the pending interim belongs to an earlier
        # utterance; keep the newer interim in flight.
        belongs_to_interim = interim is not None and not (
            timestamp_ms < interim.timestamp_ms and _normalize(text) != _normalize(interim.text)
        )

        if last is not None and timestamp_ms < last.timestamp_ms:
            timestamp_ms = last.timestamp_ms
        if duration_ms is None:
            duration_ms = timestamp_ms - last.timestamp_ms if last is not None else 0

        segment = TranscriptSegment(
            id=interim.id if belongs_to_interim and interim is not None else new_segment_id(),
            text=text,
            timestamp_ms=timestamp_ms,
            confidence=_clamp_confidence(confidence),
            is_final=True,
            duration_ms=_clamp_ms(duration_ms),
        )
        self._finals.append(segment)
        self._total_words += count_words(text)
        if belongs_to_interim:
            self._interim = None
        self._compact()
        return segment

    def finalize_interim(self, confidence: float = DEFAULT_FINALIZE_CONFIDENCE) -> TranscriptSegment | None:
        """Promote any lingering interim text to a final segment."""
        if self._interim is None:
            return None
        interim = self._interim
        return self.finalize(interim.text, confidence, interim.timestamp_ms)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_final_segments(self) -> tuple[TranscriptSegment, ...]:
        """Retained final segments in append order."""
        return tuple(self._finals)

    def get_interim(self) -> TranscriptSegment | None:
        return self._interim

    @property
    def final_count(self) -> int:
        """Number of final segments ever committed, archived ones included."""
        return self._archived + len(self._finals)

    @property
    def total_words(self) -> int:
        return self._total_words

    @property
    def archived_count(self) -> int:
        return self._archived

    @property
    def summarized_count(self) -> int:
        return self._summarized

    def unsummarized_segments(self) -> tuple[TranscriptSegment, ...]:
        """Final segments not yet included in any summary."""
        start = max(0, self._summarized - self._archived)
        return tuple(self._finals[start:])

    def mark_summarized(self, through: int) -> None:
        """Record that every final up to absolute index ``through`` is summarized."""
        self._summarized = max(self._summarized, min(through, self.final_count))
        self._compact()

    def clear(self) -> None:
        """Reset both lists (session clear/restart)."""
        self._finals.clear()
        self._interim = None
        self._archived = 0
        self._summarized = 0
        self._total_words = 0

    def _compact(self) -> None:
        excess = len(self._finals) - self.max_retained
        if excess <= 0:
            return
        droppable = min(excess, self._summarized - self._archived)
        if droppable <= 0:
            return
        del self._finals[:droppable]
        self._archived += droppable
        logger.info("Archived %d summarized segments (%d total)", droppable, self._archived)
