"""Incremental chunking of final transcript segments for model context windows."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from src.ingestion.models import Chunk, TranscriptSegment
from src.pipeline_config import ChunkingConfig

logger = logging.getLogger(__name__)


def tail_words(text: str, count: int) -> str:
    """Return the last *count* whitespace-separated words of *text*."""
    if count <= 0:
        return ""
    words = text.split()
    return " ".join(words[-count:])


class ChunkBuilder:
    """Group final segments into bounded, overlapping chunks.

    A chunk closes when its duration reaches ``target_duration_ms`` or when
    adding another segment would push its text past ``max_chunk_chars``,
    whichever happens first. Every chunk after the first carries the last
    ``overlap_words`` words of its predecessor as ``overlap_prefix``.

    A segment whose text alone exceeds the size cap is emitted as its own
    chunk immediately.
    """

    def __init__(self, config: ChunkingConfig | None = None, overlap_prefix: str = "") -> None:
        self.config = config or ChunkingConfig()
        self._segments: list[TranscriptSegment] = []
        self._chars = 0
        self._overlap_prefix = tail_words(overlap_prefix, self.config.overlap_words)
        self._next_index = 0

    @property
    def pending_segments(self) -> tuple[TranscriptSegment, ...]:
        return tuple(self._segments)

    @property
    def chunks_emitted(self) -> int:
        return self._next_index

    def add_final_segment(self, segment: TranscriptSegment) -> list[Chunk]:
        """Accumulate a final segment; return any chunks closed as a result."""
        if not segment.is_final:
            logger.debug("Skipping non-final segment %s", segment.id)
            return []
        text = segment.text.strip()
        if not text:
            return []

        emitted: list[Chunk] = []
        seg_chars = len(text)

        if seg_chars > self.config.max_chunk_chars:
            if self._segments:
                emitted.append(self._close())
            self._segments.append(segment)
            self._chars = seg_chars
            emitted.append(self._close(oversized=True))
            return emitted

        # +1 for the joining space
        projected = self._chars + seg_chars + (1 if self._segments else 0)
        if self._segments and projected > self.config.max_chunk_chars:
            emitted.append(self._close())
            projected = seg_chars

        self._segments.append(segment)
        self._chars = projected

        if self._current_duration() >= self.config.target_duration_ms:
            emitted.append(self._close())
        return emitted

    def flush(self) -> Chunk | None:
        """Force-close the current partial chunk (end of session or cycle)."""
        if not self._segments:
            return None
        return self._close()

    def reset(self) -> None:
        self._segments.clear()
        self._chars = 0
        self._overlap_prefix = ""
        self._next_index = 0

    def _current_duration(self) -> int:
        if not self._segments:
            return 0
        return self._segments[-1].end_ms - self._segments[0].timestamp_ms

    def _close(self, oversized: bool = False) -> Chunk:
        segments = tuple(self._segments)
        chunk = Chunk(
            segments=segments,
            text=" ".join(s.text.strip() for s in segments),
            start_ms=segments[0].timestamp_ms,
            end_ms=max(s.end_ms for s in segments),
            overlap_prefix=self._overlap_prefix,
            chunk_index=self._next_index,
            oversized=oversized,
        )
        self._next_index += 1
        self._overlap_prefix = tail_words(chunk.prompt_text, self.config.overlap_words)
        self._segments = []
        self._chars = 0
        logger.info(
            "Chunk %d closed: %d segments, %d chars, %dms",
            chunk.chunk_index,
            len(segments),
            len(chunk.text),
            chunk.duration_ms,
        )
        return chunk


def build_chunks(
    segments: Iterable[TranscriptSegment],
    config: ChunkingConfig | None = None,
    overlap_prefix: str = "",
) -> list[Chunk]:
    """Chunk a batch of final segments in one pass, flushing the remainder.

    Args:
        segments: Final segments in append order.
        config: Chunk bounds; defaults to :class:`ChunkingConfig`.
        overlap_prefix: Context carried over from text summarized earlier.

    Returns:
        Chunks in append order.
    """
    builder = ChunkBuilder(config, overlap_prefix=overlap_prefix)
    chunks: list[Chunk] = []
    for segment in segments:
        chunks.extend(builder.add_final_segment(segment))
    last = builder.flush()
    if last is not None:
        chunks.append(last)
    return chunks
