"""Merge chunk fragments and running summaries without losing surfaced items."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence

from src.pipeline_config import MergeLimits
from src.summarization.models import RunningSummary, SummaryFragment, Topic
from src.summarization.parser import ResponseParser, clamp_words
from src.summarization.prompts import PromptComposer

logger = logging.getLogger(__name__)

# Submits a prompt through the scheduler and resolves to the raw model text.
GenerateFn = Callable[[str], Awaitable[str]]


def normalize_key(text: str) -> str:
    """Case- and whitespace-insensitive identity used for de-duplication."""
    return " ".join(text.split()).lower()


def union_preserving_order(groups: Iterable[Sequence[str]], cap: int | None = None) -> list[str]:
    """Set-union of string lists keeping first-seen order and original casing."""
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for item in group:
            key = normalize_key(item)
            if not key or key in seen:
                continue
            seen.add(key)
            merged.append(item.strip())
    return merged if cap is None else merged[:cap]


def merge_topics(groups: Iterable[Sequence[Topic]], cap: int | None = None) -> list[Topic]:
    """Union topics by normalized name, unioning the points of matching topics."""
    by_name: dict[str, Topic] = {}
    for group in groups:
        for topic in group:
            key = normalize_key(topic.name)
            if not key:
                continue
            existing = by_name.get(key)
            if existing is None:
                by_name[key] = Topic(name=topic.name.strip(), points=union_preserving_order([topic.points]))
            else:
                existing.points = union_preserving_order([existing.points, topic.points])
    topics = list(by_name.values())
    return topics if cap is None else topics[:cap]


class SummaryMerger:
    """Combine fragments into one, and fold new fragments into a running summary.

    List fields are unioned by normalized text in first-seen order and capped
    per :class:`MergeLimits`. Existing items always come first, so nothing a
    user has already seen is displaced by newer items until a list is full.
    """

    def __init__(
        self,
        limits: MergeLimits | None = None,
        composer: PromptComposer | None = None,
        parser: ResponseParser | None = None,
    ) -> None:
        self.limits = limits or MergeLimits()
        self.composer = composer or PromptComposer(max_words=self.limits.max_content_words)
        self.parser = parser or ResponseParser(self.limits.max_content_words)

    def _merge_lists(self, fragments: Sequence[SummaryFragment]) -> SummaryFragment:
        limits = self.limits
        return SummaryFragment(
            key_points=union_preserving_order((f.key_points for f in fragments), limits.key_points),
            decisions=union_preserving_order((f.decisions for f in fragments), limits.decisions),
            action_items=union_preserving_order((f.action_items for f in fragments), limits.action_items),
            quotes=union_preserving_order((f.quotes for f in fragments), limits.quotes),
            topics=merge_topics((f.topics for f in fragments), limits.topics),
        )

    def merge_many(self, fragments: Sequence[SummaryFragment]) -> SummaryFragment:
        """Merge fragments without a model call: concatenate content, union lists."""
        fragments = [f for f in fragments if f is not None]
        if not fragments:
            return SummaryFragment()
        merged = self._merge_lists(fragments)
        content = " ".join(f.content.strip() for f in fragments if f.content.strip())
        merged.content = clamp_words(content, self.limits.max_content_words)
        return merged

    async def consolidate(
        self, fragments: Sequence[SummaryFragment], generate: GenerateFn | None = None
    ) -> SummaryFragment:
        """Merge fragments, preferring one extra model call to rewrite the narrative.

        Falls back to :meth:`merge_many` when no generator is available or the
        consolidation call fails. List fields are always unioned locally as
        well, so consolidation can only add items, never drop them.
        """
        fragments = [f for f in fragments if f is not None]
        if len(fragments) <= 1 or generate is None:
            return self.merge_many(fragments)

        fallback = self.merge_many(fragments)
        try:
            raw = await generate(self.composer.compose_consolidation(fragments))
        except Exception as exc:
            logger.warning("Consolidation call failed, using merged content: %s", exc)
            return fallback

        consolidated = self.parser.parse(raw)
        merged = self._merge_lists([fallback, consolidated])
        merged.content = consolidated.content or fallback.content
        return merged

    def fold(self, previous: SummaryFragment, new_fragment: SummaryFragment) -> SummaryFragment:
        """Union lists onto ``previous``; the new narrative wins only when non-empty."""
        merged = self._merge_lists([previous, new_fragment])
        content = new_fragment.content.strip() or previous.content
        merged.content = clamp_words(content, self.limits.max_content_words)
        return merged

    def merge_incremental(
        self,
        previous: RunningSummary,
        new_fragment: SummaryFragment,
        *,
        generated_at_ms: int,
        processing_time_ms: int = 0,
        segment_count: int | None = None,
    ) -> RunningSummary:
        """Produce the next running summary from the previous one plus one fragment.

        The new fragment's narrative replaces the previous one when present
        (an incremental model response already folds in the earlier text);
        otherwise the previous narrative is kept.
        """
        return RunningSummary.from_fragment(
            self.fold(previous, new_fragment),
            generated_at_ms=generated_at_ms,
            processing_time_ms=processing_time_ms,
            is_incremental=True,
            previous_id=previous.id,
            segment_count=previous.segment_count if segment_count is None else segment_count,
        )
