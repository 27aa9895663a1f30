"""Tests for SegmentStore: interim/final handling, idempotence and compaction."""

from __future__ import annotations

import pytest

from src.ingestion.models import TranscriptSegment
from src.ingestion.segment_store import SegmentStore


class TestInterim:
    def test_append_interim_creates_pending_segment(self) -> None:
        store = SegmentStore()
        interim = store.append_interim("hello every", 0.7, 100)
        assert interim is not None
        assert interim.is_final is False
        assert store.get_interim() == interim
        assert store.get_final_segments() == ()

    def test_interim_updates_keep_the_same_id(self) -> None:
        store = SegmentStore()
        first = store.append_interim("hello", 0.5, 100)
        second = store.append_interim("hello everyone", 0.6, 150)
        assert first is not None and second is not None
        assert first.id == second.id
        assert store.get_interim().text == "hello everyone"

    def test_empty_interim_is_ignored(self) -> None:
        store = SegmentStore()
        assert store.append_interim("   ", 0.9, 0) is None
        assert store.get_interim() is None

    def test_late_interim_for_finalized_text_is_ignored(self) -> None:
        store = SegmentStore()
        store.finalize("hello world", 0.9, 1000)
        assert store.append_interim("hello world", 0.9, 1000) is None
        assert store.append_interim("older words", 0.9, 500) is None
        assert store.get_interim() is None


class TestFinalize:
    def test_finalize_consumes_interim(self) -> None:
        store = SegmentStore()
        interim = store.append_interim("we should ship", 0.6, 0)
        final = store.finalize("we should ship it", 0.9, 0)
        assert final is not None
        assert final.is_final is True
        assert final.id == interim.id
        assert store.get_interim() is None
        assert [s.text for s in store.get_final_segments()] == ["we should ship it"]

    def test_finalize_twice_is_idempotent(self) -> None:
        store = SegmentStore()
        store.append_interim("let's ship v2", 0.8, 0)
        first = store.finalize("let's ship v2", 0.9, 0)
        second = store.finalize("let's ship v2", 0.9, 0)
        assert second == first
        assert store.final_count == 1

    def test_finalize_without_text_uses_interim_text(self) -> None:
        store = SegmentStore()
        store.append_interim("pending words", 0.7, 10)
        final = store.finalize("", 0.9, 10)
        assert final is not None
        assert final.text == "pending words"

    def test_finalize_with_nothing_to_commit_returns_none(self) -> None:
        store = SegmentStore()
        assert store.finalize("", 0.9, 0) is None
        assert store.final_count == 0

    def test_confidence_is_clamped(self) -> None:
        store = SegmentStore()
        high = store.finalize("too confident", 1.7, 0)
        low = store.finalize("not confident", -0.2, 10)
        nan = store.finalize("undefined", float("nan"), 20)
        assert high.confidence == 1.0
        assert low.confidence == 0.0
        assert nan.confidence == 0.0

    def test_timestamps_are_clamped_and_monotonic(self) -> None:
        store = SegmentStore()
        store.finalize("first", 0.9, -50)
        store.finalize("second", 0.9, 2000)
        store.finalize("third", 0.9, 1500)
        stamps = [s.timestamp_ms for s in store.get_final_segments()]
        assert stamps == [0, 2000, 2000]

    def test_duration_is_inferred_from_gap(self) -> None:
        store = SegmentStore()
        first = store.finalize("first", 0.9, 1000)
        second = store.finalize("second", 0.9, 2500)
        explicit = store.finalize("third", 0.9, 3000, duration_ms=400)
        assert first.duration_ms == 0
        assert second.duration_ms == 1500
        assert explicit.duration_ms == 400

    def test_out_of_order_final_keeps_newer_interim(self) -> None:
        store = SegmentStore()
        store.append_interim("second utterance", 0.5, 2000)
        final = store.finalize("first utterance", 0.9, 1000)
        assert final is not None
        assert final.text == "first utterance"
        assert store.get_interim() is not None
        assert store.get_interim().text == "second utterance"

    def test_finalize_interim_uses_default_confidence(self) -> None:
        store = SegmentStore()
        store.append_interim("left hanging", 0.3, 500)
        final = store.finalize_interim()
        assert final is not None
        assert final.confidence == 0.8
        assert store.get_interim() is None
        assert store.finalize_interim() is None

    def test_total_words(self) -> None:
        store = SegmentStore()
        store.finalize("one two three", 0.9, 0)
        store.finalize("four five", 0.9, 10)
        assert store.total_words == 5


class TestConfidenceLevel:
    @pytest.mark.parametrize(
        ("confidence", "level"),
        [(0.95, "high"), (0.9, "high"), (0.75, "medium"), (0.5, "low"), (0.2, "very-low")],
    )
    def test_levels(self, confidence: float, level: str) -> None:
        segment = TranscriptSegment(id="s", text="x", timestamp_ms=0, confidence=confidence, is_final=True)
        assert segment.confidence_level == level


class TestSummarizationTracking:
    def test_unsummarized_segments_follow_mark(self) -> None:
        store = SegmentStore()
        for i in range(4):
            store.finalize(f"segment number {i}", 0.9, i * 100)
        assert len(store.unsummarized_segments()) == 4
        store.mark_summarized(3)
        assert [s.text for s in store.unsummarized_segments()] == ["segment number 3"]
        assert store.summarized_count == 3

    def test_mark_summarized_never_moves_backwards(self) -> None:
        store = SegmentStore()
        store.finalize("a", 0.9, 0)
        store.finalize("b", 0.9, 10)
        store.mark_summarized(2)
        store.mark_summarized(1)
        assert store.summarized_count == 2

    def test_compaction_archives_only_summarized_segments(self) -> None:
        store = SegmentStore(max_retained=3)
        for i in range(5):
            store.finalize(f"segment number {i}", 0.9, i * 100)
        # nothing summarized yet, so nothing may be dropped
        assert len(store.get_final_segments()) == 5

        store.mark_summarized(5)
        assert len(store.get_final_segments()) == 3
        assert store.archived_count == 2
        assert store.final_count == 5
        assert store.get_final_segments()[0].text == "segment number 2"

    def test_compaction_keeps_unsummarized_tail(self) -> None:
        store = SegmentStore(max_retained=2)
        for i in range(4):
            store.finalize(f"segment number {i}", 0.9, i * 100)
        store.mark_summarized(1)
        assert store.archived_count == 1
        assert [s.text for s in store.unsummarized_segments()] == [
            "segment number 1",
            "segment number 2",
            "segment number 3",
        ]

    def test_clear_resets_everything(self) -> None:
        store = SegmentStore()
        store.finalize("a b", 0.9, 0)
        store.append_interim("c", 0.5, 10)
        store.mark_summarized(1)
        store.clear()
        assert store.final_count == 0
        assert store.get_interim() is None
        assert store.total_words == 0
        assert store.summarized_count == 0
