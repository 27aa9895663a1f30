"""Supabase persistence for finished running summaries."""

from __future__ import annotations

import logging
from typing import Any

from supabase import Client, create_client

from src.config import settings
from src.pipeline.events import EventBus, GenerationSucceeded
from src.summarization.models import RunningSummary

logger = logging.getLogger(__name__)


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


def summary_row(session_id: str, summary: RunningSummary) -> dict[str, Any]:
    """Row for the ``summaries`` table; list fields are stored as JSON."""
    return {
        "id": summary.id,
        "session_id": session_id,
        "content": summary.content,
        "key_points": list(summary.key_points),
        "decisions": list(summary.decisions),
        "action_items": list(summary.action_items),
        "quotes": list(summary.quotes),
        "topics": [topic.to_dict() for topic in summary.topics],
        "generated_at_ms": summary.generated_at_ms,
        "processing_time_ms": summary.processing_time_ms,
        "is_incremental": summary.is_incremental,
        "previous_id": summary.previous_id,
        "segment_count": summary.segment_count,
    }


def store_summary(client: Client, session_id: str, summary: RunningSummary) -> str:
    """Insert one summary snapshot and return its id."""
    result = client.table("summaries").insert(summary_row(session_id, summary)).execute()
    return str(result.data[0]["id"]) if result.data else summary.id


class SupabaseSummarySink:
    """Persist every successful summary of the sessions it is attached to.

    Storage failures are logged and swallowed so persistence can never
    interrupt a live session.
    """

    def __init__(self, client: Client | None = None) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def attach(self, events: EventBus, session_id: str) -> None:
        events.subscribe(GenerationSucceeded, self.on_summary)

    def on_summary(self, event: GenerationSucceeded) -> None:
        try:
            store_summary(self.client, event.session_id, event.summary)
        except Exception:
            logger.exception("Failed to persist summary %s for session %s", event.summary.id, event.session_id)
        else:
            logger.info("Persisted summary %s for session %s", event.summary.id, event.session_id)
