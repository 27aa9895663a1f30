"""Prompt construction for fresh, incremental and consolidation requests.

Everything here is pure string building: no I/O, so prompts can be asserted
on directly in tests.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from src.summarization.models import SummaryFragment

OUTPUT_CONTRACT = """Respond with valid JSON in this exact structure:
{{
  "content": "Main summary text ({min_words}-{max_words} words)",
  "keyPoints": ["Specific discussion point"],
  "decisions": ["Concrete decision that was made"],
  "actionItems": ["Specific action with context"],
  "quotes": ["Important statement without speaker attribution"],
  "topics": [
    {{
      "name": "Topic name",
      "points": ["Point related to this topic"]
    }}
  ]
}}

Field meanings:
- content: a narrative summary of {min_words}-{max_words} words (strictly enforced).
- keyPoints: the most important discussion points.
- decisions: conclusions or agreements actually reached.
- actionItems: tasks someone committed to, with owner or deadline when stated.
- quotes: verbatim notable statements with any speaker names removed.
- topics: distinct discussion topics, each with the points raised under it.
Use empty arrays for fields with nothing to report.

Provide only the JSON response without markdown formatting or additional commentary."""

FRESH_PREAMBLE = (
    "Role: You are an expert meeting summarizer and note-taker specializing in "
    "real-time meeting analysis.\n"
    "Task: Analyze this meeting transcript segment and create a structured summary.\n"
    "Context: This is a live speech-recognition transcript without speaker attribution, "
    "so wording may be imperfect.\n\n"
    "Requirements:\n"
    "1. Identify key discussion points, decisions and action items accurately.\n"
    "2. Segment the discussion into topic-based sections.\n"
    "3. Extract important quotes WITHOUT any speaker names or identifiers.\n"
    "4. Focus on substance rather than conversational flow."
)

INCREMENTAL_PREAMBLE = (
    "Role: You are an expert meeting summarizer updating a real-time summary.\n"
    "Task: Update the existing summary with new transcript content while keeping it coherent.\n\n"
    "Requirements:\n"
    "1. Incorporate the new information into the narrative.\n"
    "2. Merge new key points with existing ones, avoiding duplicates.\n"
    "3. Keep every existing decision and action item and add new ones.\n"
    "4. Add new important quotes (without speaker attribution).\n"
    "5. Update the topic segmentation if new topics emerge."
)

CONSOLIDATION_PREAMBLE = (
    "Role: You are an expert meeting summarizer.\n"
    "Task: Consolidate these meeting summary segments into one cohesive final summary.\n\n"
    "Requirements:\n"
    "1. Merge and deduplicate key points, decisions and action items.\n"
    "2. Keep the most important quotes.\n"
    "3. Ensure logical flow across the segments."
)


class PromptComposer:
    """Render chunks and summaries into prompts for the generation service."""

    def __init__(self, min_words: int = 150, max_words: int = 200) -> None:
        self.min_words = min_words
        self.max_words = max_words

    def output_contract(self) -> str:
        return OUTPUT_CONTRACT.format(min_words=self.min_words, max_words=self.max_words)

    def compose_fresh(self, chunk_text: str, custom_instructions: str | None = None) -> str:
        """Prompt for a full structured summary of standalone text.

        Custom instructions replace the default preamble, but the output
        contract is always appended so the response stays parseable.
        """
        preamble = custom_instructions.strip() if custom_instructions and custom_instructions.strip() else FRESH_PREAMBLE
        return (
            f"{preamble}\n\n"
            f"{self.output_contract()}\n\n"
            f"Transcript segment to analyze:\n\"\"\"\n{chunk_text.strip()}\n\"\"\""
        )

    def compose_incremental(
        self,
        new_chunk_text: str,
        previous_summary: SummaryFragment,
        custom_instructions: str | None = None,
    ) -> str:
        """Prompt asking the model to fold new text into the previous summary."""
        previous = json.dumps(previous_summary.to_dict(), ensure_ascii=False, indent=2)
        parts = [INCREMENTAL_PREAMBLE]
        if custom_instructions and custom_instructions.strip():
            parts.append(f"Additional instructions from the user:\n{custom_instructions.strip()}")
        parts.append(f"PREVIOUS SUMMARY:\n{previous}")
        parts.append(f"NEW TRANSCRIPT CONTENT:\n\"\"\"\n{new_chunk_text.strip()}\n\"\"\"")
        parts.append(self.output_contract())
        return "\n\n".join(parts)

    def compose_consolidation(self, fragments: Sequence[SummaryFragment]) -> str:
        """Prompt asking the model to merge several chunk summaries into one."""
        segments = "\n\n".join(
            f"Segment {i + 1}:\n{json.dumps(f.to_dict(), ensure_ascii=False)}"
            for i, f in enumerate(fragments)
        )
        return (
            f"{CONSOLIDATION_PREAMBLE}\n\n"
            f"{self.output_contract()}\n\n"
            f"Summary segments to consolidate:\n{segments}"
        )
