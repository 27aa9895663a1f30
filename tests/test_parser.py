"""Tests for ResponseParser and its parsing tiers."""

from __future__ import annotations

import json

import pytest

from src.summarization.models import SummaryFragment, Topic
from src.summarization.parser import (
    ResponseParser,
    clamp_words,
    extract_json_object,
    parse_heuristic,
    parse_sections,
    strip_speaker_attribution,
)

parser = ResponseParser()


# ---------------------------------------------------------------------------
# Structured JSON tier
# ---------------------------------------------------------------------------


class TestStructured:
    def test_valid_json(self) -> None:
        raw = json.dumps(
            {
                "content": "The team agreed on the launch plan.",
                "keyPoints": ["Launch is on track"],
                "decisions": ["Ship v2 on Friday"],
                "actionItems": ["Alice updates the docs by Thursday"],
                "quotes": ["We are ready"],
                "topics": [{"name": "Launch", "points": ["Timeline confirmed"]}],
            }
        )
        fragment = parser.parse(raw)
        assert fragment.content == "The team agreed on the launch plan."
        assert fragment.key_points == ["Launch is on track"]
        assert fragment.decisions == ["Ship v2 on Friday"]
        assert fragment.action_items == ["Alice updates the docs by Thursday"]
        assert fragment.quotes == ["We are ready"]
        assert fragment.topics == [Topic("Launch", ["Timeline confirmed"])]

    def test_code_fenced_json_with_surrounding_prose(self) -> None:
        raw = 'Here is the summary:\n```json\n{"content": "Short.", "decisions": ["Go"]}\n```\nThanks!'
        fragment = parser.parse(raw)
        assert fragment.content == "Short."
        assert fragment.decisions == ["Go"]
        assert fragment.key_points == []

    def test_snake_case_keys_are_accepted(self) -> None:
        raw = json.dumps({"content": "x", "key_points": ["a"], "action_items": ["b"]})
        fragment = parser.parse(raw)
        assert fragment.key_points == ["a"]
        assert fragment.action_items == ["b"]

    def test_missing_fields_become_empty_lists(self) -> None:
        fragment = parser.parse('{"content": "Only content"}')
        assert fragment.decisions == []
        assert fragment.topics == []

    def test_content_is_clamped_to_200_words(self) -> None:
        long_content = " ".join(f"word{i}" for i in range(250))
        fragment = parser.parse(json.dumps({"content": long_content}))
        assert fragment.content.endswith("...")
        assert len(fragment.content.split()) == 200

    def test_speaker_names_are_removed_from_quotes(self) -> None:
        raw = json.dumps(
            {
                "content": "x",
                "quotes": ["John: We must ship this week", '"Quality first" - Jane Doe', "Speaker 2: agreed then"],
            }
        )
        fragment = parser.parse(raw)
        assert fragment.quotes == ["We must ship this week", "Quality first", "agreed then"]

    def test_topics_normalization(self) -> None:
        raw = json.dumps({"content": "x", "topics": ["Budget", {"points": ["p1"]}, {"title": "Hiring"}]})
        fragment = parser.parse(raw)
        assert [t.name for t in fragment.topics] == ["Budget", "Unnamed Topic", "Hiring"]
        assert fragment.topics[1].points == ["p1"]

    def test_object_list_items_are_flattened(self) -> None:
        raw = json.dumps({"content": "x", "actionItems": [{"text": "Send notes"}, {"description": "Book room"}]})
        assert parser.parse(raw).action_items == ["Send notes", "Book room"]


class TestExtractJsonObject:
    def test_ignores_braces_inside_strings(self) -> None:
        text = 'noise {"content": "uses {braces} inside", "quotes": []} trailing }'
        region = extract_json_object(text)
        assert json.loads(region)["content"] == "uses {braces} inside"

    def test_unbalanced_returns_none(self) -> None:
        assert extract_json_object('{"content": "never closed"') is None


# ---------------------------------------------------------------------------
# Fallback tiers
# ---------------------------------------------------------------------------


SECTIONED = """**MAIN SUMMARY**
The team reviewed the launch.

**KEY POINTS**
- Launch is on track
- Budget approved

**DECISIONS MADE**
- Ship v2 on Friday

**ACTION ITEMS**
- Alice to update the docs

**IMPORTANT QUOTES**
"We are ready to go"

**TOPICS DISCUSSED**
Launch planning
- Timeline confirmed
"""


class TestSections:
    def test_sectioned_response(self) -> None:
        fragment = parser.parse(SECTIONED)
        assert fragment.content == "The team reviewed the launch."
        assert fragment.key_points == ["Launch is on track", "Budget approved"]
        assert fragment.decisions == ["Ship v2 on Friday"]
        assert fragment.action_items == ["Alice to update the docs"]
        assert fragment.quotes == ["We are ready to go"]
        assert fragment.topics == [Topic("Launch planning", ["Timeline confirmed"])]

    def test_markdown_headers(self) -> None:
        raw = "## Summary\nShort recap.\n## Decisions\n- Hire two engineers\n"
        fragment = parse_sections(raw)
        assert fragment is not None
        assert fragment.content == "Short recap."
        assert fragment.decisions == ["Hire two engineers"]

    def test_no_headers_returns_none(self) -> None:
        assert parse_sections("just some prose\nand more prose") is None


class TestHeuristic:
    def test_plain_text_lines_are_classified(self) -> None:
        raw = (
            "The meeting covered the roadmap.\n"
            "- Roadmap reviewed\n"
            "We decided to delay the beta.\n"
            "John will send the notes.\n"
            '"Quality matters most"\n'
        )
        fragment = parser.parse(raw)
        assert fragment.content == "The meeting covered the roadmap."
        assert fragment.key_points == ["Roadmap reviewed"]
        assert fragment.decisions == ["We decided to delay the beta."]
        assert fragment.action_items == ["John will send the notes."]
        assert fragment.quotes == ["Quality matters most"]

    def test_truncated_json_salvages_content(self) -> None:
        raw = '{"content": "Partial summary here", "keyPoints": ["a", '
        fragment = parser.parse(raw)
        assert fragment.content == "Partial summary here"
        assert fragment.key_points == []

    def test_truncated_json_keeps_completed_lists(self) -> None:
        raw = (
            '{"content": "Release planning.", "decisions": ["Ship v2 on Friday"], '
            '"actionItems": ["Alice will send notes"], "topics": [{"name": "Release", "points": ["Friday"]}], '
            '"keyPoints": ["v2 scope'
        )
        fragment = parser.parse(raw)
        assert fragment.content == "Release planning."
        assert fragment.decisions == ["Ship v2 on Friday"]
        assert fragment.action_items == ["Alice will send notes"]
        assert fragment.topics == [Topic("Release", ["Friday"])]
        assert fragment.key_points == []

    def test_heuristic_caps(self) -> None:
        raw = "\n".join(f"- point {i}" for i in range(15))
        assert len(parse_heuristic(raw).key_points) == 10


class TestNeverThrows:
    @pytest.mark.parametrize(
        "raw",
        ["", "   ", "{", "}", "{{}}", "null", "[1, 2]", "```json\n```", "\x00\x01", '{"content": 5}', "::::"],
    )
    def test_returns_well_formed_fragment(self, raw: str) -> None:
        fragment = parser.parse(raw)
        assert isinstance(fragment, SummaryFragment)
        for field_value in (fragment.key_points, fragment.decisions, fragment.action_items, fragment.quotes):
            assert isinstance(field_value, list)
        assert isinstance(fragment.topics, list)
        assert isinstance(fragment.content, str)

    def test_non_string_input(self) -> None:
        assert parser.parse(None).is_empty()
        assert parser.parse(42).is_empty()


class TestHelpers:
    def test_clamp_words_within_limit(self) -> None:
        assert clamp_words("  a b c  ", 5) == "a b c"

    def test_clamp_words_over_limit(self) -> None:
        assert clamp_words("a b c d e", 3) == "a b c..."

    def test_strip_speaker_keeps_plain_sentences(self) -> None:
        assert strip_speaker_attribution("We need this: now") == "We need this: now"
