"""Turn raw model text into a validated :class:`SummaryFragment`.

Parsing is tiered:

1. :func:`parse_structured`: strip code fences, take the first balanced
   ``{...}`` region and decode it as JSON.
2. :func:`parse_sections`: headed plain-text sections (``**KEY POINTS**``,
   ``## Decisions`` ...), which custom instructions tend to produce.
3. :func:`parse_heuristic`: a line scanner that always yields something.

:meth:`ResponseParser.parse` never raises: malformed input degrades to a
lower-quality fragment instead of failing the generation cycle.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from src.summarization.models import SummaryFragment, Topic

logger = logging.getLogger(__name__)

ELLIPSIS = "..."

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\n?")
_LEADING_SPEAKER_RE = re.compile(
    r"^\s*(?:[Ss]peaker\s*\d+|[A-Za-z][\w.'-]*(?:\s+(?:[A-Z][\w.'-]*|\d+)){0,2})\s*:\s+"
)
_TRAILING_SPEAKER_RE = re.compile(
    r"\s+[-–—]{1,2}\s*[A-Z][\w.'-]*(?:\s+[A-Z][\w.'-]*){0,2}\s*$"
)
_SURROUNDING_QUOTES_RE = re.compile(r'^["“”\'](.*)["“”\']$', re.DOTALL)
_BULLET_RE = re.compile(r"^\s*(?:[-*•‣◦]|\d+[.)])\s+")
_QUOTED_SPAN_RE = re.compile(r'["“]([^"“”]+)["”]')

_DECISION_WORDS = ("decision", "decided", "agreed", "resolved")
_ACTION_WORDS = ("action", "will ", "todo", "to-do", "follow up", "follow-up", "assigned")

# Caps for the heuristic tier only; merged summaries use MergeLimits.
_HEURISTIC_CAPS = {"key_points": 10, "decisions": 5, "action_items": 5, "quotes": 3}

_SECTION_ALIASES: dict[str, tuple[str, ...]] = {
    "content": ("main summary", "summary", "overview", "executive summary"),
    "key_points": ("key points", "main points", "important points", "highlights"),
    "decisions": ("decisions made", "decisions", "key decisions"),
    "action_items": ("action items", "actions", "tasks", "todo", "next steps"),
    "quotes": ("important quotes", "notable quotes", "quotes"),
    "topics": ("topics discussed", "topics", "themes"),
}

_FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "key_points": ("keyPoints", "key_points"),
    "decisions": ("decisions",),
    "action_items": ("actionItems", "action_items"),
    "quotes": ("quotes",),
    "topics": ("topics",),
}


# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------


def clamp_words(content: str, max_words: int = 200) -> str:
    """Clamp *content* to ``max_words`` words, marking truncation with an ellipsis."""
    if not isinstance(content, str):
        return ""
    words = content.split()
    if len(words) <= max_words:
        return content.strip()
    return " ".join(words[:max_words]) + ELLIPSIS


def strip_speaker_attribution(quote: str) -> str:
    """Remove ``Name:`` prefixes, ``- Name`` suffixes and wrapping quote marks."""
    if not isinstance(quote, str):
        return ""
    text = quote.strip()
    text = _LEADING_SPEAKER_RE.sub("", text, count=1).strip()
    match = _SURROUNDING_QUOTES_RE.match(text)
    if match:
        text = match.group(1).strip()
    text = _TRAILING_SPEAKER_RE.sub("", text).strip()
    match = _SURROUNDING_QUOTES_RE.match(text)
    if match:
        text = match.group(1).strip()
    return text


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items: list[str] = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("content") or item.get("text") or item.get("description") or ""
        if item is None or isinstance(item, (list, tuple, dict)):
            continue
        text = str(item).strip()
        if text:
            items.append(text)
    return items


def normalize_topics(value: Any) -> list[Topic]:
    """Coerce the model's topics field into ``Topic`` objects.

    Bare strings become topics without points; objects keep their ``name``
    (``"Unnamed Topic"`` when missing) and string ``points``.
    """
    if not isinstance(value, (list, tuple)):
        return []
    topics: list[Topic] = []
    for entry in value:
        if isinstance(entry, str):
            if entry.strip():
                topics.append(Topic(name=entry.strip()))
        elif isinstance(entry, dict):
            name = entry.get("name") or entry.get("title") or entry.get("topic") or "Unnamed Topic"
            topics.append(Topic(name=str(name).strip() or "Unnamed Topic", points=_string_list(entry.get("points"))))
    return topics


def _sanitize_quotes(quotes: list[str]) -> list[str]:
    return [q for q in (strip_speaker_attribution(q) for q in quotes) if q]


def _build_fragment(fields: dict[str, Any], max_words: int) -> SummaryFragment:
    return SummaryFragment(
        content=clamp_words(fields.get("content") if isinstance(fields.get("content"), str) else "", max_words),
        key_points=_string_list(fields.get("key_points")),
        decisions=_string_list(fields.get("decisions")),
        action_items=_string_list(fields.get("action_items")),
        quotes=_sanitize_quotes(_string_list(fields.get("quotes"))),
        topics=normalize_topics(fields.get("topics")),
    )


# ---------------------------------------------------------------------------
# Tier 1: structured JSON
# ---------------------------------------------------------------------------


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers (```json ... ```) around a payload."""
    return _FENCE_RE.sub("", text).replace("```", "").strip()


def _closing_index(text: str, start: int) -> int | None:
    """Index of the bracket that closes ``text[start]``, or None if it never closes.

    Brackets inside JSON string literals are ignored.
    """
    opening = text[start]
    closing = "}" if opening == "{" else "]"
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opening:
            depth += 1
        elif char == closing:
            depth -= 1
            if depth == 0:
                return i
    return None


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` region of *text*, or None."""
    start = text.find("{")
    if start == -1:
        return None
    end = _closing_index(text, start)
    return None if end is None else text[start : end + 1]


def parse_structured(raw: str, max_words: int = 200) -> SummaryFragment | None:
    """Decode a JSON summary; return None if no decodable object is present."""
    region = extract_json_object(strip_code_fences(raw))
    if region is None:
        return None
    try:
        data = json.loads(region)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    fields: dict[str, Any] = {"content": data.get("content") or data.get("summary") or ""}
    for name, keys in _FIELD_KEYS.items():
        fields[name] = next((data[k] for k in keys if k in data), None)
    return _build_fragment(fields, max_words)


# ---------------------------------------------------------------------------
# Tier 2: headed sections
# ---------------------------------------------------------------------------


def _section_for_header(line: str) -> str | None:
    stripped = line.strip()
    if not stripped:
        return None
    looks_like_header = (
        stripped.startswith("#")
        or stripped.startswith("**")
        or re.match(r"^\d+[.)]\s*\*\*", stripped) is not None
        or stripped.endswith(":")
        or (stripped.isupper() and len(stripped) <= 40)
    )
    if not looks_like_header:
        return None
    label = re.sub(r"^\d+[.)]\s*", "", stripped)
    label = re.sub(r"^[#*\s]+|[*:\s]+$", "", label)
    label = re.sub(r"[*]+", "", label).strip().lower()
    # "**KEY POINTS**: List the most ..." style headers carry a description
    label = label.split(":", 1)[0].strip()
    for section, aliases in _SECTION_ALIASES.items():
        if label in aliases:
            return section
    return None


def _list_items(lines: list[str]) -> list[str]:
    bulleted = [_BULLET_RE.sub("", ln).strip() for ln in lines if _BULLET_RE.match(ln)]
    if bulleted:
        return [b for b in bulleted if b]
    return [ln.strip() for ln in lines if ln.strip()]


def _quote_items(lines: list[str]) -> list[str]:
    spans = _QUOTED_SPAN_RE.findall("\n".join(lines))
    if spans:
        return [s.strip() for s in spans if s.strip()]
    return _list_items(lines)


def _topic_items(lines: list[str]) -> list[Topic]:
    topics: list[Topic] = []
    current: Topic | None = None
    for line in lines:
        if not line.strip():
            continue
        if _BULLET_RE.match(line):
            point = _BULLET_RE.sub("", line).strip()
            if not point:
                continue
            if current is not None:
                current.points.append(point)
            else:
                topics.append(Topic(name=point))
        else:
            name = line.strip().rstrip(":").strip("* ").rstrip(":")
            if name:
                current = Topic(name=name)
                topics.append(current)
    return topics


def parse_sections(raw: str, max_words: int = 200) -> SummaryFragment | None:
    """Parse a response laid out as headed sections; None if no header is found."""
    sections: dict[str, list[str]] = {}
    preamble: list[str] = []
    current: str | None = None
    for line in raw.splitlines():
        section = _section_for_header(line)
        if section is not None:
            current = section
            sections.setdefault(section, [])
            continue
        if current is None:
            preamble.append(line)
        else:
            sections[current].append(line)
    if not sections:
        return None

    content_lines = sections.get("content") or preamble
    content = " ".join(ln.strip() for ln in content_lines if ln.strip())
    fields: dict[str, Any] = {
        "content": content,
        "key_points": _list_items(sections.get("key_points", [])),
        "decisions": _list_items(sections.get("decisions", [])),
        "action_items": _list_items(sections.get("action_items", [])),
        "quotes": _quote_items(sections.get("quotes", [])),
    }
    fragment = _build_fragment(fields, max_words)
    fragment.topics = _topic_items(sections.get("topics", []))
    return fragment


# ---------------------------------------------------------------------------
# Tier 3: line heuristics
# ---------------------------------------------------------------------------


def _salvage_json_content(raw: str) -> str:
    """Recover the ``content`` string from truncated JSON, if it completed."""
    match = re.search(r'"(?:content|summary)"\s*:\s*"((?:[^"\\]|\\.)*)"', raw)
    if not match:
        return ""
    try:
        return json.loads(f'"{match.group(1)}"')
    except json.JSONDecodeError:
        return match.group(1)


def _salvage_json_fields(raw: str) -> dict[str, Any]:
    """Recover every field of a truncated JSON body whose value completed.

    A list field counts only when its closing ``]`` arrived and the array
    decodes; a list cut off mid-way is dropped rather than guessed at.
    """
    fields: dict[str, Any] = {"content": _salvage_json_content(raw)}
    for name, keys in _FIELD_KEYS.items():
        for key in keys:
            match = re.search(rf'"{key}"\s*:\s*\[', raw)
            if not match:
                continue
            start = match.end() - 1
            end = _closing_index(raw, start)
            if end is None:
                break
            try:
                fields[name] = json.loads(raw[start : end + 1])
            except json.JSONDecodeError:
                logger.debug("Dropping undecodable %s array from truncated response", key)
            break
    return fields


def parse_heuristic(raw: str, max_words: int = 200) -> SummaryFragment:
    """Scan lines for bullets, decision/action keywords and quoted text.

    Used when the response is not decodable JSON. Always returns a fragment.
    A truncated JSON body keeps its completed fields instead.
    """
    if strip_code_fences(raw).startswith("{"):
        return _build_fragment(_salvage_json_fields(raw), max_words)

    key_points: list[str] = []
    decisions: list[str] = []
    action_items: list[str] = []
    quotes: list[str] = []
    prose: list[str] = []

    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("```"):
            continue
        lowered = stripped.lower()
        if _BULLET_RE.match(stripped):
            item = _BULLET_RE.sub("", stripped).strip()
            if item:
                key_points.append(item)
        elif any(word in lowered for word in _DECISION_WORDS):
            decisions.append(stripped)
        elif any(word in lowered for word in _ACTION_WORDS):
            action_items.append(stripped)
        elif stripped[0] in "\"“" and stripped[-1] in "\"”" and len(stripped) > 2:
            quotes.append(stripped)
        else:
            prose.append(stripped)

    fragment = _build_fragment(
        {
            "content": " ".join(prose),
            "key_points": key_points[: _HEURISTIC_CAPS["key_points"]],
            "decisions": decisions[: _HEURISTIC_CAPS["decisions"]],
            "action_items": action_items[: _HEURISTIC_CAPS["action_items"]],
            "quotes": quotes,
        },
        max_words,
    )
    fragment.quotes = fragment.quotes[: _HEURISTIC_CAPS["quotes"]]
    return fragment


class ResponseParser:
    """Tiered parser for model responses: JSON, then headed sections, then line heuristics."""

    def __init__(self, max_content_words: int = 200) -> None:
        self.max_content_words = max_content_words

    def parse(self, raw_text: Any) -> SummaryFragment:
        """Parse *raw_text* into a fragment. Never raises."""
        if not isinstance(raw_text, str) or not raw_text.strip():
            return SummaryFragment()
        try:
            fragment = parse_structured(raw_text, self.max_content_words)
            if fragment is not None:
                return fragment
            logger.warning("Model response is not valid JSON; using fallback parser")
            fragment = parse_sections(raw_text, self.max_content_words)
            if fragment is not None:
                return fragment
            return parse_heuristic(raw_text, self.max_content_words)
        except Exception:
            logger.exception("Response parsing failed; returning empty fragment")
            return SummaryFragment()
