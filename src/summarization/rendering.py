"""Plain-text rendering of a summary for export and sharing."""

from __future__ import annotations

from datetime import UTC, datetime

from src.summarization.models import RunningSummary, SummaryFragment


def _bullets(items: list[str]) -> str:
    return "\n".join(f"• {item}" for item in items) if items else "None"


def render_plain_text(summary: SummaryFragment, include_metadata: bool = False) -> str:
    """Render the portable, human-readable summary layout.

    Sections: narrative, key points, decisions, action items (bulleted),
    quotes (one quoted line each) and, when present, topic headers followed
    by indented bullet points.
    """
    lines: list[str] = ["MEETING SUMMARY"]
    if isinstance(summary, RunningSummary) and summary.generated_at_ms:
        generated = datetime.fromtimestamp(summary.generated_at_ms / 1000, tz=UTC)
        lines.append(f"Generated: {generated:%Y-%m-%d %H:%M:%S} UTC")
    lines += [
        "",
        summary.content or "(no narrative yet)",
        "",
        "KEY POINTS:",
        _bullets(summary.key_points),
        "",
        "DECISIONS MADE:",
        _bullets(summary.decisions),
        "",
        "ACTION ITEMS:",
        _bullets(summary.action_items),
        "",
        "IMPORTANT QUOTES:",
        "\n".join(f'"{quote}"' for quote in summary.quotes) if summary.quotes else "None",
    ]

    if summary.topics:
        lines += ["", "TOPICS DISCUSSED:"]
        for topic in summary.topics:
            lines.append(f"{topic.name}:")
            if topic.points:
                lines.extend(f"  • {point}" for point in topic.points)
            else:
                lines.append("  No specific points")

    if include_metadata and isinstance(summary, RunningSummary):
        lines += [
            "",
            "--- METADATA ---",
            f"Summary ID: {summary.id}",
            f"Processing Time: {summary.processing_time_ms}ms",
            f"Incremental: {'yes' if summary.is_incremental else 'no'}",
        ]

    return "\n".join(lines).strip() + "\n"
