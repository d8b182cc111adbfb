"""
Value types produced while capturing a response.

TurnSnapshot is what an adapter reads off the page at one poll. It is an
immutable value compared by signature, never persisted.

CapturedResponse is the single output of a successful capture.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..utils.time import utc_now

SIGNATURE_SEPARATOR = "\n---\n"
STREAMING_MARKER = "streaming"

_NBSP_RE = re.compile("\u00a0")
_INLINE_SPACE_RE = re.compile(r"[ \t]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """
    Canonicalize rendered text.

    Non-breaking spaces become spaces, carriage returns are dropped, runs of
    spaces/tabs collapse, three or more newlines collapse to a blank line.

    Example:
        >>> normalize_text("  a  b\\r\\n\\n\\n\\nc ")
        'a b\\n\\nc'
    """
    text = _NBSP_RE.sub(" ", text).replace("\r", "")
    text = _INLINE_SPACE_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


@dataclass(frozen=True)
class SourceEntry:
    """One cited web source."""

    index: str = ""
    source: str = ""
    title: str = ""
    summary: str = ""
    url: str = ""

    def richness(self) -> int:
        return int(bool(self.url)) + int(bool(self.summary)) + int(bool(self.title))


@dataclass(frozen=True)
class TurnSnapshot:
    """
    Best-guess view of the latest assistant turn at one poll.

    Attributes:
        answer_text: Normalized answer text, noise and prompt echo removed
        markers: Auxiliary state, e.g. "streaming", "sources:3", "citations:1,2"
        captured_at: When the snapshot was taken
        payload: Destination data not part of equality (e.g. inline links)
    """

    answer_text: str = ""
    markers: frozenset[str] = frozenset()
    captured_at: datetime = field(default_factory=utc_now, compare=False)
    payload: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def signature(self) -> str:
        """Canonical string used for cheap equality across polls."""
        return SIGNATURE_SEPARATOR.join([self.answer_text, *sorted(self.markers)])

    @property
    def is_streaming(self) -> bool:
        return STREAMING_MARKER in self.markers

    def marker_value(self, prefix: str) -> str | None:
        """Return the value of a "prefix:value" marker, if present."""
        for marker in self.markers:
            if marker.startswith(f"{prefix}:"):
                return marker[len(prefix) + 1 :]
        return None


@dataclass(frozen=True)
class CapturedResponse:
    """
    Final answer of one chat attempt.

    Attributes:
        text: Plain answer text (structured for destinations with sources)
        markdown: Markdown rendering of the answer
        truncated: True if the timeout hit before the answer stabilized
        thinking_time_seconds: Seconds from capture start to completion
    """

    text: str
    markdown: str
    truncated: bool
    thinking_time_seconds: int


def format_structured_response(
    answer_text: str,
    sources: list[SourceEntry] | None = None,
    *,
    source_count: int = 0,
    citation_ids: list[str] | None = None,
    include_thinking: bool = False,
) -> tuple[str, str]:
    """
    Render "## AI Answer / ## Sources" text used by citation-heavy destinations.

    Returns:
        (text, markdown); both are identical for this format
    """
    lines = ["## AI Answer", answer_text or "(empty)", ""]
    if include_thinking:
        lines += ["## AI Thinking", "(not available)", ""]
    lines.append("## Sources")

    if sources:
        for source in sources:
            label = source.index or "?"
            title = " - ".join(p for p in (source.source, source.title) if p)
            summary = source.summary
            if len(summary) > 240:
                summary = f"{summary[:240]}..."
            lines.append(f"{label}. {title or 'Unknown source'}")
            if source.url:
                lines.append(f"   {source.url}")
            if summary:
                lines.append(f"   {summary}")
    elif source_count > 0:
        lines.append(f"Web pages referenced: {source_count}")
    elif not citation_ids:
        lines.append("(none)")

    if citation_ids and not sources:
        lines.append(f"Inline citations: {', '.join(citation_ids)}")

    text = "\n".join(lines).strip()
    return text, text
