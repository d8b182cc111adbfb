"""
DeepSeek destination adapter (chat.deepseek.com).

DeepSeek renders the whole conversation, sidebar included, inside generic
"ds-scroll-area" containers with no stable per-message hooks. The snapshot
script returns every container's text and geometry; pick_answer_text() then
scores them in Python and the noise profile strips banners, footers and
citation superscripts.

The final answer is rendered in the structured "## AI Answer / ## Sources"
format with the number of referenced web pages and inline citation ids.
"""

import logging
import re
from pathlib import Path

from playwright.sync_api import Page

from webchat_relay.exceptions import AdapterError

from ..capture.snapshot import (
    STREAMING_MARKER,
    SourceEntry,
    TurnSnapshot,
    format_structured_response,
    normalize_text,
)
from . import dom
from .base import DestinationConfig
from .heuristics import DEEPSEEK_NOISE
from .registry import DestinationRegistry
from .retry_config import create_transient_retry_decorator

logger = logging.getLogger(__name__)

COMPOSER_SELECTORS = (
    "textarea[placeholder]",
    "textarea",
    '[role="textbox"]',
    'div[contenteditable="true"][role="textbox"]',
    'div[contenteditable="true"]',
)
SEND_SELECTORS = (
    'button[type="submit"]',
    'button[aria-label*="Send"]',
    'button[aria-label*="发送"]',
    'button:has-text("Send")',
    'button:has-text("发送")',
)
STOP_SELECTORS = (
    'button[aria-label*="Stop"]',
    'button:has-text("Stop")',
    'button:has-text("停止")',
)
LOGIN_SELECTORS = (
    'button:has-text("Log in")',
    'button:has-text("Sign in")',
    'button:has-text("登录")',
    'a:has-text("Log in")',
    'a:has-text("Sign in")',
    'a:has-text("登录")',
)

CANDIDATES_SCRIPT = """
() => {
  const containers = Array.from(document.querySelectorAll('div.ds-scroll-area'));
  return {
    candidates: containers.map((el) => {
      const rect = el.getBoundingClientRect();
      return {
        text: el.innerText || '',
        left: rect.left,
        width: rect.width,
        visible: rect.width > 0 && rect.height > 0,
      };
    }),
    body: document.body ? document.body.innerText || '' : '',
  };
}
"""

_SIDEBAR_RE = re.compile(r"\n(?:Today|Yesterday|30 Days|New chat)\n", re.IGNORECASE)
_FOOTER_RE = re.compile(r"AI-generated, for reference only", re.IGNORECASE)
_READ_RE = re.compile(r"Read\s+\d+\s+web\s+pages", re.IGNORECASE)
_SOURCE_COUNT_RE = re.compile(r"\b(\d+)\s+web\s+pages?\b", re.IGNORECASE)
_BRACKET_CITATION_RE = re.compile(r"\[(\d+)\]")
_MULTILINE_CITATION_RE = re.compile(r"\n-\s*\n(\d+)(?=\n|$)")
_SPACE_BEFORE_PERIOD_RE = re.compile(r"[ \t]+\.")
_BROKEN_CJK_PUNCT_RE = re.compile(r"\n([。！？；，、])")

# Fallback containers longer than this are assumed to hold an answer
MIN_FALLBACK_CHARS = 180


def _score_candidate(text: str, left: float, width: float) -> int:
    score = 0
    if left > 220:
        score += 30
    if 450 < width < 950:
        score += 35
    if _READ_RE.search(text):
        score += 15
    if not _FOOTER_RE.search(text):
        score += 15
    if _SIDEBAR_RE.search(text):
        score -= 120
    score -= abs(len(text) - 1200) // 80
    return score


def pick_answer_text(candidates: list[dict], prompt: str, body_text: str = "") -> str:
    """
    Choose the container text most likely to hold the current turn.

    Containers that contain the prompt are scored by position, width and
    banner/footer hints. Without any, the first container mentioning the
    footer or longer than MIN_FALLBACK_CHARS wins, then the page body.

    Example:
        >>> pick_answer_text([{"text": "hi\\nHello", "left": 300, "width": 700, "visible": True}], "hi")
        'hi\\nHello'
    """
    ordered = [c for c in candidates if c.get("visible")] + list(candidates)
    texts = [(normalize_text(c.get("text") or ""), c) for c in ordered]

    prompt = prompt.strip()
    scored = [
        (_score_candidate(text, c.get("left", 0), c.get("width", 0)), text)
        for text, c in texts
        if text and prompt and prompt in text
    ]
    if scored:
        # Stable on ties: first candidate with the best score wins
        best = max(score for score, _ in scored)
        return next(text for score, text in scored if score == best)

    for text, _ in texts:
        if text and ("AI-generated" in text or len(text) > MIN_FALLBACK_CHARS):
            return text

    return normalize_text(body_text)


def extract_citation_ids(text: str) -> list[str]:
    """Numeric citation ids from "[3]" and "-\\n3" superscript runs, sorted."""
    ids = set(_BRACKET_CITATION_RE.findall(text))
    ids.update(_MULTILINE_CITATION_RE.findall(text))
    return sorted(ids, key=int)


def extract_source_count(text: str) -> int:
    match = _SOURCE_COUNT_RE.search(text)
    return int(match.group(1)) if match else 0


@DestinationRegistry.register
class DeepSeekAdapter:
    config = DestinationConfig(
        name="deepseek",
        display_name="DeepSeek",
        url="https://chat.deepseek.com/",
        login_url="https://chat.deepseek.com/",
    )
    noise = DEEPSEEK_NOISE
    supports_attachments = False
    has_side_channel_sources = False

    def is_logged_in(self, page: Page) -> bool:
        return dom.detect_login(
            page, COMPOSER_SELECTORS, LOGIN_SELECTORS, composer_wins=True
        )

    def submit_prompt(self, page: Page, text: str) -> None:
        dom.submit_via_composer(
            page, COMPOSER_SELECTORS, SEND_SELECTORS, text, self.config.name
        )

    def attach_files(self, page: Page, paths: list[Path]) -> None:
        raise AdapterError(
            "DeepSeek does not support file attachments",
            kind="selector_not_found",
            destination=self.config.name,
        )

    @create_transient_retry_decorator()
    def snapshot_turn(self, page: Page, prompt_text: str) -> TurnSnapshot:
        raw = dom.evaluate(page, CANDIDATES_SCRIPT, None, self.config.name, "Snapshot") or {}
        text = pick_answer_text(raw.get("candidates") or [], prompt_text, raw.get("body") or "")

        # Counts come from the raw text; cleaning removes the markers they live in
        source_count = extract_source_count(text)
        citation_ids = extract_citation_ids(text)

        answer = self.noise.clean(text, prompt_text)
        answer = _SPACE_BEFORE_PERIOD_RE.sub(".", answer)
        answer = _BROKEN_CJK_PUNCT_RE.sub(r"\1", answer)

        markers = {f"sources:{source_count}", f"citations:{','.join(citation_ids)}"}
        if dom.any_visible(page, STOP_SELECTORS):
            markers.add(STREAMING_MARKER)
        return TurnSnapshot(answer_text=normalize_text(answer), markers=frozenset(markers))

    def fetch_sources(self, page: Page, snapshot: TurnSnapshot) -> list[SourceEntry]:
        return []

    def format_response(
        self, snapshot: TurnSnapshot, sources: list[SourceEntry]
    ) -> tuple[str, str]:
        citations = snapshot.marker_value("citations") or ""
        return format_structured_response(
            snapshot.answer_text,
            sources,
            source_count=int(snapshot.marker_value("sources") or 0),
            citation_ids=[c for c in citations.split(",") if c],
            include_thinking=True,
        )

    def is_verification_visible(self, page: Page) -> bool:
        return dom.verification_visible(page, self.noise)

    def is_headless_blocked(self, page: Page) -> bool:
        return dom.headless_blocked(page, self.noise)
