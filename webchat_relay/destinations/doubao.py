"""
Doubao destination adapter (www.doubao.com).

Doubao marks message blocks with data-testid attributes but also renders
greeting cards, suggestion chips and sidebar entries with similar markup.
The snapshot script collects every plausible block with its geometry and
markers; score_message_block() picks the answer in Python. Links inside the
chosen block become the cited sources.

Headless browsers are routinely redirected to a region-ban page, so this
destination relaunches headed when that happens and caps its first headless
attempt.
"""

import logging
import re
from pathlib import Path
from urllib.parse import urlparse

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
from .heuristics import DOUBAO_NOISE
from .registry import DestinationRegistry
from .retry_config import create_transient_retry_decorator

logger = logging.getLogger(__name__)

COMPOSER_SELECTORS = (
    "textarea",
    '[role="textbox"][contenteditable="true"]',
    'div[contenteditable="true"]',
)
SEND_SELECTORS = (
    'button[type="submit"]',
    'button[aria-label*="发送"]',
    'button[aria-label*="Send"]',
    'button:has-text("发送")',
    'button:has-text("Send")',
    'div[role="button"]:has-text("发送")',
)
STOP_SELECTORS = (
    'button[aria-label*="停止"]',
    'button[aria-label*="Stop"]',
    'button:has-text("停止")',
    'button:has-text("Stop")',
)
LOGIN_SELECTORS = (
    'button:has-text("登录")',
    'button:has-text("Log in")',
    'button:has-text("Sign in")',
    "text=请输入手机号",
    "text=扫码登录",
    "text=受区域限制，请先登录再使用豆包",
)

BLOCKS_SCRIPT = """
() => {
  const root = document.querySelector('main') || document.body;
  const primary = Array.from(root.querySelectorAll('[data-testid="message-block-container"]'));
  const fallbacks = [
    '[data-testid*="assistant"]',
    '[class*="assistant-message"]',
    '[class*="message-assistant"]',
    '[class*="assistant"]',
    '[class*="answer"]',
  ];
  const nodes = Array.from(new Set([
    ...primary,
    ...fallbacks.flatMap((s) => Array.from(root.querySelectorAll(s))),
  ]));
  const blocks = nodes.map((node) => {
    const rect = node.getBoundingClientRect();
    const clone = node.cloneNode(true);
    clone.querySelectorAll('[class*="suggest"]').forEach((n) => n.remove());
    const links = Array.from(node.querySelectorAll('a[href]')).map((a) => ({
      href: (a.getAttribute('href') || '').trim(),
      text: (a.textContent || '').trim(),
    }));
    return {
      text: clone.innerText || node.innerText || '',
      className: String(node.className || ''),
      receive: node.matches('[data-testid="receive_message"]')
        || !!node.querySelector('[data-testid="receive_message"]'),
      send: node.matches('[data-testid="send_message"]')
        || !!node.querySelector('[data-testid="send_message"]'),
      top: rect.top,
      width: rect.width,
      height: rect.height,
      links,
    };
  });
  return { blocks, blockCount: primary.length };
}
"""

_EXCLUDED_CLASS_RE = re.compile(
    r"suggest|message-list|history|sidebar|composer|input|textarea|header|footer"
    r"|message-action|entry-btn|search-item-footer|citation",
    re.IGNORECASE,
)
_CONTAINER_CLASS_RE = re.compile(r"message-block-container", re.IGNORECASE)
_LOGIN_TEXT_RE = re.compile(r"请输入手机号|扫码登录|受区域限制")

GREETING_TEXT = "你好，我是豆包"
NEW_CHAT_TEXT = "新对话"

# Caps for rendered source labels
MAX_SOURCES = 20
MAX_LABEL_CHARS = 120


def score_message_block(block: dict, prompt: str) -> float | None:
    """
    Score one candidate block; None means "never an answer".

    Received messages and message-block containers score high, lower blocks
    (later in the conversation) and longer text score higher, while the
    greeting card, prompt echoes and "new chat" chrome are penalized.
    """
    text = normalize_text(block.get("text") or "")
    class_name = block.get("className") or ""
    receive = bool(block.get("receive"))

    if block.get("send") and not receive:
        return None
    if _EXCLUDED_CLASS_RE.search(class_name):
        return None
    if (block.get("width") or 0) < 40 or (block.get("height") or 0) < 20:
        return None
    if not text or (prompt and text == prompt):
        return None
    if DOUBAO_NOISE.is_interim(text) or _LOGIN_TEXT_RE.search(text):
        return None

    score = 0.0
    if receive:
        score += 260
    if _CONTAINER_CLASS_RE.search(class_name):
        score += 200
    score += (block.get("top") or 0) * 2
    score += min(len(text), 3000) / 20
    if GREETING_TEXT in text:
        score -= 200
    if prompt and prompt in text:
        score -= 120
    if NEW_CHAT_TEXT in text:
        score -= 120
    return score


def pick_message_block(blocks: list[dict], prompt: str) -> dict | None:
    """Highest-scoring block; later blocks win ties."""
    best: dict | None = None
    best_score = float("-inf")
    for block in blocks:
        score = score_message_block(block, prompt.strip())
        if score is not None and score >= best_score:
            best, best_score = block, score
    return best


def _domain(url: str) -> str:
    host = urlparse(url).hostname or url
    return host.removeprefix("www.")


def links_to_sources(links: list[dict]) -> list[SourceEntry]:
    """
    Turn inline anchors into numbered SourceEntry records.

    Only absolute http(s) links count; duplicates by href keep the first.

    Example:
        >>> links_to_sources([{"href": "https://www.example.com/a", "text": ""}])[0].source
        'example.com'
    """
    seen: dict[str, dict] = {}
    for link in links:
        href = (link.get("href") or "").strip()
        if not re.match(r"^https?://", href, re.IGNORECASE):
            continue
        seen.setdefault(href, link)

    sources = []
    for position, (href, link) in enumerate(list(seen.items())[:MAX_SOURCES], start=1):
        label = normalize_text(link.get("text") or "")
        if len(label) > MAX_LABEL_CHARS:
            label = f"{label[: MAX_LABEL_CHARS - 3]}..."
        sources.append(
            SourceEntry(index=str(position), source=_domain(href), title=label, url=href)
        )
    return sources


@DestinationRegistry.register
class DoubaoAdapter:
    config = DestinationConfig(
        name="doubao",
        display_name="Doubao",
        url="https://www.doubao.com/chat/?from_login=1",
        login_url="https://www.doubao.com/chat/?from_login=1",
        auto_headed_login_fallback=True,
        poll_interval_s=0.7,
        stable_threshold=2,
        headless_probe_timeout_ms=25_000,
    )
    noise = DOUBAO_NOISE
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
            "Doubao does not support file attachments",
            kind="selector_not_found",
            destination=self.config.name,
        )

    @create_transient_retry_decorator()
    def snapshot_turn(self, page: Page, prompt_text: str) -> TurnSnapshot:
        raw = dom.evaluate(page, BLOCKS_SCRIPT, None, self.config.name, "Snapshot") or {}
        block = pick_message_block(raw.get("blocks") or [], prompt_text)

        answer = ""
        links: list[dict] = []
        if block is not None:
            answer = self.noise.clean(block.get("text") or "")
            links = block.get("links") or []

        hrefs = "|".join(source.url for source in links_to_sources(links))
        markers = {f"blocks:{raw.get('blockCount', 0)}", f"links:{hrefs}"}
        if dom.any_visible(page, STOP_SELECTORS):
            markers.add(STREAMING_MARKER)
        return TurnSnapshot(
            answer_text=answer, markers=frozenset(markers), payload={"links": links}
        )

    def fetch_sources(self, page: Page, snapshot: TurnSnapshot) -> list[SourceEntry]:
        return links_to_sources(snapshot.payload.get("links") or [])

    def format_response(
        self, snapshot: TurnSnapshot, sources: list[SourceEntry]
    ) -> tuple[str, str]:
        if not sources:
            sources = links_to_sources(snapshot.payload.get("links") or [])
        return format_structured_response(
            snapshot.answer_text, sources, include_thinking=True
        )

    def is_verification_visible(self, page: Page) -> bool:
        return dom.verification_visible(page, self.noise)

    def is_headless_blocked(self, page: Page) -> bool:
        return dom.headless_blocked(page, self.noise)
