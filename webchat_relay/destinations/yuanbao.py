"""
Yuanbao destination adapter (yuanbao.tencent.com).

The answer is read from the last AI bubble, skipping the chain-of-thought
markdown block. Sources are not rendered inline: after the answer settles,
fetch_sources() calls the conversation-detail endpoint from inside the page
(so the session cookies apply) and parse_conversation_sources() turns the
JSON payload into SourceEntry records.
"""

import logging
from pathlib import Path
from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from webchat_relay.exceptions import AdapterError

from ..capture.snapshot import (
    SourceEntry,
    TurnSnapshot,
    format_structured_response,
    normalize_text,
)
from . import dom
from .base import DestinationConfig
from .heuristics import YUANBAO_NOISE
from .registry import DestinationRegistry
from .retry_config import create_transient_retry_decorator

logger = logging.getLogger(__name__)

COMPOSER_SELECTORS = ('.ql-editor[contenteditable="true"]',)
SEND_SELECTORS = ('a[class*="send-btn"]',)
LOGIN_SELECTORS = (
    "button.agent-dialogue__tool__login",
    'button:has-text("Log In")',
    'button:has-text("登录")',
    "text=Not logged in",
    "text=未登录",
)
HAS_SOURCES_MARKER = "has_sources"

SNAPSHOT_SCRIPT = """
() => {
  const bubbles = Array.from(document.querySelectorAll('.agent-chat__bubble--ai'));
  const latest = bubbles[bubbles.length - 1];
  if (!latest) return { answer: '', hasSources: false, citationIds: [] };
  const answers = Array.from(latest.querySelectorAll(
    '.hyc-common-markdown.hyc-common-markdown-style:not(.hyc-common-markdown-style-cot)'));
  const answerNode = answers[answers.length - 1];
  const labels = ['Sources', '参考来源', '引用来源'];
  const hasSources = Array.from(
    latest.querySelectorAll('.agent-chat__toolbar__right, button, div, span, a')
  ).some((el) => labels.includes((el.textContent || '').trim()));
  const citationIds = Array.from(
    latest.querySelectorAll('.hyc-common-markdown__ref-list__item')
  ).map((el) => (el.textContent || '').trim());
  return {
    answer: answerNode ? answerNode.textContent || '' : '',
    hasSources,
    citationIds,
    bubbles: bubbles.length,
  };
}
"""

USER_INFO_SCRIPT = """
async () => {
  try {
    const response = await fetch('/api/getuserinfo', { credentials: 'include' });
    return response.status;
  } catch (e) {
    return 0;
  }
}
"""

# Returns the raw JSON body (or null); parsing happens in Python
CONVERSATION_DETAIL_SCRIPT = """
async () => {
  const segments = location.pathname.split('/').filter(Boolean);
  const chatIndex = segments.indexOf('chat');
  if (chatIndex < 0) return null;
  const agentId = segments[chatIndex + 1] || '';
  const conversationId = segments[chatIndex + 2] || '';
  if (!agentId || !conversationId) return null;
  try {
    const response = await fetch('/api/user/agent/conversation/v1/detail', {
      method: 'POST',
      credentials: 'include',
      headers: { 'content-type': 'application/json' },
      body: JSON.stringify({ conversationId, offset: 0, limit: 20, agentId }),
    });
    if (!response.ok) return null;
    return await response.json();
  } catch (e) {
    return null;
  }
}
"""

INDEX_KEYS = ("index", "idx", "id")
SOURCE_KEYS = ("web_site_name", "webSiteName", "source_name", "sourceName", "source")
TITLE_KEYS = ("title", "docTitle")
SUMMARY_KEYS = ("quote", "summary", "desc")
URL_KEYS = ("web_url", "url", "href", "link")


def _first_field(doc: dict, keys: tuple[str, ...]) -> str:
    for key in keys:
        value = doc.get(key)
        if value is not None:
            return normalize_text(str(value))
    return ""


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def parse_conversation_sources(
    payload: Any, preferred_ids: list[str] | None = None
) -> list[SourceEntry]:
    """
    Extract cited documents from a conversation-detail payload.

    Walks convs[].speechesV2[].content[].docs[]. When preferred_ids is given,
    documents with a different non-empty index are skipped. Duplicates (same
    url, or same index|source|title without a url) keep the richer entry.

    Example:
        >>> payload = {"convs": [{"speechesV2": [{"content": [{"docs": [
        ...     {"index": 1, "web_site_name": "Site", "title": "T", "url": "https://a"}]}]}]}]}
        >>> parse_conversation_sources(payload)[0].url
        'https://a'
    """
    if not isinstance(payload, dict):
        return []

    preferred = {
        normalize_text(str(i)) for i in (preferred_ids or []) if str(i).strip().isdigit()
    }

    entries: list[SourceEntry] = []
    for conv in _as_list(payload.get("convs")):
        if not isinstance(conv, dict):
            continue
        for speech in _as_list(conv.get("speechesV2")):
            if not isinstance(speech, dict):
                continue
            for block in _as_list(speech.get("content")):
                if not isinstance(block, dict):
                    continue
                for doc in _as_list(block.get("docs")):
                    if not isinstance(doc, dict):
                        continue
                    entry = SourceEntry(
                        index=_first_field(doc, INDEX_KEYS),
                        source=_first_field(doc, SOURCE_KEYS),
                        title=_first_field(doc, TITLE_KEYS),
                        summary=_first_field(doc, SUMMARY_KEYS),
                        url=_first_field(doc, URL_KEYS),
                    )
                    if preferred and entry.index and entry.index not in preferred:
                        continue
                    if not any((entry.index, entry.source, entry.title, entry.summary, entry.url)):
                        continue
                    entries.append(entry)

    deduped: dict[str, SourceEntry] = {}
    for entry in entries:
        key = entry.url or f"{entry.index}|{entry.source}|{entry.title}"
        current = deduped.get(key)
        if current is None or entry.richness() > current.richness():
            deduped[key] = entry
    return list(deduped.values())


@DestinationRegistry.register
class YuanbaoAdapter:
    config = DestinationConfig(
        name="yuanbao",
        display_name="Yuanbao",
        url="https://yuanbao.tencent.com/",
        login_url="https://yuanbao.tencent.com/",
        auto_headed_login_fallback=True,
        poll_interval_s=0.7,
        stable_threshold=2,
    )
    noise = YUANBAO_NOISE
    supports_attachments = False
    has_side_channel_sources = True

    def is_logged_in(self, page: Page) -> bool:
        composer = dom.wait_for_first_visible(page, COMPOSER_SELECTORS, dom.LOGIN_PROBE_S)
        if composer is None:
            return False
        # The login button lingers in the toolbar for a while after sign-in,
        # so an authenticated user-info call wins over it
        try:
            status = int(page.evaluate(USER_INFO_SCRIPT) or 0)
        except PlaywrightError as e:
            logger.debug(f"Yuanbao user-info probe failed: {e}")
            status = 0
        if 200 <= status < 300:
            return True
        return not dom.any_visible(page, LOGIN_SELECTORS)

    def submit_prompt(self, page: Page, text: str) -> None:
        dom.submit_via_composer(
            page, COMPOSER_SELECTORS, SEND_SELECTORS, text, self.config.name
        )

    def attach_files(self, page: Page, paths: list[Path]) -> None:
        raise AdapterError(
            "Yuanbao does not support file attachments",
            kind="selector_not_found",
            destination=self.config.name,
        )

    @create_transient_retry_decorator()
    def snapshot_turn(self, page: Page, prompt_text: str) -> TurnSnapshot:
        raw = dom.evaluate(page, SNAPSHOT_SCRIPT, None, self.config.name, "Snapshot") or {}
        citation_ids = list(
            dict.fromkeys(c.strip() for c in raw.get("citationIds") or [] if c.strip().isdigit())
        )
        markers = {
            f"bubbles:{raw.get('bubbles', 0)}",
            f"citations:{','.join(citation_ids)}",
        }
        if raw.get("hasSources"):
            markers.add(HAS_SOURCES_MARKER)
        answer = self.noise.clean(raw.get("answer") or "")
        return TurnSnapshot(answer_text=answer, markers=frozenset(markers))

    def fetch_sources(self, page: Page, snapshot: TurnSnapshot) -> list[SourceEntry]:
        payload = dom.evaluate(
            page, CONVERSATION_DETAIL_SCRIPT, None, self.config.name, "Source fetch"
        )
        return parse_conversation_sources(payload, self._citation_ids(snapshot))

    def format_response(
        self, snapshot: TurnSnapshot, sources: list[SourceEntry]
    ) -> tuple[str, str]:
        return format_structured_response(
            snapshot.answer_text, sources, citation_ids=self._citation_ids(snapshot)
        )

    def is_verification_visible(self, page: Page) -> bool:
        return dom.verification_visible(page, self.noise)

    def is_headless_blocked(self, page: Page) -> bool:
        return dom.headless_blocked(page, self.noise)

    @staticmethod
    def _citation_ids(snapshot: TurnSnapshot) -> list[str]:
        value = snapshot.marker_value("citations") or ""
        return [c for c in value.split(",") if c]
