"""Claude destination adapter (claude.ai)."""

import logging
from pathlib import Path

from playwright.sync_api import Page

from ..capture.snapshot import STREAMING_MARKER, SourceEntry, TurnSnapshot
from . import dom
from .base import DestinationConfig
from .heuristics import CLAUDE_NOISE
from .registry import DestinationRegistry
from .retry_config import create_transient_retry_decorator

logger = logging.getLogger(__name__)

COMPOSER_SELECTORS = ('[contenteditable="true"].ProseMirror', 'div[enterkeyhint="enter"]')
SEND_SELECTORS = ('button[aria-label="Send Message"]', 'button[data-testid="send-message"]')
RESPONSE_SELECTOR = "[data-is-streaming], .font-claude-message, [data-testid=\"assistant-message\"]"
STREAMING_SELECTORS = ('[data-is-streaming="true"]',)
LOGIN_SELECTORS = ('button:has-text("Continue with Google")', 'input[type="email"]')
FILE_INPUT_SELECTORS = ("#chat-input-file-upload-onpage", 'input[type="file"]')


@DestinationRegistry.register
class ClaudeAdapter:
    config = DestinationConfig(
        name="claude",
        display_name="Claude",
        url="https://claude.ai/new",
        login_url="https://claude.ai/login",
    )
    noise = CLAUDE_NOISE
    supports_attachments = True
    has_side_channel_sources = False

    def is_logged_in(self, page: Page) -> bool:
        return dom.detect_login(page, COMPOSER_SELECTORS, LOGIN_SELECTORS)

    def submit_prompt(self, page: Page, text: str) -> None:
        dom.submit_via_composer(
            page, COMPOSER_SELECTORS, SEND_SELECTORS, text, self.config.name
        )

    def attach_files(self, page: Page, paths: list[Path]) -> None:
        dom.upload_files(page, FILE_INPUT_SELECTORS, paths, self.config.name)
        page.wait_for_timeout(1500)

    @create_transient_retry_decorator()
    def snapshot_turn(self, page: Page, prompt_text: str) -> TurnSnapshot:
        responses = dom.query_texts(page, RESPONSE_SELECTOR, self.config.name)
        markers = {f"turns:{len(responses)}"}
        if dom.any_visible(page, STREAMING_SELECTORS):
            markers.add(STREAMING_MARKER)
        answer = self.noise.clean(responses[-1]) if responses else ""
        return TurnSnapshot(answer_text=answer, markers=frozenset(markers))

    def fetch_sources(self, page: Page, snapshot: TurnSnapshot) -> list[SourceEntry]:
        return []

    def format_response(
        self, snapshot: TurnSnapshot, sources: list[SourceEntry]
    ) -> tuple[str, str]:
        return snapshot.answer_text, snapshot.answer_text

    def is_verification_visible(self, page: Page) -> bool:
        return dom.verification_visible(page, self.noise)

    def is_headless_blocked(self, page: Page) -> bool:
        return dom.headless_blocked(page, self.noise)
