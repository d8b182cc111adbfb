"""Grok destination adapter (grok.com, signs in through an X account)."""

import logging
from pathlib import Path

from playwright.sync_api import Page

from ..capture.snapshot import SourceEntry, TurnSnapshot
from . import dom
from .base import DestinationConfig
from .heuristics import GROK_NOISE
from .registry import DestinationRegistry
from .retry_config import create_transient_retry_decorator

logger = logging.getLogger(__name__)

COMPOSER_SELECTORS = ('.tiptap.ProseMirror[contenteditable="true"]', "textarea")
SEND_SELECTORS = ('button[aria-label="Submit"]:not([disabled])', 'button[type="submit"]')
RESPONSE_SELECTOR = ".items-start .message-bubble"
LOGIN_SELECTORS = (
    'a[href*="accounts.x.com"]',
    'button:has-text("Sign in")',
    'a:has-text("Sign in")',
)
FILE_INPUT_SELECTORS = ('input[type="file"][name="files"]', 'input[type="file"]')


@DestinationRegistry.register
class GrokAdapter:
    config = DestinationConfig(
        name="grok",
        display_name="Grok",
        url="https://grok.com",
        login_url="https://grok.com",
    )
    noise = GROK_NOISE
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
        page.wait_for_timeout(2000)

    @create_transient_retry_decorator()
    def snapshot_turn(self, page: Page, prompt_text: str) -> TurnSnapshot:
        # No streaming indicator; completion relies on text stability alone
        bubbles = dom.query_texts(page, RESPONSE_SELECTOR, self.config.name)
        answer = self.noise.clean(bubbles[-1]) if bubbles else ""
        return TurnSnapshot(
            answer_text=answer, markers=frozenset({f"turns:{len(bubbles)}"})
        )

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
