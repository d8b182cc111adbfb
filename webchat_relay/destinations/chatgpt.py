"""
ChatGPT destination adapter (chatgpt.com).

Snapshot reads the last assistant message and reports the number of
assistant turns plus a streaming marker while the stop button is shown.
"""

import logging
from pathlib import Path

from playwright.sync_api import Page

from ..capture.snapshot import STREAMING_MARKER, SourceEntry, TurnSnapshot
from . import dom
from .base import DestinationConfig
from .heuristics import CHATGPT_NOISE
from .registry import DestinationRegistry
from .retry_config import create_transient_retry_decorator

logger = logging.getLogger(__name__)

COMPOSER_SELECTORS = (
    "#prompt-textarea",
    '[data-testid="composer-input"]',
    'div.ProseMirror[contenteditable="true"]',
)
SEND_SELECTORS = (
    "#composer-submit-button",
    'button[aria-label="Send prompt"]',
    '[data-testid="send-button"]',
)
STOP_SELECTORS = ('button[aria-label="Stop streaming"]', '[data-testid="stop-button"]')
ASSISTANT_TURN_SELECTOR = '[data-message-author-role="assistant"]'
LOGIN_SELECTORS = ('button:has-text("Log in")', 'button:has-text("Sign up")')
FILE_INPUT_SELECTORS = ('input[type="file"]:not(#upload-photos):not(#upload-camera)',)


@DestinationRegistry.register
class ChatGPTAdapter:
    config = DestinationConfig(
        name="chatgpt",
        display_name="ChatGPT",
        url="https://chatgpt.com/",
        login_url="https://chatgpt.com/auth/login",
    )
    noise = CHATGPT_NOISE
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
        # Upload chips must finish before the send button enables
        page.wait_for_timeout(1500)

    @create_transient_retry_decorator()
    def snapshot_turn(self, page: Page, prompt_text: str) -> TurnSnapshot:
        turns = dom.query_texts(page, ASSISTANT_TURN_SELECTOR, self.config.name)
        markers = {f"turns:{len(turns)}"}
        if dom.any_visible(page, STOP_SELECTORS):
            markers.add(STREAMING_MARKER)
        answer = self.noise.clean(turns[-1]) if turns else ""
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
