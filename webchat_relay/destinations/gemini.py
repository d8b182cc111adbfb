"""
Gemini destination adapter (gemini.google.com).

Gemini has no plain file input on the page: attachments go through the
upload menu and a native file chooser, which Playwright intercepts.
"""

import logging
from pathlib import Path

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from webchat_relay.exceptions import AdapterError

from ..capture.snapshot import STREAMING_MARKER, SourceEntry, TurnSnapshot
from . import dom
from .base import DestinationConfig
from .heuristics import GEMINI_NOISE
from .registry import DestinationRegistry
from .retry_config import create_transient_retry_decorator

logger = logging.getLogger(__name__)

COMPOSER_SELECTORS = (
    '.ql-editor[contenteditable="true"]',
    'div[role="textbox"][aria-label*="prompt"]',
)
SEND_SELECTORS = ("button.send-button", 'button[aria-label="Send message"]')
STOP_SELECTORS = ('button[aria-label="Stop response"]',)
RESPONSE_SELECTOR = "model-response .model-response-text, model-response message-content"
LOGIN_SELECTORS = (".sign-in-button", 'a[href*="accounts.google.com"][class*=sign]')
UPLOAD_MENU_SELECTORS = (
    'button[aria-label="Open upload file menu"]',
    "button.upload-card-button",
)
UPLOAD_FILES_ITEM = '[role="menuitem"]:has-text("Upload files")'
CONSENT_AGREE_SELECTORS = ('button:has-text("Agree")',)


@DestinationRegistry.register
class GeminiAdapter:
    config = DestinationConfig(
        name="gemini",
        display_name="Gemini",
        url="https://gemini.google.com/app",
        login_url="https://gemini.google.com/app",
    )
    noise = GEMINI_NOISE
    supports_attachments = True
    has_side_channel_sources = False

    def is_logged_in(self, page: Page) -> bool:
        return dom.detect_login(page, COMPOSER_SELECTORS, LOGIN_SELECTORS)

    def submit_prompt(self, page: Page, text: str) -> None:
        dom.submit_via_composer(
            page, COMPOSER_SELECTORS, SEND_SELECTORS, text, self.config.name
        )

    def attach_files(self, page: Page, paths: list[Path]) -> None:
        name = self.config.name
        composer = dom.wait_for_first_visible(page, COMPOSER_SELECTORS, dom.COMPOSER_WAIT_S)
        menu = dom.find_first_visible(page, UPLOAD_MENU_SELECTORS)
        if composer is None or menu is None:
            raise AdapterError("Upload menu not found", kind="selector_not_found", destination=name)

        try:
            composer.click()
            menu.click()
            page.wait_for_timeout(500)

            # First upload per account shows a consent dialog
            agree = dom.find_first_visible(page, CONSENT_AGREE_SELECTORS)
            if agree is not None:
                logger.info("Accepting Gemini upload consent dialog")
                agree.click()
                page.wait_for_timeout(500)
                menu.click()

            with page.expect_file_chooser() as chooser_info:
                page.click(UPLOAD_FILES_ITEM)
            chooser_info.value.set_files([str(p) for p in paths])
        except PlaywrightError as e:
            raise dom.translate_playwright_error(e, name, "File attach") from e

        logger.info(f"gemini: attached {len(paths)} file(s)")
        page.wait_for_timeout(1500)

    @create_transient_retry_decorator()
    def snapshot_turn(self, page: Page, prompt_text: str) -> TurnSnapshot:
        responses = dom.query_texts(page, RESPONSE_SELECTOR, self.config.name)
        markers = {f"turns:{len(responses)}"}
        if dom.any_visible(page, STOP_SELECTORS):
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
