"""
Shared Playwright helpers for destination adapters.

All helpers take a Playwright Page and tolerate selectors that no longer
match: front-ends rename classes often, so every lookup walks an ordered
list of fallback selectors and uses the first visible hit.
"""

import logging
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from playwright.sync_api import ElementHandle, Page
from playwright.sync_api import Error as PlaywrightError

from webchat_relay.exceptions import AdapterError

from .heuristics import NoiseProfile

logger = logging.getLogger(__name__)

# Poll gap while waiting for an element (milliseconds)
ELEMENT_POLL_MS = 250

COMPOSER_WAIT_S = 15.0
SEND_BUTTON_WAIT_S = 6.0
LOGIN_PROBE_S = 8.0

TRANSIENT_ERROR_MARKERS = (
    "execution context was destroyed",
    "cannot find context with specified id",
    "frame was detached",
    "browsing context has been discarded",
)

NAVIGATION_LOST_MARKERS = (
    "target closed",
    "has been closed",
    "target page, context or browser has been closed",
)

# Sets value/innerText and fires an input event so framework-bound editors
# (React textareas, ProseMirror, Quill) pick up the change.
INJECT_TEXT_SCRIPT = """
(el, text) => {
  el.focus();
  if (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') {
    const proto = Object.getPrototypeOf(el);
    const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
    setter.call(el, text);
  } else {
    el.innerText = text;
  }
  el.dispatchEvent(new InputEvent('input', { bubbles: true, inputType: 'insertText', data: text }));
}
"""


def translate_playwright_error(
    error: Exception, destination: str, action: str
) -> AdapterError:
    """
    Map a Playwright error onto the AdapterError taxonomy.

    Example:
        >>> err = translate_playwright_error(Exception("Target closed"), "chatgpt", "snapshot")
        >>> err.kind
        'navigation_lost'
    """
    message = str(error)
    lowered = message.lower()
    if any(marker in lowered for marker in TRANSIENT_ERROR_MARKERS):
        kind = "transient"
    elif any(marker in lowered for marker in NAVIGATION_LOST_MARKERS):
        kind = "navigation_lost"
    else:
        kind = "selector_not_found"
    return AdapterError(f"{action} failed: {message}", kind=kind, destination=destination)


def find_first_visible(page: Page, selectors: Sequence[str]) -> ElementHandle | None:
    """Return the first visible element matching any selector, in order."""
    for selector in selectors:
        try:
            element = page.query_selector(selector)
            if element is not None and element.is_visible():
                return element
        except PlaywrightError as e:
            logger.debug(f"Selector {selector!r} lookup failed: {e}")
    return None


def any_visible(page: Page, selectors: Sequence[str]) -> bool:
    return find_first_visible(page, selectors) is not None


def wait_for_first_visible(
    page: Page, selectors: Sequence[str], timeout_s: float
) -> ElementHandle | None:
    """Poll find_first_visible until it hits or timeout_s elapses."""
    deadline = time.monotonic() + timeout_s
    while True:
        element = find_first_visible(page, selectors)
        if element is not None:
            return element
        if time.monotonic() >= deadline:
            return None
        page.wait_for_timeout(ELEMENT_POLL_MS)


def detect_login(
    page: Page,
    composer_selectors: Sequence[str],
    login_selectors: Sequence[str],
    timeout_s: float = LOGIN_PROBE_S,
    composer_wins: bool = False,
) -> bool:
    """
    Decide between "authenticated composer" and "login affordance".

    By default a visible login button wins over a visible composer (several
    destinations render a guest composer next to the sign-in button). With
    composer_wins the composer alone counts as authenticated. Returns False
    when neither shows up within timeout_s or the page errors.
    """
    deadline = time.monotonic() + timeout_s
    try:
        while True:
            if composer_wins and any_visible(page, composer_selectors):
                return True
            if any_visible(page, login_selectors):
                logger.debug("Login affordance visible")
                return False
            if any_visible(page, composer_selectors):
                return True
            if time.monotonic() >= deadline:
                logger.debug("Neither composer nor login affordance appeared")
                return False
            page.wait_for_timeout(ELEMENT_POLL_MS)
    except PlaywrightError as e:
        logger.debug(f"Login probe failed: {e}")
        return False


def fill_composer(
    page: Page,
    composer_selectors: Sequence[str],
    text: str,
    destination: str,
) -> ElementHandle:
    """
    Focus the composer, clear it and inject text.

    Tries Playwright's fill() first; editors that reject it get the text
    injected through INJECT_TEXT_SCRIPT.

    Raises:
        AdapterError: selector_not_found if no composer appears
    """
    composer = wait_for_first_visible(page, composer_selectors, COMPOSER_WAIT_S)
    if composer is None:
        raise AdapterError(
            "Composer not found", kind="selector_not_found", destination=destination
        )

    try:
        composer.click()
        page.keyboard.press("ControlOrMeta+a")
        page.keyboard.press("Backspace")
        try:
            composer.fill(text)
        except PlaywrightError as e:
            logger.debug(f"fill() rejected by composer, injecting text: {e}")
            composer.evaluate(INJECT_TEXT_SCRIPT, text)
    except PlaywrightError as e:
        raise translate_playwright_error(e, destination, "Composer input") from e

    return composer


def click_send(page: Page, send_selectors: Sequence[str], destination: str) -> None:
    """Click the send button, or press Enter when none is visible."""
    button = wait_for_first_visible(page, send_selectors, SEND_BUTTON_WAIT_S)
    try:
        if button is not None:
            button.click()
            logger.debug(f"{destination}: clicked send button")
        else:
            logger.debug(f"{destination}: no send button visible, pressing Enter")
            page.keyboard.press("Enter")
    except PlaywrightError as e:
        raise translate_playwright_error(e, destination, "Send") from e


def submit_via_composer(
    page: Page,
    composer_selectors: Sequence[str],
    send_selectors: Sequence[str],
    text: str,
    destination: str,
) -> None:
    fill_composer(page, composer_selectors, text, destination)
    page.wait_for_timeout(200)
    click_send(page, send_selectors, destination)


def upload_files(
    page: Page,
    input_selectors: Sequence[str],
    paths: list[Path],
    destination: str,
) -> None:
    """
    Set files on the first matching <input type=file>.

    File inputs are usually hidden, so visibility is not required here.

    Raises:
        AdapterError: selector_not_found if no file input exists
    """
    files = [str(p) for p in paths]
    for selector in input_selectors:
        try:
            element = page.query_selector(selector)
            if element is None:
                continue
            element.set_input_files(files)
            logger.info(f"{destination}: attached {len(files)} file(s)")
            return
        except PlaywrightError as e:
            raise translate_playwright_error(e, destination, "File attach") from e
    raise AdapterError(
        "File input not found", kind="selector_not_found", destination=destination
    )


def evaluate(page: Page, script: str, arg: Any, destination: str, action: str) -> Any:
    """page.evaluate() with Playwright errors translated to AdapterError."""
    try:
        return page.evaluate(script, arg)
    except PlaywrightError as e:
        raise translate_playwright_error(e, destination, action) from e


def query_texts(page: Page, selector: str, destination: str) -> list[str]:
    """inner_text() of every element matching selector, in document order."""
    try:
        return [el.inner_text() for el in page.query_selector_all(selector)]
    except PlaywrightError as e:
        raise translate_playwright_error(e, destination, "Snapshot") from e


def verification_visible(page: Page, noise: NoiseProfile) -> bool:
    """True if the page URL or a challenge widget signals human verification."""
    try:
        if noise.is_verification_url(page.url):
            return True
        return any_visible(page, noise.verification_selectors)
    except PlaywrightError as e:
        logger.debug(f"Verification probe failed: {e}")
        return False


def headless_blocked(page: Page, noise: NoiseProfile) -> bool:
    try:
        return noise.is_headless_block_url(page.url)
    except PlaywrightError:
        return False
