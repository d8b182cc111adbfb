"""
Playwright persistent-context launcher.

Each destination gets its own Chromium user-data directory under
<app_dir>/profiles/<destination>, so cookies and local storage (and therefore
login state) survive between runs. Launches hold the profile lock for the
lifetime of the session.

BrowserLease is what the orchestrator and verification controller share: it
owns the current BrowserSession and can swap it for a headed one mid-attempt.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from playwright.sync_api import BrowserContext, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from webchat_relay.exceptions import SessionLaunchError

from ..config.schema import BrowserSettings
from ..storage.layout import get_profile_dir
from .lock import ProfileLock, acquire_profile_lock

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
]

NAVIGATION_TIMEOUT_MS = 60_000


@dataclass
class BrowserSession:
    """A launched persistent context with its page and profile lock."""

    destination: str
    headless: bool
    page: Page
    context: BrowserContext
    lock: ProfileLock
    playwright: Playwright

    def close(self) -> None:
        """Close the context, stop Playwright and release the profile lock."""
        try:
            self.context.close()
        except PlaywrightError as e:
            logger.debug(f"Context for {self.destination} already closed: {e}")
        finally:
            try:
                self.playwright.stop()
            finally:
                self.lock.release()
        logger.debug(f"Closed browser session for {self.destination}")


def launch_browser(
    destination: str,
    headless: bool = True,
    url: str | None = None,
    settings: BrowserSettings | None = None,
    profile_dir: Path | None = None,
) -> BrowserSession:
    """
    Launch Chromium on the destination's persistent profile.

    Args:
        destination: Destination name (selects the profile directory)
        headless: Launch without a visible window
        url: Page to open after launch
        settings: Viewport and channel preferences
        profile_dir: Override the profile directory (tests)

    Returns:
        BrowserSession

    Raises:
        ProfileLockError: If another process holds the profile
        SessionLaunchError: If Playwright fails to start or navigate
    """
    settings = settings or BrowserSettings()
    profile_dir = profile_dir or get_profile_dir(destination)
    lock = acquire_profile_lock(profile_dir)

    playwright = None
    try:
        playwright = sync_playwright().start()
        launch_kwargs = {
            "headless": headless,
            "viewport": {"width": settings.viewport_width, "height": settings.viewport_height},
            "args": LAUNCH_ARGS,
        }
        if settings.channel:
            launch_kwargs["channel"] = settings.channel

        context = playwright.chromium.launch_persistent_context(str(profile_dir), **launch_kwargs)
        page = context.pages[0] if context.pages else context.new_page()
        if url:
            page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
    except PlaywrightError as e:
        if playwright is not None:
            playwright.stop()
        lock.release()
        raise SessionLaunchError(f"Failed to launch browser for {destination}: {e}") from e

    mode = "headless" if headless else "headed"
    logger.info(f"Launched {mode} browser for {destination} (profile: {profile_dir})")
    return BrowserSession(
        destination=destination,
        headless=headless,
        page=page,
        context=context,
        lock=lock,
        playwright=playwright,
    )


Launcher = Callable[..., BrowserSession]


class BrowserLease:
    """
    Owns the browser session of one chat attempt.

    The session is replaced (never shared) when recovery needs a headed
    window; close() is idempotent and safe on every exit path.

    Example:
        >>> lease = BrowserLease("chatgpt", headless=True, url="https://chatgpt.com/")
        >>> try:
        ...     lease.launch()
        ...     page = lease.page
        ... finally:
        ...     lease.close()
    """

    def __init__(
        self,
        destination: str,
        headless: bool,
        url: str,
        settings: BrowserSettings | None = None,
        launcher: Launcher = launch_browser,
    ):
        self.destination = destination
        self.url = url
        self.settings = settings
        self._launcher = launcher
        self._headless = headless
        self._session: BrowserSession | None = None

    @property
    def headless(self) -> bool:
        return self._headless

    @property
    def session(self) -> BrowserSession:
        if self._session is None:
            raise SessionLaunchError(f"No active browser session for {self.destination}")
        return self._session

    @property
    def page(self) -> Page:
        return self.session.page

    def launch(self, url: str | None = None) -> BrowserSession:
        if self._session is not None:
            return self._session
        self._session = self._launcher(
            self.destination,
            headless=self._headless,
            url=url or self.url,
            settings=self.settings,
        )
        return self._session

    def relaunch(self, headless: bool, url: str | None = None) -> BrowserSession:
        """Close the current session and launch a new one in the given mode."""
        mode = "headless" if headless else "headed"
        logger.info(f"Relaunching {self.destination} browser in {mode} mode")
        self.close()
        self._headless = headless
        return self.launch(url)

    def close(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()

    def __enter__(self) -> "BrowserLease":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
