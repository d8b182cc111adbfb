"""
Verification and block recovery.

Destinations interrupt automation in three ways: a captcha or human-check
widget, a logged-out session, or (headless only) a landing page that refuses
headless clients. VerificationController detects which one applies and drives
the session back to "normal", escalating to a visible browser window when a
human has to act.

States:
    normal: Nothing blocks the composer
    verification_required: Challenge UI or challenge URL is showing
    login_required: Login affordance instead of the composer
    headless_blocked: Destination served its headless/region block page

Headed escalation lasts for the rest of the current attempt only. The next
run starts in its configured mode again.
"""

import logging
import time
from collections.abc import Callable
from typing import Any, Literal

from playwright.sync_api import Error as PlaywrightError

from webchat_relay.exceptions import LoginTimeout, VerificationTimeout

from ..browser.manager import BrowserLease
from ..config.constants import (
    HEADLESS_AUTH_RECHECK_S,
    LOGIN_WAIT_S,
    RECOVERY_POLL_S,
    VERIFICATION_WAIT_S,
)
from ..destinations.base import DestinationAdapter

logger = logging.getLogger(__name__)

RecoveryState = Literal["normal", "verification_required", "login_required", "headless_blocked"]

RECOVERY_STATES: tuple[str, ...] = (
    "normal",
    "verification_required",
    "login_required",
    "headless_blocked",
)


class VerificationController:
    """
    Detects blocking states and recovers from them.

    Args:
        adapter: Destination adapter (detection capabilities)
        lease: Browser lease of the current attempt; recovery may relaunch it
        clock: Monotonic clock in seconds
        sleep: Sleep function
        verification_timeout_s: How long a human gets to solve a challenge
        login_timeout_s: How long a human gets to log in
        poll_interval_s: Gap between checks while waiting on a human
        headless_recheck_s: How long a headless session may take to show
            the composer before it is considered logged out
        notify: Receives user-facing status lines (console warnings)
    """

    def __init__(
        self,
        adapter: DestinationAdapter,
        lease: BrowserLease,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
        verification_timeout_s: float = VERIFICATION_WAIT_S,
        login_timeout_s: float = LOGIN_WAIT_S,
        poll_interval_s: float = RECOVERY_POLL_S,
        headless_recheck_s: float = HEADLESS_AUTH_RECHECK_S,
        notify: Callable[[str], None] | None = None,
    ):
        self.adapter = adapter
        self.lease = lease
        self.clock = clock
        self.sleep = sleep
        self.verification_timeout_s = verification_timeout_s
        self.login_timeout_s = login_timeout_s
        self.poll_interval_s = poll_interval_s
        self.headless_recheck_s = headless_recheck_s
        self._notify = notify or (lambda message: None)

    @property
    def display_name(self) -> str:
        return self.adapter.config.display_name

    @property
    def destination(self) -> str:
        return self.adapter.config.name

    def detect(self) -> RecoveryState:
        """Current blocking state of the page (login is checked separately)."""
        page = self.lease.page
        if self.lease.headless and self.adapter.is_headless_blocked(page):
            return "headless_blocked"
        if self.adapter.is_verification_visible(page):
            return "verification_required"
        return "normal"

    def ensure_logged_in(self) -> None:
        """
        Make sure the session is authenticated before submitting.

        Headless sessions get a grace period (with one reload) because some
        destinations hydrate auth state late. After that the session is
        escalated to a headed window when the destination allows it.

        Raises:
            LoginTimeout: If login cannot be established
            VerificationTimeout: If a challenge shows up and is not solved
        """
        if self.adapter.is_logged_in(self.lease.page):
            return

        if not self.lease.headless:
            self.recover("login_required")
            return

        if self._recheck_headless_login():
            return

        if self.adapter.is_headless_blocked(self.lease.page):
            self.recover("headless_blocked")
        elif self.adapter.config.auto_headed_login_fallback:
            self.recover("login_required")
        else:
            raise LoginTimeout(
                f"Not logged in to {self.display_name}. "
                f"Run: webchat-relay login {self.destination}",
                destination=self.destination,
            )

    def recover(self, state: RecoveryState) -> None:
        """
        Drive the session from state back to normal.

        Raises:
            VerificationTimeout: Challenge still visible after the wait window
            LoginTimeout: Still logged out after the wait window
            ValueError: Unknown state
        """
        if state == "normal":
            return
        logger.info(f"{self.destination}: recovering from {state}")

        if state == "verification_required":
            self._recover_verification()
        elif state == "login_required":
            self._recover_login()
        elif state == "headless_blocked":
            self._recover_headless_block()
        else:
            raise ValueError(f"Unknown recovery state: {state}")

    # ------------------------------------------------------------------
    # Recovery flows
    # ------------------------------------------------------------------

    def _recover_verification(self) -> None:
        if self.lease.headless:
            self._notify(f"{self.display_name} requires human verification. Switching to headed mode...")
            self.lease.relaunch(headless=False, url=self.adapter.config.url)

        self._notify(
            f"Human verification detected for {self.display_name}. "
            "Please complete verification in the browser window..."
        )
        if not self._wait_until(
            lambda: not self.adapter.is_verification_visible(self.lease.page),
            self.verification_timeout_s,
        ):
            raise VerificationTimeout(
                f"Human verification timed out for {self.display_name}. "
                "Please retry after completing captcha.",
                destination=self.destination,
            )

        if not self.adapter.is_logged_in(self.lease.page):
            self._notify(f"Verification passed. Please complete login for {self.display_name}...")
            self._wait_for_login()
        logger.info(f"{self.destination}: verification completed")

    def _recover_login(self) -> None:
        if self.lease.headless:
            self._notify(
                f"Login required for {self.display_name}. "
                "Switching to headed mode for authentication..."
            )
            self.lease.relaunch(headless=False, url=self.adapter.config.login_url)
        else:
            self._notify(f"Not logged in to {self.display_name}. Please login in the browser window...")

        if self.adapter.is_logged_in(self.lease.page):
            return
        self._wait_for_login()

    def _recover_headless_block(self) -> None:
        self._notify(f"{self.display_name} blocked headless access. Switching to headed mode...")
        self.lease.relaunch(headless=False, url=self.adapter.config.url)
        if self.adapter.is_logged_in(self.lease.page):
            return
        self._notify(f"Not logged in to {self.display_name}. Please login in the browser window...")
        self._wait_for_login()

    # ------------------------------------------------------------------
    # Wait loops
    # ------------------------------------------------------------------

    def _wait_for_login(self) -> None:
        minutes = max(1, round(self.login_timeout_s / 60))
        self._notify(f"Complete login in the browser window (up to {minutes} minutes)...")
        if not self._wait_until(
            lambda: self.adapter.is_logged_in(self.lease.page), self.login_timeout_s
        ):
            raise LoginTimeout(
                f"Login timed out for {self.display_name}. "
                f"Run: webchat-relay login {self.destination}",
                destination=self.destination,
            )
        logger.info(f"{self.destination}: login confirmed")

    def _wait_until(self, condition: Callable[[], bool], timeout_s: float) -> bool:
        deadline = self.clock() + timeout_s
        while True:
            if condition():
                return True
            if self.clock() >= deadline:
                return False
            self.sleep(self.poll_interval_s)

    def _recheck_headless_login(self) -> bool:
        """Poll is_logged_in for headless_recheck_s, reloading the page once."""
        deadline = self.clock() + self.headless_recheck_s
        reloaded = False
        while self.clock() < deadline:
            self.sleep(self.poll_interval_s)
            if not reloaded:
                reloaded = True
                try:
                    self.lease.page.reload(wait_until="domcontentloaded")
                except PlaywrightError as e:
                    logger.debug(f"{self.destination}: reload during auth recheck failed: {e}")
            if self.adapter.is_logged_in(self.lease.page):
                logger.debug(f"{self.destination}: headless session authenticated on recheck")
                return True
        return False
