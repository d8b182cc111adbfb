"""
Chat orchestrator: one prompt in, one captured answer out.

Stages of an attempt:
    guard_check -> session_launch -> login_check -> [attach_files]
    -> [verification_recovery] -> submit -> capture -> outcome_record -> done

The submit/capture pair runs in a bounded retry loop so a verification
challenge or headless block that appears mid-attempt is recovered without
restarting the whole flow.

Invariants:
- A guard denial short-circuits before any browser is launched and is only
  recorded to error telemetry.
- Once the guard approved an attempt, every exit path records an outcome with
  the guard, updates the session status and closes the browser.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from playwright.sync_api import Error as PlaywrightError

from webchat_relay.exceptions import (
    AdapterError,
    CaptureError,
    GuardDenied,
    RecoveryNeeded,
    SessionLaunchError,
)

from ..browser.manager import BrowserLease, Launcher, launch_browser
from ..capture.detector import StabilityDetector
from ..capture.snapshot import CapturedResponse
from ..config.constants import MAX_SUBMIT_ATTEMPTS
from ..config.schema import AppConfig
from ..destinations.base import DestinationAdapter
from ..destinations.registry import DestinationRegistry
from ..guard.classifier import classify_error, classify_response
from ..guard.risk_guard import RiskGuard
from ..storage.error_log import record_error_event
from ..storage.sessions import SessionMeta, SessionStore
from ..utils.logging import log_with_context
from ..utils.time import format_wait
from .verification import VerificationController

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatResult:
    """
    Outcome of a successful run_chat().

    Attributes:
        response: Captured answer
        session_id: Session store ID for this attempt
        destination: Destination name
        duration_ms: Wall-clock time from browser launch to completion
    """

    response: CapturedResponse
    session_id: str
    destination: str
    duration_ms: int

    @property
    def text(self) -> str:
        return self.response.text

    @property
    def truncated(self) -> bool:
        return self.response.truncated


@dataclass
class ChatAttempt:
    """Mutable state scoped to one run_chat() call."""

    adapter: DestinationAdapter
    session: SessionMeta
    lease: BrowserLease
    mode: str
    prompt_bundle: str
    timeout_s: float
    attachments: list[Path] = field(default_factory=list)
    stage: str = "init"
    capture_anchor: float | None = None
    recovering: str | None = None

    @property
    def destination(self) -> str:
        return self.adapter.config.name


class ChatOrchestrator:
    """
    Sequences guard, browser, recovery and capture for one chat.

    All collaborators are injectable so the flow can be exercised without a
    real browser.

    Args:
        config: Resolved application config (defaults, browser settings)
        guard: Rate/risk guard
        store: Session store
        launcher: Browser launcher used by the lease
        registry: Destination registry
        clock: Monotonic clock in seconds
        sleep: Sleep function used by polling loops
        notify: Receives user-facing status lines
        error_log_path: Override for the error telemetry file
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        guard: RiskGuard | None = None,
        store: SessionStore | None = None,
        launcher: Launcher = launch_browser,
        registry: type[DestinationRegistry] = DestinationRegistry,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
        notify: Callable[[str], None] | None = None,
        error_log_path: Path | None = None,
    ):
        self.config = config or AppConfig()
        self.guard = guard or RiskGuard()
        self.store = store or SessionStore()
        self.launcher = launcher
        self.registry = registry
        self.clock = clock
        self.sleep = sleep
        self._notify = notify or logger.info
        self.error_log_path = error_log_path

    def run_chat(
        self,
        destination: str,
        prompt_bundle: str,
        headless: bool | None = None,
        timeout_ms: int | None = None,
        *,
        prompt_text: str | None = None,
        attachments: list[Path] | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> ChatResult:
        """
        Submit one prompt and capture the answer.

        Args:
            destination: Destination name
            prompt_bundle: Exact text submitted to the composer
            headless: Browser mode; defaults to config.headless
            timeout_ms: Capture budget; defaults to config.default_timeout_ms
            prompt_text: User prompt used for the guard fingerprint and the
                session preview (defaults to prompt_bundle)
            attachments: Files to upload before submitting
            on_chunk: Receives streamed answer text

        Returns:
            ChatResult (response.truncated is True if the answer never settled)

        Raises:
            UnknownDestinationError: Destination is not registered
            GuardDenied: Risk guard refused the attempt
            SessionLaunchError, ProfileLockError: Browser could not start
            CaptureError: No answer, or verification/login not completed
            AdapterError: Destination UI could not be driven
        """
        adapter = self.registry.get(destination)
        name = adapter.config.name
        headless = self.config.headless if headless is None else headless
        timeout_ms = timeout_ms or self.config.default_timeout_ms
        mode = "headless" if headless else "headed"
        prompt = prompt_bundle if prompt_text is None else prompt_text

        self._check_guard(name, mode, prompt)

        session = self.store.create(name, prompt)
        self.store.save_bundle(session.id, prompt_bundle)
        self._record_attempt_start(name, mode, prompt, session.id)

        attempt = ChatAttempt(
            adapter=adapter,
            session=session,
            lease=BrowserLease(
                name,
                headless=headless,
                url=adapter.config.url,
                settings=self.config.browser,
                launcher=self.launcher,
            ),
            mode=mode,
            prompt_bundle=prompt_bundle,
            timeout_s=timeout_ms / 1000,
            attachments=list(attachments or []),
        )
        self._notify(f"Session: {session.id}")

        start = self.clock()
        try:
            response = self._run_attempt(attempt, on_chunk)

            attempt.stage = "outcome_record"
            kind = "timeout" if response.truncated else classify_response(response.text)
            self._record_outcome(name, kind, None if kind == "success" else response.text)

            duration_ms = self._elapsed_ms(start)
            self.store.save_response(session.id, response.text)
            self.store.update(
                session.id,
                status="timeout" if response.truncated else "completed",
                duration_ms=duration_ms,
                truncated=response.truncated,
            )
            attempt.stage = "done"
            log_with_context(
                logger,
                logging.INFO,
                f"Chat with {name} finished in {duration_ms}ms",
                context={"destination": name, "outcome": kind, "truncated": response.truncated},
                session_id=session.id,
            )
            return ChatResult(
                response=response,
                session_id=session.id,
                destination=name,
                duration_ms=duration_ms,
            )
        except BaseException as e:
            self._handle_failure(attempt, e, self._elapsed_ms(start))
            raise
        finally:
            attempt.lease.close()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _check_guard(self, destination: str, mode: str, prompt: str) -> None:
        decision = self.guard.evaluate(destination, mode, prompt)
        if decision.allowed:
            return

        message = (
            f"[risk-guard] {destination} blocked: {decision.message}. "
            f"Retry in {format_wait(decision.wait_ms)}."
        )
        error = GuardDenied(
            message,
            reason=decision.reason,
            wait_ms=decision.wait_ms,
            destination=destination,
        )
        record_error_event(
            "chat",
            "guard_check",
            error,
            message=message,
            destination=destination,
            metadata={"mode": mode, "wait_ms": decision.wait_ms},
            log_path=self.error_log_path,
        )
        raise error

    def _run_attempt(
        self, attempt: ChatAttempt, on_chunk: Callable[[str], None] | None
    ) -> CapturedResponse:
        adapter = attempt.adapter

        attempt.stage = "session_launch"
        self.store.update(attempt.session.id, status="running")
        attempt.lease.launch()

        controller = VerificationController(
            adapter,
            attempt.lease,
            clock=self.clock,
            sleep=self.sleep,
            notify=self._notify,
        )

        attempt.stage = "login_check"
        controller.ensure_logged_in()

        if attempt.attachments:
            attempt.stage = "attach_files"
            if adapter.supports_attachments:
                self._notify(f"Attaching {len(attempt.attachments)} file(s)...")
                adapter.attach_files(attempt.lease.page, attempt.attachments)
            else:
                self._notify(
                    f"Destination '{attempt.destination}' does not support file "
                    "attachments. --attach will be ignored."
                )

        detector = StabilityDetector.for_destination(
            adapter.config, clock=self.clock, sleep=self.sleep
        )
        return self._submit_and_capture(attempt, controller, detector, on_chunk)

    def _submit_and_capture(
        self,
        attempt: ChatAttempt,
        controller: VerificationController,
        detector: StabilityDetector,
        on_chunk: Callable[[str], None] | None,
    ) -> CapturedResponse:
        adapter = attempt.adapter
        probe_cap_ms = adapter.config.headless_probe_timeout_ms

        for number in range(1, MAX_SUBMIT_ATTEMPTS + 1):
            last_try = number == MAX_SUBMIT_ATTEMPTS
            self._recover(attempt, controller, controller.detect())

            probing = number == 1 and attempt.lease.headless and probe_cap_ms is not None
            page = attempt.lease.page
            try:
                attempt.stage = "submit"
                baseline = adapter.snapshot_turn(page, attempt.prompt_bundle)
                adapter.submit_prompt(page, attempt.prompt_bundle)

                attempt.stage = "capture"
                self._notify("Waiting for response...")
                if attempt.capture_anchor is None:
                    attempt.capture_anchor = self.clock()
                # The headless cap only bounds the wait for a first answer
                return detector.capture_response(
                    adapter,
                    page,
                    attempt.prompt_bundle,
                    baseline,
                    attempt.timeout_s,
                    started_at=attempt.capture_anchor,
                    first_turn_timeout_s=probe_cap_ms / 1000 if probing else None,
                    on_chunk=on_chunk,
                    probe=controller.detect,
                )
            except RecoveryNeeded as e:
                if last_try:
                    raise
                logger.warning(f"{attempt.destination}: attempt {number} interrupted ({e.state})")
                self._recover(attempt, controller, e.state)
            except CaptureError as e:
                if not (probing and e.kind == "no_response"):
                    raise
                if self.clock() >= attempt.capture_anchor + attempt.timeout_s:
                    raise
                self._notify(
                    f"{adapter.config.display_name} did not answer in headless mode. "
                    "Retrying in headed mode..."
                )
                attempt.stage = "verification_recovery"
                started = self.clock()
                attempt.lease.relaunch(headless=False, url=adapter.config.url)
                controller.ensure_logged_in()
                attempt.capture_anchor += self.clock() - started
            except AdapterError as e:
                state = controller.detect()
                if state == "normal" or last_try:
                    raise
                logger.warning(f"{attempt.destination}: {e} (page shows {state})")
                self._recover(attempt, controller, state)

        raise CaptureError(
            f"Failed to capture {adapter.config.display_name} response "
            f"after {MAX_SUBMIT_ATTEMPTS} attempts",
            kind="no_response",
            destination=attempt.destination,
        )

    def _recover(
        self, attempt: ChatAttempt, controller: VerificationController, state: str
    ) -> None:
        if state == "normal":
            return
        attempt.stage = "verification_recovery"
        started = self.clock()
        attempt.recovering = state
        controller.recover(state)
        attempt.recovering = None
        # Human-paced waits have their own bounds; keep them out of the capture budget
        if attempt.capture_anchor is not None:
            attempt.capture_anchor += self.clock() - started

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _record_attempt_start(
        self, destination: str, mode: str, prompt: str, session_id: str
    ) -> None:
        try:
            self.guard.record_attempt_start(destination, mode, prompt)
        except OSError as e:
            logger.error(f"Could not record attempt start for {destination}: {e}")
            record_error_event(
                "chat",
                "risk_guard_attempt_start",
                e,
                destination=destination,
                session_id=session_id,
                log_path=self.error_log_path,
            )

    def _record_outcome(self, destination: str, kind: str, message: str | None) -> None:
        try:
            self.guard.record_outcome(destination, kind, message)
        except OSError as e:
            logger.error(f"Could not record {kind} outcome for {destination}: {e}")

    def _handle_failure(
        self, attempt: ChatAttempt, error: BaseException, duration_ms: int
    ) -> None:
        name = attempt.destination
        description = str(error) or f"Interrupted ({type(error).__name__})"
        logger.error(f"Chat with {name} failed at {attempt.stage}: {description}")

        if attempt.recovering is not None and not isinstance(error, Exception):
            # Abandoned while a challenge was on screen
            kind = classify_error(RecoveryNeeded(description, state=attempt.recovering))
        else:
            kind = classify_error(error)
        self._record_outcome(name, kind, description)

        timed_out = isinstance(error, CaptureError) and error.kind == "no_response"
        try:
            self.store.update(
                attempt.session.id,
                status="timeout" if timed_out else "failed",
                duration_ms=duration_ms,
                error=description,
            )
        except OSError as e:
            logger.error(f"Could not update session {attempt.session.id}: {e}")

        record_error_event(
            "chat",
            attempt.stage,
            error,
            message=description,
            destination=name,
            session_id=attempt.session.id,
            url=self._current_url(attempt),
            duration_ms=duration_ms,
            metadata={"mode": attempt.mode, "headless": attempt.lease.headless},
            log_path=self.error_log_path,
        )

    @staticmethod
    def _current_url(attempt: ChatAttempt) -> str | None:
        try:
            return attempt.lease.page.url
        except (SessionLaunchError, PlaywrightError):
            # Page already gone; the URL is diagnostic only
            return None

    def _elapsed_ms(self, start: float) -> int:
        return round((self.clock() - start) * 1000)
