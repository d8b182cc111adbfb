"""
Stability detector: decides when a streamed answer is finished.

Destinations never signal "stream complete", so completion is inferred by
polling TurnSnapshots: once the latest turn differs from the pre-submit
baseline, the answer is done when its signature stays unchanged (and no
streaming marker is shown) for stable_threshold consecutive polls.

Interim status snapshots ("正在搜索", "Thinking...") never count as a new turn,
never reach the chunk callback and reset the stable counter.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tenacity import RetryError

from webchat_relay.exceptions import CaptureError, RecoveryNeeded

from ..destinations.retry_config import (
    SIDE_CHANNEL_MAX_ATTEMPTS,
    SIDE_CHANNEL_WAIT_SECONDS,
    create_side_channel_retrying,
)
from .snapshot import CapturedResponse, SourceEntry, TurnSnapshot

if TYPE_CHECKING:
    from playwright.sync_api import Page

    from ..destinations.base import DestinationAdapter, DestinationConfig

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 1.0
DEFAULT_STABLE_THRESHOLD = 3

# Recovery probe runs on every Nth poll
DEFAULT_PROBE_EVERY = 3

NORMAL_STATE = "normal"


@dataclass
class CaptureSession:
    """
    Transient state of one capture_response() call.

    The prompt text travels here explicitly so adapters can strip its echo
    from snapshots without any page-keyed side table.
    """

    destination: str
    prompt_text: str
    start_time: float
    deadline: float
    baseline_snapshot: TurnSnapshot
    last_snapshot: TurnSnapshot
    stable_count: int = 0
    saw_new_turn: bool = False
    last_streamed_text: str = ""
    rewritten: bool = False
    polls: int = 0


class StabilityDetector:
    """
    Poll-and-diff completion detector.

    Args:
        poll_interval_s: Seconds between polls
        stable_threshold: Consecutive unchanged, non-streaming polls that
            declare completion
        clock: Monotonic clock in seconds (injected by tests)
        sleep: Sleep function (injected by tests)
        probe_every: Consult the recovery probe every N polls
        side_channel_attempts: Source fetch attempts after stabilization
        side_channel_wait_s: Gap between source fetch attempts
    """

    def __init__(
        self,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        stable_threshold: int = DEFAULT_STABLE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
        probe_every: int = DEFAULT_PROBE_EVERY,
        side_channel_attempts: int = SIDE_CHANNEL_MAX_ATTEMPTS,
        side_channel_wait_s: float = SIDE_CHANNEL_WAIT_SECONDS,
    ):
        if stable_threshold < 1:
            raise ValueError("stable_threshold must be at least 1")
        self.poll_interval_s = poll_interval_s
        self.stable_threshold = stable_threshold
        self.clock = clock
        self.sleep = sleep
        self.probe_every = max(1, probe_every)
        self.side_channel_attempts = side_channel_attempts
        self.side_channel_wait_s = side_channel_wait_s

    @classmethod
    def for_destination(
        cls,
        config: "DestinationConfig",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> "StabilityDetector":
        return cls(
            poll_interval_s=config.poll_interval_s,
            stable_threshold=config.stable_threshold,
            clock=clock,
            sleep=sleep,
        )

    def capture_response(
        self,
        adapter: "DestinationAdapter",
        page: "Page",
        prompt_text: str,
        baseline: TurnSnapshot,
        timeout_s: float,
        *,
        started_at: float | None = None,
        first_turn_timeout_s: float | None = None,
        on_chunk: Callable[[str], None] | None = None,
        probe: Callable[[], str] | None = None,
    ) -> CapturedResponse:
        """
        Poll until the answer stabilizes or the deadline passes.

        Args:
            adapter: Destination adapter providing snapshot_turn()
            page: Playwright page of the active session
            prompt_text: Submitted prompt (for echo filtering)
            baseline: Snapshot taken before the prompt was submitted
            timeout_s: Overall capture budget in seconds
            started_at: Clock anchor shared across retries; defaults to now
            first_turn_timeout_s: Give up early (no_response) if no new turn
                has appeared this long after the call; once one has, polling
                continues until the overall deadline
            on_chunk: Receives appended answer text while it streams
            probe: Returns a recovery state; anything but "normal" aborts

        Returns:
            CapturedResponse, truncated=True when the deadline hit after a
            new turn appeared

        Raises:
            CaptureError: kind="no_response" if no new turn appeared in time
            RecoveryNeeded: if the probe reports a blocking state
            AdapterError: if a snapshot fails with a non-transient error
        """
        start = self.clock() if started_at is None else started_at
        session = CaptureSession(
            destination=adapter.config.name,
            prompt_text=prompt_text,
            start_time=start,
            deadline=start + timeout_s,
            baseline_snapshot=baseline,
            last_snapshot=baseline,
        )

        first_turn_deadline = None
        if first_turn_timeout_s is not None:
            first_turn_deadline = min(self.clock() + first_turn_timeout_s, session.deadline)

        completed = False
        waited_s = timeout_s
        while self.clock() < session.deadline:
            if (
                first_turn_deadline is not None
                and not session.saw_new_turn
                and self.clock() >= first_turn_deadline
            ):
                waited_s = first_turn_timeout_s
                break
            session.polls += 1
            if probe is not None and session.polls % self.probe_every == 0:
                state = probe()
                if state != NORMAL_STATE:
                    logger.info(f"{session.destination}: capture interrupted by {state}")
                    raise RecoveryNeeded(
                        f"{adapter.config.display_name} needs recovery: {state}",
                        state=state,
                    )

            current = adapter.snapshot_turn(page, prompt_text)
            if self.observe(session, current, adapter, on_chunk):
                completed = True
                break
            self.sleep(self.poll_interval_s)

        if not session.saw_new_turn:
            raise CaptureError(
                f"Timed out waiting for {adapter.config.display_name} response "
                f"after {waited_s:.0f}s",
                kind="no_response",
                destination=session.destination,
            )

        final = session.last_snapshot
        if not completed:
            logger.warning(
                f"{session.destination}: answer did not stabilize before timeout, "
                f"returning truncated text ({len(final.answer_text)} chars)"
            )

        sources = self._fetch_sources(adapter, page, final)
        text, markdown = adapter.format_response(final, sources)

        if on_chunk is not None and session.rewritten and final.answer_text:
            on_chunk(final.answer_text)

        elapsed = self.clock() - session.start_time
        return CapturedResponse(
            text=text,
            markdown=markdown,
            truncated=not completed,
            thinking_time_seconds=round(elapsed),
        )

    def observe(
        self,
        session: CaptureSession,
        current: TurnSnapshot,
        adapter: "DestinationAdapter",
        on_chunk: Callable[[str], None] | None = None,
    ) -> bool:
        """
        Fold one poll into the session; True once the answer is stable.

        Exposed separately so the state machine can be driven without a page.
        """
        if adapter.noise.is_interim(current.answer_text):
            session.stable_count = 0
            return False

        if not session.saw_new_turn:
            if current.signature == session.baseline_snapshot.signature:
                return False
            session.saw_new_turn = True
            logger.debug(f"{session.destination}: new turn observed")

        self._stream(session, current.answer_text, on_chunk)

        if current.signature == session.last_snapshot.signature and not current.is_streaming:
            session.stable_count += 1
        else:
            session.stable_count = 0
        session.last_snapshot = current

        return session.stable_count >= self.stable_threshold and bool(current.answer_text)

    def _stream(
        self,
        session: CaptureSession,
        text: str,
        on_chunk: Callable[[str], None] | None,
    ) -> None:
        previous = session.last_streamed_text
        if text == previous or not text:
            return
        if text.startswith(previous):
            if on_chunk is not None and not session.rewritten:
                on_chunk(text[len(previous) :])
        else:
            # Structural rewrite: stop diffing, emit the final text at the end
            session.rewritten = True
        session.last_streamed_text = text

    def _fetch_sources(
        self,
        adapter: "DestinationAdapter",
        page: "Page",
        snapshot: TurnSnapshot,
    ) -> list[SourceEntry]:
        if not adapter.has_side_channel_sources:
            return []
        retrying = create_side_channel_retrying(
            sleep=self.sleep,
            attempts=self.side_channel_attempts,
            wait_seconds=self.side_channel_wait_s,
        )
        try:
            return retrying(adapter.fetch_sources, page, snapshot)
        except RetryError as e:
            logger.info(
                f"{adapter.config.name}: no side-channel sources after "
                f"{e.last_attempt.attempt_number} attempts"
            )
            return []
