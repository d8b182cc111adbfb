"""
Destination adapter interface.

Each supported chat front-end implements DestinationAdapter. The protocol is
structural: adapters are plain classes that share behavior through the helper
functions in destinations.dom, not through a common base class.

Capabilities:
    is_logged_in: Authenticated composer vs login affordance. Never raises.
    submit_prompt: Focus, clear, inject text, trigger send.
    attach_files: Optional; only called when supports_attachments is True.
    snapshot_turn: Current best-guess answer plus markers.
    fetch_sources: Optional side-channel citations, only called when
        has_side_channel_sources is True.
    format_response: Final (text, markdown) for a stabilized snapshot.
    is_verification_visible / is_headless_blocked: Block detection used by the
        verification controller.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from playwright.sync_api import Page

from ..capture.snapshot import SourceEntry, TurnSnapshot
from .heuristics import NoiseProfile


@dataclass(frozen=True)
class DestinationConfig:
    """
    Static description of one destination.

    Attributes:
        name: Registry key and profile directory name
        display_name: Human-readable name
        url: Chat root the browser opens
        login_url: Page opened for interactive login
        auto_headed_login_fallback: Relaunch headed automatically when a
            headless run finds the session logged out
        poll_interval_s: Stability detector poll interval
        stable_threshold: Consecutive unchanged polls that mean "done"
        headless_probe_timeout_ms: How long the first headless capture waits
            for an answer to start; if none does, the attempt is retried
            headed within the same capture budget
    """

    name: str
    display_name: str
    url: str
    login_url: str
    auto_headed_login_fallback: bool = False
    poll_interval_s: float = 1.0
    stable_threshold: int = 3
    headless_probe_timeout_ms: int | None = None


@runtime_checkable
class DestinationAdapter(Protocol):
    """Structural interface every destination adapter implements."""

    config: DestinationConfig
    noise: NoiseProfile
    supports_attachments: bool
    has_side_channel_sources: bool

    def is_logged_in(self, page: Page) -> bool: ...

    def submit_prompt(self, page: Page, text: str) -> None: ...

    def attach_files(self, page: Page, paths: list[Path]) -> None: ...

    def snapshot_turn(self, page: Page, prompt_text: str) -> TurnSnapshot: ...

    def fetch_sources(self, page: Page, snapshot: TurnSnapshot) -> list[SourceEntry]: ...

    def format_response(
        self, snapshot: TurnSnapshot, sources: list[SourceEntry]
    ) -> tuple[str, str]: ...

    def is_verification_visible(self, page: Page) -> bool: ...

    def is_headless_blocked(self, page: Page) -> bool: ...
