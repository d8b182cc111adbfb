"""
Shared fixtures and fakes for webchat-relay tests.

Every test runs with WEBCHAT_RELAY_HOME pointed at a temporary directory so
nothing touches the real ~/.webchat-relay. Browser-facing components are
exercised with small fakes instead of Playwright:

- FakeClock: monotonic clock whose sleep() advances time instantly
- FakePage: url + reload() bookkeeping
- ScriptedAdapter: DestinationAdapter whose snapshots and login state follow a script
- FakeLauncher: stands in for launch_browser() behind a real BrowserLease
"""

from dataclasses import dataclass, field

import pytest

from webchat_relay.capture.snapshot import SourceEntry, TurnSnapshot
from webchat_relay.destinations.base import DestinationConfig
from webchat_relay.destinations.heuristics import DEFAULT_NOISE, NoiseProfile

# ============================================================================
# Fakes
# ============================================================================


class FakeClock:
    """Deterministic clock; sleep() moves time forward without waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePage:
    def __init__(self, url: str = "https://chat.example.com/"):
        self.url = url
        self.reloads = 0

    def reload(self, wait_until: str | None = None) -> None:
        self.reloads += 1


def snap(text: str = "", *markers: str) -> TurnSnapshot:
    return TurnSnapshot(answer_text=text, markers=frozenset(markers))


class ScriptedAdapter:
    """
    Adapter driven by scripts instead of a DOM.

    Attributes:
        snapshots: Snapshots returned by successive snapshot_turn() calls;
            the last one repeats once the list is exhausted
        logged_in: Values returned by successive is_logged_in() calls
            (last one repeats)
        verification: Values for is_verification_visible() (last one repeats)
        headless_blocked: Values for is_headless_blocked() (last one repeats)
    """

    def __init__(
        self,
        snapshots: list[TurnSnapshot] | None = None,
        *,
        name: str = "fake",
        noise: NoiseProfile = DEFAULT_NOISE,
        logged_in: list[bool] | None = None,
        verification: list[bool] | None = None,
        headless_blocked: list[bool] | None = None,
        sources: list[list[SourceEntry]] | None = None,
        supports_attachments: bool = True,
        has_side_channel_sources: bool = False,
        auto_headed_login_fallback: bool = False,
        headless_probe_timeout_ms: int | None = None,
        stable_threshold: int = 2,
    ):
        self.config = DestinationConfig(
            name=name,
            display_name=name.title(),
            url=f"https://{name}.example.com/",
            login_url=f"https://{name}.example.com/login",
            auto_headed_login_fallback=auto_headed_login_fallback,
            poll_interval_s=1.0,
            stable_threshold=stable_threshold,
            headless_probe_timeout_ms=headless_probe_timeout_ms,
        )
        self.noise = noise
        self.supports_attachments = supports_attachments
        self.has_side_channel_sources = has_side_channel_sources
        self.snapshots = list(snapshots or [snap()])
        self.logged_in = list(logged_in or [True])
        self.verification = list(verification or [False])
        self.headless_blocked_values = list(headless_blocked or [False])
        self.sources = list(sources or [])
        self.submitted: list[str] = []
        self.attached: list = []
        self.snapshot_calls = 0
        self.fetch_calls = 0

    @staticmethod
    def _next(values: list):
        return values.pop(0) if len(values) > 1 else values[0]

    def is_logged_in(self, page) -> bool:
        return self._next(self.logged_in)

    def submit_prompt(self, page, text: str) -> None:
        self.submitted.append(text)

    def attach_files(self, page, paths) -> None:
        self.attached.extend(paths)

    def snapshot_turn(self, page, prompt_text: str) -> TurnSnapshot:
        self.snapshot_calls += 1
        return self._next(self.snapshots)

    def fetch_sources(self, page, snapshot: TurnSnapshot) -> list[SourceEntry]:
        self.fetch_calls += 1
        if not self.sources:
            return []
        return self._next(self.sources)

    def format_response(self, snapshot: TurnSnapshot, sources: list[SourceEntry]):
        text = snapshot.answer_text
        if sources:
            text += "\n\nSources: " + ", ".join(s.url for s in sources)
        return text, text

    def is_verification_visible(self, page) -> bool:
        return self._next(self.verification)

    def is_headless_blocked(self, page) -> bool:
        return self._next(self.headless_blocked_values)


class FakeLease:
    """BrowserLease stand-in for controller tests."""

    def __init__(self, headless: bool = True):
        self.headless = headless
        self.page = FakePage()
        self.relaunches: list[tuple[bool, str | None]] = []

    def relaunch(self, headless: bool, url: str | None = None):
        self.relaunches.append((headless, url))
        self.headless = headless
        self.page = FakePage(url or "about:blank")


@dataclass
class FakeSession:
    destination: str
    headless: bool
    page: FakePage
    closed: bool = False

    def close(self) -> None:
        self.closed = True


@dataclass
class FakeLauncher:
    """Records every launch; plugs into BrowserLease(launcher=...)."""

    sessions: list[FakeSession] = field(default_factory=list)

    def __call__(self, destination, headless=True, url=None, settings=None) -> FakeSession:
        session = FakeSession(destination, headless, FakePage(url or "about:blank"))
        self.sessions.append(session)
        return session


class SingleAdapterRegistry:
    """Registry stand-in that resolves every name to one adapter."""

    def __init__(self, adapter):
        self.adapter = adapter

    def get(self, name: str):
        return self.adapter


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def app_home(tmp_path, monkeypatch):
    """Isolate the application directory for every test."""
    home = tmp_path / "relay-home"
    monkeypatch.setenv("WEBCHAT_RELAY_HOME", str(home))
    return home


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_launcher():
    return FakeLauncher()
