"""
Tests for the webchat-relay CLI.

The browser never starts: `chat` runs against a stand-in ChatOrchestrator and
`login` against FakeLauncher + ScriptedAdapter. Session, error and risk
commands read the real stores under the per-test WEBCHAT_RELAY_HOME.
"""

import functools
import json
import logging

import pytest
import yaml
from conftest import ScriptedAdapter, SingleAdapterRegistry
from typer.testing import CliRunner

from webchat_relay import cli
from webchat_relay.browser.manager import BrowserLease
from webchat_relay.capture.snapshot import CapturedResponse
from webchat_relay.cli import app
from webchat_relay.core.orchestrator import ChatResult
from webchat_relay.core.sources import SourceCrawlOutput
from webchat_relay.exceptions import CaptureError, GuardDenied, LoginTimeout
from webchat_relay.guard import RiskGuard
from webchat_relay.storage.error_log import list_error_events, record_error_event
from webchat_relay.storage.sessions import SessionStore
from webchat_relay.utils.console import output_mode


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_output_mode():
    """Reset the global output mode and root log handlers around each test."""
    output_mode.reset()
    yield
    output_mode.reset()
    logging.getLogger().handlers.clear()


def _result(text="pong", *, truncated=False, session_id="sess-1", destination="chatgpt"):
    return ChatResult(
        response=CapturedResponse(
            text=text, markdown=text, truncated=truncated, thinking_time_seconds=3
        ),
        session_id=session_id,
        destination=destination,
        duration_ms=4200,
    )


@pytest.fixture
def fake_orchestrator(monkeypatch):
    """Replace ChatOrchestrator in the CLI; configure .outcome and .chunks per test."""

    class FakeOrchestrator:
        instances: list = []
        outcome = _result()
        chunks: list[str] = []

        def __init__(self, config=None, notify=None, **kwargs):
            self.config = config
            self.calls: list[dict] = []
            FakeOrchestrator.instances.append(self)

        def run_chat(
            self,
            destination,
            prompt_bundle,
            headless=None,
            timeout_ms=None,
            *,
            prompt_text=None,
            attachments=None,
            on_chunk=None,
        ):
            self.calls.append(
                {
                    "destination": destination,
                    "bundle": prompt_bundle,
                    "headless": headless,
                    "timeout_ms": timeout_ms,
                    "prompt_text": prompt_text,
                    "attachments": attachments,
                    "streaming": on_chunk is not None,
                }
            )
            if isinstance(self.outcome, Exception):
                raise self.outcome
            if on_chunk is not None:
                for chunk in self.chunks:
                    on_chunk(chunk)
            return self.outcome

    monkeypatch.setattr(cli, "ChatOrchestrator", FakeOrchestrator)
    return FakeOrchestrator


def _last_call(fake):
    return fake.instances[-1].calls[-1]


# ============================================================================
# chat
# ============================================================================


class TestChatSuccess:
    """Answers reach stdout in every output mode."""

    def test_text_mode(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(app, ["chat", "ping"])

        assert result.exit_code == 0
        assert "pong" in result.stdout
        call = _last_call(fake_orchestrator)
        assert call["destination"] == "chatgpt"
        assert call["bundle"] == "ping\n"
        assert call["prompt_text"] == "ping"
        assert call["headless"] is None
        assert call["timeout_ms"] is None
        assert call["attachments"] == []

    def test_quiet_prints_only_answer(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(app, ["chat", "ping", "--quiet"])

        assert result.exit_code == 0
        assert result.stdout == "pong\n"

    def test_streamed_chunks_not_printed_twice(self, cli_runner, fake_orchestrator):
        fake_orchestrator.chunks = ["po", "ng"]

        result = cli_runner.invoke(app, ["chat", "ping", "-q"])

        assert result.exit_code == 0
        assert result.stdout == "pong\n"

    def test_json_output(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(app, ["chat", "ping", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "success"
        assert data["response"] == "pong"
        assert data["destination"] == "chatgpt"
        assert data["session_id"] == "sess-1"
        assert data["duration_ms"] == 4200
        assert data["truncated"] is False
        assert data["thinking_time_seconds"] == 3
        assert _last_call(fake_orchestrator)["streaming"] is False

    def test_json_output_has_no_ansi(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(app, ["chat", "ping", "--format", "json"])
        assert "\x1b[" not in result.stdout

    def test_truncated_answer_still_succeeds(self, cli_runner, fake_orchestrator):
        fake_orchestrator.outcome = _result("partial", truncated=True)

        result = cli_runner.invoke(app, ["chat", "ping", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "timeout"
        assert data["truncated"] is True

    def test_options_forwarded(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(
            app, ["chat", "ping", "-d", "Claude", "--headed", "-t", "60000", "-q"]
        )

        assert result.exit_code == 0
        call = _last_call(fake_orchestrator)
        assert call["destination"] == "claude"
        assert call["headless"] is False
        assert call["timeout_ms"] == 60000

    def test_default_destination_from_config(self, cli_runner, fake_orchestrator, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("default_destination: gemini\n", encoding="utf-8")

        result = cli_runner.invoke(app, ["chat", "ping", "-c", str(config_path), "-q"])

        assert result.exit_code == 0
        assert _last_call(fake_orchestrator)["destination"] == "gemini"

    def test_prompt_from_stdin(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(app, ["chat", "-", "-q"], input="from stdin")

        assert result.exit_code == 0
        assert _last_call(fake_orchestrator)["prompt_text"] == "from stdin"

    def test_attachments_resolved(self, cli_runner, fake_orchestrator, tmp_path, monkeypatch):
        (tmp_path / "shot.png").write_bytes(b"\x89PNG")
        monkeypatch.chdir(tmp_path)

        result = cli_runner.invoke(app, ["chat", "describe", "-a", "shot.png", "-q"])

        assert result.exit_code == 0
        attachments = _last_call(fake_orchestrator)["attachments"]
        assert [p.name for p in attachments] == ["shot.png"]


class TestChatFailures:
    """Exit codes: 1 usage, 2 chat failure, 3 guard denial."""

    def test_guard_denied(self, cli_runner, fake_orchestrator):
        fake_orchestrator.outcome = GuardDenied(
            "[risk-guard] chatgpt blocked: chatgpt is cooling down. Retry in ~5m.",
            reason="cooldown",
            wait_ms=300_000,
            destination="chatgpt",
        )

        result = cli_runner.invoke(app, ["chat", "ping", "--format", "json"])

        assert result.exit_code == 3
        data = json.loads(result.stdout)
        assert data["status"] == "error"
        assert data["error"].startswith("[risk-guard] chatgpt blocked")

    def test_capture_failure(self, cli_runner, fake_orchestrator):
        fake_orchestrator.outcome = CaptureError("no answer", destination="chatgpt")

        result = cli_runner.invoke(app, ["chat", "ping", "--format", "json"])

        assert result.exit_code == 2
        assert json.loads(result.stdout)["error"] == "Chat with chatgpt failed: no answer"

    def test_capture_failure_text_mode(self, cli_runner, fake_orchestrator):
        fake_orchestrator.outcome = CaptureError("no answer", destination="chatgpt")

        result = cli_runner.invoke(app, ["chat", "ping"])

        assert result.exit_code == 2
        assert "no answer" in result.output

    def test_unexpected_error_is_recorded(self, cli_runner, fake_orchestrator):
        fake_orchestrator.outcome = RuntimeError("boom")

        result = cli_runner.invoke(app, ["chat", "ping", "--format", "json"])

        assert result.exit_code == 2
        assert "Unexpected error during chat with chatgpt: boom" in json.loads(result.stdout)["error"]
        events = list_error_events()
        assert [(e.module, e.stage, e.destination) for e in events] == [("cli", "chat", "chatgpt")]

    def test_unknown_destination(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(app, ["chat", "ping", "-d", "bard", "--format", "json"])

        assert result.exit_code == 1
        assert "Unknown destination" in json.loads(result.stdout)["error"]
        assert fake_orchestrator.instances == []

    def test_empty_prompt(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(app, ["chat", "   ", "--format", "json"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "Prompt cannot be empty"

    def test_missing_attachment(self, cli_runner, fake_orchestrator, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = cli_runner.invoke(app, ["chat", "ping", "-a", "nope.png", "--format", "json"])

        assert result.exit_code == 1
        assert "Attachment not found" in json.loads(result.stdout)["error"]

    def test_missing_config_file(self, cli_runner, fake_orchestrator, tmp_path):
        result = cli_runner.invoke(
            app, ["chat", "ping", "-c", str(tmp_path / "missing.yaml"), "--format", "json"]
        )

        assert result.exit_code == 1
        assert "Configuration file not found" in json.loads(result.stdout)["error"]

    def test_invalid_format(self, cli_runner, fake_orchestrator):
        result = cli_runner.invoke(app, ["chat", "ping", "--format", "xml"])

        assert result.exit_code == 1
        assert "Invalid format" in result.output


class TestDryRun:
    """--dry-run prints the bundle and never opens a browser."""

    @pytest.fixture
    def workdir(self, tmp_path, monkeypatch):
        (tmp_path / "notes.md").write_text("# Notes", encoding="utf-8")
        (tmp_path / ".env").write_text("TOKEN=secret", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        return tmp_path

    def test_text(self, cli_runner, fake_orchestrator, workdir):
        result = cli_runner.invoke(app, ["chat", "Review", "-f", "*.md", "--dry-run", "-q"])

        assert result.exit_code == 0
        assert "# Context Files (1)" in result.stdout
        assert "## notes.md" in result.stdout
        assert fake_orchestrator.instances == []

    def test_json(self, cli_runner, fake_orchestrator, workdir):
        result = cli_runner.invoke(
            app, ["chat", "Review", "-f", "*.md", "-f", ".env", "-d", "deepseek", "--dry-run", "--format", "json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["destination"] == "deepseek"
        assert data["bundle"].startswith("Review\n\n# Context Files (1)")
        assert "secret" not in data["bundle"]
        assert data["attachments"] == []


# ============================================================================
# login
# ============================================================================


@pytest.fixture
def login_env(monkeypatch, fake_launcher):
    """Route `login` to a ScriptedAdapter on FakeLauncher; returns an installer."""

    def install(adapter):
        monkeypatch.setattr(cli, "DestinationRegistry", SingleAdapterRegistry(adapter))
        monkeypatch.setattr(
            cli, "BrowserLease", functools.partial(BrowserLease, launcher=fake_launcher)
        )
        return adapter

    return install


class TestLogin:
    """Headed login and --status checks."""

    def test_status_logged_in(self, cli_runner, login_env, fake_launcher):
        login_env(ScriptedAdapter(name="chatgpt"))

        result = cli_runner.invoke(app, ["login", "chatgpt", "--status", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["logged_in"] is True
        assert data["destination"] == "chatgpt"
        session = fake_launcher.sessions[0]
        assert session.headless is True
        assert session.page.url == "https://chatgpt.example.com/"
        assert session.closed

    def test_status_logged_out(self, cli_runner, login_env):
        login_env(ScriptedAdapter(name="chatgpt", logged_in=[False]))

        result = cli_runner.invoke(app, ["login", "chatgpt", "--status", "--format", "json"])

        assert result.exit_code == 2
        data = json.loads(result.stdout)
        assert data["logged_in"] is False
        assert "Run: webchat-relay login chatgpt" in data["error"]

    def test_headed_login_waits_for_user(self, cli_runner, login_env, fake_launcher):
        adapter = login_env(ScriptedAdapter(name="chatgpt", logged_in=[False, True]))

        result = cli_runner.invoke(app, ["login", "chatgpt", "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["status"] == "success"
        session = fake_launcher.sessions[0]
        assert session.headless is False
        assert session.page.url == "https://chatgpt.example.com/login"
        assert session.closed
        assert adapter.logged_in == [True]

    def test_login_timeout(self, cli_runner, login_env, monkeypatch):
        login_env(ScriptedAdapter(name="chatgpt", logged_in=[False]))

        class TimingOutController:
            def __init__(self, adapter, lease, notify=None):
                pass

            def recover(self, state):
                raise LoginTimeout("Login timed out for Chatgpt", destination="chatgpt")

        monkeypatch.setattr(cli, "VerificationController", TimingOutController)

        result = cli_runner.invoke(app, ["login", "chatgpt", "--format", "json"])

        assert result.exit_code == 2
        assert json.loads(result.stdout)["error"] == "Login timed out for Chatgpt"
        assert [e.stage for e in list_error_events()] == ["login"]


# ============================================================================
# status / session / errors
# ============================================================================


class TestStatus:
    def test_empty(self, cli_runner):
        result = cli_runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "No sessions found." in result.stdout

    def test_json_lists_sessions(self, cli_runner):
        meta = SessionStore().create("claude", "Explain monads")

        result = cli_runner.invoke(app, ["status", "--format", "json"])

        assert result.exit_code == 0
        sessions = json.loads(result.stdout)["sessions"]
        assert [s["id"] for s in sessions] == [meta.id]
        assert sessions[0]["prompt_preview"] == "Explain monads"

    def test_quiet_is_tab_separated(self, cli_runner):
        meta = SessionStore().create("claude", "Explain monads")

        result = cli_runner.invoke(app, ["status", "-q"])

        assert result.stdout == f"{meta.id}\tclaude\tpending\n"


class TestSession:
    def test_unknown_session(self, cli_runner):
        result = cli_runner.invoke(
            app, ["session", "00000000-0000-0000-0000-000000000000", "--format", "json"]
        )

        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"].startswith("Session not found")

    def test_json_detail(self, cli_runner):
        store = SessionStore()
        meta = store.create("gemini", "hi")
        store.save_response(meta.id, "Hello!")
        store.update(meta.id, status="completed", duration_ms=1500)

        result = cli_runner.invoke(app, ["session", meta.id, "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["session"]["status"] == "completed"
        assert data["response"] == "Hello!"

    def test_quiet_prints_response(self, cli_runner):
        store = SessionStore()
        meta = store.create("gemini", "hi")
        store.save_response(meta.id, "Hello!")

        result = cli_runner.invoke(app, ["session", meta.id, "-q"])

        assert result.stdout == "Hello!\n"

    def test_text_without_response(self, cli_runner):
        meta = SessionStore().create("gemini", "hi")

        result = cli_runner.invoke(app, ["session", meta.id])

        assert result.exit_code == 0
        assert "No response stored for this session." in result.stdout


class TestErrors:
    def test_empty(self, cli_runner):
        result = cli_runner.invoke(app, ["errors"])
        assert "No error events recorded." in result.stdout

    def test_json_with_destination_filter(self, cli_runner):
        record_error_event("chat", "capture", CaptureError("slow"), destination="doubao")
        record_error_event("chat", "submit", RuntimeError("x"), destination="claude")

        result = cli_runner.invoke(app, ["errors", "-d", "Doubao", "--format", "json"])

        assert result.exit_code == 0
        events = json.loads(result.stdout)["errors"]
        assert [e["destination"] for e in events] == ["doubao"]
        assert events[0]["error_type"] == "no_response"

    def test_quiet(self, cli_runner):
        record_error_event("chat", "capture", CaptureError("slow"), destination="doubao")

        result = cli_runner.invoke(app, ["errors", "-q"])

        fields = result.stdout.rstrip("\n").split("\t")
        assert fields[1:] == ["capture", "no_response", "slow"]


# ============================================================================
# risk
# ============================================================================


class TestRisk:
    """State display and reset."""

    def test_fresh_destination(self, cli_runner):
        result = cli_runner.invoke(app, ["risk", "yuanbao", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["destination"] == "yuanbao"
        assert data["blocked"] is None
        assert data["state"]["consecutive_risk_events"] == 0

    def test_cooldown_reported(self, cli_runner):
        RiskGuard().record_outcome("yuanbao", "http_429")

        result = cli_runner.invoke(app, ["risk", "yuanbao", "--format", "json"])

        assert json.loads(result.stdout)["blocked"].startswith("Cooling down. Retry in ~")

    def test_breaker_reported_before_cooldown(self, cli_runner):
        guard = RiskGuard()
        for _ in range(3):
            guard.record_outcome("yuanbao", "captcha_or_verification")

        result = cli_runner.invoke(app, ["risk", "yuanbao", "--format", "json"])

        assert json.loads(result.stdout)["blocked"].startswith("Circuit breaker open")

    def test_reset(self, cli_runner):
        guard = RiskGuard()
        guard.record_attempt_start("yuanbao", "headed", "hello")
        guard.record_outcome("yuanbao", "http_429")

        result = cli_runner.invoke(app, ["risk", "yuanbao", "--reset", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["message"] == "Risk state reset for yuanbao"
        assert data["blocked"] is None
        assert data["state"]["cooldown_until"] is None
        assert len(data["state"]["attempts"]) == 1

    def test_quiet(self, cli_runner):
        result = cli_runner.invoke(app, ["risk", "deepseek", "-q"])
        assert result.stdout == "deepseek\t0\t-\t-\n"

    def test_unknown_destination(self, cli_runner):
        result = cli_runner.invoke(app, ["risk", "bard"])
        assert result.exit_code == 1


# ============================================================================
# config / destinations / version
# ============================================================================


class TestConfigCommands:
    def test_set_then_show(self, cli_runner, tmp_path):
        config_path = tmp_path / "config.yaml"

        result = cli_runner.invoke(app, ["config", "set", "destination", "claude", "-c", str(config_path)])
        assert result.exit_code == 0
        assert yaml.safe_load(config_path.read_text(encoding="utf-8"))["default_destination"] == "claude"

        result = cli_runner.invoke(app, ["config", "show", "-c", str(config_path), "--format", "json"])
        assert json.loads(result.stdout)["config"]["default_destination"] == "claude"

    def test_set_writes_default_location(self, cli_runner, app_home):
        result = cli_runner.invoke(app, ["config", "set", "headless", "false"])

        assert result.exit_code == 0
        saved = yaml.safe_load((app_home / "config.yaml").read_text(encoding="utf-8"))
        assert saved["headless"] is False

    def test_unknown_destination_warns(self, cli_runner, tmp_path):
        config_path = tmp_path / "config.yaml"

        result = cli_runner.invoke(
            app, ["config", "set", "destination", "bard", "-c", str(config_path), "--format", "json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "success"
        assert data["warnings"][0].startswith("'bard' is not a known destination.")

    @pytest.mark.parametrize(
        "key,value,message",
        [
            ("colour", "blue", "Unknown config key"),
            ("headless", "maybe", "headless must be 'true' or 'false'"),
            ("timeout", "soon", "Invalid value for timeout"),
        ],
    )
    def test_invalid_values(self, cli_runner, tmp_path, key, value, message):
        result = cli_runner.invoke(
            app,
            ["config", "set", key, value, "-c", str(tmp_path / "config.yaml"), "--format", "json"],
        )

        assert result.exit_code == 1
        assert message in json.loads(result.stdout)["error"]

    def test_show_defaults(self, cli_runner):
        result = cli_runner.invoke(app, ["config", "show", "--format", "json"])

        config = json.loads(result.stdout)["config"]
        assert config["default_destination"] == "chatgpt"


class TestDestinationsCommand:
    def test_quiet_names(self, cli_runner):
        result = cli_runner.invoke(app, ["destinations", "-q"])

        assert result.exit_code == 0
        assert set(result.stdout.split()) == {
            "chatgpt",
            "gemini",
            "claude",
            "deepseek",
            "yuanbao",
            "doubao",
            "grok",
        }

    def test_json(self, cli_runner):
        result = cli_runner.invoke(app, ["destinations", "--format", "json"])

        destinations = {d["name"]: d for d in json.loads(result.stdout)["destinations"]}
        assert destinations["yuanbao"]["has_side_channel_sources"] is True
        assert destinations["deepseek"]["supports_attachments"] is False


@pytest.fixture
def fake_crawl(monkeypatch):
    calls = []

    async def crawl(urls, **kwargs):
        calls.append({"urls": urls, **kwargs})
        return SourceCrawlOutput(
            total=2,
            succeeded=1,
            failed=1,
            items=[
                {"url": urls[0], "title": "Rate limits", "content": "Body.", "content_chars": 5},
                {"url": "https://down.example.com/", "error": "HTTP 404"},
            ],
        )

    monkeypatch.setattr(cli, "crawl_sources", crawl)
    return calls


class TestSourcesCommand:
    def test_urls_from_options_and_session(self, cli_runner, fake_crawl):
        store = SessionStore()
        meta = store.create("gemini", "cite things")
        store.save_response(meta.id, "See https://example.com/a. Also https://example.com/b")

        result = cli_runner.invoke(
            app,
            ["sources", "-u", "https://example.com/a", "-s", meta.id, "--concurrency", "2",
             "--format", "json"],
        )

        assert result.exit_code == 0
        assert fake_crawl[0]["urls"] == ["https://example.com/a", "https://example.com/b"]
        assert fake_crawl[0]["concurrency"] == 2
        data = json.loads(result.stdout)
        assert data["status"] == "success"
        assert data["sources"]["succeeded"] == 1
        assert data["sources"]["items"][1] == {
            "url": "https://down.example.com/",
            "error": "HTTP 404",
        }

    def test_quiet_rows(self, cli_runner, fake_crawl):
        result = cli_runner.invoke(app, ["sources", "-u", "https://example.com/a", "-q"])

        assert result.stdout.splitlines() == [
            "https://example.com/a\tok\tRate limits",
            "https://down.example.com/\terror: HTTP 404\t",
        ]

    def test_output_file(self, cli_runner, fake_crawl, tmp_path):
        answer = tmp_path / "answer.md"
        answer.write_text("Sources: https://example.com/a", encoding="utf-8")
        target = tmp_path / "sources.json"

        result = cli_runner.invoke(
            app, ["sources", "--from-file", str(answer), "-o", str(target), "-q"]
        )

        assert result.exit_code == 0
        assert json.loads(target.read_text(encoding="utf-8"))["total"] == 2

    def test_no_urls(self, cli_runner, fake_crawl):
        result = cli_runner.invoke(app, ["sources", "--format", "json"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"].startswith("No URLs found")
        assert fake_crawl == []

    def test_session_without_response(self, cli_runner, fake_crawl):
        meta = SessionStore().create("gemini", "hi")

        result = cli_runner.invoke(app, ["sources", "-s", meta.id, "--format", "json"])

        assert result.exit_code == 1
        assert "has no response" in json.loads(result.stdout)["error"]

    def test_crawl_failure_is_recorded(self, cli_runner, monkeypatch):
        async def broken(urls, **kwargs):
            raise RuntimeError("event loop exploded")

        monkeypatch.setattr(cli, "crawl_sources", broken)

        result = cli_runner.invoke(
            app, ["sources", "-u", "https://example.com/a", "--format", "json"]
        )

        assert result.exit_code == 2
        event = list_error_events(module="sources")[0]
        assert event.stage == "command_handler"
        assert event.metadata["url_count"] == 1


class TestVersionAndHelp:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "webchat-relay" in result.stdout
        assert "version" in result.stdout

    def test_no_command_prints_quick_start(self, cli_runner):
        result = cli_runner.invoke(app, [])

        assert result.exit_code == 0
        assert "webchat-relay login chatgpt" in result.stdout

    def test_help(self, cli_runner):
        result = cli_runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "chat" in result.stdout
