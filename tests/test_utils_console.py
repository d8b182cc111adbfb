"""
Tests for utils.console module - dual-mode CLI output utilities.

Covers:
- OutputMode format/quiet state and JSON buffering
- Message functions (success, error, warning, info) in every mode
- Answer streaming and print_response() in text, quiet and JSON modes
- Table/panel display functions adapting to agent and quiet modes
"""

import json
from unittest.mock import patch

import pytest

from webchat_relay.utils.console import (
    OutputMode,
    error,
    info,
    output_mode,
    print_banner,
    print_destinations_table,
    print_errors_table,
    print_response,
    print_risk_state,
    print_session_detail,
    print_sessions_table,
    spinner,
    stream_chunk,
    success,
    warning,
)

# ========================================================================
# Fixtures
# ========================================================================


@pytest.fixture(autouse=True)
def reset_output_mode():
    """Reset global output_mode before and after each test."""
    output_mode.reset()
    yield
    output_mode.reset()


@pytest.fixture
def session_meta():
    return {
        "id": "3f2a9c1e-0000-4000-8000-000000000001",
        "destination": "claude",
        "status": "completed",
        "created_at": "2025-11-02T08:00:00Z",
        "duration_ms": 1500,
        "prompt_preview": "Explain\nmonads",
        "truncated": False,
        "error": None,
    }


# ========================================================================
# OutputMode
# ========================================================================


class TestOutputMode:
    """State and JSON buffering."""

    def test_defaults(self):
        mode = OutputMode()
        assert mode.is_human()
        assert not mode.is_agent()
        assert mode.quiet is False

    def test_invalid_format_raises_error(self):
        with pytest.raises(ValueError, match="Invalid format: yaml"):
            OutputMode(format_type="yaml")

    def test_flush_json_outputs_and_clears_buffer(self, capsys):
        mode = OutputMode(format_type="json")
        mode.add_json("status", "success")
        mode.add_json("response", "你好")

        mode.flush_json()

        out = capsys.readouterr().out
        assert json.loads(out) == {"status": "success", "response": "你好"}
        assert "你好" in out  # not \u-escaped
        assert mode._json_buffer == {}

    def test_flush_json_no_op_in_human_mode(self, capsys):
        mode = OutputMode()
        mode.add_json("status", "success")

        mode.flush_json()

        assert capsys.readouterr().out == ""

    def test_flush_json_empty_buffer(self, capsys):
        OutputMode(format_type="json").flush_json()
        assert capsys.readouterr().out == ""

    def test_reset(self):
        mode = OutputMode(format_type="json", quiet=True)
        mode.add_json("k", "v")

        mode.reset()

        assert mode.is_human()
        assert mode.quiet is False
        assert mode._json_buffer == {}


# ========================================================================
# Messages
# ========================================================================


class TestMessages:
    """success / error / warning / info routing."""

    @patch("webchat_relay.utils.console.console_err")
    def test_success_human_mode(self, mock_console_err):
        success("Logged in to Claude")

        call_args = mock_console_err.print.call_args[0][0]
        assert "✓" in call_args
        assert "Logged in to Claude" in call_args

    @patch("webchat_relay.utils.console.console_err")
    def test_success_quiet_mode_silent(self, mock_console_err):
        output_mode.quiet = True
        success("hidden")
        mock_console_err.print.assert_not_called()

    def test_success_agent_mode(self):
        output_mode.format = "json"
        success("Saved")
        assert output_mode._json_buffer == {"status": "success", "message": "Saved"}

    @patch("webchat_relay.utils.console.console_err")
    def test_error_prints_even_when_quiet(self, mock_console_err):
        output_mode.quiet = True

        error("Session [abc] not found")

        mock_console_err.print.assert_called_once()
        args, kwargs = mock_console_err.print.call_args
        assert args[0] == "✗ Session [abc] not found"
        assert kwargs["markup"] is False
        assert kwargs["style"] == "red"

    def test_error_agent_mode(self):
        output_mode.format = "json"
        error("boom")
        assert output_mode._json_buffer == {"status": "error", "error": "boom"}

    def test_warnings_accumulate_in_agent_mode(self):
        output_mode.format = "json"

        warning("first")
        warning("second")

        assert output_mode._json_buffer["warnings"] == ["first", "second"]

    @patch("webchat_relay.utils.console.console_err")
    def test_info_silent_outside_human_mode(self, mock_console_err):
        output_mode.format = "json"
        info("hidden")
        output_mode.format = "text"
        output_mode.quiet = True
        info("hidden too")

        mock_console_err.print.assert_not_called()

    @patch("webchat_relay.utils.console.console_err")
    def test_spinner_silent_in_agent_mode(self, mock_console_err):
        output_mode.format = "json"
        with spinner("Opening...") as status:
            assert status is None
        mock_console_err.status.assert_not_called()

    @patch("webchat_relay.utils.console.console_err")
    def test_banner_only_in_human_mode(self, mock_console_err):
        print_banner("0.1.0")
        assert "webchat-relay v0.1.0" in mock_console_err.print.call_args[0][0]

        mock_console_err.reset_mock()
        output_mode.quiet = True
        print_banner("0.1.0")
        mock_console_err.print.assert_not_called()


# ========================================================================
# Answers
# ========================================================================


class TestResponseOutput:
    """Streaming and the final answer."""

    def test_stream_chunks_written_raw(self, capsys):
        stream_chunk("see [1]")
        stream_chunk("")
        stream_chunk("[bold]x[/bold]")

        assert capsys.readouterr().out == "see [1][bold]x[/bold]"

    def test_stream_chunk_ignored_in_agent_mode(self, capsys):
        output_mode.format = "json"
        stream_chunk("text")
        assert capsys.readouterr().out == ""

    def test_quiet_prints_only_text(self, capsys):
        output_mode.quiet = True

        print_response("answer", destination="claude", session_id="s1", duration_ms=1000)

        captured = capsys.readouterr()
        assert captured.out == "answer\n"
        assert captured.err == ""

    def test_streamed_answer_ends_line(self, capsys):
        output_mode.quiet = True

        print_response(
            "answer", destination="claude", session_id="s1", duration_ms=1000, streamed=True
        )

        assert capsys.readouterr().out == "\n"

    def test_human_details_on_stderr(self, capsys):
        print_response("answer", destination="claude", session_id="s1", duration_ms=2500)

        captured = capsys.readouterr()
        assert captured.out == "answer\n"
        assert "claude · session s1 · 2.5s" in captured.err

    def test_truncated_warning(self, capsys):
        print_response(
            "partial", destination="doubao", session_id="s1", duration_ms=1000, truncated=True
        )
        assert "Response truncated at timeout" in capsys.readouterr().err

    def test_agent_mode_emits_one_object(self, capsys):
        output_mode.format = "json"

        print_response(
            "answer",
            destination="gemini",
            session_id="s1",
            duration_ms=1234,
            truncated=True,
            thinking_time_seconds=7,
        )

        data = json.loads(capsys.readouterr().out)
        assert data == {
            "status": "timeout",
            "destination": "gemini",
            "session_id": "s1",
            "duration_ms": 1234,
            "truncated": True,
            "thinking_time_seconds": 7,
            "response": "answer",
        }


# ========================================================================
# Tables and panels
# ========================================================================


class TestDisplayFunctions:
    """Agent and quiet renderings of listings."""

    def test_sessions_quiet(self, capsys, session_meta):
        output_mode.quiet = True
        print_sessions_table([session_meta])
        assert capsys.readouterr().out == f"{session_meta['id']}\tclaude\tcompleted\n"

    def test_sessions_agent(self, capsys, session_meta):
        output_mode.format = "json"
        print_sessions_table([session_meta])
        assert json.loads(capsys.readouterr().out)["sessions"][0]["id"] == session_meta["id"]

    def test_sessions_human_table(self, capsys, session_meta):
        print_sessions_table([session_meta])
        out = capsys.readouterr().out
        assert "Recent Sessions" in out
        assert "3f2a9c1e" in out

    def test_session_detail_human(self, capsys, session_meta):
        print_session_detail(session_meta, "The answer")

        out = capsys.readouterr().out
        assert "Session 3f2a9c1e" in out
        assert "The answer" in out

    def test_session_detail_agent(self, capsys, session_meta):
        output_mode.format = "json"
        print_session_detail(session_meta, None)

        data = json.loads(capsys.readouterr().out)
        assert data["session"]["destination"] == "claude"
        assert data["response"] is None

    def test_errors_quiet(self, capsys):
        output_mode.quiet = True
        print_errors_table(
            [
                {
                    "timestamp": "2025-11-02T08:00:00Z",
                    "stage": "capture",
                    "error_type": "no_response",
                    "message": "Timed out",
                }
            ]
        )
        assert capsys.readouterr().out == "2025-11-02T08:00:00Z\tcapture\tno_response\tTimed out\n"

    def test_risk_state_blocked_panel(self, capsys):
        state = {
            "consecutive_risk_events": 3,
            "risk_events": [{"at": "2025-11-02T08:00:00Z", "kind": "http_429"}],
            "cooldown_until": "2025-11-02T09:00:00Z",
            "breaker_until": None,
        }

        print_risk_state("yuanbao", state, blocked_reason="Cooling down. Retry in ~1h.")

        out = capsys.readouterr().out
        assert "yuanbao blocked" in out
        assert "http_429" in out
        assert "Cooling down" in out

    def test_risk_state_quiet(self, capsys):
        output_mode.quiet = True
        print_risk_state("chatgpt", {"consecutive_risk_events": 1, "cooldown_until": None})
        assert capsys.readouterr().out == "chatgpt\t1\t-\t-\n"

    def test_destinations_quiet(self, capsys):
        output_mode.quiet = True
        print_destinations_table([{"name": "chatgpt"}, {"name": "claude"}])
        assert capsys.readouterr().out == "chatgpt\nclaude\n"
