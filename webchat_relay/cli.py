"""
CLI entrypoint for webchat-relay.

Provides a dual-mode command-line interface with:
- Human-friendly output: live answer streaming, Rich tables and panels
- Agent-friendly output: one structured JSON object per command
- Quiet mode: answer text or tab-separated values for shell scripts

Commands:
    chat: Send one prompt (plus bundled files) to a destination
    login: Open a headed browser to log in, or check login state
    status: List recent chat sessions
    session: Show one session's metadata and stored answer
    errors: List recorded error events
    risk: Show or reset a destination's risk guard state
    sources: Fetch cited pages and extract their main text
    config: Show or change persistent settings
    destinations: List supported destinations

Exit codes:
    0: Success
    1: Configuration or usage error (bad config, unknown destination, bad input)
    2: Chat failure (browser, login, verification, capture)
    3: Risk guard denial (retry later)

Examples:
    # Ask ChatGPT, streaming the answer to the terminal
    webchat-relay chat "Summarize the attached design" -f "docs/**/*.md"

    # Agent-friendly JSON output
    webchat-relay chat "hello" -d claude --format json

    # First-time login in a visible browser window
    webchat-relay login gemini

Security:
    - Credentials live only in the per-destination browser profile
    - Bundles never include .env files, keys or other default-excluded secrets
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

import typer
from rich.traceback import install as install_rich_traceback

from webchat_relay.browser.manager import BrowserLease
from webchat_relay.config.loader import load_config, save_config, set_config_value
from webchat_relay.config.schema import AppConfig
from webchat_relay.core.bundle import build_bundle, resolve_attachments
from webchat_relay.core.orchestrator import ChatOrchestrator
from webchat_relay.core.sources import (
    crawl_sources,
    extract_urls,
    load_urls_from_file,
    write_crawl_output,
)
from webchat_relay.core.verification import VerificationController
from webchat_relay.destinations import DestinationRegistry
from webchat_relay.exceptions import (
    ConfigurationError,
    GuardDenied,
    SessionNotFoundError,
    WebchatRelayError,
)
from webchat_relay.guard import RiskGuard
from webchat_relay.storage.error_log import list_error_events, record_error_event
from webchat_relay.storage.sessions import SessionStore
from webchat_relay.utils.console import (
    console,
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
    print_sources_table,
    spinner,
    stream_chunk,
    success,
    warning,
)
from webchat_relay.utils.logging import setup_logging
from webchat_relay.utils.time import format_wait, millis_between, utc_now

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1  # Bad config, unknown destination, bad input
EXIT_CHAT_FAILURE = 2  # Browser, login, verification or capture failure
EXIT_GUARD_DENIED = 3  # Risk guard refused the attempt

app = typer.Typer(
    name="webchat-relay",
    help="Relay prompts to web chat UIs through a real browser",
    add_completion=False,
)

config_app = typer.Typer(help="Show or change persistent settings")
app.add_typer(config_app, name="config")


def _configure(format: str, quiet: bool = False, verbose: bool = False) -> None:
    """Apply output and logging flags shared by every command."""
    if format not in ("text", "json"):
        output_mode.reset()
        _fail(f"Invalid format: {format}. Must be 'text' or 'json'", EXIT_CONFIG_ERROR)

    output_mode.format = format
    output_mode.quiet = quiet
    output_mode.clear_json()

    # Rich output already reports progress in human mode
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human())


def _fail(message: str, code: int) -> None:
    """Report an error and exit; JSON mode flushes the buffered error object."""
    error(message)
    output_mode.flush_json()
    raise typer.Exit(code)


def _read_version() -> str:
    """Read version from installed package metadata."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("webchat-relay")
    except PackageNotFoundError:
        return "0.1.0"


def _resolve_destination(name: str):
    try:
        return DestinationRegistry.get(name)
    except ConfigurationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)


def _load_app_config(config: Path | None):
    try:
        return load_config(config)
    except ConfigurationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)


FORMAT_HELP = "Output format: 'text' (human-friendly) or 'json' (machine-readable)"


@app.command()
def chat(
    prompt: str = typer.Argument(..., help="Prompt text, or '-' to read it from stdin"),
    destination: str = typer.Option(
        None, "--destination", "-d", help="Destination name (default from config)"
    ),
    files: list[str] = typer.Option(
        None,
        "--file",
        "-f",
        help="Glob of files to bundle into the prompt (prefix with ! to exclude)",
    ),
    attach: list[str] = typer.Option(
        None, "--attach", "-a", help="File or glob to upload as an attachment"
    ),
    headed: bool = typer.Option(False, "--headed", help="Show the browser window"),
    timeout: int = typer.Option(
        None, "--timeout", "-t", help="Capture timeout in milliseconds", min=1000
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Print the prompt bundle without opening a browser"
    ),
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Print only the answer"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Send one prompt to a web chat destination and print the answer.

    The answer streams to stdout while the destination writes it; status
    lines go to stderr so the answer can be piped.

    Examples:
      webchat-relay chat "Explain this error" -f "logs/*.txt"
      echo "hi" | webchat-relay chat - -d deepseek --headed
      webchat-relay chat "Describe the image" -d gemini -a screenshot.png
    """
    _configure(format, quiet, verbose)
    print_banner(_read_version())

    app_config = _load_app_config(config)
    adapter = _resolve_destination(destination or app_config.default_destination)
    name = adapter.config.name

    prompt_text = sys.stdin.read() if prompt == "-" else prompt
    if not prompt_text.strip():
        _fail("Prompt cannot be empty", EXIT_CONFIG_ERROR)

    bundle = build_bundle(prompt_text, files or None)

    try:
        attachments = resolve_attachments(attach) if attach else []
    except FileNotFoundError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)

    if dry_run:
        if output_mode.is_agent():
            output_mode.add_json("destination", name)
            output_mode.add_json("bundle", bundle)
            output_mode.add_json("attachments", [str(p) for p in attachments])
            output_mode.flush_json()
        else:
            console.print(bundle, markup=False, highlight=False, soft_wrap=True)
            for path in attachments:
                info(f"Would attach: {path}")
        raise typer.Exit(EXIT_SUCCESS)

    streamed = False

    def on_chunk(text: str) -> None:
        nonlocal streamed
        streamed = True
        stream_chunk(text)

    orchestrator = ChatOrchestrator(config=app_config, notify=info)
    try:
        result = orchestrator.run_chat(
            name,
            bundle,
            headless=False if headed else None,
            timeout_ms=timeout,
            prompt_text=prompt_text,
            attachments=attachments,
            on_chunk=None if output_mode.is_agent() else on_chunk,
        )
    except GuardDenied as e:
        _fail(str(e), EXIT_GUARD_DENIED)
    except ConfigurationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)
    except WebchatRelayError as e:
        if streamed:
            console.print()
        _fail(f"Chat with {name} failed: {e}", EXIT_CHAT_FAILURE)
    except Exception as e:
        record_error_event("cli", "chat", e, destination=name)
        if verbose:
            import traceback

            traceback.print_exc()
        _fail(f"Unexpected error during chat with {name}: {e}", EXIT_CHAT_FAILURE)

    print_response(
        result.text,
        destination=result.destination,
        session_id=result.session_id,
        duration_ms=result.duration_ms,
        truncated=result.truncated,
        thinking_time_seconds=result.response.thinking_time_seconds,
        streamed=streamed,
    )
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def login(
    destination: str = typer.Argument(..., help="Destination name"),
    status: bool = typer.Option(
        False, "--status", help="Only report whether the saved profile is logged in"
    ),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Log in to a destination in a visible browser window.

    Login state is kept in the destination's browser profile, so this is
    needed once per destination (and again whenever the site logs you out).

    Examples:
      webchat-relay login chatgpt
      webchat-relay login yuanbao --status
    """
    _configure(format, verbose=verbose)
    app_config = _load_app_config(None)
    adapter = _resolve_destination(destination)
    cfg = adapter.config

    lease = BrowserLease(
        cfg.name,
        headless=status,
        url=cfg.url if status else cfg.login_url,
        settings=app_config.browser,
    )
    try:
        with lease:
            with spinner(f"Opening {cfg.display_name}..."):
                lease.launch()
                logged_in = adapter.is_logged_in(lease.page)

            if status:
                output_mode.add_json("destination", cfg.name)
                output_mode.add_json("logged_in", logged_in)
                if logged_in:
                    success(f"Logged in to {cfg.display_name}")
                    output_mode.flush_json()
                    raise typer.Exit(EXIT_SUCCESS)
                _fail(
                    f"Not logged in to {cfg.display_name}. Run: webchat-relay login {cfg.name}",
                    EXIT_CHAT_FAILURE,
                )

            if not logged_in:
                VerificationController(adapter, lease, notify=info).recover("login_required")
            success(f"Logged in to {cfg.display_name}. Session saved to its browser profile.")
            output_mode.flush_json()
    except typer.Exit:
        raise
    except WebchatRelayError as e:
        record_error_event("login", "login", e, destination=cfg.name)
        _fail(str(e), EXIT_CHAT_FAILURE)

    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def status(
    hours: float = typer.Option(24, "--hours", help="Only sessions from the last N hours"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum sessions to list", min=1),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """
    List recent chat sessions, newest first.

    Examples:
      webchat-relay status
      webchat-relay status --hours 168 --limit 50 --format json
    """
    _configure(format, quiet)
    sessions = SessionStore().list_sessions(hours=hours if hours > 0 else None, limit=limit)
    print_sessions_table([meta.model_dump(mode="json") for meta in sessions])
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def session(
    session_id: str = typer.Argument(..., help="Session ID (from `status`)"),
    render: bool = typer.Option(False, "--render", help="Render the answer as Markdown"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Print only the answer"),
):
    """
    Show one session's metadata and stored answer.

    Examples:
      webchat-relay session 3f2a9c1e-...
      webchat-relay session 3f2a9c1e-... --render
    """
    _configure(format, quiet)
    store = SessionStore()
    try:
        meta = store.get_session(session_id)
    except SessionNotFoundError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)

    print_session_detail(meta.model_dump(mode="json"), store.read_response(meta.id), render=render)
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def errors(
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum events to list", min=1),
    destination: str = typer.Option(None, "--destination", "-d", help="Filter by destination"),
    stage: str = typer.Option(None, "--stage", help="Filter by stage (substring match)"),
    hours: float = typer.Option(None, "--hours", help="Only events from the last N hours"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """
    List recorded error events, newest first.

    Examples:
      webchat-relay errors
      webchat-relay errors -d doubao --stage capture
    """
    _configure(format, quiet)
    events = list_error_events(
        limit,
        destination=destination.strip().lower() if destination else None,
        stage_contains=stage,
        since_hours=hours,
    )
    print_errors_table([event.model_dump(mode="json") for event in events])
    raise typer.Exit(EXIT_SUCCESS)


def _active_block(cooldown_until: datetime | None, breaker_until: datetime | None) -> str | None:
    """Describe the longest-running block on a destination, if any."""
    now = utc_now()
    if breaker_until is not None and breaker_until > now:
        return f"Circuit breaker open. Retry in {format_wait(millis_between(now, breaker_until))}."
    if cooldown_until is not None and cooldown_until > now:
        return f"Cooling down. Retry in {format_wait(millis_between(now, cooldown_until))}."
    return None


@app.command()
def risk(
    destination: str = typer.Argument(..., help="Destination name"),
    reset: bool = typer.Option(
        False, "--reset", help="Clear cooldown, breaker and the risk counter"
    ),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """
    Show (or reset) a destination's risk guard state.

    Resetting does not forget attempt history, so cadence limits still apply.

    Examples:
      webchat-relay risk yuanbao
      webchat-relay risk yuanbao --reset
    """
    _configure(format, quiet)
    name = _resolve_destination(destination).config.name
    guard = RiskGuard()

    if reset:
        guard.reset(name)
        success(f"Risk state reset for {name}")

    state = guard.snapshot(name)
    print_risk_state(
        name,
        state.model_dump(mode="json"),
        blocked_reason=_active_block(state.cooldown_until, state.breaker_until),
    )
    raise typer.Exit(EXIT_SUCCESS)


@config_app.command("show")
def config_show(
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
):
    """Show the effective configuration (file values over defaults)."""
    _configure(format)
    app_config = _load_app_config(config)

    if output_mode.is_agent():
        output_mode.add_json("config", app_config.model_dump(mode="json"))
        output_mode.flush_json()
    else:
        for key, value in app_config.model_dump(mode="json").items():
            console.print(f"[bold]{key}:[/bold] {value}")
    raise typer.Exit(EXIT_SUCCESS)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="destination, timeout or headless"),
    value: str = typer.Argument(..., help="New value"),
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
):
    """
    Change one persistent setting.

    Examples:
      webchat-relay config set destination claude
      webchat-relay config set timeout 600000
      webchat-relay config set headless false
    """
    _configure(format)
    try:
        # A new --config path starts from defaults and is created on save
        current = load_config(config) if config is None or config.exists() else AppConfig()
        updated = set_config_value(current, key, value)
        if key == "destination" and not DestinationRegistry.is_registered(updated.default_destination):
            warning(f"'{value}' is not a known destination. Valid: {', '.join(DestinationRegistry.names())}")
        path = save_config(updated, config)
    except ConfigurationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)

    success(f"Set {key} = {value} ({path})")
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def destinations(
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Names only"),
):
    """List supported destinations and what they can do."""
    _configure(format, quiet)
    print_destinations_table(DestinationRegistry.list_destinations())
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def sources(
    url: list[str] = typer.Option(None, "--url", "-u", help="Citation URL (repeatable)"),
    from_file: Path = typer.Option(
        None, "--from-file", help="Read URLs from a text or Markdown file"
    ),
    session_id: str = typer.Option(
        None, "--session", "-s", help="Read URLs from a saved session's answer"
    ),
    concurrency: int = typer.Option(3, "--concurrency", help="Maximum parallel fetches", min=1),
    timeout: int = typer.Option(15_000, "--timeout", help="Per-URL timeout in ms", min=1),
    max_chars: int = typer.Option(8_000, "--max-chars", help="Content cap per page", min=1),
    output: Path = typer.Option(None, "--output", "-o", help="Also write the result JSON here"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Fetch cited pages and extract their main text.

    URLs can be given directly, scraped from a file, or taken from the answer
    of an earlier chat session.

    Examples:
      webchat-relay sources --session 3f2a9c1e-...
      webchat-relay sources --url https://example.com/a --url https://example.com/b
      webchat-relay sources --from-file answer.md -o sources.json --format json
    """
    _configure(format, quiet, verbose)

    urls = [u.strip() for u in url or [] if u.strip()]
    if from_file is not None:
        try:
            urls.extend(load_urls_from_file(from_file))
        except OSError as e:
            _fail(f"Cannot read {from_file}: {e}", EXIT_CONFIG_ERROR)

    if session_id:
        store = SessionStore()
        try:
            response = store.read_response(store.get_session(session_id).id)
        except SessionNotFoundError:
            response = None
        if not response:
            _fail(f"Session not found or has no response: {session_id}", EXIT_CONFIG_ERROR)
        urls.extend(extract_urls(response))

    urls = list(dict.fromkeys(urls))
    if not urls:
        _fail("No URLs found. Use --url, --from-file, or --session.", EXIT_CONFIG_ERROR)

    info(f"Extracting {len(urls)} source URL(s)...")
    try:
        with spinner("Fetching sources..."):
            result = asyncio.run(
                crawl_sources(urls, concurrency=concurrency, timeout_ms=timeout, max_chars=max_chars)
            )
    except Exception as e:
        record_error_event(
            "sources",
            "command_handler",
            e,
            metadata={
                "has_session": bool(session_id),
                "has_from_file": from_file is not None,
                "url_count": len(urls),
            },
        )
        _fail(f"Source extraction failed: {e}", EXIT_CHAT_FAILURE)

    if output is not None:
        try:
            write_crawl_output(output, result)
        except OSError as e:
            _fail(str(e), EXIT_CONFIG_ERROR)
        success(f"Saved extraction result: {output}")

    print_sources_table(result.to_dict())
    raise typer.Exit(EXIT_SUCCESS)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-V", help="Show version and exit"),
):
    """
    webchat-relay - send prompts to web chat UIs and capture the answers.

    Uses your own logged-in browser profiles; no API keys involved.

    Exit codes:
      0: Success
      1: Configuration or usage error
      2: Chat failure
      3: Risk guard denial

    Use 'webchat-relay COMMAND --help' for detailed command documentation.
    """
    if version:
        console.print(f"[bold cyan]webchat-relay[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Quick start:")
        console.print("  webchat-relay login chatgpt")
        console.print('  webchat-relay chat "Hello there"')


if __name__ == "__main__":
    app()
