"""
Rich console utilities for dual-mode CLI output.

Every display function adapts to the global output_mode: human-readable
Rich output, structured JSON for scripts and agents, or bare values in quiet
mode.

This module provides:
- OutputMode: Class to manage output format (text/json/quiet)
- Context manager: spinner()
- Output functions: success(), error(), warning(), info(), stream_chunk()
- Display functions: print_banner(), print_response(), print_session_detail(),
  print_sessions_table(), print_errors_table(), print_risk_state(),
  print_destinations_table(), print_sources_table()

Human Mode (--format text):
    - Spinners, colored tables and panels
    - Answer text streamed live while the destination is still writing

Agent Mode (--format json):
    - One JSON object on stdout per command
    - No ANSI codes, no spinners, no streaming

Quiet Mode (--quiet):
    - Answer text or tab-separated values only

Examples:
    >>> from webchat_relay.utils.console import output_mode, success
    >>> output_mode.format = "json"
    >>> success("Logged in")  # Buffers to JSON
    >>> output_mode.flush_json()
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table


class OutputMode:
    """
    Output mode configuration for dual-mode CLI.

    Attributes:
        format: Output format - "text" (human) or "json" (agent)
        quiet: If True, suppress non-essential output
        _json_buffer: Internal buffer for JSON output in agent mode

    Examples:
        >>> mode = OutputMode()
        >>> mode.is_human()
        True
        >>> mode.format = "json"
        >>> mode.is_agent()
        True
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        """
        Initialize output mode.

        Raises:
            ValueError: If format_type is not "text" or "json"
        """
        if format_type not in ["text", "json"]:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """
        Add key-value pair to JSON buffer.

        Used in agent mode to accumulate structured data
        before final output via flush_json().
        """
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """
        Output buffered JSON to stdout and clear buffer.

        Only outputs in agent mode. In human mode, this is a no-op.
        """
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, ensure_ascii=False, default=str)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()

    def clear_json(self) -> None:
        self._json_buffer.clear()

    def reset(self) -> None:
        """Restore defaults (text, not quiet, empty buffer)."""
        self.format = "text"
        self.quiet = False
        self.clear_json()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

# Global Rich console instances for human mode
console = Console()  # stdout
console_err = Console(stderr=True)  # stderr


@contextmanager
def spinner(message: str):
    """
    Context manager for showing a spinner during operations.

    Silent in agent and quiet modes.

    Examples:
        >>> with spinner("Checking login..."):
        ...     logged_in = adapter.is_logged_in(page)
    """
    if output_mode.is_human() and not output_mode.quiet:
        with console_err.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


def success(message: str) -> None:
    """
    Print a success message.

    Human mode: Green checkmark with message
    Agent mode: Buffer to JSON
    """
    if output_mode.is_human():
        if not output_mode.quiet:
            console_err.print(f"[green]✓[/green] {message}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """
    Print an error message.

    Human mode: Red X with message to stderr (also in quiet mode)
    Agent mode: Buffer to JSON
    """
    if output_mode.is_human():
        console_err.print(f"✗ {message}", style="red", markup=False, highlight=False)
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)


def warning(message: str) -> None:
    """
    Print a warning message.

    Human mode: Yellow warning symbol with message, to stderr
    Agent mode: Appended to the JSON "warnings" list
    """
    if output_mode.is_human():
        if not output_mode.quiet:
            console_err.print(f"[yellow]⚠[/yellow] {message}", style="yellow")
    elif output_mode.is_agent():
        warnings = output_mode._json_buffer.setdefault("warnings", [])
        warnings.append(message)


def info(message: str) -> None:
    """Print an info message to stderr (human mode only)."""
    if output_mode.is_human() and not output_mode.quiet:
        console_err.print(f"[blue]ℹ[/blue] {message}")


def stream_chunk(text: str) -> None:
    """
    Write streamed answer text as it arrives.

    Human and quiet modes write raw text to stdout without markup; agent
    mode ignores chunks because the final answer is emitted once as JSON.
    """
    if output_mode.is_agent() or not text:
        return
    console.print(text, end="", markup=False, highlight=False, soft_wrap=True)


def print_banner(version: str) -> None:
    """Print the startup banner (human mode only)."""
    if not output_mode.is_human() or output_mode.quiet:
        return

    banner = f"""
[bold cyan]╔{"═" * 39}╗
║   webchat-relay v{version:<20} ║
║   Prompts in, answers out, safely     ║
╚{"═" * 39}╝[/bold cyan]
"""
    console_err.print(banner)


def print_response(
    text: str,
    *,
    destination: str,
    session_id: str,
    duration_ms: int,
    truncated: bool = False,
    thinking_time_seconds: int | None = None,
    streamed: bool = False,
) -> None:
    """
    Print a captured answer with its run details.

    Args:
        text: Final answer text
        destination: Destination name
        session_id: Session store ID
        duration_ms: End-to-end duration
        truncated: Answer hit the capture timeout before it settled
        thinking_time_seconds: Time from submission to a stable answer
        streamed: The text was already written via stream_chunk()
    """
    if output_mode.is_agent():
        output_mode.add_json("status", "timeout" if truncated else "success")
        output_mode.add_json("destination", destination)
        output_mode.add_json("session_id", session_id)
        output_mode.add_json("duration_ms", duration_ms)
        output_mode.add_json("truncated", truncated)
        output_mode.add_json("thinking_time_seconds", thinking_time_seconds)
        output_mode.add_json("response", text)
        output_mode.flush_json()
        return

    if streamed:
        console.print()
    else:
        console.print(text, markup=False, highlight=False, soft_wrap=True)

    if output_mode.quiet:
        return

    details = f"{destination} · session {session_id} · {duration_ms / 1000:.1f}s"
    if truncated:
        console_err.print(
            f"[yellow]⚠ Response truncated at timeout[/yellow] [dim]({details})[/dim]"
        )
    else:
        console_err.print(f"[green]✓[/green] [dim]{details}[/dim]")


STATUS_COLORS = {
    "completed": "green",
    "running": "blue",
    "pending": "dim",
    "timeout": "yellow",
    "failed": "red",
}


def _status_markup(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def print_sessions_table(sessions: list[dict]) -> None:
    """
    Print recent sessions.

    Expected dict keys: id, destination, status, created_at, duration_ms,
    prompt_preview.
    """
    if output_mode.is_agent():
        output_mode.add_json("sessions", sessions)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for session in sessions:
            print(f"{session['id']}\t{session['destination']}\t{session['status']}")
        return

    if not sessions:
        console.print("[dim]No sessions found.[/dim]")
        return

    table = Table(title="Recent Sessions", box=box.ROUNDED)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Destination", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Created (UTC)", no_wrap=True)
    table.add_column("Duration", justify="right", style="green")
    table.add_column("Prompt", overflow="ellipsis", max_width=40)

    for session in sessions:
        duration_ms = session.get("duration_ms")
        table.add_row(
            session["id"][:8],
            session["destination"],
            _status_markup(session.get("status", "unknown")),
            str(session.get("created_at", ""))[:19].replace("T", " "),
            f"{duration_ms / 1000:.1f}s" if duration_ms is not None else "-",
            session.get("prompt_preview", "").replace("\n", " "),
        )

    console.print(table)


def print_session_detail(meta: dict, response: str | None, render: bool = False) -> None:
    """
    Print one session's metadata and stored response.

    Args:
        meta: SessionMeta as a dict
        response: Stored response text (None if the attempt produced none)
        render: Render the response as Markdown in human mode
    """
    if output_mode.is_agent():
        output_mode.add_json("session", meta)
        output_mode.add_json("response", response)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        if response:
            print(response)
        return

    lines = [
        f"[bold]Destination:[/bold] {meta['destination']}",
        f"[bold]Status:[/bold] {_status_markup(meta['status'])}",
        f"[bold]Created:[/bold] {meta['created_at']}",
    ]
    if meta.get("duration_ms") is not None:
        lines.append(f"[bold]Duration:[/bold] {meta['duration_ms'] / 1000:.1f}s")
    if meta.get("truncated"):
        lines.append("[bold]Truncated:[/bold] yes")
    if meta.get("error"):
        lines.append(f"[bold]Error:[/bold] [red]{meta['error']}[/red]")

    console.print(
        Panel("\n".join(lines), title=f"Session {meta['id']}", box=box.ROUNDED, border_style="cyan")
    )

    if not response:
        console.print("[dim]No response stored for this session.[/dim]")
    elif render:
        console.print(Markdown(response))
    else:
        console.print(response, markup=False, highlight=False, soft_wrap=True)


def print_errors_table(events: list[dict]) -> None:
    """Print error telemetry events, newest first."""
    if output_mode.is_agent():
        output_mode.add_json("errors", events)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for event in events:
            print(f"{event['timestamp']}\t{event['stage']}\t{event['error_type']}\t{event['message']}")
        return

    if not events:
        console.print("[dim]No error events recorded.[/dim]")
        return

    table = Table(title="Error Events", box=box.ROUNDED)
    table.add_column("Time (UTC)", no_wrap=True)
    table.add_column("Module", style="cyan")
    table.add_column("Stage", style="magenta")
    table.add_column("Destination")
    table.add_column("Type", style="yellow")
    table.add_column("Message", overflow="fold", max_width=60)

    for event in events:
        table.add_row(
            str(event.get("timestamp", ""))[:19].replace("T", " "),
            event.get("module", ""),
            event.get("stage", ""),
            event.get("destination") or "-",
            event.get("error_type", ""),
            event.get("message", ""),
        )

    console.print(table)


def print_risk_state(destination: str, state: dict, blocked_reason: str | None = None) -> None:
    """
    Print the persisted risk state of one destination.

    Args:
        destination: Destination name
        state: DestinationRuntimeState as a dict
        blocked_reason: Message from a guard evaluation, if currently blocked
    """
    if output_mode.is_agent():
        output_mode.add_json("destination", destination)
        output_mode.add_json("state", state)
        output_mode.add_json("blocked", blocked_reason)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        print(
            f"{destination}\t{state.get('consecutive_risk_events', 0)}\t"
            f"{state.get('cooldown_until') or '-'}\t{state.get('breaker_until') or '-'}"
        )
        return

    lines = [
        f"[bold]Last attempt:[/bold] {state.get('last_attempt_at') or 'never'}",
        f"[bold]Attempts in window:[/bold] {len(state.get('attempts', []))}",
        f"[bold]Consecutive risk events:[/bold] {state.get('consecutive_risk_events', 0)}",
        f"[bold]Cooldown until:[/bold] {state.get('cooldown_until') or '-'}",
        f"[bold]Breaker until:[/bold] {state.get('breaker_until') or '-'}",
    ]

    recent = state.get("risk_events", [])[-5:]
    if recent:
        lines.append("")
        lines.append("[bold]Recent risk events:[/bold]")
        for event in reversed(recent):
            lines.append(f"  {str(event['at'])[:19]}  [yellow]{event['kind']}[/yellow]")

    if blocked_reason:
        border_style = "red"
        title = f"[bold red]✗ {destination} blocked[/bold red]"
        lines.append("")
        lines.append(f"[red]{blocked_reason}[/red]")
    else:
        border_style = "green"
        title = f"[bold green]✓ {destination} available[/bold green]"

    console.print(Panel("\n".join(lines), title=title, border_style=border_style, box=box.ROUNDED))


def print_destinations_table(destinations: list[dict]) -> None:
    """Print registered destinations and their capabilities."""
    if output_mode.is_agent():
        output_mode.add_json("destinations", destinations)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for destination in destinations:
            print(destination["name"])
        return

    table = Table(title="Destinations", box=box.ROUNDED)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Display Name", style="magenta")
    table.add_column("URL")
    table.add_column("Attachments", justify="center")
    table.add_column("Sources", justify="center")

    for destination in destinations:
        table.add_row(
            destination["name"],
            destination["display_name"],
            destination["url"],
            "[green]✓[/green]" if destination["supports_attachments"] else "[red]✗[/red]",
            "[green]✓[/green]" if destination["has_side_channel_sources"] else "-",
        )

    console.print(table)


def print_sources_table(output: dict) -> None:
    """
    Print the result of a citation crawl.

    Args:
        output: SourceCrawlOutput as a dict (None fields omitted)
    """
    if output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("sources", output)
        output_mode.flush_json()
        return

    items = output.get("items", [])
    if output_mode.quiet:
        for item in items:
            status = f"error: {item['error']}" if "error" in item else "ok"
            print(f"{item['url']}\t{status}\t{item.get('title', '')}")
        return

    table = Table(title="Citation Sources", box=box.ROUNDED)
    table.add_column("URL", overflow="fold", max_width=50)
    table.add_column("Title", style="cyan", overflow="fold", max_width=40)
    table.add_column("Chars", justify="right")
    table.add_column("Status")

    for item in items:
        if "error" in item:
            status = f"[red]✗ {escape(item['error'])}[/red]"
        else:
            status = "[green]✓[/green]"
        table.add_row(
            escape(item["url"]),
            escape(item.get("title") or "-"),
            str(item.get("content_chars", "-")),
            status,
        )

    console.print(table)
    console.print(
        f"[dim]{output.get('succeeded', 0)} of {output.get('total', 0)} extracted[/dim]"
    )
