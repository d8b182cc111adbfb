"""
Error telemetry: an append-only JSONL log of failed operations.

Every failed chat stage, login attempt or CLI invocation appends one event to
<app_dir>/errors/errors.jsonl. The `errors` CLI command reads them back so
users can see which destinations fail, where, and how often.

Recording must never break the operation being recorded: write failures are
logged and dropped.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from ..utils.time import utc_now
from .layout import get_errors_log_path
from .writer import append_jsonl

logger = logging.getLogger(__name__)

ErrorModule = Literal["chat", "destination", "login", "status", "sources", "cli", "unknown"]
ERROR_MODULES: tuple[str, ...] = (
    "chat",
    "destination",
    "login",
    "status",
    "sources",
    "cli",
    "unknown",
)

# Ordered keyword table for errors that carry no typed kind
_ERROR_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("timeout", ("timeout", "timed out")),
    ("aborted", ("abort",)),
    ("auth_required", ("not logged in", "login")),
    ("ui_selector_changed", ("selector", "ui may have changed")),
    ("http_403", ("http 403",)),
    ("http_401", ("http 401",)),
    ("http_429", ("http 429",)),
    ("http_5xx", ("http 5",)),
    ("attachment_error", ("attachment",)),
    ("network_error", ("network", "net::err")),
)


class ErrorEvent(BaseModel):
    """One recorded failure."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utc_now)
    module: ErrorModule
    stage: str
    message: str
    error_type: str
    destination: str | None = None
    session_id: str | None = None
    url: str | None = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def classify_error_type(error: BaseException | None, message: str | None = None) -> str:
    """
    Derive a short error_type label for telemetry.

    Typed errors report their own kind or reason; anything else is matched
    against a keyword table.

    Example:
        >>> classify_error_type(None, "Navigation timed out after 30000ms")
        'timeout'
    """
    kind = getattr(error, "kind", None) or getattr(error, "reason", None)
    if isinstance(kind, str) and kind:
        return kind

    text = (message if message is not None else str(error or "")).lower()
    for error_type, keywords in _ERROR_TYPE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return error_type
    return "unknown_error"


def record_error_event(
    module: ErrorModule,
    stage: str,
    error: BaseException | None = None,
    *,
    message: str | None = None,
    destination: str | None = None,
    session_id: str | None = None,
    url: str | None = None,
    duration_ms: int | None = None,
    metadata: dict[str, Any] | None = None,
    log_path: str | Path | None = None,
) -> ErrorEvent | None:
    """
    Append one error event to the telemetry log.

    Returns:
        The recorded event, or None if it could not be written
    """
    text = message or (str(error) if error is not None else "unknown error")
    event = ErrorEvent(
        module=module,
        stage=stage,
        message=text,
        error_type=classify_error_type(error, text),
        destination=destination,
        session_id=session_id,
        url=url,
        duration_ms=duration_ms,
        metadata=metadata or {},
    )

    path = Path(log_path) if log_path else get_errors_log_path()
    try:
        append_jsonl(path, event.model_dump(mode="json"))
    except OSError as e:
        logger.warning(f"Could not record error event to {path}: {e}")
        return None
    return event


def list_error_events(
    limit: int = 20,
    *,
    module: str | None = None,
    destination: str | None = None,
    error_type: str | None = None,
    stage_contains: str | None = None,
    since_hours: float | None = None,
    log_path: str | Path | None = None,
) -> list[ErrorEvent]:
    """
    Read recorded events, newest first, applying optional filters.

    Malformed lines are skipped.
    """
    path = Path(log_path) if log_path else get_errors_log_path()
    if not path.exists():
        return []

    cutoff: datetime | None = None
    if since_hours is not None and since_hours > 0:
        cutoff = utc_now() - timedelta(hours=since_hours)

    events = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                event = ErrorEvent.model_validate(json.loads(line))
            except (json.JSONDecodeError, ValidationError):
                logger.debug(f"Skipping malformed error event line in {path}")
                continue

            if module and event.module != module:
                continue
            if destination and event.destination != destination:
                continue
            if error_type and event.error_type != error_type:
                continue
            if stage_contains and stage_contains.lower() not in event.stage.lower():
                continue
            if cutoff is not None and event.timestamp < cutoff:
                continue
            events.append(event)

    limit = limit if limit > 0 else 20
    return list(reversed(events[-limit:]))
