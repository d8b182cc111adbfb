"""
Structured JSON logging for webchat-relay.

Provides standardized logging with:
- JSON formatted output to stderr
- UTC timestamps with timezone info
- Structured context fields
- Secret redaction (session cookies and tokens never logged in full)

All logs use Python's standard logging module with custom formatting.
Log level defaults to INFO, use setup_logging(verbose=True) for DEBUG.

Examples:
    >>> from webchat_relay.utils.logging import setup_logging, log_with_context
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger("webchat_relay.guard.risk_guard")
    >>> log_with_context(logger, logging.INFO, "Attempt recorded", context={"destination": "chatgpt"})

Security:
    - Browser automation handles live session cookies; redact them
    - Only stderr is used (stdout reserved for the captured answer)
"""

import json
import logging
import re
import sys
from typing import Any

from webchat_relay.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs logs as JSON with structured fields.

    Each log record is formatted as a JSON object with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level (INFO, WARNING, ERROR, DEBUG)
    - component: Module/component name (from logger name)
    - message: Human-readable log message
    - context: Additional structured data (from 'context' in extra)
    - session_id: Chat session identifier (from 'session_id' in extra, if available)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if hasattr(record, "session_id"):
            log_entry["session_id"] = record.session_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts session secrets from log messages.

    Prevents accidental logging of:
    - Cookie headers and cookie assignments
    - Bearer tokens
    - Long opaque tokens (session ids, JWT-like strings)

    Replaces full secrets with redacted versions showing only last 4 chars:
    "Bearer abc123xyz789abc123xyz789" -> "Bearer ***z789"
    """

    SECRET_PATTERNS = [
        (re.compile(r"\bBearer\s+[a-zA-Z0-9._-]{20,}"), "Bearer ***{last4}"),
        (
            re.compile(r"\b(?:session|token|cookie)[_-]?\w*=[^;\s]{12,}", re.IGNORECASE),
            "***{last4}",
        ),
        (re.compile(r"\b[a-zA-Z0-9_-]{32,}\b"), "***{last4}"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redact_secrets(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._redact_secrets(str(v)) for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_secrets(str(arg)) for arg in record.args
                )

        if hasattr(record, "context") and isinstance(record.context, dict):
            record.context = self._redact_dict(record.context)

        return True

    def _redact_secrets(self, text: str) -> str:
        """
        Redact secrets in text, keeping only last 4 characters.

        Args:
            text: Input string potentially containing secrets

        Returns:
            String with secrets replaced by redacted versions
        """
        for pattern, template in self.SECRET_PATTERNS:

            def redact_match(match: re.Match) -> str:
                matched = match.group(0)
                return template.format(last4=matched[-4:])

            text = pattern.sub(redact_match, text)

        return text

    def _redact_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for key, value in data.items():
            if isinstance(value, str):
                result[key] = self._redact_secrets(value)
            elif isinstance(value, dict):
                result[key] = self._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    self._redact_secrets(v) if isinstance(v, str) else v for v in value
                ]
            else:
                result[key] = value
        return result


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure structured JSON logging for the application.

    Sets up:
    - JSON formatter for structured output
    - Secret redaction filter
    - stderr output (stdout reserved for user-facing content)
    - Log level: DEBUG if verbose=True, INFO otherwise

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
        quiet_logs: If True and not verbose, only CRITICAL records reach the
            handler. Used in human output mode where rich messages already
            report progress and failures.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Remove any existing handlers (prevents duplicate logs)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if verbose:
        handler.setLevel(logging.DEBUG)
    elif quiet_logs:
        handler.setLevel(logging.CRITICAL)
    else:
        handler.setLevel(logging.INFO)

    handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactingFilter())

    root_logger.addHandler(handler)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    session_id: str | None = None,
) -> None:
    """
    Log a message with structured context and optional session_id.

    Equivalent to logger.log(level, message, extra={'context': {...}, 'session_id': '...'})

    Example:
        >>> logger = logging.getLogger("webchat_relay.core.orchestrator")
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Response captured",
        ...     context={"destination": "gemini", "truncated": False},
        ...     session_id="6f1c...",
        ... )
    """
    extra = {}

    if context is not None:
        extra["context"] = context

    if session_id is not None:
        extra["session_id"] = session_id

    logger.log(level, message, extra=extra if extra else None)
