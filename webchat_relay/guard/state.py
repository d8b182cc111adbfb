"""
Persisted runtime state for the risk guard.

The state file is the only durable, cross-process data the guard owns:

    {
      "version": 1,
      "destinations": {
        "chatgpt": {
          "last_attempt_at": "2025-11-02T08:30:45.120000Z",
          "attempts": [{"at": "...", "mode": "headless", "prompt_fingerprint": "9f2c..."}],
          "risk_events": [{"at": "...", "kind": "http_429", "message": "..."}],
          "consecutive_risk_events": 1,
          "cooldown_until": "...",
          "breaker_until": null
        }
      }
    }

Reads and writes are plain read-then-atomic-replace with no lock. Two
processes racing can lose one update, which only makes the guard more
conservative on the next read.
"""

import hashlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from ..storage.layout import get_risk_state_path
from ..storage.writer import read_json, write_json

logger = logging.getLogger(__name__)

STATE_VERSION = 1

AttemptMode = Literal["headed", "headless"]


class AttemptRecord(BaseModel):
    at: datetime
    mode: AttemptMode
    prompt_fingerprint: str


class RiskEventRecord(BaseModel):
    at: datetime
    kind: str
    message: str | None = None


class DestinationRuntimeState(BaseModel):
    """Cadence and risk history for one destination."""

    last_attempt_at: datetime | None = None
    attempts: list[AttemptRecord] = Field(default_factory=list)
    risk_events: list[RiskEventRecord] = Field(default_factory=list)
    consecutive_risk_events: int = 0
    cooldown_until: datetime | None = None
    breaker_until: datetime | None = None


class RiskStateFile(BaseModel):
    version: int = STATE_VERSION
    destinations: dict[str, DestinationRuntimeState] = Field(default_factory=dict)


def prompt_fingerprint(prompt: str) -> str:
    """
    Fingerprint a prompt for duplicate detection.

    Exact text, no normalization: first 16 hex chars of SHA-256.

    Example:
        >>> len(prompt_fingerprint("ping"))
        16
        >>> prompt_fingerprint("ping") == prompt_fingerprint("ping ")
        False
    """
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:16]


class RiskStateStore:
    """Loads and saves RiskStateFile documents at one path."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else get_risk_state_path()

    def load(self) -> RiskStateFile:
        """
        Load the state file.

        A missing file is an empty state. A corrupt file or one with an
        unknown version is logged and treated as empty rather than blocking
        every future attempt.
        """
        if not self.path.exists():
            return RiskStateFile()

        try:
            raw = read_json(self.path)
            state = RiskStateFile.model_validate(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Risk state at {self.path} is unreadable, starting fresh: {e}")
            return RiskStateFile()

        if state.version != STATE_VERSION:
            logger.warning(
                f"Risk state at {self.path} has version {state.version}, "
                f"expected {STATE_VERSION}; starting fresh"
            )
            return RiskStateFile()

        return state

    def save(self, state: RiskStateFile) -> None:
        write_json(self.path, state.model_dump(mode="json"))
