"""
Session store: one record per chat attempt.

Each attempt gets a directory named by a UUID holding its metadata, the
exact prompt bundle that was submitted and the captured response. The
orchestrator only writes here; the `status` and `session` CLI commands
read it back.

Example:
    >>> store = SessionStore()
    >>> meta = store.create("chatgpt", "Explain CRDTs briefly")
    >>> store.update(meta.id, status="running")
    >>> store.save_response(meta.id, "CRDTs are ...")
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Literal

from pydantic import BaseModel

from webchat_relay.exceptions import SessionNotFoundError

from ..config.constants import PROMPT_PREVIEW_CHARS
from ..utils.time import utc_now
from .layout import (
    SESSION_BUNDLE_FILENAME,
    SESSION_META_FILENAME,
    SESSION_RESPONSE_FILENAME,
    get_session_dir,
    get_sessions_dir,
)
from .writer import ensure_directory, read_json, write_json, write_text

logger = logging.getLogger(__name__)

SessionStatus = Literal["pending", "running", "completed", "failed", "timeout"]


class SessionMeta(BaseModel):
    """
    Metadata for one chat attempt (meta.json).

    Attributes:
        id: UUID4 string
        destination: Destination name
        prompt_preview: First characters of the prompt, for listings
        created_at: Creation time (UTC)
        updated_at: Last status change (UTC)
        status: pending, running, completed, failed or timeout
        duration_ms: Wall-clock duration once the attempt finished
        truncated: True when the answer was cut off by the capture timeout
        error: Final error message for failed/timeout sessions
    """

    id: str
    destination: str
    prompt_preview: str
    created_at: datetime
    updated_at: datetime
    status: SessionStatus = "pending"
    duration_ms: int | None = None
    truncated: bool = False
    error: str | None = None


class SessionStore:
    """Filesystem-backed session store rooted at <app_dir>/sessions."""

    def __init__(
        self,
        sessions_dir: str | Path | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sessions_dir = Path(sessions_dir) if sessions_dir else get_sessions_dir()
        self._clock = clock

    def _dir(self, session_id: str) -> Path:
        return get_session_dir(session_id, self.sessions_dir)

    def create(self, destination: str, prompt: str) -> SessionMeta:
        """Create a pending session and write its meta.json."""
        now = self._clock()
        meta = SessionMeta(
            id=str(uuid.uuid4()),
            destination=destination,
            prompt_preview=prompt[:PROMPT_PREVIEW_CHARS],
            created_at=now,
            updated_at=now,
        )
        ensure_directory(self._dir(meta.id))
        self._write_meta(meta)
        logger.info(f"Created session {meta.id} for {destination}")
        return meta

    def update(self, session_id: str, **changes) -> SessionMeta:
        """
        Apply field changes to a session and bump updated_at.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        meta = self.get_session(session_id)
        updated = meta.model_copy(update={**changes, "updated_at": self._clock()})
        # model_copy skips validation; round-trip to reject bad status values
        updated = SessionMeta.model_validate(updated.model_dump())
        self._write_meta(updated)
        return updated

    def save_bundle(self, session_id: str, bundle: str) -> None:
        write_text(self._dir(session_id) / SESSION_BUNDLE_FILENAME, bundle)

    def save_response(self, session_id: str, text: str) -> None:
        write_text(self._dir(session_id) / SESSION_RESPONSE_FILENAME, text)

    def get_session(self, session_id: str) -> SessionMeta:
        """
        Load one session's metadata.

        Raises:
            SessionNotFoundError: If the session directory or meta.json is missing
        """
        try:
            meta_path = self._dir(session_id) / SESSION_META_FILENAME
        except ValueError as e:
            raise SessionNotFoundError(str(e)) from e

        if not meta_path.exists():
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return SessionMeta.model_validate(read_json(meta_path))

    def read_bundle(self, session_id: str) -> str | None:
        return self._read_blob(session_id, SESSION_BUNDLE_FILENAME)

    def read_response(self, session_id: str) -> str | None:
        return self._read_blob(session_id, SESSION_RESPONSE_FILENAME)

    def list_sessions(
        self, hours: float | None = 24, limit: int | None = 20
    ) -> list[SessionMeta]:
        """
        List sessions newest first.

        Args:
            hours: Only sessions created within this many hours (None = all)
            limit: Maximum number of sessions (None = all)

        Unreadable session directories are skipped with a warning.
        """
        if not self.sessions_dir.exists():
            return []

        cutoff = self._clock() - timedelta(hours=hours) if hours is not None else None
        sessions = []
        for entry in self.sessions_dir.iterdir():
            meta_path = entry / SESSION_META_FILENAME
            if not entry.is_dir() or not meta_path.exists():
                continue
            try:
                meta = SessionMeta.model_validate(read_json(meta_path))
            except ValueError as e:
                logger.warning(f"Skipping unreadable session {entry.name}: {e}")
                continue
            if cutoff is not None and meta.created_at < cutoff:
                continue
            sessions.append(meta)

        sessions.sort(key=lambda m: m.created_at, reverse=True)
        return sessions[:limit] if limit is not None else sessions

    def _write_meta(self, meta: SessionMeta) -> None:
        write_json(
            self._dir(meta.id) / SESSION_META_FILENAME, meta.model_dump(mode="json")
        )

    def _read_blob(self, session_id: str, filename: str) -> str | None:
        path = self._dir(session_id) / filename
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")
