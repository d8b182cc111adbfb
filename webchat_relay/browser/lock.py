"""
PID lock file guarding a persistent browser profile.

Chromium corrupts a profile when two processes open it at once, so every
launch first claims <profile_dir>/.webchat-relay.lock. Locks left behind by a
process that no longer exists are treated as stale and removed.
"""

import json
import logging
import os
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from webchat_relay.exceptions import ProfileLockError

from ..config.constants import PROFILE_LOCK_TIMEOUT_S
from ..storage.layout import PROFILE_LOCK_FILENAME
from ..utils.time import utc_timestamp

logger = logging.getLogger(__name__)

LOCK_POLL_S = 0.5

# A lock file that cannot be parsed is only replaced once it is this old;
# younger files may belong to a process still writing its record
UNREADABLE_LOCK_GRACE_S = 5.0


def is_process_alive(pid: int) -> bool:
    """Signal 0 probes for existence without touching the process."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user
        return True
    except OSError:
        return False
    return True


def _read_record(lock_path: Path) -> dict | None:
    try:
        record = json.loads(lock_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return record if isinstance(record, dict) else None


def _record_pid(record: dict | None) -> int | None:
    if record is None:
        return None
    pid = record.get("pid")
    if isinstance(pid, bool):
        return None
    try:
        return int(pid)
    except (TypeError, ValueError):
        return None


def _is_stale(lock_path: Path) -> bool:
    """True if the lock file exists but no live process owns it."""
    try:
        modified = lock_path.stat().st_mtime
    except FileNotFoundError:
        return False

    pid = _record_pid(_read_record(lock_path))
    if pid is None:
        # Empty or corrupt: a holder that crashed before writing its record
        return time.time() - modified >= UNREADABLE_LOCK_GRACE_S
    return not is_process_alive(pid)


@dataclass
class ProfileLock:
    """A held profile lock; release() only removes the file if it is still ours."""

    lock_path: Path
    lock_id: str

    def release(self) -> None:
        record = _read_record(self.lock_path)
        if record is None or record.get("lock_id") != self.lock_id:
            return
        try:
            self.lock_path.unlink()
            logger.debug(f"Released profile lock {self.lock_path}")
        except FileNotFoundError:
            pass


def acquire_profile_lock(
    profile_dir: Path,
    timeout_s: float = PROFILE_LOCK_TIMEOUT_S,
    poll_s: float = LOCK_POLL_S,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Any] = time.sleep,
) -> ProfileLock:
    """
    Claim the profile directory for this process.

    Args:
        profile_dir: Destination profile directory (created if missing)
        timeout_s: How long to wait for a live holder to finish
        poll_s: Gap between attempts

    Returns:
        ProfileLock: Call release() when the browser is closed

    Raises:
        ProfileLockError: If another live process holds the lock past timeout_s
    """
    profile_dir.mkdir(parents=True, exist_ok=True)
    lock_path = profile_dir / PROFILE_LOCK_FILENAME
    lock_id = uuid.uuid4().hex
    deadline = clock() + timeout_s

    while True:
        if _is_stale(lock_path):
            logger.warning(f"Removing stale profile lock {lock_path}")
            lock_path.unlink(missing_ok=True)

        payload = {"pid": os.getpid(), "lock_id": lock_id, "acquired_at": utc_timestamp()}
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            pass
        else:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            logger.debug(f"Acquired profile lock {lock_path}")
            return ProfileLock(lock_path=lock_path, lock_id=lock_id)

        if clock() >= deadline:
            raise ProfileLockError(
                f"Failed to acquire profile lock at {lock_path} within {timeout_s:.0f}s. "
                "Another webchat-relay session may be using this profile."
            )
        sleep(poll_s)
