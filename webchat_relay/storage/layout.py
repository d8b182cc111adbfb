"""
Path conventions for webchat-relay's application directory.

Every persisted artifact lives under one application directory so that a
single environment variable can relocate all of it (useful for tests and for
keeping separate browser identities).

Directory structure:
    ~/.webchat-relay/              (or $WEBCHAT_RELAY_HOME)
        config.yaml
        profiles/
            {destination}/         Playwright persistent context (cookies, storage)
                .webchat-relay.lock
        sessions/
            {session_id}/
                meta.json
                bundle.md
                response.md
        risk/
            state.json
        errors/
            errors.jsonl

Example:
    >>> get_profile_dir("chatgpt")
    PosixPath('/home/me/.webchat-relay/profiles/chatgpt')
"""

import os
from pathlib import Path

from ..config.constants import APP_DIR_ENV, DEFAULT_APP_DIR_NAME

PROFILE_LOCK_FILENAME = ".webchat-relay.lock"
SESSION_META_FILENAME = "meta.json"
SESSION_BUNDLE_FILENAME = "bundle.md"
SESSION_RESPONSE_FILENAME = "response.md"


def get_app_dir() -> Path:
    """
    Return the application directory.

    Honors $WEBCHAT_RELAY_HOME, otherwise ~/.webchat-relay. Does NOT create it.
    """
    override = os.environ.get(APP_DIR_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_APP_DIR_NAME


def get_config_path() -> Path:
    return get_app_dir() / "config.yaml"


def get_profiles_dir() -> Path:
    return get_app_dir() / "profiles"


def get_profile_dir(destination: str) -> Path:
    """
    Return the persistent browser profile directory for a destination.

    Profiles are keyed by destination name so login state for one site
    never leaks into another.
    """
    return get_profiles_dir() / destination


def get_sessions_dir() -> Path:
    return get_app_dir() / "sessions"


def get_session_dir(session_id: str, sessions_dir: Path | None = None) -> Path:
    """
    Return the directory for one chat session.

    Raises:
        ValueError: If session_id could escape the sessions directory
    """
    if not session_id or "/" in session_id or "\\" in session_id or ".." in session_id:
        raise ValueError(f"Invalid session id: {session_id!r}")
    return (sessions_dir or get_sessions_dir()) / session_id


def get_risk_state_path() -> Path:
    return get_app_dir() / "risk" / "state.json"


def get_errors_log_path() -> Path:
    return get_app_dir() / "errors" / "errors.jsonl"
