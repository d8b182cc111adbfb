"""
Configuration constants for webchat-relay.

This module contains global constants used across the application
to avoid tight coupling between modules.
"""

# Environment variable that relocates the application directory
# (profiles, sessions, risk state, error log, config.yaml)
APP_DIR_ENV = "WEBCHAT_RELAY_HOME"
DEFAULT_APP_DIR_NAME = ".webchat-relay"

DEFAULT_DESTINATION = "chatgpt"
DEFAULT_TIMEOUT_MS = 5 * 60 * 1000

# Submit/capture attempts per chat before giving up
MAX_SUBMIT_ATTEMPTS = 3

# Human-paced waits run in a headed browser and have their own bounds
LOGIN_WAIT_S = 5 * 60
VERIFICATION_WAIT_S = 5 * 60
RECOVERY_POLL_S = 2.0

# Headless pages can hydrate the composer late; recheck before escalating
HEADLESS_AUTH_RECHECK_S = 20.0

PROFILE_LOCK_TIMEOUT_S = 30.0

PROMPT_PREVIEW_CHARS = 200
RISK_MESSAGE_MAX_CHARS = 500

# Bundle builder skips anything larger than this
MAX_BUNDLE_FILE_BYTES = 1024 * 1024
