"""
Custom exceptions for webchat-relay.

This module provides a hierarchy of exceptions that enable type-safe error
handling throughout the application. All exceptions inherit from the base
WebchatRelayError for consistent catching.

Exception Hierarchy:
    WebchatRelayError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   └── ConfigValidationError
    ├── UnknownDestinationError
    ├── AdapterError            (selector_not_found | navigation_lost | transient)
    ├── CaptureError            (no_response | verification_timeout | login_timeout)
    │   ├── VerificationTimeout
    │   └── LoginTimeout
    ├── GuardDenied             (breaker | cooldown | min_interval | rate_window | duplicate_prompt)
    ├── SessionLaunchError
    ├── ProfileLockError
    ├── SessionNotFoundError
    ├── SourceFetchError        (citation page could not be fetched)
    └── RecoveryNeeded          (internal: capture interrupted by a block signal)

Usage:
    from webchat_relay.exceptions import GuardDenied

    try:
        result = orchestrator.run_chat("chatgpt", prompt, headless=True, timeout_ms=300_000)
    except GuardDenied as e:
        logger.warning(f"Attempt blocked: {e} (retry in {e.wait_ms} ms)")
"""

from typing import Literal

AdapterErrorKind = Literal["selector_not_found", "navigation_lost", "transient"]
CaptureErrorKind = Literal["no_response", "verification_timeout", "login_timeout"]
GuardReason = Literal[
    "breaker", "cooldown", "min_interval", "rate_window", "duplicate_prompt"
]


class WebchatRelayError(Exception):
    """
    Base exception for all webchat-relay errors.

    All custom exceptions in this application should inherit from this class.
    This enables catching all application-specific errors with a single except clause.

    Example:
        try:
            # application code
            pass
        except WebchatRelayError as e:
            logger.error(f"Application error: {e}")
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(WebchatRelayError):
    """
    Base class for configuration-related errors.

    Raised when configuration loading, parsing, or validation fails.
    Should be caught and result in exit code 1 (configuration error).
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """
    Configuration file does not exist at the specified path.

    Example:
        raise ConfigFileNotFoundError("/path/to/config.yaml")
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Configuration file is invalid (schema validation failed).

    Should include details about which field(s) failed validation.

    Example:
        raise ConfigValidationError("default_timeout_ms: must be positive")
    """

    pass


class UnknownDestinationError(ConfigurationError):
    """
    Requested destination has no registered adapter.

    Example:
        raise UnknownDestinationError("Unknown destination 'bard'. Valid: chatgpt, claude")
    """

    pass


# ============================================================================
# Destination Adapter Errors
# ============================================================================


class AdapterError(WebchatRelayError):
    """
    A destination adapter could not drive the page.

    Kinds:
        selector_not_found: An expected element (composer, send button) never appeared.
            Usually means the destination changed its UI.
        navigation_lost: The page or browser target went away mid-operation.
        transient: DOM was replaced during extraction. Retried locally with a
            short backoff before it ever reaches the orchestrator.

    Attributes:
        kind: One of the kinds above
        destination: Destination name the adapter belongs to

    Example:
        raise AdapterError(
            "ChatGPT composer not found",
            kind="selector_not_found",
            destination="chatgpt",
        )
    """

    def __init__(
        self,
        message: str,
        kind: AdapterErrorKind = "selector_not_found",
        destination: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.destination = destination


# ============================================================================
# Capture Errors
# ============================================================================


class CaptureError(WebchatRelayError):
    """
    No usable answer could be captured for a submitted prompt.

    Kinds:
        no_response: No new assistant turn was ever observed before the timeout.
        verification_timeout: A human-verification challenge was not solved in time.
        login_timeout: The user did not complete login in time.

    Attributes:
        kind: One of the kinds above
        destination: Destination name
    """

    def __init__(
        self,
        message: str,
        kind: CaptureErrorKind = "no_response",
        destination: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.destination = destination


class VerificationTimeout(CaptureError):
    """
    Human verification challenge stayed visible past the wait window.

    Example:
        raise VerificationTimeout("Human verification on deepseek timed out", destination="deepseek")
    """

    def __init__(self, message: str, destination: str | None = None):
        super().__init__(message, kind="verification_timeout", destination=destination)


class LoginTimeout(CaptureError):
    """
    Login was not completed in the headed browser within the wait window.

    Example:
        raise LoginTimeout("Login on chatgpt timed out after 300s", destination="chatgpt")
    """

    def __init__(self, message: str, destination: str | None = None):
        super().__init__(message, kind="login_timeout", destination=destination)


# ============================================================================
# Rate/Risk Guard Errors
# ============================================================================


class GuardDenied(WebchatRelayError):
    """
    Risk guard refused the attempt before any browser session was launched.

    Should result in exit code 3 (guard denial). The message names the
    destination and an estimated retry wait.

    Attributes:
        reason: Rule that denied the attempt
        wait_ms: Estimated milliseconds until the rule stops blocking
        destination: Destination name

    Example:
        raise GuardDenied(
            "[risk-guard] chatgpt blocked: chatgpt is cooling down. Retry in ~12m 5s.",
            reason="cooldown",
            wait_ms=725_000,
            destination="chatgpt",
        )
    """

    def __init__(
        self,
        message: str,
        reason: GuardReason,
        wait_ms: int | None = None,
        destination: str | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.wait_ms = wait_ms
        self.destination = destination


# ============================================================================
# Browser / Storage Errors
# ============================================================================


class SessionLaunchError(WebchatRelayError):
    """
    Browser session could not be launched for a destination.

    Example:
        raise SessionLaunchError("Failed to launch chromium for gemini: executable missing")
    """

    pass


class ProfileLockError(WebchatRelayError):
    """
    Another live process holds the browser profile for this destination.

    Example:
        raise ProfileLockError("Profile ~/.webchat-relay/profiles/chatgpt is locked by PID 4242")
    """

    pass


class SessionNotFoundError(WebchatRelayError):
    """
    Requested session ID has no record in the session store.

    Example:
        raise SessionNotFoundError("Session not found: 3f2a...")
    """

    pass


class SourceFetchError(WebchatRelayError):
    """
    A citation page answered with an error status or a non-HTML body.

    Example:
        raise SourceFetchError("HTTP 404", url="https://example.com/gone")
    """

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class RecoveryNeeded(WebchatRelayError):
    """
    Capture was interrupted by a verification, login or block signal.

    Internal control-flow exception raised by the stability detector and
    handled by the orchestrator's submit/capture retry loop.

    Attributes:
        state: Recovery state the controller should drive back to normal
    """

    def __init__(self, message: str, state: str):
        super().__init__(message)
        self.state = state
