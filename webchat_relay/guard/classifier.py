"""
Outcome classification for the risk guard.

Maps a failed attempt's exception, or a captured answer's text, to one of the
outcome kinds the guard understands. Typed errors map directly; anything else
goes through fixed phrase tables covering English and the Chinese phrasing
used by the Chinese destinations.

Both classifiers are pure functions of their input.
"""

from webchat_relay.exceptions import CaptureError, GuardDenied, RecoveryNeeded

from .policy import OutcomeKind

VERIFICATION_PHRASES: tuple[str, ...] = (
    "验证码",
    "人机验证",
    "安全验证",
    "captcha",
    "verify",
    "verification",
    "security check",
)
RATE_LIMIT_PHRASES: tuple[str, ...] = (
    "http 429",
    "429",
    "too many requests",
    "rate limit",
    "请求过于频繁",
)
AUTH_PHRASES: tuple[str, ...] = ("not logged in", "login", "未登录")
TIMEOUT_PHRASES: tuple[str, ...] = ("timeout", "timed out")
PAUSED_PHRASES: tuple[str, ...] = ("暂停生成", "paused")

# Phrases that only count when they appear in a captured answer
RESPONSE_PAUSED_PHRASES: tuple[str, ...] = ("已暂停生成", "暂停生成")
RESPONSE_VERIFICATION_PHRASES: tuple[str, ...] = ("验证码", "人机验证", "captcha")

_CAPTURE_KIND_OUTCOMES: dict[str, OutcomeKind] = {
    "no_response": "timeout",
    "verification_timeout": "captcha_or_verification",
    "login_timeout": "auth_required",
}

_RECOVERY_STATE_OUTCOMES: dict[str, OutcomeKind] = {
    "verification_required": "captcha_or_verification",
    "headless_blocked": "captcha_or_verification",
    "login_required": "auth_required",
}


def _contains_any(text: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in text for phrase in phrases)


def classify_error_message(message: str) -> OutcomeKind:
    """
    Classify a free-form error message.

    Checks run in a fixed order (verification, rate limit, auth, timeout,
    paused) and the first match wins.

    Examples:
        >>> classify_error_message("HTTP 429 Too Many Requests")
        'http_429'
        >>> classify_error_message("Login timed out after 300s")
        'auth_required'
        >>> classify_error_message("boom")
        'other_error'
    """
    text = message.lower()
    if _contains_any(text, VERIFICATION_PHRASES):
        return "captcha_or_verification"
    if _contains_any(text, RATE_LIMIT_PHRASES):
        return "http_429"
    if _contains_any(text, AUTH_PHRASES):
        return "auth_required"
    if _contains_any(text, TIMEOUT_PHRASES):
        return "timeout"
    if _contains_any(text, PAUSED_PHRASES):
        return "paused_generation"
    return "other_error"


def classify_error(error: BaseException | str) -> OutcomeKind:
    """
    Classify a failed attempt's exception into an outcome kind.

    Args:
        error: The exception that ended the attempt, or its message

    Returns:
        Outcome kind for RiskGuard.record_outcome
    """
    if isinstance(error, str):
        return classify_error_message(error)

    if isinstance(error, CaptureError):
        return _CAPTURE_KIND_OUTCOMES.get(error.kind, "timeout")

    if isinstance(error, RecoveryNeeded):
        return _RECOVERY_STATE_OUTCOMES.get(error.state, "other_error")

    if isinstance(error, GuardDenied):
        return "other_error"

    return classify_error_message(str(error))


def classify_response(text: str) -> OutcomeKind:
    """
    Classify a captured answer.

    A destination can "succeed" at the transport level while actually
    showing a paused-generation notice or a verification prompt instead of
    an answer.

    Examples:
        >>> classify_response("已暂停生成")
        'paused_generation'
        >>> classify_response("pong")
        'success'
    """
    lowered = text.lower()
    if _contains_any(lowered, RESPONSE_PAUSED_PHRASES):
        return "paused_generation"
    if _contains_any(lowered, RESPONSE_VERIFICATION_PHRASES):
        return "captcha_or_verification"
    return "success"
