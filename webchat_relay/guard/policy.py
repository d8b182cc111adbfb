"""
Per-destination risk policies.

A RiskPolicy is static configuration: it is resolved once per process and
never edited by users. Destinations with aggressive anti-automation defenses
get stricter overrides on top of DEFAULT_POLICY.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict

RiskOutcomeKind = Literal[
    "paused_generation", "captcha_or_verification", "http_429", "auth_required"
]
OutcomeKind = Literal[
    "success",
    "paused_generation",
    "captcha_or_verification",
    "http_429",
    "auth_required",
    "timeout",
    "other_error",
]

RISK_OUTCOME_KINDS: frozenset[str] = frozenset(
    {"paused_generation", "captcha_or_verification", "http_429", "auth_required"}
)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


class RiskPolicy(BaseModel):
    """
    Cadence, cooldown and breaker settings for one destination.

    All durations are milliseconds.

    Attributes:
        min_interval_ms_headed: Minimum gap between attempts in a visible browser
        min_interval_ms_headless: Minimum gap between headless attempts
        attempts_window_ms / attempts_limit: Overall sliding-window cap
        headless_attempts_window_ms / headless_attempts_limit: Headless-only cap
        same_prompt_window_ms / same_prompt_limit: Duplicate-prompt cap
        cooldown_on_rate_limit_ms: Cooldown set when a window cap is hit
        cooldown_by_outcome: Cooldown set by each risk-bearing outcome
        breaker_threshold: Consecutive risk outcomes that trip the breaker
        breaker_duration_ms: Quarantine length once tripped
    """

    model_config = ConfigDict(frozen=True)

    min_interval_ms_headed: int = 60 * 1000
    min_interval_ms_headless: int = 3 * MINUTE_MS
    attempts_window_ms: int = 30 * MINUTE_MS
    attempts_limit: int = 5
    headless_attempts_window_ms: int = HOUR_MS
    headless_attempts_limit: int = 3
    same_prompt_window_ms: int = 12 * HOUR_MS
    same_prompt_limit: int = 2
    cooldown_on_rate_limit_ms: int = 15 * MINUTE_MS
    cooldown_by_outcome: dict[RiskOutcomeKind, int] = {
        "paused_generation": 20 * MINUTE_MS,
        "captcha_or_verification": 45 * MINUTE_MS,
        "http_429": HOUR_MS,
        "auth_required": 10 * MINUTE_MS,
    }
    breaker_threshold: int = 3
    breaker_duration_ms: int = 6 * HOUR_MS

    @property
    def attempt_retention_ms(self) -> int:
        """Longest window any attempt record can still matter for."""
        return max(
            self.attempts_window_ms,
            self.headless_attempts_window_ms,
            self.same_prompt_window_ms,
        )

    @property
    def risk_event_retention_ms(self) -> int:
        return max(self.breaker_duration_ms, 24 * HOUR_MS)

    def min_interval_ms(self, mode: str) -> int:
        return (
            self.min_interval_ms_headless
            if mode == "headless"
            else self.min_interval_ms_headed
        )


DEFAULT_POLICY = RiskPolicy()

DESTINATION_OVERRIDES: dict[str, dict] = {
    "yuanbao": {
        "min_interval_ms_headed": 3 * MINUTE_MS,
        "min_interval_ms_headless": 10 * MINUTE_MS,
        "attempts_limit": 3,
        "headless_attempts_limit": 2,
        "same_prompt_window_ms": 24 * HOUR_MS,
        "same_prompt_limit": 1,
        "cooldown_on_rate_limit_ms": 30 * MINUTE_MS,
    },
    "deepseek": {
        "min_interval_ms_headed": 2 * MINUTE_MS,
        "min_interval_ms_headless": 5 * MINUTE_MS,
        "attempts_limit": 4,
        "headless_attempts_limit": 2,
        "cooldown_on_rate_limit_ms": 20 * MINUTE_MS,
    },
    "doubao": {
        "min_interval_ms_headed": 2 * MINUTE_MS,
        "min_interval_ms_headless": 5 * MINUTE_MS,
        "attempts_limit": 4,
        "headless_attempts_limit": 2,
        "cooldown_on_rate_limit_ms": 25 * MINUTE_MS,
    },
}


def build_policies(
    overrides: dict[str, dict] | None = None,
) -> dict[str, RiskPolicy]:
    """Resolve every destination override against DEFAULT_POLICY."""
    table = DESTINATION_OVERRIDES if overrides is None else overrides
    return {
        name: DEFAULT_POLICY.model_copy(update=changes)
        for name, changes in table.items()
    }


def get_policy(destination: str, policies: dict[str, RiskPolicy] | None = None) -> RiskPolicy:
    """Return the policy for a destination, falling back to DEFAULT_POLICY."""
    table = policies if policies is not None else _RESOLVED_POLICIES
    return table.get(destination, DEFAULT_POLICY)


_RESOLVED_POLICIES = build_policies()
