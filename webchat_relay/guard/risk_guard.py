"""
Rate/risk guard: decides whether an automated attempt may run right now.

Before every attempt the orchestrator asks evaluate(); the first violated
rule wins, checked in this order:

1. breaker      - quarantine after repeated risk-bearing outcomes
2. cooldown     - set by risk outcomes and by window/duplicate violations
3. min_interval - gap since the last attempt, larger for headless mode
4. rate_window  - sliding-window attempt caps (overall, then headless-only)
5. duplicate_prompt - same prompt fingerprint too often in a long window

Window and duplicate violations also set a cooldown, so a script hammering
a destination backs off for longer than the window itself.

After the attempt, record_outcome() feeds the result back: risk-bearing
outcomes extend the cooldown and count toward the breaker, success resets
the counter. Cooldowns and breaker windows are only ever extended.

Every call reads, prunes and rewrites the persisted state.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from webchat_relay.exceptions import GuardReason

from ..config.constants import RISK_MESSAGE_MAX_CHARS
from ..utils.time import millis_between, utc_now
from .policy import RISK_OUTCOME_KINDS, OutcomeKind, RiskPolicy, get_policy
from .state import (
    AttemptMode,
    AttemptRecord,
    DestinationRuntimeState,
    RiskEventRecord,
    RiskStateStore,
    prompt_fingerprint,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardDecision:
    """
    Result of RiskGuard.evaluate().

    Attributes:
        allowed: True if the attempt may proceed
        wait_ms: Estimated wait until the blocking rule clears (denials only)
        reason: Rule that denied the attempt (denials only)
        message: Human-readable explanation (denials only)
    """

    allowed: bool
    wait_ms: int | None = None
    reason: GuardReason | None = None
    message: str | None = None


ALLOW = GuardDecision(allowed=True)


def _later(current: datetime | None, candidate: datetime) -> datetime:
    if current is None or candidate > current:
        return candidate
    return current


class RiskGuard:
    """
    Persistent per-destination cadence limiter, cooldown and circuit breaker.

    Args:
        store: State file store (defaults to <app_dir>/risk/state.json)
        policies: Destination -> RiskPolicy table (defaults to built-in overrides)
        clock: Returns current UTC time; tests pin it with freezegun

    Example:
        >>> guard = RiskGuard()
        >>> decision = guard.evaluate("chatgpt", "headless", "hello")
        >>> if decision.allowed:
        ...     guard.record_attempt_start("chatgpt", "headless", "hello")
    """

    def __init__(
        self,
        store: RiskStateStore | None = None,
        policies: dict[str, RiskPolicy] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store or RiskStateStore()
        self.policies = policies
        self._clock = clock

    def policy_for(self, destination: str) -> RiskPolicy:
        return get_policy(destination, self.policies)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def evaluate(
        self, destination: str, mode: AttemptMode, prompt_text: str
    ) -> GuardDecision:
        """
        Decide whether an attempt is currently permitted.

        Persists pruned state, plus any cooldown set by a window or duplicate
        violation.
        """
        now = self._clock()
        state_file = self.store.load()
        state = state_file.destinations.setdefault(
            destination, DestinationRuntimeState()
        )
        policy = self.policy_for(destination)
        self._prune(state, policy, now)

        decision = self._decide(destination, state, policy, mode, prompt_text, now)
        self.store.save(state_file)

        if decision.allowed:
            logger.debug(f"Risk guard allowed {destination} ({mode})")
        else:
            logger.warning(
                f"Risk guard denied {destination} ({mode}): {decision.reason}, "
                f"wait_ms={decision.wait_ms}"
            )
        return decision

    def record_attempt_start(
        self, destination: str, mode: AttemptMode, prompt_text: str
    ) -> None:
        """Append an attempt record; call only after evaluate() approved it."""
        now = self._clock()
        state_file = self.store.load()
        state = state_file.destinations.setdefault(
            destination, DestinationRuntimeState()
        )
        self._prune(state, self.policy_for(destination), now)

        state.attempts.append(
            AttemptRecord(
                at=now, mode=mode, prompt_fingerprint=prompt_fingerprint(prompt_text)
            )
        )
        state.last_attempt_at = now
        self.store.save(state_file)

    def record_outcome(
        self, destination: str, kind: OutcomeKind, message: str | None = None
    ) -> DestinationRuntimeState:
        """
        Record an attempt's terminal outcome.

        success resets consecutive_risk_events. Risk-bearing kinds increment it,
        extend the cooldown, and extend the breaker once the threshold is
        reached. timeout and other_error are logged as events only.

        Returns:
            The updated state for the destination
        """
        now = self._clock()
        state_file = self.store.load()
        state = state_file.destinations.setdefault(
            destination, DestinationRuntimeState()
        )
        policy = self.policy_for(destination)
        self._prune(state, policy, now)

        if kind == "success":
            state.consecutive_risk_events = 0
        else:
            state.risk_events.append(
                RiskEventRecord(
                    at=now,
                    kind=kind,
                    message=message[:RISK_MESSAGE_MAX_CHARS] if message else None,
                )
            )

        if kind in RISK_OUTCOME_KINDS:
            state.consecutive_risk_events += 1
            cooldown_ms = policy.cooldown_by_outcome.get(
                kind, policy.cooldown_on_rate_limit_ms
            )
            state.cooldown_until = _later(
                state.cooldown_until, now + timedelta(milliseconds=cooldown_ms)
            )

            if state.consecutive_risk_events >= policy.breaker_threshold:
                state.breaker_until = _later(
                    state.breaker_until,
                    now + timedelta(milliseconds=policy.breaker_duration_ms),
                )
                logger.warning(
                    f"Risk breaker tripped for {destination} after "
                    f"{state.consecutive_risk_events} consecutive risk outcomes"
                )

        self.store.save(state_file)
        logger.info(
            f"Recorded outcome for {destination}: {kind} "
            f"(consecutive_risk_events={state.consecutive_risk_events})"
        )
        return state

    def snapshot(self, destination: str) -> DestinationRuntimeState:
        """Return the pruned state for a destination without writing it."""
        state = self.store.load().destinations.get(destination)
        if state is None:
            return DestinationRuntimeState()
        self._prune(state, self.policy_for(destination), self._clock())
        return state

    def reset(self, destination: str) -> None:
        """Clear cooldown, breaker and risk counter on explicit user request."""
        state_file = self.store.load()
        state = state_file.destinations.get(destination)
        if state is None:
            return
        state.cooldown_until = None
        state.breaker_until = None
        state.consecutive_risk_events = 0
        self.store.save(state_file)
        logger.info(f"Reset risk state for {destination}")

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _decide(
        self,
        destination: str,
        state: DestinationRuntimeState,
        policy: RiskPolicy,
        mode: AttemptMode,
        prompt_text: str,
        now: datetime,
    ) -> GuardDecision:
        if state.breaker_until and state.breaker_until > now:
            return GuardDecision(
                allowed=False,
                wait_ms=millis_between(now, state.breaker_until),
                reason="breaker",
                message=f"{destination} risk breaker is active",
            )

        if state.cooldown_until and state.cooldown_until > now:
            return GuardDecision(
                allowed=False,
                wait_ms=millis_between(now, state.cooldown_until),
                reason="cooldown",
                message=f"{destination} is cooling down",
            )

        if state.last_attempt_at is not None:
            elapsed_ms = millis_between(state.last_attempt_at, now)
            min_interval_ms = policy.min_interval_ms(mode)
            if elapsed_ms < min_interval_ms:
                return GuardDecision(
                    allowed=False,
                    wait_ms=min_interval_ms - elapsed_ms,
                    reason="min_interval",
                    message=f"minimum interval not reached ({mode})",
                )

        recent = self._attempts_within(state, policy.attempts_window_ms, now)
        if len(recent) >= policy.attempts_limit:
            return self._deny_with_cooldown(
                state,
                policy,
                now,
                reason="rate_window",
                message="request rate is too high in recent window",
            )

        if mode == "headless":
            recent_headless = [
                a
                for a in self._attempts_within(
                    state, policy.headless_attempts_window_ms, now
                )
                if a.mode == "headless"
            ]
            if len(recent_headless) >= policy.headless_attempts_limit:
                return self._deny_with_cooldown(
                    state,
                    policy,
                    now,
                    reason="rate_window",
                    message="headless request rate is too high in recent window",
                )

        fingerprint = prompt_fingerprint(prompt_text)
        same_prompt = [
            a
            for a in self._attempts_within(state, policy.same_prompt_window_ms, now)
            if a.prompt_fingerprint == fingerprint
        ]
        if len(same_prompt) >= policy.same_prompt_limit:
            return self._deny_with_cooldown(
                state,
                policy,
                now,
                reason="duplicate_prompt",
                message="repeated prompt pattern detected",
            )

        return ALLOW

    def _deny_with_cooldown(
        self,
        state: DestinationRuntimeState,
        policy: RiskPolicy,
        now: datetime,
        reason: GuardReason,
        message: str,
    ) -> GuardDecision:
        state.cooldown_until = _later(
            state.cooldown_until,
            now + timedelta(milliseconds=policy.cooldown_on_rate_limit_ms),
        )
        return GuardDecision(
            allowed=False,
            wait_ms=millis_between(now, state.cooldown_until),
            reason=reason,
            message=message,
        )

    @staticmethod
    def _attempts_within(
        state: DestinationRuntimeState, window_ms: int, now: datetime
    ) -> list[AttemptRecord]:
        cutoff = now - timedelta(milliseconds=window_ms)
        return [a for a in state.attempts if a.at >= cutoff]

    @staticmethod
    def _prune(
        state: DestinationRuntimeState, policy: RiskPolicy, now: datetime
    ) -> None:
        attempt_cutoff = now - timedelta(milliseconds=policy.attempt_retention_ms)
        event_cutoff = now - timedelta(milliseconds=policy.risk_event_retention_ms)
        state.attempts = [a for a in state.attempts if a.at >= attempt_cutoff]
        state.risk_events = [e for e in state.risk_events if e.at >= event_cutoff]
        if state.cooldown_until and state.cooldown_until <= now:
            state.cooldown_until = None
        if state.breaker_until and state.breaker_until <= now:
            state.breaker_until = None
