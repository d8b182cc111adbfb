"""
Rate/risk guard for webchat-relay.

Public API:
    RiskGuard: evaluate / record_attempt_start / record_outcome
    GuardDecision: evaluate() result
    RiskPolicy, DEFAULT_POLICY, get_policy: per-destination policy table
    classify_error, classify_response: outcome classifiers
"""

from .classifier import classify_error, classify_error_message, classify_response
from .policy import (
    DEFAULT_POLICY,
    RISK_OUTCOME_KINDS,
    OutcomeKind,
    RiskPolicy,
    build_policies,
    get_policy,
)
from .risk_guard import GuardDecision, RiskGuard
from .state import (
    DestinationRuntimeState,
    RiskStateFile,
    RiskStateStore,
    prompt_fingerprint,
)

__all__ = [
    "DEFAULT_POLICY",
    "RISK_OUTCOME_KINDS",
    "DestinationRuntimeState",
    "GuardDecision",
    "OutcomeKind",
    "RiskGuard",
    "RiskPolicy",
    "RiskStateFile",
    "RiskStateStore",
    "build_policies",
    "classify_error",
    "classify_error_message",
    "classify_response",
    "get_policy",
    "prompt_fingerprint",
]
