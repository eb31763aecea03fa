"""Failure classification and retry backoff for failed payments.

Both functions are pure: they only read static policy tables, so the payment
failure service and the tests can call them without a session.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.schemas.payment_failure import (
    FailureAnalysis,
    FailureClassification,
    FailureSeverity,
    RetryPriority,
    RetrySchedule,
)

# Jitter spreads retries by +/-25% of the base interval.
JITTER_SPREAD = 0.5


@dataclass(frozen=True)
class RetryPolicy:
    intervals_hours: tuple[float, ...]
    priority: RetryPriority
    recommended_action: str


def _analysis(
    classification: FailureClassification,
    severity: FailureSeverity,
    retries: int,
    resolution_hours: int,
    *,
    update_required: bool = False,
    suggest_alternative: bool = False,
) -> FailureAnalysis:
    return FailureAnalysis(
        classification=classification,
        severity=severity,
        recommended_retry_count=retries,
        customer_communication_required=True,
        estimated_resolution_time_hours=resolution_hours,
        payment_method_update_required=update_required,
        alternative_payment_method_suggested=suggest_alternative,
    )


_TEMPORAL = FailureClassification.TEMPORAL
_PERMANENT = FailureClassification.PERMANENT
_ACTION = FailureClassification.CUSTOMER_ACTION_REQUIRED

FAILURE_ANALYSES: dict[str, FailureAnalysis] = {
    "insufficient_funds": _analysis(
        _TEMPORAL, FailureSeverity.MEDIUM, 3, 72, suggest_alternative=True
    ),
    "card_declined": _analysis(_TEMPORAL, FailureSeverity.MEDIUM, 2, 24, suggest_alternative=True),
    "generic_decline": _analysis(
        _TEMPORAL, FailureSeverity.MEDIUM, 2, 24, suggest_alternative=True
    ),
    "expired_card": _analysis(_ACTION, FailureSeverity.HIGH, 1, 12, update_required=True),
    "authentication_required": _analysis(_ACTION, FailureSeverity.MEDIUM, 2, 6),
    "three_d_secure_required": _analysis(_ACTION, FailureSeverity.MEDIUM, 2, 6),
    "card_not_supported": _analysis(
        _PERMANENT, FailureSeverity.HIGH, 0, 24, update_required=True, suggest_alternative=True
    ),
    "currency_not_supported": _analysis(
        _PERMANENT, FailureSeverity.HIGH, 0, 24, update_required=True, suggest_alternative=True
    ),
    "fraudulent": _analysis(
        _PERMANENT, FailureSeverity.CRITICAL, 0, 48, update_required=True, suggest_alternative=True
    ),
    "stolen_card": _analysis(
        _PERMANENT, FailureSeverity.CRITICAL, 0, 48, update_required=True, suggest_alternative=True
    ),
}

DEFAULT_ANALYSIS = _analysis(_TEMPORAL, FailureSeverity.MEDIUM, 2, 48)

RETRY_POLICIES: dict[str, RetryPolicy] = {
    "insufficient_funds": RetryPolicy(
        (24, 72, 168), RetryPriority.MEDIUM, "Wait for customer to add funds"
    ),
    "card_declined": RetryPolicy((2, 24, 72), RetryPriority.MEDIUM, "Contact customer to verify card"),
    "expired_card": RetryPolicy((1, 6, 24), RetryPriority.HIGH, "Request payment method update"),
    "authentication_required": RetryPolicy(
        (0.5, 2, 12), RetryPriority.HIGH, "Guide customer through authentication"
    ),
}

DEFAULT_RETRY_POLICY = RetryPolicy((4, 24, 72), RetryPriority.MEDIUM, "Standard retry sequence")


def classify_failure(failure_code: str | None, failure_reason: str | None = None) -> FailureAnalysis:
    """Map a decline code to its recovery policy.

    Falls back to ``failure_reason`` when the code is missing or unknown, and
    to the default temporal policy when neither is known. Never raises.
    """
    for key in (failure_code, failure_reason):
        if key and key in FAILURE_ANALYSES:
            return FAILURE_ANALYSES[key].model_copy()
    return DEFAULT_ANALYSIS.model_copy()


def retry_policy_key(failure_code: str | None, failure_reason: str) -> str:
    """Pick the key used for the backoff table: the code when known, else the reason."""
    if failure_code and failure_code in RETRY_POLICIES:
        return failure_code
    return failure_reason


def calculate_next_retry_time(
    failure_reason: str,
    retry_count: int,
    now: datetime | None = None,
) -> RetrySchedule:
    """Compute the next retry time with +/-25% jitter around the base interval."""
    policy = RETRY_POLICIES.get(failure_reason, DEFAULT_RETRY_POLICY)
    intervals = policy.intervals_hours
    base_hours = intervals[min(max(retry_count, 0), len(intervals) - 1)]
    jitter = (random.random() - 0.5) * JITTER_SPREAD
    interval_hours = base_hours * (1 + jitter)

    start = now or datetime.now(UTC)
    return RetrySchedule(
        next_retry_at=start + timedelta(hours=interval_hours),
        retry_interval_hours=interval_hours,
        recommended_action=policy.recommended_action,
        priority=policy.priority,
    )
