"""Account state machine driven by payment failure and recovery signals."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.account_state import AccountState, AccountStateType
from app.models.payment_failure import PaymentFailure
from app.models.shared import ensure_utc
from app.repositories.account_state_repository import AccountStateRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.payment_failure_repository import PaymentFailureRepository
from app.schemas.account_state import FeatureAccess, FeatureRestrictions, GracePeriodBatchResult

logger = logging.getLogger(__name__)

ALL_FEATURES = "all_features"


class StaleStateError(Exception):
    """Raised when a concurrent writer changed the row this update was computed from."""


@dataclass(frozen=True)
class StateCapabilities:
    restrictions: tuple[str, ...]
    allowed_features: tuple[str, ...]


FEATURE_RESTRICTIONS: dict[str, StateCapabilities] = {
    AccountStateType.ACTIVE.value: StateCapabilities((), ()),
    AccountStateType.GRACE_PERIOD.value: StateCapabilities(
        (), ("basic_access", "data_export", "billing_update")
    ),
    AccountStateType.RESTRICTED.value: StateCapabilities(
        ("new_data_creation", "advanced_features", "api_access"),
        ("read_only_access", "billing_update", "data_export"),
    ),
    AccountStateType.SUSPENDED.value: StateCapabilities(
        (ALL_FEATURES,), ("billing_update", "account_reactivation")
    ),
    AccountStateType.CANCELED.value: StateCapabilities(
        (ALL_FEATURES,), ("data_export", "account_reactivation")
    ),
}

# Grace period length in days per customer segment
GRACE_PERIOD_DAYS = {
    "new": 3,
    "existing": 5,
    "high_value": 7,
    "at_risk": 1,
}

TRANSITION_ACTIONS: dict[str, tuple[str, ...]] = {
    AccountStateType.GRACE_PERIOD.value: (
        "send_grace_period_notification",
        "schedule_grace_period_reminder",
    ),
    AccountStateType.RESTRICTED.value: (
        "send_restriction_notification",
        "disable_advanced_features",
    ),
    AccountStateType.SUSPENDED.value: (
        "send_suspension_notification",
        "disable_all_features",
        "schedule_data_retention_warning",
    ),
    AccountStateType.ACTIVE.value: (
        "send_reactivation_notification",
        "restore_all_features",
    ),
    AccountStateType.CANCELED.value: (
        "send_cancellation_notification",
        "schedule_data_deletion",
    ),
}

NEW_CUSTOMER_DAYS = 30
HIGH_VALUE_MONTHLY_CENTS = 10000
AT_RISK_WINDOW_DAYS = 90
AT_RISK_FAILURE_COUNT = 3
RESTRICT_AFTER_RETRIES = 2

ActionHandler = Callable[[str, AccountState], None]


class AccountStateService:
    """Service for the per-customer access state machine.

    Every transition appends a row with ``version`` one above the current row.
    Transition actions are recorded on the new row and handed to the optional
    ``action_handler``; handler errors are logged and never undo the transition.
    """

    def __init__(self, db: Session, action_handler: ActionHandler | None = None):
        self.db = db
        self.state_repo = AccountStateRepository(db)
        self.customer_repo = CustomerRepository(db)
        self.failure_repo = PaymentFailureRepository(db)
        self.action_handler = action_handler

    def get_current_state(self, customer_id: UUID) -> AccountState | None:
        return self.state_repo.get_current(customer_id)

    def get_history(self, customer_id: UUID, limit: int = 50) -> list[AccountState]:
        return self.state_repo.get_history(customer_id, limit=limit)

    def get_customer_segment(self, customer_id: UUID, now: datetime | None = None) -> str:
        now = now or datetime.now(UTC)
        customer = self.customer_repo.get_by_id(customer_id)
        if customer is None:
            return "existing"

        created_at = ensure_utc(customer.created_at)  # type: ignore[arg-type]
        if created_at is not None and now - created_at < timedelta(days=NEW_CUSTOMER_DAYS):
            return "new"
        if int(customer.monthly_amount_cents or 0) > HIGH_VALUE_MONTHLY_CENTS:
            return "high_value"
        recent_failures = self.failure_repo.count_for_customer_since(
            customer_id, now - timedelta(days=AT_RISK_WINDOW_DAYS)
        )
        if recent_failures > AT_RISK_FAILURE_COUNT:
            return "at_risk"
        return "existing"

    def grace_period_end_for(self, customer_id: UUID, now: datetime) -> datetime:
        segment = self.get_customer_segment(customer_id, now)
        return now + timedelta(days=GRACE_PERIOD_DAYS.get(segment, GRACE_PERIOD_DAYS["existing"]))

    def process_payment_failure(self, failure: PaymentFailure) -> AccountState:
        """Apply the failure transition to the customer's current state."""
        customer_id: UUID = failure.customer_id  # type: ignore[assignment]
        now = datetime.now(UTC)
        current = self.state_repo.get_current(customer_id)
        current_state = current.state if current is not None else None
        metadata = {
            "payment_failure_id": str(failure.id),
            "failure_reason": failure.failure_reason,
            "retry_count": failure.retry_count,
        }
        subscription_id = failure.subscription_id or (
            current.subscription_id if current is not None else None
        )

        if current_state in (None, AccountStateType.ACTIVE.value):
            return self._transition(
                current,
                customer_id,
                AccountStateType.GRACE_PERIOD.value,
                "payment_failure",
                subscription_id=subscription_id,  # type: ignore[arg-type]
                grace_period_end=self.grace_period_end_for(customer_id, now),
                triggered_by="payment_failure",
                metadata=metadata,
            )

        if current_state == AccountStateType.GRACE_PERIOD.value:
            if int(failure.retry_count or 0) >= RESTRICT_AFTER_RETRIES:
                return self._transition(
                    current,
                    customer_id,
                    AccountStateType.RESTRICTED.value,
                    "multiple_payment_failures",
                    subscription_id=subscription_id,  # type: ignore[arg-type]
                    triggered_by="payment_failure",
                    metadata=metadata,
                )
            return self._transition(
                current,
                customer_id,
                AccountStateType.GRACE_PERIOD.value,
                "payment_failure_retry",
                subscription_id=subscription_id,  # type: ignore[arg-type]
                grace_period_end=self.grace_period_end_for(customer_id, now),
                triggered_by="payment_failure",
                metadata=metadata,
            )

        if current_state == AccountStateType.RESTRICTED.value:
            return self._transition(
                current,
                customer_id,
                AccountStateType.SUSPENDED.value,
                "continued_payment_failure",
                subscription_id=subscription_id,  # type: ignore[arg-type]
                triggered_by="payment_failure",
                metadata=metadata,
            )

        # suspended and canceled stay put until payment or manual reactivation
        return self._transition(
            current,
            customer_id,
            str(current_state),
            "payment_failure_no_change",
            subscription_id=subscription_id,  # type: ignore[arg-type]
            grace_period_end=ensure_utc(current.grace_period_end) if current else None,  # type: ignore[arg-type]
            triggered_by="payment_failure",
            metadata=metadata,
            run_actions=False,
        )

    def process_payment_success(
        self,
        customer_id: UUID,
        payment_intent_id: str | None = None,
    ) -> AccountState | None:
        """Reactivate the account from any degraded state."""
        current = self.state_repo.get_current(customer_id)
        if current is None or current.state == AccountStateType.ACTIVE.value:
            return current
        return self._transition(
            current,
            customer_id,
            AccountStateType.ACTIVE.value,
            "payment_recovered",
            subscription_id=current.subscription_id,  # type: ignore[arg-type]
            triggered_by="payment_success",
            metadata={"payment_intent_id": payment_intent_id},
        )

    def apply_manual_override(
        self,
        customer_id: UUID,
        state: str,
        reason: str,
        override_by: str,
    ) -> AccountState:
        if state not in FEATURE_RESTRICTIONS:
            raise ValueError(f"Unknown account state: {state}")
        current = self.state_repo.get_current(customer_id)
        grace_period_end = None
        if state == AccountStateType.GRACE_PERIOD.value:
            grace_period_end = self.grace_period_end_for(customer_id, datetime.now(UTC))
        return self._transition(
            current,
            customer_id,
            state,
            "manual_override",
            subscription_id=current.subscription_id if current else None,  # type: ignore[arg-type]
            grace_period_end=grace_period_end,
            triggered_by="manual",
            manual_override=True,
            override_reason=reason,
            override_by=override_by,
        )

    def check_feature_access(self, customer_id: UUID, feature: str) -> FeatureAccess:
        """Decide whether a feature is usable; fails open on any error."""
        try:
            current = self.state_repo.get_current(customer_id)
            state = str(current.state) if current is not None else AccountStateType.ACTIVE.value
            if state == AccountStateType.ACTIVE.value:
                return FeatureAccess(feature=feature, allowed=True, state=state)

            capabilities = FEATURE_RESTRICTIONS[state]
            if feature in capabilities.allowed_features:
                return FeatureAccess(
                    feature=feature, allowed=True, state=state, reason="explicitly_allowed"
                )

            restrictions = list(current.feature_restrictions or capabilities.restrictions)  # type: ignore[union-attr]
            if ALL_FEATURES in restrictions or feature in restrictions:
                return FeatureAccess(
                    feature=feature, allowed=False, state=state, reason=f"restricted_in_{state}"
                )
            return FeatureAccess(feature=feature, allowed=True, state=state)
        except Exception:
            logger.exception("Feature access check failed for customer %s", customer_id)
            return FeatureAccess(
                feature=feature, allowed=True, state="unknown", reason="access_check_failed"
            )

    def get_feature_restrictions(self, customer_id: UUID) -> FeatureRestrictions:
        current = self.state_repo.get_current(customer_id)
        if current is None:
            return FeatureRestrictions(state=AccountStateType.ACTIVE.value)
        capabilities = FEATURE_RESTRICTIONS.get(str(current.state), FEATURE_RESTRICTIONS["active"])
        return FeatureRestrictions(
            state=str(current.state),
            restrictions=list(current.feature_restrictions or []),
            allowed_features=list(capabilities.allowed_features),
            grace_period_end=ensure_utc(current.grace_period_end),  # type: ignore[arg-type]
        )

    def process_expired_grace_periods(self) -> GracePeriodBatchResult:
        """Background job: suspend accounts whose grace period has run out."""
        now = datetime.now(UTC)
        expired = self.state_repo.get_expired_grace_periods(now, limit=100)
        result = GracePeriodBatchResult(processed=len(expired))

        for state in expired:
            try:
                self._transition(
                    state,
                    state.customer_id,  # type: ignore[arg-type]
                    AccountStateType.SUSPENDED.value,
                    "grace_period_expired",
                    subscription_id=state.subscription_id,  # type: ignore[arg-type]
                    triggered_by="system",
                    metadata={"grace_period_end": str(state.grace_period_end)},
                )
                result.suspended += 1
            except Exception:
                logger.exception("Failed to suspend account for customer %s", state.customer_id)
                result.errors += 1

        if expired:
            logger.info(
                "Processed %d expired grace periods (%d suspended)", len(expired), result.suspended
            )
        return result

    def _transition(
        self,
        current: AccountState | None,
        customer_id: UUID,
        state: str,
        reason: str,
        *,
        subscription_id: str | None = None,
        grace_period_end: datetime | None = None,
        triggered_by: str = "system",
        metadata: dict[str, Any] | None = None,
        manual_override: bool = False,
        override_reason: str | None = None,
        override_by: str | None = None,
        run_actions: bool = True,
    ) -> AccountState:
        actions = TRANSITION_ACTIONS.get(state, ()) if run_actions else ()
        automated_actions: dict[str, Any] = {}
        if actions:
            automated_actions[state] = {
                "actions": list(actions),
                "executed_at": datetime.now(UTC).isoformat(),
                "triggered_by": triggered_by,
            }

        try:
            new_state = self.state_repo.append(
                customer_id=customer_id,
                subscription_id=subscription_id,
                version=(int(current.version) if current is not None else 0) + 1,
                state=state,
                previous_state=current.state if current is not None else None,
                reason=reason,
                grace_period_end=grace_period_end,
                feature_restrictions=list(FEATURE_RESTRICTIONS[state].restrictions),
                automated_actions=automated_actions,
                manual_override=manual_override,
                override_reason=override_reason,
                override_by=override_by,
                state_metadata=metadata or {},
            )
        except IntegrityError as e:
            self.db.rollback()
            raise StaleStateError(
                f"Account state for customer {customer_id} changed concurrently"
            ) from e

        for action in actions:
            self._run_action(action, new_state)
        return new_state

    def _run_action(self, action: str, state: AccountState) -> None:
        logger.info("Account %s -> %s: %s", state.customer_id, state.state, action)
        if self.action_handler is None:
            return
        try:
            self.action_handler(action, state)
        except Exception:
            logger.exception("Account action %s failed for customer %s", action, state.customer_id)
