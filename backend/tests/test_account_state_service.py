"""Tests for AccountStateService - the per-customer access state machine."""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from app.core import database as db_module
from app.models.customer import Customer
from app.models.payment_failure import PaymentFailure
from app.models.shared import ensure_utc
from app.services.account_state_service import (
    GRACE_PERIOD_DAYS,
    AccountStateService,
    StaleStateError,
)


@pytest.fixture
def customer(db_session: Session) -> Customer:
    c = Customer(external_id="cust-state-001", name="Alan Turing", email="alan@example.com")
    db_session.add(c)
    db_session.commit()
    db_session.refresh(c)
    return c


@pytest.fixture
def established_customer(db_session: Session) -> Customer:
    c = Customer(
        external_id="cust-state-002",
        name="Established",
        created_at=datetime.now(UTC) - timedelta(days=200),
    )
    db_session.add(c)
    db_session.commit()
    db_session.refresh(c)
    return c


def add_failure(db: Session, customer: Customer, retry_count: int = 0, **fields) -> PaymentFailure:
    f = PaymentFailure(
        customer_id=customer.id,
        failure_reason="card_declined",
        amount=Decimal("10.00"),
        currency="USD",
        retry_count=retry_count,
        **fields,
    )
    db.add(f)
    db.commit()
    db.refresh(f)
    return f


class TestCustomerSegment:
    def test_new_customer(self, db_session, customer):
        assert AccountStateService(db_session).get_customer_segment(customer.id) == "new"

    def test_existing_customer(self, db_session, established_customer):
        service = AccountStateService(db_session)
        assert service.get_customer_segment(established_customer.id) == "existing"

    def test_high_value_customer(self, db_session, established_customer):
        established_customer.monthly_amount_cents = 15000
        db_session.commit()
        service = AccountStateService(db_session)
        assert service.get_customer_segment(established_customer.id) == "high_value"

    def test_at_risk_customer(self, db_session, established_customer):
        for _ in range(4):
            add_failure(db_session, established_customer)
        service = AccountStateService(db_session)
        assert service.get_customer_segment(established_customer.id) == "at_risk"

    def test_unknown_customer_is_existing(self, db_session):
        assert AccountStateService(db_session).get_customer_segment(uuid.uuid4()) == "existing"

    def test_grace_period_length_follows_segment(self, db_session, established_customer):
        now = datetime(2026, 5, 1, tzinfo=UTC)
        service = AccountStateService(db_session)
        with patch.object(service, "get_customer_segment", return_value="high_value"):
            assert service.grace_period_end_for(established_customer.id, now) == now + timedelta(
                days=GRACE_PERIOD_DAYS["high_value"]
            )


class TestProcessPaymentFailure:
    def test_first_failure_starts_grace_period(self, db_session, customer):
        failure = add_failure(db_session, customer, subscription_id="sub_1")

        state = AccountStateService(db_session).process_payment_failure(failure)

        assert state.state == "grace_period"
        assert state.previous_state is None
        assert state.version == 1
        assert state.reason == "payment_failure"
        assert state.subscription_id == "sub_1"
        assert state.feature_restrictions == []
        assert state.state_metadata["payment_failure_id"] == str(failure.id)
        grace = ensure_utc(state.grace_period_end) - ensure_utc(state.created_at)
        assert timedelta(days=2, hours=23) < grace <= timedelta(days=3)
        assert state.automated_actions["grace_period"]["actions"] == [
            "send_grace_period_notification",
            "schedule_grace_period_reminder",
        ]
        assert state.automated_actions["grace_period"]["triggered_by"] == "payment_failure"

    def test_active_account_enters_grace_period(self, db_session, established_customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(established_customer.id, "active", "setup", "ops")

        state = service.process_payment_failure(add_failure(db_session, established_customer))

        assert state.state == "grace_period"
        assert state.previous_state == "active"
        assert state.version == 2
        grace = ensure_utc(state.grace_period_end) - ensure_utc(state.created_at)
        assert timedelta(days=4, hours=23) < grace <= timedelta(days=5)

    def test_retry_in_grace_period_extends_grace(self, db_session, customer):
        service = AccountStateService(db_session)
        service.process_payment_failure(add_failure(db_session, customer))

        state = service.process_payment_failure(add_failure(db_session, customer, retry_count=1))

        assert state.state == "grace_period"
        assert state.reason == "payment_failure_retry"
        assert state.grace_period_end is not None

    def test_repeated_retries_restrict(self, db_session, customer):
        service = AccountStateService(db_session)
        service.process_payment_failure(add_failure(db_session, customer))

        state = service.process_payment_failure(add_failure(db_session, customer, retry_count=2))

        assert state.state == "restricted"
        assert state.reason == "multiple_payment_failures"
        assert state.feature_restrictions == ["new_data_creation", "advanced_features", "api_access"]
        assert state.grace_period_end is None

    def test_restricted_account_is_suspended(self, db_session, customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(customer.id, "restricted", "test", "ops")

        state = service.process_payment_failure(add_failure(db_session, customer))

        assert state.state == "suspended"
        assert state.reason == "continued_payment_failure"
        assert state.feature_restrictions == ["all_features"]

    def test_suspended_account_stays_suspended(self, db_session, customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(customer.id, "suspended", "test", "ops")

        state = service.process_payment_failure(add_failure(db_session, customer))

        assert state.state == "suspended"
        assert state.reason == "payment_failure_no_change"
        assert state.automated_actions == {}

    def test_actions_are_dispatched(self, db_session, customer):
        handled = []
        service = AccountStateService(
            db_session, action_handler=lambda action, state: handled.append((action, state.state))
        )

        service.process_payment_failure(add_failure(db_session, customer))

        assert handled == [
            ("send_grace_period_notification", "grace_period"),
            ("schedule_grace_period_reminder", "grace_period"),
        ]

    def test_action_errors_do_not_undo_transition(self, db_session, customer):
        def handler(action, state):
            raise RuntimeError("mailer down")

        service = AccountStateService(db_session, action_handler=handler)
        state = service.process_payment_failure(add_failure(db_session, customer))

        assert state.state == "grace_period"
        assert service.get_current_state(customer.id).id == state.id

    def test_concurrent_transition_raises_stale_state(self, db_session, customer):
        service = AccountStateService(db_session)
        stale = service.process_payment_failure(add_failure(db_session, customer))

        other = db_module.SessionLocal()
        try:
            AccountStateService(other).apply_manual_override(customer.id, "active", "race", "ops")
        finally:
            other.close()

        with patch.object(service.state_repo, "get_current", return_value=stale):
            with pytest.raises(StaleStateError):
                service.process_payment_failure(add_failure(db_session, customer, retry_count=2))

        assert len(service.get_history(customer.id)) == 2


class TestProcessPaymentSuccess:
    def test_reactivates_restricted_account(self, db_session, customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(customer.id, "restricted", "test", "ops")

        state = service.process_payment_success(customer.id, "pi_ok")

        assert state.state == "active"
        assert state.previous_state == "restricted"
        assert state.reason == "payment_recovered"
        assert state.feature_restrictions == []
        assert state.state_metadata == {"payment_intent_id": "pi_ok"}
        assert "restore_all_features" in state.automated_actions["active"]["actions"]

    def test_no_state_is_noop(self, db_session, customer):
        assert AccountStateService(db_session).process_payment_success(customer.id) is None

    def test_active_state_is_noop(self, db_session, customer):
        service = AccountStateService(db_session)
        current = service.apply_manual_override(customer.id, "active", "test", "ops")

        assert service.process_payment_success(customer.id).id == current.id
        assert len(service.get_history(customer.id)) == 1


class TestManualOverride:
    def test_records_override(self, db_session, customer):
        state = AccountStateService(db_session).apply_manual_override(
            customer.id, "suspended", "chargeback", "admin@example.com"
        )

        assert state.state == "suspended"
        assert state.reason == "manual_override"
        assert state.manual_override is True
        assert state.override_reason == "chargeback"
        assert state.override_by == "admin@example.com"
        assert state.automated_actions["suspended"]["triggered_by"] == "manual"

    def test_grace_period_override_sets_end(self, db_session, customer):
        state = AccountStateService(db_session).apply_manual_override(
            customer.id, "grace_period", "extension", "ops"
        )
        assert state.grace_period_end is not None

    def test_unknown_state(self, db_session, customer):
        with pytest.raises(ValueError, match="Unknown account state"):
            AccountStateService(db_session).apply_manual_override(customer.id, "frozen", "x", "ops")

    def test_history_is_newest_first(self, db_session, customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(customer.id, "restricted", "a", "ops")
        service.apply_manual_override(customer.id, "active", "b", "ops")

        history = service.get_history(customer.id)

        assert [s.version for s in history] == [2, 1]
        assert [s.state for s in history] == ["active", "restricted"]


class TestFeatureAccess:
    def test_no_state_allows_everything(self, db_session, customer):
        access = AccountStateService(db_session).check_feature_access(customer.id, "api_access")
        assert access.allowed is True
        assert access.state == "active"

    def test_grace_period_allows_features(self, db_session, customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(customer.id, "grace_period", "t", "ops")

        explicit = service.check_feature_access(customer.id, "data_export")
        other = service.check_feature_access(customer.id, "api_access")

        assert explicit.allowed is True
        assert explicit.reason == "explicitly_allowed"
        assert other.allowed is True
        assert other.reason is None

    def test_restricted_blocks_listed_features(self, db_session, customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(customer.id, "restricted", "t", "ops")

        denied = service.check_feature_access(customer.id, "api_access")

        assert denied.allowed is False
        assert denied.reason == "restricted_in_restricted"
        assert service.check_feature_access(customer.id, "billing_update").allowed is True
        assert service.check_feature_access(customer.id, "reports").allowed is True

    def test_suspended_blocks_everything_but_allowed(self, db_session, customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(customer.id, "suspended", "t", "ops")

        assert service.check_feature_access(customer.id, "reports").allowed is False
        assert service.check_feature_access(customer.id, "account_reactivation").allowed is True

    def test_fails_open(self, db_session, customer):
        service = AccountStateService(db_session)
        with patch.object(service.state_repo, "get_current", side_effect=RuntimeError("db down")):
            access = service.check_feature_access(customer.id, "api_access")

        assert access.allowed is True
        assert access.state == "unknown"
        assert access.reason == "access_check_failed"


class TestFeatureRestrictions:
    def test_no_state(self, db_session, customer):
        restrictions = AccountStateService(db_session).get_feature_restrictions(customer.id)
        assert restrictions.state == "active"
        assert restrictions.restrictions == []

    def test_suspended(self, db_session, customer):
        service = AccountStateService(db_session)
        service.apply_manual_override(customer.id, "suspended", "t", "ops")

        restrictions = service.get_feature_restrictions(customer.id)

        assert restrictions.state == "suspended"
        assert restrictions.restrictions == ["all_features"]
        assert restrictions.allowed_features == ["billing_update", "account_reactivation"]


class TestExpiredGracePeriods:
    def test_suspends_expired_accounts(self, db_session, customer):
        service = AccountStateService(db_session)
        state = service.process_payment_failure(add_failure(db_session, customer))
        state.grace_period_end = datetime.now(UTC) - timedelta(minutes=1)
        db_session.commit()

        result = service.process_expired_grace_periods()

        assert result.processed == 1
        assert result.suspended == 1
        assert result.errors == 0
        current = service.get_current_state(customer.id)
        assert current.state == "suspended"
        assert current.reason == "grace_period_expired"
        assert current.automated_actions["suspended"]["triggered_by"] == "system"

    def test_ignores_active_grace_periods(self, db_session, customer):
        service = AccountStateService(db_session)
        service.process_payment_failure(add_failure(db_session, customer))

        result = service.process_expired_grace_periods()

        assert result.processed == 0

    def test_ignores_superseded_rows(self, db_session, customer):
        service = AccountStateService(db_session)
        state = service.process_payment_failure(add_failure(db_session, customer))
        state.grace_period_end = datetime.now(UTC) - timedelta(minutes=1)
        db_session.commit()
        service.process_payment_success(customer.id)

        result = service.process_expired_grace_periods()

        assert result.processed == 0
        assert service.get_current_state(customer.id).state == "active"

    def test_counts_errors(self, db_session, customer):
        service = AccountStateService(db_session)
        state = service.process_payment_failure(add_failure(db_session, customer))
        state.grace_period_end = datetime.now(UTC) - timedelta(minutes=1)
        db_session.commit()

        with patch.object(service, "_transition", side_effect=StaleStateError("race")):
            result = service.process_expired_grace_periods()

        assert result.processed == 1
        assert result.suspended == 0
        assert result.errors == 1
