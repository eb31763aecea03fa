"""Tests for RecoveryMetricsService - daily analytics and health counters."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from app.models.customer import Customer
from app.models.payment_failure import PaymentFailure
from app.repositories.recovery_metric_repository import RecoveryMetricRepository
from app.services.account_state_service import AccountStateService
from app.services.recovery_metrics_service import RecoveryMetricsService


@pytest.fixture
def customer(db_session):
    c = Customer(external_id="metrics-1", name="Metrics")
    db_session.add(c)
    db_session.commit()
    return c


def _metrics(db, on):
    return {m.metric_name: m.metric_value for m in RecoveryMetricsService(db).get_metrics(on)}


class TestGenerateDailyMetrics:
    def test_counts_today(self, db_session, customer):
        now = datetime.now(UTC)
        db_session.add_all(
            [
                PaymentFailure(
                    customer_id=customer.id,
                    failure_reason="card_declined",
                    amount=Decimal("12.50"),
                    status="resolved",
                    resolved_at=now,
                ),
                PaymentFailure(
                    customer_id=customer.id,
                    failure_reason="fraudulent",
                    amount=Decimal("3.00"),
                    status="abandoned",
                    resolved_at=now,
                ),
                PaymentFailure(
                    customer_id=customer.id, failure_reason="card_declined", amount=Decimal("1")
                ),
            ]
        )
        db_session.commit()
        AccountStateService(db_session).apply_manual_override(customer.id, "suspended", "t", "ops")

        written = RecoveryMetricsService(db_session).generate_daily_metrics(now.date())

        assert written == 8
        metrics = _metrics(db_session, now.date())
        assert metrics["failures_created"] == 3
        assert metrics["failures_resolved"] == 1
        assert metrics["failures_abandoned"] == 1
        assert metrics["amount_recovered_cents"] == 1250
        assert metrics["accounts_suspended"] == 1
        assert metrics["communications_sent"] == 0

    def test_is_idempotent(self, db_session, customer):
        today = datetime.now(UTC).date()
        service = RecoveryMetricsService(db_session)
        service.generate_daily_metrics(today)
        service.generate_daily_metrics(today)

        assert len(service.get_metrics(today)) == 8

    def test_empty_day(self, db_session):
        metrics_date = date(2020, 1, 1)
        RecoveryMetricsService(db_session).generate_daily_metrics(metrics_date)
        assert all(value == 0 for value in _metrics(db_session, metrics_date).values())


class TestHealthMetrics:
    def test_increments_counter(self, db_session):
        service = RecoveryMetricsService(db_session)
        on = date(2026, 4, 1)

        service.record_health_metric("accounts_suspended", 2, on=on)
        service.record_health_metric("accounts_suspended", 3, on=on)

        metric = RecoveryMetricRepository(db_session).get(on, "accounts_suspended")
        assert metric.metric_value == 5
