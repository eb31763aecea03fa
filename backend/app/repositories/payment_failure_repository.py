"""PaymentFailure repository for data access."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from app.core.sorting import apply_order_by
from app.models.payment_failure import PaymentFailure, PaymentFailureStatus

OPEN_STATUSES = (PaymentFailureStatus.PENDING.value, PaymentFailureStatus.RETRYING.value)
SORTABLE_FIELDS = ("created_at", "updated_at", "amount", "next_retry_at", "retry_count", "status")


class PaymentFailureRepository:
    """Repository for PaymentFailure model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, failure_id: UUID) -> PaymentFailure | None:
        return self.db.query(PaymentFailure).filter(PaymentFailure.id == failure_id).first()

    def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        customer_id: UUID | None = None,
        status: str | None = None,
        order_by: str | None = None,
    ) -> list[PaymentFailure]:
        query = self.db.query(PaymentFailure)
        if customer_id is not None:
            query = query.filter(PaymentFailure.customer_id == customer_id)
        if status is not None:
            query = query.filter(PaymentFailure.status == status)
        query = apply_order_by(
            query, PaymentFailure, order_by, allowed_fields=SORTABLE_FIELDS
        )
        return query.offset(skip).limit(limit).all()

    def find_open(self, customer_id: UUID, payment_intent_id: str | None) -> PaymentFailure | None:
        """Find the failure still under recovery for a (customer, payment intent) pair.

        Abandoned failures count as open; only resolved ones start a new record.
        """
        if payment_intent_id is None:
            return None
        return (
            self.db.query(PaymentFailure)
            .filter(
                PaymentFailure.customer_id == customer_id,
                PaymentFailure.payment_intent_id == payment_intent_id,
                PaymentFailure.status != PaymentFailureStatus.RESOLVED.value,
            )
            .order_by(PaymentFailure.created_at.desc())
            .first()
        )

    def get_due_for_retry(
        self,
        now: datetime,
        limit: int = 50,
        stale_claim_before: datetime | None = None,
    ) -> list[PaymentFailure]:
        """Pending failures whose next retry time has passed, oldest first.

        With ``stale_claim_before``, failures left in ``retrying`` by an attempt
        that started before that time are picked up again.
        """
        due = and_(
            PaymentFailure.status == PaymentFailureStatus.PENDING.value,
            PaymentFailure.next_retry_at.isnot(None),
            PaymentFailure.next_retry_at <= now,
        )
        if stale_claim_before is not None:
            due = or_(
                due,
                and_(
                    PaymentFailure.status == PaymentFailureStatus.RETRYING.value,
                    PaymentFailure.last_retry_at <= stale_claim_before,
                ),
            )
        return (
            self.db.query(PaymentFailure)
            .filter(due)
            .order_by(PaymentFailure.created_at.asc())
            .limit(limit)
            .all()
        )

    def count_for_customer_since(self, customer_id: UUID, since: datetime) -> int:
        return (
            self.db.query(func.count(PaymentFailure.id))
            .filter(
                PaymentFailure.customer_id == customer_id,
                PaymentFailure.created_at >= since,
            )
            .scalar()
            or 0
        )

    def create(self, **fields: Any) -> PaymentFailure:
        failure = PaymentFailure(**fields)
        self.db.add(failure)
        self.db.commit()
        self.db.refresh(failure)
        return failure

    def save(self, failure: PaymentFailure) -> PaymentFailure:
        """Commit pending changes on a failure.

        Raises ``sqlalchemy.orm.exc.StaleDataError`` when another session
        bumped the row version since it was loaded.
        """
        self.db.commit()
        self.db.refresh(failure)
        return failure

    def count_created_between(self, start: datetime, end: datetime) -> int:
        return (
            self.db.query(func.count(PaymentFailure.id))
            .filter(PaymentFailure.created_at >= start, PaymentFailure.created_at < end)
            .scalar()
            or 0
        )

    def count_closed_between(self, status: str, start: datetime, end: datetime) -> int:
        """Count failures that reached a terminal status inside the window."""
        return (
            self.db.query(func.count(PaymentFailure.id))
            .filter(
                PaymentFailure.status == status,
                PaymentFailure.resolved_at >= start,
                PaymentFailure.resolved_at < end,
            )
            .scalar()
            or 0
        )

    def sum_recovered_between(self, start: datetime, end: datetime) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(PaymentFailure.amount), 0))
            .filter(
                PaymentFailure.status == PaymentFailureStatus.RESOLVED.value,
                PaymentFailure.resolved_at >= start,
                PaymentFailure.resolved_at < end,
            )
            .scalar()
        )
        return Decimal(str(total or 0))
