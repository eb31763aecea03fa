"""AccountState repository for data access."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from app.models.account_state import AccountState, AccountStateType


class AccountStateRepository:
    """Repository for the append-only AccountState log."""

    def __init__(self, db: Session):
        self.db = db

    def get_current(self, customer_id: UUID) -> AccountState | None:
        """The highest-version row for a customer."""
        return (
            self.db.query(AccountState)
            .filter(AccountState.customer_id == customer_id)
            .order_by(AccountState.version.desc())
            .first()
        )

    def get_history(self, customer_id: UUID, limit: int = 50) -> list[AccountState]:
        return (
            self.db.query(AccountState)
            .filter(AccountState.customer_id == customer_id)
            .order_by(AccountState.version.desc())
            .limit(limit)
            .all()
        )

    def append(self, **fields: Any) -> AccountState:
        """Insert a new state row.

        Raises ``sqlalchemy.exc.IntegrityError`` when a row with the same
        (customer_id, version) was written first.
        """
        state = AccountState(**fields)
        self.db.add(state)
        self.db.commit()
        self.db.refresh(state)
        return state

    def get_expired_grace_periods(self, now: datetime, limit: int = 100) -> list[AccountState]:
        """Current rows still in grace period whose window has ended."""
        latest = (
            self.db.query(
                AccountState.customer_id.label("customer_id"),
                func.max(AccountState.version).label("version"),
            )
            .group_by(AccountState.customer_id)
            .subquery()
        )
        return (
            self.db.query(AccountState)
            .join(
                latest,
                and_(
                    AccountState.customer_id == latest.c.customer_id,
                    AccountState.version == latest.c.version,
                ),
            )
            .filter(
                AccountState.state == AccountStateType.GRACE_PERIOD.value,
                AccountState.grace_period_end.isnot(None),
                AccountState.grace_period_end <= now,
            )
            .order_by(AccountState.grace_period_end.asc())
            .limit(limit)
            .all()
        )

    def count_entered_between(self, state: str, start: datetime, end: datetime) -> int:
        """Count transitions into ``state`` recorded inside the window."""
        return (
            self.db.query(func.count(AccountState.id))
            .filter(
                AccountState.state == state,
                or_(AccountState.previous_state.is_(None), AccountState.previous_state != state),
                AccountState.created_at >= start,
                AccountState.created_at < end,
            )
            .scalar()
            or 0
        )
