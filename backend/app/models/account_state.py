"""AccountState model - append-only log of a customer's access posture."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class AccountStateType(str, Enum):
    ACTIVE = "active"
    GRACE_PERIOD = "grace_period"
    RESTRICTED = "restricted"
    SUSPENDED = "suspended"
    CANCELED = "canceled"


class AccountState(Base):
    """AccountState model.

    Every transition appends a row. The row with the highest ``version`` for a
    customer is the current one; the unique (customer_id, version) constraint
    rejects a second writer that computed its transition from the same row.
    """

    __tablename__ = "account_states"
    __table_args__ = (
        UniqueConstraint("customer_id", "version", name="uq_account_states_customer_version"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    subscription_id = Column(String(255), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    state = Column(String(20), nullable=False, index=True)
    previous_state = Column(String(20), nullable=True)
    reason = Column(String(100), nullable=False)
    grace_period_end = Column(DateTime(timezone=True), nullable=True, index=True)
    feature_restrictions = Column(JSON, nullable=False, default=list)
    automated_actions = Column(JSON, nullable=False, default=dict)

    manual_override = Column(Boolean, nullable=False, default=False)
    override_reason = Column(String(255), nullable=True)
    override_by = Column(String(255), nullable=True)

    state_metadata = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
