"""PaymentFailure model for failed charge attempts under recovery."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class PaymentFailureStatus(str, Enum):
    """Payment failure lifecycle status."""

    PENDING = "pending"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"


class PaymentFailure(Base):
    """PaymentFailure model - one row per (customer, payment intent) failure history."""

    __tablename__ = "payment_failures"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    subscription_id = Column(String(255), nullable=True)
    invoice_id = Column(String(255), nullable=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)

    failure_reason = Column(String(255), nullable=False)
    failure_code = Column(String(100), nullable=True)
    failure_message = Column(Text, nullable=True)

    amount = Column(Numeric(12, 4), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    payment_method_id = Column(String(255), nullable=True)

    retry_count = Column(Integer, nullable=False, default=0)
    max_retry_attempts = Column(Integer, nullable=False, default=2)
    next_retry_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)

    status = Column(
        String(20), nullable=False, default=PaymentFailureStatus.PENDING.value, index=True
    )
    resolution_type = Column(String(50), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    failure_metadata = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    __mapper_args__ = {"version_id_col": version}
