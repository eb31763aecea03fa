"""PaymentMethodHealth model - success/failure history of a stored payment method."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class PaymentMethodHealth(Base):
    __tablename__ = "payment_method_health"
    __table_args__ = (
        UniqueConstraint(
            "customer_id", "payment_method_id", name="uq_payment_method_health_customer_method"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_method_id = Column(String(255), nullable=False)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    last_successful_payment_at = Column(DateTime(timezone=True), nullable=True)
    last_failed_payment_at = Column(DateTime(timezone=True), nullable=True)
    common_failure_reasons = Column(JSON, nullable=False, default=list)
    blocked_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def health_score(self) -> float:
        total = int(self.success_count or 0) + int(self.failure_count or 0)
        if total == 0:
            return 1.0
        return int(self.success_count or 0) / total
