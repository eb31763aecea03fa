"""Notification model for the customer in-app inbox."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class Notification(Base):
    """Notification model - in-app messages shown to a customer."""

    __tablename__ = "notifications"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    customer_id = Column(
        UUIDType,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(String(2000), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
