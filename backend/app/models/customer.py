from sqlalchemy import Column, DateTime, Integer, String, func

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class Customer(Base):
    """Customer model - the billed party whose payments are being recovered."""

    __tablename__ = "customers"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    external_id = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    provider_customer_id = Column(String(255), nullable=True)
    monthly_amount_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
