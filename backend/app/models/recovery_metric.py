"""RecoveryMetric model - one named daily value (system health counters and analytics)."""

from sqlalchemy import Column, Date, DateTime, Numeric, String, UniqueConstraint

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class RecoveryMetric(Base):
    __tablename__ = "recovery_metrics"
    __table_args__ = (
        UniqueConstraint("metric_date", "metric_name", name="uq_recovery_metrics_date_name"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    metric_date = Column(Date, nullable=False, index=True)
    metric_name = Column(String(100), nullable=False)
    metric_value = Column(Numeric(16, 4), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
