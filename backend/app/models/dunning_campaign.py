"""DunningCampaign model for multi-step payment recovery communication sequences."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class CampaignType(str, Enum):
    STANDARD = "standard"
    HIGH_VALUE = "high_value"
    AT_RISK = "at_risk"


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELED = "canceled"


class StepStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    FAILED = "failed"


TERMINAL_CAMPAIGN_STATUSES = (CampaignStatus.COMPLETED.value, CampaignStatus.CANCELED.value)


class DunningCampaign(Base):
    """DunningCampaign model - one recovery sequence per payment failure."""

    __tablename__ = "dunning_campaigns"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    payment_failure_id = Column(
        UUIDType,
        ForeignKey("payment_failures.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    campaign_type = Column(String(20), nullable=False, default=CampaignType.STANDARD.value)
    sequence_step = Column(Integer, nullable=False, default=1)
    total_steps = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=CampaignStatus.ACTIVE.value, index=True)
    current_step_status = Column(String(20), nullable=False, default=StepStatus.PENDING.value)

    started_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    next_communication_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_communication_at = Column(DateTime(timezone=True), nullable=True)

    communication_channels = Column(JSON, nullable=False, default=list)
    personalization_data = Column(JSON, nullable=False, default=dict)
    ab_test_group = Column(String(20), nullable=True)
    campaign_metadata = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
