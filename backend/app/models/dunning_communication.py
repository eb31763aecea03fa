"""DunningCommunication model - one message sent on one channel for one campaign step."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class CommunicationChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    IN_APP = "in_app"
    PUSH = "push"


class CommunicationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    BOUNCED = "bounced"
    FAILED = "failed"


class DunningCommunication(Base):
    __tablename__ = "dunning_communications"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    campaign_id = Column(
        UUIDType,
        ForeignKey("dunning_campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    communication_type = Column(String(20), nullable=False)
    sequence_step = Column(Integer, nullable=False)
    template_id = Column(String(100), nullable=True)
    subject = Column(String(255), nullable=True)
    content = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=CommunicationStatus.PENDING.value)

    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    clicked_at = Column(DateTime(timezone=True), nullable=True)
    bounced_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String(255), nullable=True)

    communication_metadata = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
