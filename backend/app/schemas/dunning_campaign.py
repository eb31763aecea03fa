"""DunningCampaign schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DunningCampaignResponse(BaseModel):
    """Schema for dunning campaign response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    payment_failure_id: UUID
    campaign_type: str
    sequence_step: int
    total_steps: int
    status: str
    current_step_status: str
    started_at: datetime
    completed_at: datetime | None = None
    next_communication_at: datetime | None = None
    last_communication_at: datetime | None = None
    communication_channels: list[str] = Field(default_factory=list)
    personalization_data: dict[str, Any] = Field(default_factory=dict)
    ab_test_group: str | None = None
    campaign_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class DunningCommunicationResponse(BaseModel):
    """Schema for a single dunning message."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    campaign_id: UUID
    customer_id: UUID
    communication_type: str
    sequence_step: int
    template_id: str | None = None
    subject: str | None = None
    content: str
    status: str
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    opened_at: datetime | None = None
    clicked_at: datetime | None = None
    bounced_at: datetime | None = None
    failed_at: datetime | None = None
    failure_reason: str | None = None
    created_at: datetime


class CampaignPerformance(BaseModel):
    """Delivery and engagement counters for one campaign."""

    campaign_id: UUID
    total_communications: int
    sent: int
    delivered: int
    opened: int
    clicked: int
    bounced: int
    failed: int
    delivery_rate: float
    open_rate: float
    click_rate: float
    bounce_rate: float


class CommunicationBatchResult(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
