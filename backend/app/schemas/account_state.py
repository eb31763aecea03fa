"""AccountState schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.account_state import AccountStateType


class AccountStateResponse(BaseModel):
    """Schema for one account state row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    subscription_id: str | None = None
    version: int
    state: str
    previous_state: str | None = None
    reason: str
    grace_period_end: datetime | None = None
    feature_restrictions: list[str] = Field(default_factory=list)
    automated_actions: dict[str, Any] = Field(default_factory=dict)
    manual_override: bool
    override_reason: str | None = None
    override_by: str | None = None
    state_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class FeatureAccess(BaseModel):
    feature: str
    allowed: bool
    state: str
    reason: str | None = None


class FeatureRestrictions(BaseModel):
    state: str
    restrictions: list[str] = Field(default_factory=list)
    allowed_features: list[str] = Field(default_factory=list)
    grace_period_end: datetime | None = None


class GracePeriodBatchResult(BaseModel):
    processed: int = 0
    suspended: int = 0
    errors: int = 0


class ManualOverrideRequest(BaseModel):
    state: AccountStateType
    reason: str = Field(..., min_length=1, max_length=255)
    override_by: str = Field(..., min_length=1, max_length=255)


class PaymentSuccessRequest(BaseModel):
    payment_intent_id: str | None = Field(default=None, max_length=255)
