"""PaymentFailure schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FailureClassification(str, Enum):
    TEMPORAL = "temporal"
    PERMANENT = "permanent"
    CUSTOMER_ACTION_REQUIRED = "customer_action_required"


class FailureSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RetryPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PaymentFailureCreate(BaseModel):
    """Schema for reporting a failed charge attempt."""

    customer_id: UUID
    subscription_id: str | None = Field(default=None, max_length=255)
    invoice_id: str | None = Field(default=None, max_length=255)
    payment_intent_id: str | None = Field(default=None, max_length=255)
    failure_reason: str = Field(..., min_length=1, max_length=255)
    failure_code: str | None = Field(default=None, max_length=100)
    failure_message: str | None = None
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    payment_method_id: str | None = Field(default=None, max_length=255)
    failure_metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: str) -> str:
        return value.upper()


class PaymentFailureResponse(BaseModel):
    """Schema for payment failure response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    subscription_id: str | None = None
    invoice_id: str | None = None
    payment_intent_id: str | None = None
    failure_reason: str
    failure_code: str | None = None
    failure_message: str | None = None
    amount: Decimal
    currency: str
    payment_method_id: str | None = None
    retry_count: int
    max_retry_attempts: int
    next_retry_at: datetime | None = None
    last_retry_at: datetime | None = None
    status: str
    resolution_type: str | None = None
    resolved_at: datetime | None = None
    failure_metadata: dict[str, Any] = Field(default_factory=dict)
    version: int
    created_at: datetime
    updated_at: datetime


class FailureAnalysis(BaseModel):
    """Classification of a failure code into a recovery policy."""

    classification: FailureClassification
    severity: FailureSeverity
    recommended_retry_count: int
    customer_communication_required: bool
    estimated_resolution_time_hours: int
    payment_method_update_required: bool = False
    alternative_payment_method_suggested: bool = False


class RetrySchedule(BaseModel):
    next_retry_at: datetime
    retry_interval_hours: float
    recommended_action: str
    priority: RetryPriority


class RetryRequest(BaseModel):
    payment_method_id: str | None = Field(default=None, max_length=255)


class RetryResult(BaseModel):
    success: bool
    status: str
    payment_intent_id: str | None = None
    next_retry_at: datetime | None = None
    error: str | None = None


class RetryBatchResult(BaseModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    abandoned: int = 0
