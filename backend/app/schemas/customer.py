from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class CustomerCreate(BaseModel):
    external_id: str = Field(..., min_length=1, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    provider_customer_id: str | None = Field(default=None, max_length=255)
    monthly_amount_cents: int = Field(default=0, ge=0)


class CustomerUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    provider_customer_id: str | None = Field(default=None, max_length=255)
    monthly_amount_cents: int | None = Field(default=None, ge=0)


class CustomerResponse(BaseModel):
    id: UUID
    external_id: str
    name: str | None
    email: str | None
    phone: str | None
    provider_customer_id: str | None
    monthly_amount_cents: int
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
