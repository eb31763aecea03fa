"""DunningCampaign repository for data access."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.sorting import apply_order_by
from app.models.dunning_campaign import (
    TERMINAL_CAMPAIGN_STATUSES,
    CampaignStatus,
    DunningCampaign,
    StepStatus,
)

SORTABLE_FIELDS = ("created_at", "started_at", "next_communication_at", "sequence_step", "status")


class DunningCampaignRepository:
    """Repository for DunningCampaign model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        customer_id: UUID | None = None,
        status: str | None = None,
        order_by: str | None = None,
    ) -> list[DunningCampaign]:
        """Get dunning campaigns with optional filters."""
        query = self.db.query(DunningCampaign)
        if customer_id is not None:
            query = query.filter(DunningCampaign.customer_id == customer_id)
        if status is not None:
            query = query.filter(DunningCampaign.status == status)
        query = apply_order_by(
            query, DunningCampaign, order_by, allowed_fields=SORTABLE_FIELDS
        )
        return query.offset(skip).limit(limit).all()

    def get_by_id(self, campaign_id: UUID) -> DunningCampaign | None:
        """Get a dunning campaign by ID."""
        return self.db.query(DunningCampaign).filter(DunningCampaign.id == campaign_id).first()

    def get_open_for_failure(self, payment_failure_id: UUID) -> DunningCampaign | None:
        """Get the non-terminal campaign for a payment failure, if any."""
        return (
            self.db.query(DunningCampaign)
            .filter(
                DunningCampaign.payment_failure_id == payment_failure_id,
                DunningCampaign.status.notin_(TERMINAL_CAMPAIGN_STATUSES),
            )
            .order_by(DunningCampaign.created_at.desc())
            .first()
        )

    def get_due(self, now: datetime, limit: int = 100) -> list[DunningCampaign]:
        """Active campaigns whose pending step is due, oldest first."""
        return (
            self.db.query(DunningCampaign)
            .filter(
                DunningCampaign.status == CampaignStatus.ACTIVE.value,
                DunningCampaign.current_step_status == StepStatus.PENDING.value,
                DunningCampaign.next_communication_at.isnot(None),
                DunningCampaign.next_communication_at <= now,
            )
            .order_by(DunningCampaign.created_at.asc())
            .limit(limit)
            .all()
        )

    def create(self, **fields: Any) -> DunningCampaign:
        campaign = DunningCampaign(**fields)
        self.db.add(campaign)
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def save(self, campaign: DunningCampaign) -> DunningCampaign:
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def count_completed_between(self, start: datetime, end: datetime) -> int:
        return (
            self.db.query(func.count(DunningCampaign.id))
            .filter(
                DunningCampaign.status == CampaignStatus.COMPLETED.value,
                DunningCampaign.completed_at >= start,
                DunningCampaign.completed_at < end,
            )
            .scalar()
            or 0
        )
