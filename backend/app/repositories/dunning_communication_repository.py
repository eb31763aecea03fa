"""DunningCommunication repository for data access."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.dunning_communication import DunningCommunication


class DunningCommunicationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_for_campaign(self, campaign_id: UUID) -> list[DunningCommunication]:
        return (
            self.db.query(DunningCommunication)
            .filter(DunningCommunication.campaign_id == campaign_id)
            .order_by(
                DunningCommunication.sequence_step.asc(),
                DunningCommunication.created_at.asc(),
            )
            .all()
        )

    def create(self, **fields: Any) -> DunningCommunication:
        communication = DunningCommunication(**fields)
        self.db.add(communication)
        self.db.commit()
        self.db.refresh(communication)
        return communication

    def save(self, communication: DunningCommunication) -> DunningCommunication:
        self.db.commit()
        self.db.refresh(communication)
        return communication

    def count_by_status(self, campaign_id: UUID) -> dict[str, int]:
        """Map each communication status to its count for one campaign."""
        rows = (
            self.db.query(DunningCommunication.status, func.count(DunningCommunication.id))
            .filter(DunningCommunication.campaign_id == campaign_id)
            .group_by(DunningCommunication.status)
            .all()
        )
        return {str(status): int(count) for status, count in rows}

    def count_between(self, column_name: str, start: datetime, end: datetime) -> int:
        """Count communications whose ``<column_name>`` timestamp falls in the window."""
        column = getattr(DunningCommunication, column_name)
        return (
            self.db.query(func.count(DunningCommunication.id))
            .filter(column >= start, column < end)
            .scalar()
            or 0
        )
