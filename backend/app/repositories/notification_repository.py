"""Repository for the customer in-app notification inbox."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.sorting import apply_order_by
from app.models.notification import Notification
from app.models.shared import generate_uuid


class NotificationRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        customer_id: UUID,
        category: str,
        title: str,
        message: str,
    ) -> Notification:
        notification = Notification(
            id=generate_uuid(),
            customer_id=customer_id,
            category=category,
            title=title,
            message=message,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def get_all(
        self,
        customer_id: UUID,
        skip: int = 0,
        limit: int = 50,
        is_read: bool | None = None,
        order_by: str | None = None,
    ) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.customer_id == customer_id)
        if is_read is not None:
            query = query.filter(Notification.is_read == is_read)
        query = apply_order_by(query, Notification, order_by)
        return query.offset(skip).limit(limit).all()

    def count_unread(self, customer_id: UUID) -> int:
        return (
            self.db.query(Notification)
            .filter(
                Notification.customer_id == customer_id,
                Notification.is_read == False,  # noqa: E712
            )
            .count()
        )
