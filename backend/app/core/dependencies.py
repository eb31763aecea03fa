from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.services.notification_gateway import NotificationGateway
from app.services.payment_gateway import PaymentGateway, StripeGateway
from app.services.recovery_scheduler import RecoveryJobScheduler


def get_payment_gateway() -> PaymentGateway:
    return StripeGateway()


def get_notification_gateway(db: Session = Depends(get_db)) -> NotificationGateway:
    return NotificationGateway(db)


def get_recovery_scheduler(request: Request) -> RecoveryJobScheduler:
    """Return the process-wide scheduler created at application startup."""
    scheduler: RecoveryJobScheduler | None = getattr(request.app.state, "recovery_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Recovery job scheduler not initialized")
    return scheduler
