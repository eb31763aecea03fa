"""Payment failure API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import get_notification_gateway, get_payment_gateway
from app.models.payment_failure import PaymentFailure
from app.schemas.payment_failure import (
    PaymentFailureCreate,
    PaymentFailureResponse,
    RetryRequest,
    RetryResult,
)
from app.services.account_state_service import StaleStateError
from app.services.dunning_service import DunningService
from app.services.notification_gateway import NotificationGateway
from app.services.payment_failure_service import PaymentFailureService
from app.services.payment_gateway import PaymentGateway

router = APIRouter()


def _service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: NotificationGateway = Depends(get_notification_gateway),
) -> PaymentFailureService:
    return PaymentFailureService(
        db,
        gateway=gateway,
        dunning_service=DunningService(db, notifier=notifier),
    )


@router.post(
    "/",
    response_model=PaymentFailureResponse,
    status_code=201,
    summary="Report payment failure",
    responses={
        404: {"description": "Customer not found"},
        409: {"description": "Payment failure was modified concurrently"},
        422: {"description": "Validation error"},
    },
)
async def report_payment_failure(
    data: PaymentFailureCreate,
    service: PaymentFailureService = Depends(_service),
) -> PaymentFailure:
    """Record a failed charge, schedule its retry and start recovery."""
    try:
        return await service.process_failure(data)
    except StaleStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


@router.get(
    "/",
    response_model=list[PaymentFailureResponse],
    summary="List payment failures",
)
async def list_payment_failures(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    customer_id: UUID | None = None,
    status: str | None = None,
    order_by: str | None = None,
    db: Session = Depends(get_db),
) -> list[PaymentFailure]:
    return PaymentFailureService(db).list_failures(
        skip=skip, limit=limit, customer_id=customer_id, status=status, order_by=order_by
    )


@router.get(
    "/{failure_id}",
    response_model=PaymentFailureResponse,
    summary="Get payment failure",
    responses={404: {"description": "Payment failure not found"}},
)
async def get_payment_failure(
    failure_id: UUID,
    db: Session = Depends(get_db),
) -> PaymentFailure:
    failure = PaymentFailureService(db).get_failure(failure_id)
    if not failure:
        raise HTTPException(status_code=404, detail="Payment failure not found")
    return failure


@router.post(
    "/{failure_id}/retry",
    response_model=RetryResult,
    summary="Retry payment",
    responses={
        400: {"description": "Payment failure is not retryable"},
        404: {"description": "Payment failure not found"},
        409: {"description": "Payment failure was modified concurrently"},
    },
)
async def retry_payment_failure(
    failure_id: UUID,
    data: RetryRequest | None = None,
    service: PaymentFailureService = Depends(_service),
) -> RetryResult:
    """Re-attempt the charge now, optionally with a different payment method."""
    if service.get_failure(failure_id) is None:
        raise HTTPException(status_code=404, detail="Payment failure not found")
    try:
        return await service.retry_payment(
            failure_id, data.payment_method_id if data else None
        )
    except StaleStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
