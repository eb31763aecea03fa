"""Account state API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.account_state import AccountState
from app.repositories.customer_repository import CustomerRepository
from app.schemas.account_state import (
    AccountStateResponse,
    FeatureAccess,
    FeatureRestrictions,
    ManualOverrideRequest,
    PaymentSuccessRequest,
)
from app.services.account_state_service import AccountStateService, StaleStateError

router = APIRouter()


def _require_customer(customer_id: UUID, db: Session) -> None:
    if not CustomerRepository(db).get_by_id(customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")


@router.get(
    "/{customer_id}",
    response_model=AccountStateResponse,
    summary="Get current account state",
    responses={404: {"description": "No account state recorded for customer"}},
)
async def get_account_state(
    customer_id: UUID,
    db: Session = Depends(get_db),
) -> AccountState:
    state = AccountStateService(db).get_current_state(customer_id)
    if not state:
        raise HTTPException(status_code=404, detail="No account state recorded for customer")
    return state


@router.get(
    "/{customer_id}/history",
    response_model=list[AccountStateResponse],
    summary="Get account state history",
)
async def get_account_state_history(
    customer_id: UUID,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[AccountState]:
    """Account state transitions, newest first."""
    return AccountStateService(db).get_history(customer_id, limit=limit)


@router.get(
    "/{customer_id}/features/{feature}",
    response_model=FeatureAccess,
    summary="Check feature access",
)
async def check_feature_access(
    customer_id: UUID,
    feature: str,
    db: Session = Depends(get_db),
) -> FeatureAccess:
    return AccountStateService(db).check_feature_access(customer_id, feature)


@router.get(
    "/{customer_id}/restrictions",
    response_model=FeatureRestrictions,
    summary="Get feature restrictions",
)
async def get_feature_restrictions(
    customer_id: UUID,
    db: Session = Depends(get_db),
) -> FeatureRestrictions:
    return AccountStateService(db).get_feature_restrictions(customer_id)


@router.post(
    "/{customer_id}/payment_success",
    response_model=AccountStateResponse | None,
    summary="Record successful payment",
    responses={
        404: {"description": "Customer not found"},
        409: {"description": "Account state changed concurrently"},
    },
)
async def record_payment_success(
    customer_id: UUID,
    data: PaymentSuccessRequest | None = None,
    db: Session = Depends(get_db),
) -> AccountState | None:
    """Reactivate a degraded account after an out-of-band payment."""
    _require_customer(customer_id, db)
    try:
        return AccountStateService(db).process_payment_success(
            customer_id, data.payment_intent_id if data else None
        )
    except StaleStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None


@router.post(
    "/{customer_id}/override",
    response_model=AccountStateResponse,
    status_code=201,
    summary="Override account state",
    responses={
        404: {"description": "Customer not found"},
        409: {"description": "Account state changed concurrently"},
        422: {"description": "Validation error"},
    },
)
async def override_account_state(
    customer_id: UUID,
    data: ManualOverrideRequest,
    db: Session = Depends(get_db),
) -> AccountState:
    _require_customer(customer_id, db)
    try:
        return AccountStateService(db).apply_manual_override(
            customer_id, data.state.value, data.reason, data.override_by
        )
    except StaleStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
