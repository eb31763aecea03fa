"""DunningCampaign API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.dunning_campaign import DunningCampaign
from app.models.dunning_communication import DunningCommunication
from app.schemas.dunning_campaign import (
    CampaignPerformance,
    DunningCampaignResponse,
    DunningCommunicationResponse,
)
from app.services.dunning_service import DunningService

router = APIRouter()


def _get_campaign_or_404(service: DunningService, campaign_id: UUID) -> DunningCampaign:
    campaign = service.get_campaign(campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Dunning campaign not found")
    return campaign


@router.get(
    "/",
    response_model=list[DunningCampaignResponse],
    summary="List dunning campaigns",
)
async def list_dunning_campaigns(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    customer_id: UUID | None = None,
    status: str | None = None,
    order_by: str | None = None,
    db: Session = Depends(get_db),
) -> list[DunningCampaign]:
    """List dunning campaigns with optional customer and status filters."""
    return DunningService(db).list_campaigns(
        skip=skip, limit=limit, customer_id=customer_id, status=status, order_by=order_by
    )


@router.get(
    "/{campaign_id}",
    response_model=DunningCampaignResponse,
    summary="Get dunning campaign",
    responses={404: {"description": "Dunning campaign not found"}},
)
async def get_dunning_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
) -> DunningCampaign:
    """Get a dunning campaign by ID."""
    return _get_campaign_or_404(DunningService(db), campaign_id)


@router.get(
    "/{campaign_id}/communications",
    response_model=list[DunningCommunicationResponse],
    summary="List campaign communications",
    responses={404: {"description": "Dunning campaign not found"}},
)
async def list_campaign_communications(
    campaign_id: UUID,
    db: Session = Depends(get_db),
) -> list[DunningCommunication]:
    """List every message sent for a campaign, in step order."""
    service = DunningService(db)
    _get_campaign_or_404(service, campaign_id)
    return service.list_communications(campaign_id)


@router.get(
    "/{campaign_id}/performance",
    response_model=CampaignPerformance,
    summary="Get campaign performance",
    responses={404: {"description": "Dunning campaign not found"}},
)
async def get_campaign_performance(
    campaign_id: UUID,
    db: Session = Depends(get_db),
) -> CampaignPerformance:
    """Delivery, open, click and bounce rates for one campaign."""
    try:
        return DunningService(db).get_campaign_performance(campaign_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
