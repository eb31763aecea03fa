"""Dunning service for multi-step payment recovery communication campaigns."""

from __future__ import annotations

import logging
import random
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.customer import Customer
from app.models.dunning_campaign import CampaignStatus, DunningCampaign, StepStatus
from app.models.dunning_communication import (
    CommunicationChannel,
    CommunicationStatus,
    DunningCommunication,
)
from app.repositories.customer_repository import CustomerRepository
from app.repositories.dunning_campaign_repository import DunningCampaignRepository
from app.repositories.dunning_communication_repository import DunningCommunicationRepository
from app.schemas.dunning_campaign import CampaignPerformance, CommunicationBatchResult
from app.services.dunning_templates import (
    AB_TEST_GROUPS,
    TemplateKey,
    TemplateRegistry,
    get_sequence,
    personalize,
    resolve_template,
)
from app.services.notification_gateway import NotificationGateway

logger = logging.getLogger(__name__)

VALID_CHANNELS = {channel.value for channel in CommunicationChannel}

# Communication statuses that imply the message at least left our side
_SENT_STATUSES = ("sent", "delivered", "opened", "clicked")
_DELIVERED_STATUSES = ("delivered", "opened", "clicked")
_OPENED_STATUSES = ("opened", "clicked")


def build_personalization_data(customer: Customer | None) -> dict[str, Any]:
    """Default template variables for a customer and this deployment."""
    data: dict[str, Any] = {
        "company_name": settings.COMPANY_NAME,
        "support_email": settings.SUPPORT_EMAIL,
        "support_phone": settings.SUPPORT_PHONE,
        "login_url": settings.login_url,
        "billing_url": settings.billing_url,
    }
    if customer is None:
        return data

    email = str(customer.email or "")
    fallback = email.split("@")[0] if email else "there"
    name = str(customer.name) if customer.name else fallback
    data.update(
        customer_name=name,
        customer_first_name=name.split(" ")[0] if customer.name else fallback,
        customer_email=email or None,
    )
    return data


class DunningService:
    """Service for dunning campaign creation, step execution and reporting."""

    def __init__(
        self,
        db: Session,
        notifier: NotificationGateway | None = None,
        registry: TemplateRegistry | None = None,
    ):
        self.db = db
        self.campaign_repo = DunningCampaignRepository(db)
        self.communication_repo = DunningCommunicationRepository(db)
        self.customer_repo = CustomerRepository(db)
        self.notifier = notifier or NotificationGateway(db)
        self.registry = registry

    def get_campaign(self, campaign_id: UUID) -> DunningCampaign | None:
        return self.campaign_repo.get_by_id(campaign_id)

    def list_campaigns(
        self,
        skip: int = 0,
        limit: int = 100,
        customer_id: UUID | None = None,
        status: str | None = None,
        order_by: str | None = None,
    ) -> list[DunningCampaign]:
        return self.campaign_repo.get_all(
            skip=skip, limit=limit, customer_id=customer_id, status=status, order_by=order_by
        )

    def list_communications(self, campaign_id: UUID) -> list[DunningCommunication]:
        return self.communication_repo.get_for_campaign(campaign_id)

    async def create_campaign(
        self,
        customer_id: UUID,
        payment_failure_id: UUID,
        campaign_type: str,
        channels: list[str],
        personalization_data: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> DunningCampaign:
        """Start a recovery sequence for a failure, or return the one already running."""
        existing = self.campaign_repo.get_open_for_failure(payment_failure_id)
        if existing is not None:
            return existing

        sequence = get_sequence(campaign_type)
        unknown = [c for c in channels if c not in VALID_CHANNELS]
        if unknown:
            raise ValueError(f"Unknown communication channels: {', '.join(unknown)}")
        if not channels:
            raise ValueError("At least one communication channel is required")

        customer = self.customer_repo.get_by_id(customer_id)
        now = datetime.now(UTC)
        first_step = sequence[0]
        campaign = self.campaign_repo.create(
            customer_id=customer_id,
            payment_failure_id=payment_failure_id,
            campaign_type=campaign_type,
            sequence_step=1,
            total_steps=len(sequence),
            status=CampaignStatus.ACTIVE.value,
            current_step_status=StepStatus.PENDING.value,
            started_at=now,
            next_communication_at=now + timedelta(days=first_step.day),
            communication_channels=list(channels),
            personalization_data={
                **build_personalization_data(customer),
                **(personalization_data or {}),
            },
            ab_test_group=random.choice(AB_TEST_GROUPS),
            campaign_metadata=metadata or {},
        )
        logger.info(
            "Created %s dunning campaign %s for failure %s",
            campaign_type,
            campaign.id,
            payment_failure_id,
        )

        if first_step.day == 0:
            await self.send_step_communications(campaign)
        return campaign

    async def process_pending_communications(self) -> CommunicationBatchResult:
        """Background job: send the due step of every active campaign.

        A campaign whose step raises is marked ``failed`` and the batch moves on.
        """
        campaigns = self.campaign_repo.get_due(datetime.now(UTC), limit=100)
        result = CommunicationBatchResult(processed=len(campaigns))

        for campaign in campaigns:
            campaign_id = campaign.id
            try:
                await self.send_step_communications(campaign)
                result.sent += 1
            except Exception:
                logger.exception("Failed to send communications for campaign %s", campaign_id)
                result.failed += 1
                self._mark_step_failed(campaign_id)  # type: ignore[arg-type]

        return result

    async def send_step_communications(self, campaign: DunningCampaign) -> list[DunningCommunication]:
        """Send the campaign's current step on each allowed channel, then advance it."""
        sequence = get_sequence(str(campaign.campaign_type))
        step_number = int(campaign.sequence_step)
        if step_number < 1 or step_number > len(sequence):
            raise ValueError(f"Invalid sequence step {step_number} for campaign {campaign.id}")

        step = sequence[step_number - 1]
        allowed = set(campaign.communication_channels or [])
        channels = [channel for channel in step.channels if channel in allowed]
        customer = self.customer_repo.get_by_id(campaign.customer_id)  # type: ignore[arg-type]
        campaign_id = campaign.id
        data = dict(campaign.personalization_data or {})

        communications: list[DunningCommunication] = []
        for channel in channels:
            try:
                communication = await self._send_channel(
                    campaign, customer, channel, step_number, step.urgency, data
                )
            except Exception:
                logger.exception("Failed to send %s communication for campaign %s", channel, campaign_id)
                self.db.rollback()
                continue
            if communication is not None:
                communications.append(communication)

        self._advance(campaign, sequence)
        return communications

    async def _send_channel(
        self,
        campaign: DunningCampaign,
        customer: Customer | None,
        channel: str,
        step_number: int,
        urgency: str,
        data: dict[str, Any],
    ) -> DunningCommunication | None:
        key = TemplateKey(str(campaign.campaign_type), channel, step_number)
        template = resolve_template(key, campaign.ab_test_group, self.registry)  # type: ignore[arg-type]
        if template is None:
            logger.warning("No template for %s, skipping %s message", key, channel)
            return None

        subject = personalize(template.subject, data) if template.subject else None
        content = personalize(template.content, data)
        communication = self.communication_repo.create(
            campaign_id=campaign.id,
            customer_id=campaign.customer_id,
            communication_type=channel,
            sequence_step=step_number,
            template_id=template.id,
            subject=subject,
            content=content,
            status=CommunicationStatus.PENDING.value,
            communication_metadata={
                "urgency_level": urgency,
                "ab_test_group": campaign.ab_test_group,
            },
        )

        destination = self._destination(channel, customer)
        now = datetime.now(UTC)
        if destination is None:
            communication.status = CommunicationStatus.FAILED.value  # type: ignore[assignment]
            communication.failed_at = now  # type: ignore[assignment]
            communication.failure_reason = f"no {channel} destination for customer"  # type: ignore[assignment]
            return self.communication_repo.save(communication)

        delivered = await self.notifier.send(channel, destination, subject, content)
        if delivered:
            communication.status = CommunicationStatus.SENT.value  # type: ignore[assignment]
            communication.sent_at = now  # type: ignore[assignment]
        else:
            communication.status = CommunicationStatus.FAILED.value  # type: ignore[assignment]
            communication.failed_at = now  # type: ignore[assignment]
            communication.failure_reason = "delivery failed"  # type: ignore[assignment]
        return self.communication_repo.save(communication)

    @staticmethod
    def _destination(channel: str, customer: Customer | None) -> str | None:
        if customer is None:
            return None
        if channel == CommunicationChannel.EMAIL.value:
            return str(customer.email) if customer.email else None
        if channel == CommunicationChannel.SMS.value:
            return str(customer.phone) if customer.phone else None
        # in-app and push are addressed by customer id
        return str(customer.id)

    def _advance(self, campaign: DunningCampaign, sequence: tuple[Any, ...]) -> None:
        now = datetime.now(UTC)
        next_step = int(campaign.sequence_step) + 1
        campaign.current_step_status = StepStatus.SENT.value  # type: ignore[assignment]
        campaign.last_communication_at = now  # type: ignore[assignment]

        if next_step > int(campaign.total_steps):
            campaign.status = CampaignStatus.COMPLETED.value  # type: ignore[assignment]
            campaign.completed_at = now  # type: ignore[assignment]
            campaign.next_communication_at = None  # type: ignore[assignment]
        else:
            campaign.sequence_step = next_step  # type: ignore[assignment]
            campaign.current_step_status = StepStatus.PENDING.value  # type: ignore[assignment]
            campaign.next_communication_at = now + timedelta(  # type: ignore[assignment]
                days=sequence[next_step - 1].day
            )
        self.campaign_repo.save(campaign)

    def _mark_step_failed(self, campaign_id: UUID) -> None:
        self.db.rollback()
        campaign = self.campaign_repo.get_by_id(campaign_id)
        if campaign is None:
            return
        campaign.current_step_status = StepStatus.FAILED.value  # type: ignore[assignment]
        self.campaign_repo.save(campaign)

    def cancel_campaign_for_failure(
        self, payment_failure_id: UUID, reason: str
    ) -> DunningCampaign | None:
        """Cancel the running campaign of a failure that was resolved or abandoned."""
        campaign = self.campaign_repo.get_open_for_failure(payment_failure_id)
        if campaign is None:
            return None
        campaign.status = CampaignStatus.CANCELED.value  # type: ignore[assignment]
        campaign.completed_at = datetime.now(UTC)  # type: ignore[assignment]
        campaign.next_communication_at = None  # type: ignore[assignment]
        campaign.campaign_metadata = {  # type: ignore[assignment]
            **(campaign.campaign_metadata or {}),
            "cancel_reason": reason,
        }
        logger.info("Canceled dunning campaign %s: %s", campaign.id, reason)
        return self.campaign_repo.save(campaign)

    def get_campaign_performance(self, campaign_id: UUID) -> CampaignPerformance:
        if self.campaign_repo.get_by_id(campaign_id) is None:
            raise ValueError(f"Dunning campaign {campaign_id} not found")

        counts = self.communication_repo.count_by_status(campaign_id)
        sent = sum(counts.get(s, 0) for s in _SENT_STATUSES)
        delivered = sum(counts.get(s, 0) for s in _DELIVERED_STATUSES)
        opened = sum(counts.get(s, 0) for s in _OPENED_STATUSES)
        clicked = counts.get("clicked", 0)
        bounced = counts.get("bounced", 0)

        return CampaignPerformance(
            campaign_id=campaign_id,
            total_communications=sum(counts.values()),
            sent=sent,
            delivered=delivered,
            opened=opened,
            clicked=clicked,
            bounced=bounced,
            failed=counts.get("failed", 0),
            delivery_rate=delivered / sent if sent else 0.0,
            open_rate=opened / delivered if delivered else 0.0,
            click_rate=clicked / opened if opened else 0.0,
            bounce_rate=bounced / sent if sent else 0.0,
        )
