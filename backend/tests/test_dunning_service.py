"""Tests for DunningService - campaign creation, step execution and performance."""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.models.dunning_campaign import DunningCampaign
from app.models.dunning_communication import DunningCommunication
from app.models.payment_failure import PaymentFailure
from app.models.shared import ensure_utc
from app.repositories.dunning_communication_repository import DunningCommunicationRepository
from app.services.dunning_service import DunningService, build_personalization_data
from app.services.dunning_templates import CampaignTemplate, TemplateKey, TemplateRegistry
from tests.conftest import FakeNotifier


@pytest.fixture
def customer(db_session: Session) -> Customer:
    c = Customer(
        external_id="cust-dunning-001",
        name="Grace Hopper",
        email="grace@example.com",
        phone="+15550199",
    )
    db_session.add(c)
    db_session.commit()
    db_session.refresh(c)
    return c


@pytest.fixture
def failure(db_session: Session, customer: Customer) -> PaymentFailure:
    f = PaymentFailure(
        customer_id=customer.id,
        payment_intent_id="pi_dunning",
        failure_reason="card_declined",
        amount=Decimal("20.00"),
        currency="USD",
        max_retry_attempts=2,
    )
    db_session.add(f)
    db_session.commit()
    db_session.refresh(f)
    return f


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


def make_due(db: Session, campaign: DunningCampaign) -> None:
    campaign.next_communication_at = datetime.now(UTC) - timedelta(minutes=1)
    db.commit()


class TestBuildPersonalizationData:
    def test_customer_fields(self, customer):
        data = build_personalization_data(customer)
        assert data["customer_name"] == "Grace Hopper"
        assert data["customer_first_name"] == "Grace"
        assert data["customer_email"] == "grace@example.com"
        assert data["billing_url"].endswith("/billing")

    def test_falls_back_to_email_local_part(self, db_session):
        c = Customer(external_id="no-name", email="ops@example.com")
        assert build_personalization_data(c)["customer_first_name"] == "ops"

    def test_without_customer(self):
        data = build_personalization_data(None)
        assert "customer_name" not in data
        assert data["company_name"]


class TestCreateCampaign:
    @pytest.mark.asyncio
    async def test_creates_active_campaign(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        before = datetime.now(UTC)

        campaign = await service.create_campaign(
            customer.id, failure.id, "standard", ["email", "sms"], {"amount": "20.00"}
        )

        assert campaign.status == "active"
        assert campaign.sequence_step == 1
        assert campaign.total_steps == 5
        assert campaign.current_step_status == "pending"
        assert campaign.ab_test_group in ("control", "variant_a", "variant_b")
        assert campaign.personalization_data["amount"] == "20.00"
        assert campaign.personalization_data["customer_name"] == "Grace Hopper"
        next_at = ensure_utc(campaign.next_communication_at)
        assert before + timedelta(days=1) <= next_at <= datetime.now(UTC) + timedelta(days=1)
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_returns_existing_open_campaign(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        first = await service.create_campaign(customer.id, failure.id, "standard", ["email"])

        second = await service.create_campaign(customer.id, failure.id, "high_value", ["email"])

        assert second.id == first.id
        assert second.campaign_type == "standard"

    @pytest.mark.asyncio
    async def test_unknown_campaign_type(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        with pytest.raises(ValueError, match="Unknown campaign type"):
            await service.create_campaign(customer.id, failure.id, "vip", ["email"])

    @pytest.mark.asyncio
    async def test_unknown_channel(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        with pytest.raises(ValueError, match="fax"):
            await service.create_campaign(customer.id, failure.id, "standard", ["email", "fax"])

    @pytest.mark.asyncio
    async def test_requires_a_channel(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        with pytest.raises(ValueError, match="At least one"):
            await service.create_campaign(customer.id, failure.id, "standard", [])

    @pytest.mark.asyncio
    async def test_at_risk_sends_first_step_immediately(
        self, db_session, customer, failure, notifier
    ):
        service = DunningService(db_session, notifier=notifier)

        campaign = await service.create_campaign(
            customer.id, failure.id, "at_risk", ["email", "in_app"]
        )

        assert [channel for channel, *_ in notifier.sent] == ["email", "in_app"]
        assert notifier.sent[0][1] == "grace@example.com"
        assert notifier.sent[1][1] == str(customer.id)
        assert campaign.sequence_step == 2
        assert campaign.last_communication_at is not None


class TestSendStepCommunications:
    @pytest.mark.asyncio
    async def test_sends_only_allowed_channels(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        campaign.sequence_step = 3
        db_session.commit()

        communications = await service.send_step_communications(campaign)

        assert [c.communication_type for c in communications] == ["email"]
        assert communications[0].status == "sent"
        assert communications[0].sent_at is not None
        assert communications[0].communication_metadata["urgency_level"] == "high"

    @pytest.mark.asyncio
    async def test_personalizes_content(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        with patch("app.services.dunning_service.random.choice", return_value="control"):
            campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])

        communications = await service.send_step_communications(campaign)

        assert communications[0].template_id == "std_email_1"
        assert "Hi Grace," in communications[0].content
        assert "{{" not in communications[0].content
        assert "{{" not in communications[0].subject

    @pytest.mark.asyncio
    async def test_uses_ab_variant_template(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        with patch("app.services.dunning_service.random.choice", return_value="variant_a"):
            campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])

        communications = await service.send_step_communications(campaign)

        assert communications[0].template_id == "std_email_1_a"
        assert communications[0].subject.startswith("Grace, your")

    @pytest.mark.asyncio
    async def test_database_error_on_one_channel_does_not_block_others(
        self, db_session, customer, failure, notifier
    ):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email", "sms"])
        campaign.sequence_step = 3
        db_session.commit()
        create = service.communication_repo.create

        def broken_email_insert(**fields):
            if fields["communication_type"] == "email":
                fields["content"] = None
            return create(**fields)

        with patch.object(service.communication_repo, "create", side_effect=broken_email_insert):
            communications = await service.send_step_communications(campaign)

        assert [c.communication_type for c in communications] == ["sms"]
        assert communications[0].status == "sent"
        assert service.get_campaign(campaign.id).sequence_step == 4

    @pytest.mark.asyncio
    async def test_advances_to_next_step(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        before = datetime.now(UTC)

        await service.send_step_communications(campaign)

        campaign = service.get_campaign(campaign.id)
        assert campaign.sequence_step == 2
        assert campaign.current_step_status == "pending"
        next_at = ensure_utc(campaign.next_communication_at)
        assert next_at >= before + timedelta(days=3)

    @pytest.mark.asyncio
    async def test_last_step_completes_campaign(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        campaign.sequence_step = 5
        db_session.commit()

        await service.send_step_communications(campaign)

        campaign = service.get_campaign(campaign.id)
        assert campaign.status == "completed"
        assert campaign.current_step_status == "sent"
        assert campaign.completed_at is not None
        assert campaign.next_communication_at is None

    @pytest.mark.asyncio
    async def test_failed_delivery_is_recorded(self, db_session, customer, failure):
        service = DunningService(db_session, notifier=FakeNotifier(deliver=False))
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])

        communications = await service.send_step_communications(campaign)

        assert communications[0].status == "failed"
        assert communications[0].failure_reason == "delivery failed"
        assert service.get_campaign(campaign.id).sequence_step == 2

    @pytest.mark.asyncio
    async def test_missing_destination_fails_communication(self, db_session, failure, notifier):
        c = Customer(external_id="no-contact", name="No Contact")
        db_session.add(c)
        db_session.commit()
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(c.id, failure.id, "standard", ["email"])

        communications = await service.send_step_communications(campaign)

        assert communications[0].status == "failed"
        assert communications[0].failure_reason == "no email destination for customer"
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_missing_template_skips_channel(self, db_session, customer, failure, notifier):
        registry = TemplateRegistry()
        registry.register(
            TemplateKey("standard", "email", 1), CampaignTemplate(id="only", content="Pay up")
        )
        service = DunningService(db_session, notifier=notifier, registry=registry)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        campaign.sequence_step = 3
        db_session.commit()

        communications = await service.send_step_communications(campaign)

        assert communications == []
        assert service.get_campaign(campaign.id).sequence_step == 4

    @pytest.mark.asyncio
    async def test_invalid_step(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        campaign.sequence_step = 9
        db_session.commit()

        with pytest.raises(ValueError, match="Invalid sequence step"):
            await service.send_step_communications(campaign)


class TestProcessPendingCommunications:
    @pytest.mark.asyncio
    async def test_sends_due_campaigns(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        make_due(db_session, campaign)

        result = await service.process_pending_communications()

        assert result.processed == 1
        assert result.sent == 1
        assert result.failed == 0
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_skips_campaigns_not_due(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        await service.create_campaign(customer.id, failure.id, "standard", ["email"])

        result = await service.process_pending_communications()

        assert result.processed == 0
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_marks_step_failed_on_error(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        make_due(db_session, campaign)

        with patch.object(service, "send_step_communications", side_effect=RuntimeError("boom")):
            result = await service.process_pending_communications()

        assert result.failed == 1
        assert service.get_campaign(campaign.id).current_step_status == "failed"

    @pytest.mark.asyncio
    async def test_skips_paused_campaigns(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        campaign.status = "paused"
        make_due(db_session, campaign)

        result = await service.process_pending_communications()

        assert result.processed == 0


class TestCancelCampaign:
    @pytest.mark.asyncio
    async def test_cancels_open_campaign(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        await service.create_campaign(
            customer.id, failure.id, "standard", ["email"], metadata={"source": "test"}
        )

        campaign = service.cancel_campaign_for_failure(failure.id, "payment_recovered")

        assert campaign.status == "canceled"
        assert campaign.next_communication_at is None
        assert campaign.campaign_metadata == {"source": "test", "cancel_reason": "payment_recovered"}

    def test_no_open_campaign(self, db_session, failure):
        assert DunningService(db_session).cancel_campaign_for_failure(failure.id, "x") is None


class TestCampaignPerformance:
    def _add(self, db, campaign, status, step=1):
        db.add(
            DunningCommunication(
                campaign_id=campaign.id,
                customer_id=campaign.customer_id,
                communication_type="email",
                sequence_step=step,
                content="x",
                status=status,
            )
        )

    @pytest.mark.asyncio
    async def test_rates(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        for status in ["sent", "delivered", "delivered", "opened", "clicked", "bounced", "failed"]:
            self._add(db_session, campaign, status)
        db_session.commit()

        performance = service.get_campaign_performance(campaign.id)

        assert performance.total_communications == 7
        assert performance.sent == 5
        assert performance.delivered == 4
        assert performance.opened == 2
        assert performance.clicked == 1
        assert performance.bounced == 1
        assert performance.failed == 1
        assert performance.delivery_rate == pytest.approx(0.8)
        assert performance.open_rate == pytest.approx(0.5)
        assert performance.click_rate == pytest.approx(0.5)
        assert performance.bounce_rate == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_no_communications(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])

        performance = service.get_campaign_performance(campaign.id)

        assert performance.total_communications == 0
        assert performance.delivery_rate == 0.0
        assert performance.open_rate == 0.0

    def test_unknown_campaign(self, db_session):
        with pytest.raises(ValueError, match="not found"):
            DunningService(db_session).get_campaign_performance(uuid.uuid4())


class TestListing:
    @pytest.mark.asyncio
    async def test_list_campaigns_and_communications(self, db_session, customer, failure, notifier):
        service = DunningService(db_session, notifier=notifier)
        campaign = await service.create_campaign(customer.id, failure.id, "standard", ["email"])
        await service.send_step_communications(campaign)

        assert len(service.list_campaigns(customer_id=customer.id)) == 1
        assert service.list_campaigns(status="completed") == []
        communications = service.list_communications(campaign.id)
        assert len(communications) == 1
        assert DunningCommunicationRepository(db_session).count_by_status(campaign.id) == {"sent": 1}
