"""Daily recovery analytics and system-health counters."""

import logging
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.account_state import AccountStateType
from app.models.payment_failure import PaymentFailureStatus
from app.models.recovery_metric import RecoveryMetric
from app.repositories.account_state_repository import AccountStateRepository
from app.repositories.dunning_campaign_repository import DunningCampaignRepository
from app.repositories.dunning_communication_repository import DunningCommunicationRepository
from app.repositories.payment_failure_repository import PaymentFailureRepository
from app.repositories.recovery_metric_repository import RecoveryMetricRepository

logger = logging.getLogger(__name__)


class RecoveryMetricsService:
    def __init__(self, db: Session):
        self.db = db
        self.metric_repo = RecoveryMetricRepository(db)
        self.failure_repo = PaymentFailureRepository(db)
        self.campaign_repo = DunningCampaignRepository(db)
        self.communication_repo = DunningCommunicationRepository(db)
        self.state_repo = AccountStateRepository(db)

    def generate_daily_metrics(self, target_date: date) -> int:
        """Recompute the analytics for one UTC day and return how many metrics were written."""
        start = datetime.combine(target_date, time.min, tzinfo=UTC)
        end = start + timedelta(days=1)
        values: dict[str, Decimal | int] = {
            "failures_created": self.failure_repo.count_created_between(start, end),
            "failures_resolved": self.failure_repo.count_closed_between(
                PaymentFailureStatus.RESOLVED.value, start, end
            ),
            "failures_abandoned": self.failure_repo.count_closed_between(
                PaymentFailureStatus.ABANDONED.value, start, end
            ),
            "amount_recovered_cents": self.failure_repo.sum_recovered_between(start, end) * 100,
            "communications_sent": self.communication_repo.count_between("sent_at", start, end),
            "communications_failed": self.communication_repo.count_between("failed_at", start, end),
            "campaigns_completed": self.campaign_repo.count_completed_between(start, end),
            "accounts_suspended": self.state_repo.count_entered_between(
                AccountStateType.SUSPENDED.value, start, end
            ),
        }
        for name, value in values.items():
            self.metric_repo.upsert(target_date, name, value)
        logger.info("Generated %d recovery metrics for %s", len(values), target_date)
        return len(values)

    def record_health_metric(self, name: str, amount: int, on: date | None = None) -> None:
        """Add ``amount`` to today's system-health counter ``name``."""
        self.metric_repo.increment(on or datetime.now(UTC).date(), name, amount)

    def get_metrics(self, on: date) -> list[RecoveryMetric]:
        return self.metric_repo.get_for_date(on)
