from app.repositories.account_state_repository import AccountStateRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.dunning_campaign_repository import DunningCampaignRepository
from app.repositories.dunning_communication_repository import DunningCommunicationRepository
from app.repositories.job_run_repository import JobRunRepository
from app.repositories.notification_repository import NotificationRepository
from app.repositories.payment_failure_repository import PaymentFailureRepository
from app.repositories.payment_method_health_repository import PaymentMethodHealthRepository
from app.repositories.recovery_metric_repository import RecoveryMetricRepository

__all__ = [
    "AccountStateRepository",
    "CustomerRepository",
    "DunningCampaignRepository",
    "DunningCommunicationRepository",
    "JobRunRepository",
    "NotificationRepository",
    "PaymentFailureRepository",
    "PaymentMethodHealthRepository",
    "RecoveryMetricRepository",
]
