from app.models.account_state import AccountState, AccountStateType
from app.models.customer import Customer
from app.models.dunning_campaign import (
    CampaignStatus,
    CampaignType,
    DunningCampaign,
    StepStatus,
)
from app.models.dunning_communication import (
    CommunicationChannel,
    CommunicationStatus,
    DunningCommunication,
)
from app.models.job_run import JobRun
from app.models.notification import Notification
from app.models.payment_failure import PaymentFailure, PaymentFailureStatus
from app.models.payment_method_health import PaymentMethodHealth
from app.models.recovery_metric import RecoveryMetric

__all__ = [
    "AccountState",
    "AccountStateType",
    "CampaignStatus",
    "CampaignType",
    "CommunicationChannel",
    "CommunicationStatus",
    "Customer",
    "DunningCampaign",
    "DunningCommunication",
    "JobRun",
    "Notification",
    "PaymentFailure",
    "PaymentFailureStatus",
    "PaymentMethodHealth",
    "RecoveryMetric",
    "StepStatus",
]
