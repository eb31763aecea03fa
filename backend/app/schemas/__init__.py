from app.schemas.account_state import (
    AccountStateResponse,
    FeatureAccess,
    FeatureRestrictions,
    GracePeriodBatchResult,
    ManualOverrideRequest,
    PaymentSuccessRequest,
)
from app.schemas.customer import CustomerCreate, CustomerResponse, CustomerUpdate
from app.schemas.dunning_campaign import (
    CampaignPerformance,
    CommunicationBatchResult,
    DunningCampaignResponse,
    DunningCommunicationResponse,
)
from app.schemas.payment_failure import (
    FailureAnalysis,
    PaymentFailureCreate,
    PaymentFailureResponse,
    RetryBatchResult,
    RetryRequest,
    RetryResult,
    RetrySchedule,
)
from app.schemas.recovery_job import (
    JobResult,
    JobRunResponse,
    SchedulerStatus,
    SystemHealth,
)

__all__ = [
    "AccountStateResponse",
    "CampaignPerformance",
    "CommunicationBatchResult",
    "CustomerCreate",
    "CustomerResponse",
    "CustomerUpdate",
    "DunningCampaignResponse",
    "DunningCommunicationResponse",
    "FailureAnalysis",
    "FeatureAccess",
    "FeatureRestrictions",
    "GracePeriodBatchResult",
    "JobResult",
    "JobRunResponse",
    "ManualOverrideRequest",
    "PaymentFailureCreate",
    "PaymentFailureResponse",
    "PaymentSuccessRequest",
    "RetryBatchResult",
    "RetryRequest",
    "RetryResult",
    "RetrySchedule",
    "SchedulerStatus",
    "SystemHealth",
]
