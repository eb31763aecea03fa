"""Payment failure intake and retry scheduling."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.models.customer import Customer
from app.models.dunning_campaign import CampaignType
from app.models.dunning_communication import CommunicationChannel
from app.models.payment_failure import PaymentFailure, PaymentFailureStatus
from app.repositories.customer_repository import CustomerRepository
from app.repositories.payment_failure_repository import PaymentFailureRepository
from app.repositories.payment_method_health_repository import PaymentMethodHealthRepository
from app.schemas.payment_failure import (
    FailureAnalysis,
    FailureSeverity,
    PaymentFailureCreate,
    RetryBatchResult,
    RetryResult,
)
from app.services.account_state_service import AccountStateService, StaleStateError
from app.services.dunning_service import DunningService
from app.services.failure_classifier import (
    calculate_next_retry_time,
    classify_failure,
    retry_policy_key,
)
from app.services.payment_gateway import PaymentGateway, PaymentGatewayError, StripeGateway

logger = logging.getLogger(__name__)

AT_RISK_WINDOW_DAYS = 30
AT_RISK_FAILURE_COUNT = 2
HIGH_VALUE_MONTHLY_CENTS = 10000

# A payment method is blocked after repeated failures with a poor success ratio
BLOCK_MIN_FAILURES = 3
BLOCK_HEALTH_SCORE = 0.2
BLOCK_DAYS = 7
MAX_TRACKED_REASONS = 5


class PaymentFailureService:
    """Service for recording failed charges and driving their retries.

    Campaign creation, account-state transitions and payment-method health
    updates are side effects: their errors are logged and never undo the
    failure record.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        dunning_service: DunningService | None = None,
        account_state_service: AccountStateService | None = None,
        claim_timeout: timedelta | None = None,
    ):
        self.db = db
        self.failure_repo = PaymentFailureRepository(db)
        self.customer_repo = CustomerRepository(db)
        self.health_repo = PaymentMethodHealthRepository(db)
        self.gateway = gateway or StripeGateway()
        self.dunning_service = dunning_service or DunningService(db)
        self.account_state_service = account_state_service or AccountStateService(db)
        # A retrying claim older than this belongs to an attempt that never finished
        self.claim_timeout = claim_timeout or timedelta(milliseconds=settings.JOB_TIMEOUT_MS)

    def get_failure(self, failure_id: UUID) -> PaymentFailure | None:
        return self.failure_repo.get_by_id(failure_id)

    def list_failures(
        self,
        skip: int = 0,
        limit: int = 100,
        customer_id: UUID | None = None,
        status: str | None = None,
        order_by: str | None = None,
    ) -> list[PaymentFailure]:
        return self.failure_repo.get_all(
            skip=skip, limit=limit, customer_id=customer_id, status=status, order_by=order_by
        )

    async def process_failure(self, data: PaymentFailureCreate) -> PaymentFailure:
        """Record a failed charge and start recovery.

        A repeat failure for the same (customer, payment intent) updates the
        open record instead of creating a new one.
        """
        customer = self.customer_repo.get_by_id(data.customer_id)
        if customer is None:
            raise ValueError(f"Customer {data.customer_id} not found")

        analysis = classify_failure(data.failure_code, data.failure_reason)
        now = datetime.now(UTC)
        existing = self.failure_repo.find_open(data.customer_id, data.payment_intent_id)
        if existing is not None:
            failure = self._record_repeat_failure(existing, data, now)
        else:
            failure = self._create_failure(data, analysis, now)

        failure_id = failure.id
        exhausted = failure.resolution_type == "max_retries_exceeded"
        self._record_method_outcome(
            data.customer_id, data.payment_method_id, succeeded=False, reason=data.failure_reason
        )

        if exhausted:
            self._cancel_campaign(failure_id, "max_retries_exceeded")  # type: ignore[arg-type]
        elif analysis.customer_communication_required:
            try:
                await self.dunning_service.create_campaign(
                    customer_id=data.customer_id,
                    payment_failure_id=failure_id,  # type: ignore[arg-type]
                    campaign_type=self._select_campaign_type(customer, now),
                    channels=self._select_channels(customer, analysis),
                    personalization_data={
                        "amount": f"{Decimal(str(data.amount)):.2f}",
                        "currency": data.currency,
                        "failure_reason": data.failure_reason,
                    },
                    metadata={"failure_code": data.failure_code, "severity": analysis.severity.value},
                )
            except Exception:
                logger.exception("Failed to create dunning campaign for failure %s", failure_id)
                self.db.rollback()

        failure = self.failure_repo.get_by_id(failure_id)  # type: ignore[assignment,arg-type]
        try:
            self.account_state_service.process_payment_failure(failure)
        except Exception:
            logger.exception("Failed to update account state for failure %s", failure_id)
            self.db.rollback()

        return self.failure_repo.get_by_id(failure_id)  # type: ignore[return-value,arg-type]

    def _create_failure(
        self, data: PaymentFailureCreate, analysis: FailureAnalysis, now: datetime
    ) -> PaymentFailure:
        max_attempts = analysis.recommended_retry_count
        fields = data.model_dump()
        if max_attempts > 0:
            schedule = calculate_next_retry_time(
                retry_policy_key(data.failure_code, data.failure_reason), 0, now
            )
            return self.failure_repo.create(
                **fields,
                retry_count=0,
                max_retry_attempts=max_attempts,
                next_retry_at=schedule.next_retry_at,
                status=PaymentFailureStatus.PENDING.value,
            )

        logger.info("Failure %s is not retryable, abandoning", data.failure_code)
        return self.failure_repo.create(
            **fields,
            retry_count=0,
            max_retry_attempts=0,
            next_retry_at=None,
            status=PaymentFailureStatus.ABANDONED.value,
            resolution_type="non_retryable",
            resolved_at=now,
        )

    def _record_repeat_failure(
        self, failure: PaymentFailure, data: PaymentFailureCreate, now: datetime
    ) -> PaymentFailure:
        failure.failure_metadata = {  # type: ignore[assignment]
            **(failure.failure_metadata or {}),
            **data.failure_metadata,
        }
        failure.last_retry_at = now  # type: ignore[assignment]
        if data.failure_message:
            failure.failure_message = data.failure_message  # type: ignore[assignment]
        if data.payment_method_id:
            failure.payment_method_id = data.payment_method_id  # type: ignore[assignment]

        if failure.status != PaymentFailureStatus.ABANDONED.value:
            if int(failure.retry_count) + 1 > int(failure.max_retry_attempts):
                self._mark_abandoned(failure, "max_retries_exceeded", now)
            else:
                failure.retry_count = int(failure.retry_count) + 1  # type: ignore[assignment]
                failure.status = PaymentFailureStatus.PENDING.value  # type: ignore[assignment]
                failure.next_retry_at = calculate_next_retry_time(  # type: ignore[assignment]
                    retry_policy_key(failure.failure_code, str(failure.failure_reason)),  # type: ignore[arg-type]
                    int(failure.retry_count),
                    now,
                ).next_retry_at
        return self._save(failure)

    async def retry_payment(
        self,
        failure_id: UUID,
        payment_method_id: str | None = None,
    ) -> RetryResult:
        """Re-attempt the charge behind a pending failure."""
        failure = self.failure_repo.get_by_id(failure_id)
        if failure is None:
            raise ValueError(f"Payment failure {failure_id} not found")
        if failure.status in (
            PaymentFailureStatus.RESOLVED.value,
            PaymentFailureStatus.ABANDONED.value,
        ):
            raise ValueError(f"Payment failure {failure_id} is already {failure.status}")

        now = datetime.now(UTC)
        if int(failure.retry_count) >= int(failure.max_retry_attempts):
            self._abandon(failure, "max_retries_exceeded", now)
            return RetryResult(
                success=False,
                status=PaymentFailureStatus.ABANDONED.value,
                error="max_retries_exceeded",
            )

        method = payment_method_id or failure.payment_method_id
        if not method:
            self._abandon(failure, "no_payment_method", now)
            return RetryResult(
                success=False,
                status=PaymentFailureStatus.ABANDONED.value,
                error="no_payment_method",
            )

        # Claim the failure before the gateway call
        failure.status = PaymentFailureStatus.RETRYING.value  # type: ignore[assignment]
        failure.payment_method_id = method  # type: ignore[assignment]
        failure.last_retry_at = now  # type: ignore[assignment]
        failure = self._save(failure)

        customer = self.customer_repo.get_by_id(failure.customer_id)  # type: ignore[arg-type]
        charge = None
        error: str | None = None
        try:
            charge = await self.gateway.confirm_charge(
                amount=Decimal(str(failure.amount)),
                currency=str(failure.currency),
                customer_ref=customer.provider_customer_id if customer else None,  # type: ignore[arg-type]
                payment_method_ref=str(method),
                metadata={
                    "payment_failure_id": str(failure.id),
                    "retry_attempt": int(failure.retry_count) + 1,
                },
            )
        except PaymentGatewayError as e:
            logger.warning("Retry charge for failure %s raised: %s", failure.id, e)
            error = str(e)
        except asyncio.CancelledError:
            self._release_claim(failure)
            raise

        now = datetime.now(UTC)
        if charge is not None and charge.succeeded:
            return self._resolve(failure, charge.id, now)

        if charge is not None:
            error = f"charge status {charge.status}"
        failure.retry_count = int(failure.retry_count) + 1  # type: ignore[assignment]
        failure.status = PaymentFailureStatus.PENDING.value  # type: ignore[assignment]
        failure.next_retry_at = calculate_next_retry_time(  # type: ignore[assignment]
            retry_policy_key(failure.failure_code, str(failure.failure_reason)),  # type: ignore[arg-type]
            int(failure.retry_count),
            now,
        ).next_retry_at
        failure = self._save(failure)
        self._record_method_outcome(
            failure.customer_id,  # type: ignore[arg-type]
            str(method),
            succeeded=False,
            reason=str(failure.failure_reason),
        )
        return RetryResult(
            success=False,
            status=PaymentFailureStatus.PENDING.value,
            payment_intent_id=charge.id if charge is not None else None,
            next_retry_at=failure.next_retry_at,  # type: ignore[arg-type]
            error=error,
        )

    def _resolve(self, failure: PaymentFailure, payment_intent_id: str, now: datetime) -> RetryResult:
        failure.status = PaymentFailureStatus.RESOLVED.value  # type: ignore[assignment]
        failure.resolution_type = "payment_succeeded"  # type: ignore[assignment]
        failure.resolved_at = now  # type: ignore[assignment]
        failure.next_retry_at = None  # type: ignore[assignment]
        failure = self._save(failure)
        failure_id = failure.id
        customer_id: UUID = failure.customer_id  # type: ignore[assignment]
        logger.info("Payment failure %s recovered by %s", failure_id, payment_intent_id)

        self._record_method_outcome(customer_id, failure.payment_method_id, succeeded=True)  # type: ignore[arg-type]
        try:
            self.account_state_service.process_payment_success(customer_id, payment_intent_id)
        except Exception:
            logger.exception("Failed to reactivate account for customer %s", customer_id)
            self.db.rollback()
        self._cancel_campaign(failure_id, "payment_recovered")  # type: ignore[arg-type]

        return RetryResult(
            success=True,
            status=PaymentFailureStatus.RESOLVED.value,
            payment_intent_id=payment_intent_id,
        )

    async def process_pending_retries(self) -> RetryBatchResult:
        """Background job: retry every due pending failure, oldest first."""
        now = datetime.now(UTC)
        due = self.failure_repo.get_due_for_retry(
            now, limit=50, stale_claim_before=now - self.claim_timeout
        )
        result = RetryBatchResult(processed=len(due))
        failure_ids = [failure.id for failure in due]

        for failure_id in failure_ids:
            try:
                outcome = await self.retry_payment(failure_id)  # type: ignore[arg-type]
            except Exception:
                logger.exception("Retry failed for payment failure %s", failure_id)
                self.db.rollback()
                result.failed += 1
                continue

            if outcome.success:
                result.successful += 1
            elif outcome.status == PaymentFailureStatus.ABANDONED.value:
                result.abandoned += 1
            else:
                result.failed += 1

        if failure_ids:
            logger.info(
                "Processed %d payment retries: %d succeeded, %d failed, %d abandoned",
                result.processed,
                result.successful,
                result.failed,
                result.abandoned,
            )
        return result

    def _abandon(self, failure: PaymentFailure, resolution_type: str, now: datetime) -> None:
        self._mark_abandoned(failure, resolution_type, now)
        failure = self._save(failure)
        logger.info("Abandoned payment failure %s: %s", failure.id, resolution_type)
        self._cancel_campaign(failure.id, resolution_type)  # type: ignore[arg-type]

    def _release_claim(self, failure: PaymentFailure) -> None:
        """Put a cancelled attempt back to pending, keeping its retry time and count."""
        logger.warning("Retry of payment failure %s was cancelled, releasing claim", failure.id)
        failure.status = PaymentFailureStatus.PENDING.value  # type: ignore[assignment]
        try:
            self._save(failure)
        except Exception:
            logger.exception("Failed to release retry claim on payment failure %s", failure.id)
            self.db.rollback()

    @staticmethod
    def _mark_abandoned(failure: PaymentFailure, resolution_type: str, now: datetime) -> None:
        failure.status = PaymentFailureStatus.ABANDONED.value  # type: ignore[assignment]
        failure.resolution_type = resolution_type  # type: ignore[assignment]
        failure.resolved_at = now  # type: ignore[assignment]
        failure.next_retry_at = None  # type: ignore[assignment]

    def _save(self, failure: PaymentFailure) -> PaymentFailure:
        try:
            return self.failure_repo.save(failure)
        except StaleDataError as e:
            self.db.rollback()
            raise StaleStateError(f"Payment failure {failure.id} was modified concurrently") from e

    def _cancel_campaign(self, failure_id: UUID, reason: str) -> None:
        try:
            self.dunning_service.cancel_campaign_for_failure(failure_id, reason)
        except Exception:
            logger.exception("Failed to cancel dunning campaign for failure %s", failure_id)
            self.db.rollback()

    def _select_campaign_type(self, customer: Customer, now: datetime) -> str:
        recent = self.failure_repo.count_for_customer_since(
            customer.id,  # type: ignore[arg-type]
            now - timedelta(days=AT_RISK_WINDOW_DAYS),
        )
        if recent > AT_RISK_FAILURE_COUNT:
            return CampaignType.AT_RISK.value
        if int(customer.monthly_amount_cents or 0) > HIGH_VALUE_MONTHLY_CENTS:
            return CampaignType.HIGH_VALUE.value
        return CampaignType.STANDARD.value

    @staticmethod
    def _select_channels(customer: Customer, analysis: FailureAnalysis) -> list[str]:
        channels = [CommunicationChannel.EMAIL.value]
        if analysis.severity in (FailureSeverity.HIGH, FailureSeverity.CRITICAL):
            if customer.phone:
                channels.append(CommunicationChannel.SMS.value)
            channels.append(CommunicationChannel.IN_APP.value)
        return channels

    def _record_method_outcome(
        self,
        customer_id: UUID,
        payment_method_id: str | None,
        succeeded: bool,
        reason: str | None = None,
    ) -> None:
        if not payment_method_id:
            return
        now = datetime.now(UTC)
        try:
            health = self.health_repo.get_or_create(customer_id, payment_method_id)
            if succeeded:
                health.success_count = int(health.success_count or 0) + 1  # type: ignore[assignment]
                health.last_successful_payment_at = now  # type: ignore[assignment]
                health.blocked_until = None  # type: ignore[assignment]
            else:
                health.failure_count = int(health.failure_count or 0) + 1  # type: ignore[assignment]
                health.last_failed_payment_at = now  # type: ignore[assignment]
                reasons = list(health.common_failure_reasons or [])
                if reason:
                    reasons.append(reason)
                health.common_failure_reasons = reasons[-MAX_TRACKED_REASONS:]  # type: ignore[assignment]
                if (
                    int(health.failure_count) >= BLOCK_MIN_FAILURES
                    and health.health_score < BLOCK_HEALTH_SCORE
                ):
                    health.blocked_until = now + timedelta(days=BLOCK_DAYS)  # type: ignore[assignment]
            self.health_repo.save(health)
        except Exception:
            logger.exception(
                "Failed to update payment method health for %s/%s", customer_id, payment_method_id
            )
            self.db.rollback()
