"""Payment gateway abstraction used to re-attempt failed charges.

Supports Stripe out of the box; other gateways implement ``PaymentGateway``.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from app.core.config import settings


class PaymentGatewayError(Exception):
    """Raised when the gateway call itself fails (network, auth, card error)."""


@dataclass
class ChargeResult:
    """Result of a confirmed charge attempt."""

    status: str
    id: str

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @abstractmethod
    async def confirm_charge(
        self,
        amount: Decimal,
        currency: str,
        customer_ref: str | None,
        payment_method_ref: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeResult:
        """Create and confirm a charge against a stored payment method."""
        pass  # pragma: no cover


class StripeGateway(PaymentGateway):
    """Stripe gateway implementation using off-session PaymentIntents."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or settings.stripe_api_key
        self._stripe: Any = None

    @property
    def stripe(self) -> Any:
        """Lazy-load stripe module."""
        if self._stripe is None:
            try:
                import stripe

                stripe.api_key = self.api_key
                self._stripe = stripe
            except ImportError as e:
                raise ImportError("stripe package not installed. Run: pip install stripe") from e
        return self._stripe

    async def confirm_charge(
        self,
        amount: Decimal,
        currency: str,
        customer_ref: str | None,
        payment_method_ref: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChargeResult:
        # Stripe uses the smallest currency unit
        amount_cents = int(Decimal(str(amount)) * 100)
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "payment_method": payment_method_ref,
            "confirm": True,
            "off_session": True,
            "metadata": {str(k): str(v) for k, v in (metadata or {}).items()},
        }
        if customer_ref:
            params["customer"] = customer_ref
        # A re-run of an interrupted attempt must not charge twice
        if metadata and "payment_failure_id" in metadata and "retry_attempt" in metadata:
            params["idempotency_key"] = (
                f"recovery-{metadata['payment_failure_id']}-{metadata['retry_attempt']}"
            )

        try:
            intent = await asyncio.to_thread(self.stripe.PaymentIntent.create, **params)
        except Exception as e:
            raise PaymentGatewayError(str(e)) from e
        return ChargeResult(status=str(intent.status), id=str(intent.id))
