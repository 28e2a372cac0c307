from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

import structlog

from shared.errors import InvalidSignature, ValidationError

from . import signature
from .schemas import (
    SUCCESS_PAYMENT_STATUSES,
    Buyer,
    PaymentEvent,
    PaymentRequestResult,
    PaymentStatusResult,
)

logger = structlog.get_logger(__name__)

TWO_PLACES = Decimal("0.01")


def format_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(TWO_PLACES))


def _to_decimal(value: Any, field: str, default: Optional[Decimal] = None) -> Optional[Decimal]:
    if value in (None, ""):
        return default
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid {field} in webhook payload: {value!r}")


class PaymentGateway(ABC):
    """Narrow interface the order flow talks to. Implementations wrap one provider."""

    name = "abstract"

    def __init__(self, webhook_secret: Optional[str]):
        self.webhook_secret = webhook_secret

    @staticmethod
    def validate_request(amount: Decimal, purpose: str, buyer: Buyer) -> None:
        if amount is None or Decimal(amount) <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        if not purpose or not purpose.strip():
            raise ValidationError("Payment purpose is required")
        if not buyer.email:
            raise ValidationError("Buyer email is required for online payment")

    async def create_payment_request(
        self,
        amount: Decimal,
        purpose: str,
        buyer: Buyer,
        redirect_url: str,
        webhook_url: str,
    ) -> PaymentRequestResult:
        self.validate_request(amount, purpose, buyer)
        return await self._create_payment_request(amount, purpose, buyer, redirect_url, webhook_url)

    @abstractmethod
    async def _create_payment_request(
        self,
        amount: Decimal,
        purpose: str,
        buyer: Buyer,
        redirect_url: str,
        webhook_url: str,
    ) -> PaymentRequestResult:
        ...

    @abstractmethod
    async def get_payment_status(self, request_id: str, payment_id: Optional[str] = None) -> PaymentStatusResult:
        """Request-level details, or a single payment's details when `payment_id` is given."""

    def process_webhook(self, payload: Mapping[str, Any]) -> PaymentEvent:
        """Verify and normalize a webhook payload. Raises InvalidSignature on a bad MAC."""
        if not signature.verify(payload, payload.get("mac"), self.webhook_secret):
            logger.warning(
                "webhook_signature_rejected",
                gateway=self.name,
                payment_request_id=payload.get("payment_request_id"),
                payment_id=payload.get("payment_id"),
            )
            raise InvalidSignature()

        request_id = payload.get("payment_request_id")
        if not request_id:
            raise ValidationError("Webhook payload has no payment_request_id")

        raw_status = str(payload.get("payment_status") or "")
        status = raw_status.strip().lower()
        return PaymentEvent(
            payment_id=payload.get("payment_id") or None,
            payment_request_id=str(request_id),
            payment_status=status,
            raw_status=raw_status,
            amount=_to_decimal(payload.get("amount"), "amount"),
            currency=payload.get("currency"),
            fees=_to_decimal(payload.get("fees"), "fees", Decimal("0")),
            buyer_name=payload.get("buyer_name"),
            buyer_email=payload.get("buyer_email"),
            buyer_phone=payload.get("buyer_phone"),
            is_successful=status in SUCCESS_PAYMENT_STATUSES,
        )
