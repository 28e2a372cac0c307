from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

SUCCESS_PAYMENT_STATUSES = {"credit", "completed"}


class Buyer(BaseModel):
    name: str = ""
    email: Optional[str] = None
    phone: str = ""


class PaymentRequestResult(BaseModel):
    request_id: str
    redirect_url: Optional[str] = None
    # Provider's payment_request object, returned to the storefront as-is
    raw: Dict[str, Any] = Field(default_factory=dict)


class PaymentRecord(BaseModel):
    payment_id: Optional[str] = None
    status: str = ""


class PaymentStatusResult(BaseModel):
    request_id: str
    request_status: str = ""
    payments: List[PaymentRecord] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def payment(self) -> Optional[PaymentRecord]:
        return self.payments[0] if self.payments else None

    @property
    def is_successful(self) -> bool:
        if self.request_status.lower() == "completed":
            return True
        return self.payment is not None and self.payment.status.lower() == "credit"


class PaymentEvent(BaseModel):
    """A webhook payload that passed signature verification."""

    payment_id: Optional[str] = None
    payment_request_id: str
    payment_status: str
    raw_status: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    fees: Decimal = Decimal("0")
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    is_successful: bool
