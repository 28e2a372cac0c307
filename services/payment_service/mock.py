import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

import structlog

from shared.errors import NotFound

from .gateway import PaymentGateway, format_amount
from .schemas import Buyer, PaymentRecord, PaymentRequestResult, PaymentStatusResult

logger = structlog.get_logger(__name__)


class MockGateway(PaymentGateway):
    """
    In-process stand-in for local development. Payment requests start out
    'Pending'; `complete()` simulates the buyer paying so the poll endpoint
    can be exercised without a gateway account. Webhooks are still verified
    with the configured salt.
    """

    name = "mock"

    def __init__(self, webhook_secret: Optional[str], checkout_base_url: str = "https://test.instamojo.com/@mock"):
        super().__init__(webhook_secret=webhook_secret)
        self.checkout_base_url = checkout_base_url.rstrip("/")
        self.requests: Dict[str, dict] = {}

    async def _create_payment_request(
        self,
        amount: Decimal,
        purpose: str,
        buyer: Buyer,
        redirect_url: str,
        webhook_url: str,
    ) -> PaymentRequestResult:
        request_id = f"MOJO{int(time.time())}{uuid.uuid4().hex[:8]}"
        now = datetime.now(timezone.utc).isoformat()
        payment_request = {
            "id": request_id,
            "longurl": f"{self.checkout_base_url}/{request_id}",
            "shorturl": None,
            "status": "Pending",
            "amount": format_amount(amount),
            "purpose": purpose,
            "buyer_name": buyer.name,
            "email": buyer.email,
            "phone": buyer.phone,
            "redirect_url": redirect_url,
            "webhook": webhook_url,
            "created_at": now,
            "modified_at": now,
            "payments": [],
        }
        self.requests[request_id] = payment_request
        logger.info("mock_payment_request_created", payment_request_id=request_id, purpose=purpose)
        return PaymentRequestResult(request_id=request_id, redirect_url=payment_request["longurl"], raw=payment_request)

    def complete(self, request_id: str, payment_status: str = "Credit") -> str:
        """Record a payment against a request. Returns the generated payment id."""
        payment_request = self.requests.get(request_id)
        if payment_request is None:
            raise NotFound(f"Unknown payment request: {request_id}")
        payment_id = f"MOJO{uuid.uuid4().hex[:10].upper()}"
        payment_request["payments"].append({"payment_id": payment_id, "status": payment_status})
        if payment_status.lower() == "credit":
            payment_request["status"] = "Completed"
        return payment_id

    async def get_payment_status(self, request_id: str, payment_id: Optional[str] = None) -> PaymentStatusResult:
        payment_request = self.requests.get(request_id)
        if payment_request is None:
            raise NotFound(f"Unknown payment request: {request_id}")
        payments = [PaymentRecord(**p) for p in payment_request["payments"]]
        if payment_id:
            payments = [p for p in payments if p.payment_id == payment_id]
        return PaymentStatusResult(
            request_id=request_id,
            request_status=payment_request["status"],
            payments=payments,
            raw={"success": True, "payment_request": payment_request},
        )
