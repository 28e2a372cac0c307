from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
import structlog

from shared.errors import PaymentGatewayError

from .gateway import PaymentGateway, format_amount
from .schemas import Buyer, PaymentRecord, PaymentRequestResult, PaymentStatusResult

logger = structlog.get_logger(__name__)


class InstamojoGateway(PaymentGateway):
    """Instamojo payment-request API (v1.1) over httpx."""

    name = "instamojo"

    def __init__(
        self,
        api_key: str,
        auth_token: str,
        private_salt: str,
        base_url: str = "https://www.instamojo.com/api/1.1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(webhook_secret=private_salt)
        self.api_key = api_key
        self.auth_token = auth_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not (self.api_key and self.auth_token):
            raise PaymentGatewayError("Instamojo credentials are not configured")
        headers = {"X-Api-Key": self.api_key, "X-Auth-Token": self.auth_token}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _provider_message(data: Dict[str, Any], response: httpx.Response) -> str:
        message = data.get("message") if isinstance(data, dict) else None
        if isinstance(message, dict):
            # Field errors come back as {"field": ["reason", ...]}
            message = "; ".join(
                f"{field}: {', '.join(map(str, reasons)) if isinstance(reasons, list) else reasons}"
                for field, reasons in message.items()
            )
        return str(message or f"HTTP {response.status_code}")

    async def _send(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Gateway request failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {"message": response.text[:500]}

        if response.is_error or not data.get("success", False):
            raise PaymentGatewayError(
                f"Instamojo {method} {path} failed: {self._provider_message(data, response)}"
            )
        return data

    async def _create_payment_request(
        self,
        amount: Decimal,
        purpose: str,
        buyer: Buyer,
        redirect_url: str,
        webhook_url: str,
    ) -> PaymentRequestResult:
        form = {
            "amount": format_amount(amount),
            "purpose": purpose,
            "buyer_name": buyer.name or "",
            "email": buyer.email,
            "phone": buyer.phone or "",
            "redirect_url": redirect_url,
            "webhook": webhook_url,
            "allow_repeated_payments": "False",
        }
        logger.info("instamojo_create_payment_request", amount=form["amount"], purpose=purpose)
        data = await self._send("POST", "/payment-requests/", data=form)
        payment_request = data.get("payment_request") or {}
        request_id = payment_request.get("id")
        if not request_id:
            raise PaymentGatewayError("Instamojo response did not include a payment request id")
        return PaymentRequestResult(
            request_id=request_id,
            redirect_url=payment_request.get("longurl"),
            raw=payment_request,
        )

    async def get_payment_status(self, request_id: str, payment_id: Optional[str] = None) -> PaymentStatusResult:
        if payment_id:
            data = await self._send("GET", f"/payment-requests/{request_id}/{payment_id}/")
            payment_request = data.get("payment_request") or {}
            nested = payment_request.get("payment") or {}
            payments = [PaymentRecord(payment_id=nested.get("payment_id"), status=str(nested.get("status") or ""))]
        else:
            data = await self._send("GET", f"/payment-requests/{request_id}/")
            payment_request = data.get("payment_request") or {}
            payments = [
                PaymentRecord(payment_id=p.get("payment_id"), status=str(p.get("status") or ""))
                for p in payment_request.get("payments") or []
                if isinstance(p, dict)
            ]
        return PaymentStatusResult(
            request_id=request_id,
            request_status=str(payment_request.get("status") or ""),
            payments=payments,
            raw=data,
        )
