from functools import lru_cache

from fastapi import Request

from shared.config.settings import settings
from shared.errors import ConfigurationError, ValidationError

from .gateway import PaymentGateway
from .instamojo import InstamojoGateway
from .mock import MockGateway


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the process-wide gateway selected by PAYMENT_GATEWAY."""
    if settings.payment_gateway == "instamojo":
        return InstamojoGateway(
            api_key=settings.instamojo_api_key,
            auth_token=settings.instamojo_auth_token,
            private_salt=settings.instamojo_private_salt,
            base_url=settings.instamojo_base_url,
            timeout=settings.gateway_timeout_seconds,
        )
    if settings.payment_gateway == "mock":
        return MockGateway(webhook_secret=settings.instamojo_private_salt)
    raise ConfigurationError(f"Unknown PAYMENT_GATEWAY: {settings.payment_gateway}")


async def webhook_payload(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Malformed webhook body")
        if not isinstance(body, dict):
            raise ValidationError("Malformed webhook body")
        return body
    # Instamojo posts application/x-www-form-urlencoded
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}
