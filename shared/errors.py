"""
Domain error taxonomy shared by every service.

Each error carries the HTTP status it maps to; ``register_exception_handlers``
renders all of them as ``{"error": message}`` so clients see the same shape
the storefront already consumes.
"""
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class ECommerceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ECommerceError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(ECommerceError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ECommerceError):
    status_code = status.HTTP_409_CONFLICT


class InsufficientStock(ECommerceError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, product_name: str, available: int):
        super().__init__(f"Insufficient stock for {product_name}. Available: {available}")
        self.product_name = product_name
        self.available = available


class InvalidSignature(ECommerceError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message)


class PaymentGatewayError(ECommerceError):
    status_code = status.HTTP_502_BAD_GATEWAY


class AuthenticationError(ECommerceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDenied(ECommerceError):
    status_code = status.HTTP_403_FORBIDDEN


class ConfigurationError(ECommerceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def ecommerce_error_handler(request: Request, exc: ECommerceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, error=exc.message,
                    status_code=exc.status_code)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ECommerceError, ecommerce_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
