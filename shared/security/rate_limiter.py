from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from shared.config.settings import settings
from .jwt_handler import ALGORITHM


def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Uses the JWT subject when a valid bearer token is present so a signed-in
    customer is limited across devices; anonymous checkouts fall back to the IP.
    """
    auth_header = request.headers.get("Authorization")

    if auth_header and auth_header.startswith("Bearer ") and settings.jwt_secret_key:
        token = auth_header.split(" ", 1)[1]
        try:
            payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
        except JWTError:
            payload = None
        if payload and "sub" in payload:
            return f"user:{payload['sub']}"

    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=user_id_or_ip, enabled=settings.rate_limit_enabled)
