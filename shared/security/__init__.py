from .jwt_handler import create_access_token, verify_access_token
from .dependencies import get_current_user, get_optional_user, get_current_admin
from .rate_limiter import limiter, user_id_or_ip

__all__ = [
    "create_access_token",
    "verify_access_token",
    "get_current_user",
    "get_optional_user",
    "get_current_admin",
    "limiter",
    "user_id_or_ip"
]
