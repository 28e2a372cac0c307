from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import AuthenticationError, PermissionDenied
from services.auth_service.models import User
from services.auth_service.repository import UserRepository
from .jwt_handler import verify_access_token

# Defines the expected header format (Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)


async def _resolve_user(db: AsyncSession, token: str) -> Optional[User]:
    payload = verify_access_token(token)
    if payload is None:
        return None
    user_id = payload.get("sub")
    if user_id is None:
        return None
    user = await UserRepository.get_by_id(db, str(user_id))
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Dependency to validate the JWT and return the matching active user row."""
    if not token:
        raise AuthenticationError("Access token required")

    user = await _resolve_user(db, token)
    if user is None:
        raise AuthenticationError("Invalid or expired token")

    # Store in request state for downstream use (like rate limiting)
    request.state.user_id = user.id
    return user


async def get_optional_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous callers (or bad tokens) get None."""
    if not token:
        return None
    user = await _resolve_user(db, token)
    if user is not None:
        request.state.user_id = user.id
    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise PermissionDenied("Admin access required")
    return user
