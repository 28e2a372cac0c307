from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import AuthenticationError, PermissionDenied, ValidationError
from shared.security.jwt_handler import create_access_token

from .models import User
from .repository import UserRepository
from .schemas import TokenResponse, UserCreate, UserLogin, UserResponse

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:

    @staticmethod
    def _hash_password(password: str) -> str:
        return _pwd_context.hash(password)

    @staticmethod
    def _verify_password(plain: str, hashed: str) -> bool:
        return _pwd_context.verify(plain, hashed)

    @staticmethod
    def _issue_token(user: User) -> TokenResponse:
        token = create_access_token(data={"sub": user.id, "is_admin": user.is_admin})
        return TokenResponse(token=token, user=UserResponse.model_validate(user))

    @staticmethod
    async def register(db: AsyncSession, data: UserCreate) -> TokenResponse:
        existing = await UserRepository.get_by_email(db, data.email)
        if existing:
            raise ValidationError("User already exists with this email")
        user = User(
            email=data.email.lower(),
            name=data.name.strip(),
            phone=data.phone,
            hashed_password=AuthService._hash_password(data.password),
        )
        user = await UserRepository.create(db, user)
        return AuthService._issue_token(user)

    @staticmethod
    async def login(db: AsyncSession, data: UserLogin) -> TokenResponse:
        user = await UserRepository.get_by_email(db, data.email)
        if not user or not AuthService._verify_password(data.password, user.hashed_password):
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise PermissionDenied("Account is disabled")
        return AuthService._issue_token(user)
