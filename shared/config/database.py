from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from shared.config.settings import settings


def _connect_args(url: str) -> dict:
    # asyncpg takes a connect timeout plus a per-statement command timeout
    if url.startswith("postgresql+asyncpg"):
        return {"timeout": settings.db_timeout_seconds, "command_timeout": settings.db_timeout_seconds}
    if url.startswith("sqlite"):
        return {"timeout": settings.db_timeout_seconds}
    return {}


def build_engine(url: str):
    return create_async_engine(
        url,
        echo=settings.db_echo,
        pool_pre_ping=not url.startswith("sqlite"),
        connect_args=_connect_args(url),
    )


engine = build_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


def utcnow() -> datetime:
    # Python-side timestamps: values are known after flush, so async sessions never lazy-load them
    return datetime.now(timezone.utc)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
