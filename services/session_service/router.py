from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.config.settings import settings
from shared.security import get_current_admin, get_current_user, get_optional_user, limiter
from services.auth_service.models import User
from services.notification_service.notifier import EmailNotifier, get_notifier
from services.order_service.models import PaymentStatus
from services.order_service.schemas import WebhookResponse
from services.payment_service.dependencies import get_payment_gateway, webhook_payload
from services.payment_service.gateway import PaymentGateway

from .models import SessionStatus, SessionType
from .schemas import (
    AdminSessionListResponse,
    BookSessionResponse,
    SessionBook,
    SessionEnvelope,
    SessionListResponse,
    SessionResponse,
    SessionStatsResponse,
    SessionStatusUpdate,
    UpdatedSessionResponse,
    VerifySessionPaymentRequest,
    VerifySessionPaymentResponse,
)
from .service import SessionService

router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.post(
    "/book",
    response_model=BookSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a physiotherapy session (guest or signed-in)",
)
@limiter.limit(settings.order_rate_limit)
async def book_session(
    request: Request,
    payload: SessionBook,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
):
    return await SessionService.book(db, payload, user, gateway, notifier, background_tasks)


@router.post("/instamojo/webhook", response_model=WebhookResponse, summary="Instamojo webhook for session payments")
async def instamojo_webhook(
    background_tasks: BackgroundTasks,
    payload: dict = Depends(webhook_payload),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
):
    return await SessionService.handle_webhook(db, payload, gateway, notifier, background_tasks)


@router.post("/verify-payment", response_model=VerifySessionPaymentResponse)
@limiter.limit(settings.order_rate_limit)
async def verify_payment(
    request: Request,
    payload: VerifySessionPaymentRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
):
    return await SessionService.verify_payment_status(db, payload, gateway, notifier, background_tasks)


@router.get("/my-sessions", response_model=SessionListResponse)
async def my_sessions(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await SessionService.list_my_sessions(db, user, limit, offset)


@router.get("/admin/all", response_model=AdminSessionListResponse, dependencies=[Depends(get_current_admin)])
async def all_sessions(
    status_filter: Optional[SessionStatus] = Query(default=None, alias="status"),
    session_type: Optional[SessionType] = Query(default=None),
    payment_status: Optional[PaymentStatus] = Query(default=None),
    search: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await SessionService.list_all(
        db,
        status_filter.value if status_filter else None,
        session_type.value if session_type else None,
        payment_status.value if payment_status else None,
        search,
        limit,
        offset,
    )


@router.get("/admin/stats", response_model=SessionStatsResponse, dependencies=[Depends(get_current_admin)])
async def session_stats(db: AsyncSession = Depends(get_db)):
    return SessionStatsResponse(stats=await SessionService.stats(db))


@router.get("/{session_id}", response_model=SessionEnvelope)
async def get_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    session = await SessionService.get_session_for(db, session_id, user)
    return SessionEnvelope(session=SessionResponse.model_validate(session))


@router.put("/{session_id}/status", response_model=UpdatedSessionResponse, dependencies=[Depends(get_current_admin)])
async def update_session_status(session_id: str, payload: SessionStatusUpdate, db: AsyncSession = Depends(get_db)):
    session = await SessionService.update_status(db, session_id, payload)
    return UpdatedSessionResponse(session=SessionResponse.model_validate(session))
