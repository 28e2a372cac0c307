from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.config.settings import settings
from shared.security import get_current_admin, get_current_user, get_optional_user, limiter
from services.auth_service.models import User
from services.notification_service.notifier import EmailNotifier, get_notifier
from services.payment_service.dependencies import get_payment_gateway, webhook_payload
from services.payment_service.gateway import PaymentGateway

from .models import OrderStatus, PaymentMethod, PaymentStatus
from .schemas import (
    AdminOrderListResponse,
    CreateOrderResponse,
    OrderCreate,
    OrderEnvelope,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderStatusUpdate,
    UpdatedOrderResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookResponse,
)
from .service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "",
    response_model=CreateOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order (guest or signed-in)",
)
@limiter.limit(settings.order_rate_limit)
async def create_order(
    request: Request,
    payload: OrderCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
):
    return await OrderService.create_order(db, payload, user, gateway, notifier, background_tasks)


@router.post("/instamojo/webhook", response_model=WebhookResponse, summary="Instamojo payment webhook")
async def instamojo_webhook(
    background_tasks: BackgroundTasks,
    payload: dict = Depends(webhook_payload),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
):
    return await OrderService.handle_webhook(db, payload, gateway, notifier, background_tasks)


@router.post(
    "/verify-payment",
    response_model=VerifyPaymentResponse,
    summary="Poll the gateway for an order's payment outcome",
)
@limiter.limit(settings.order_rate_limit)
async def verify_payment(
    request: Request,
    payload: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
):
    return await OrderService.verify_payment_status(db, payload, gateway, notifier, background_tasks)


@router.get("/my-orders", response_model=OrderListResponse)
async def my_orders(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await OrderService.list_my_orders(db, user, limit, offset)


@router.get("/admin/all", response_model=AdminOrderListResponse, dependencies=[Depends(get_current_admin)])
async def all_orders(
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(default=None),
    payment_method: Optional[PaymentMethod] = Query(default=None),
    search: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_all(
        db,
        status_filter.value if status_filter else None,
        payment_status.value if payment_status else None,
        payment_method.value if payment_method else None,
        search,
        limit,
        offset,
    )


@router.get("/admin/stats", response_model=OrderStatsResponse, dependencies=[Depends(get_current_admin)])
async def order_stats(db: AsyncSession = Depends(get_db)):
    return OrderStatsResponse(stats=await OrderService.stats(db))


@router.get("/{order_id}", response_model=OrderEnvelope)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    order = await OrderService.get_order_for(db, order_id, user)
    return OrderEnvelope(order=OrderResponse.model_validate(order))


@router.put("/{order_id}/status", response_model=UpdatedOrderResponse, dependencies=[Depends(get_current_admin)])
async def update_order_status(order_id: str, payload: OrderStatusUpdate, db: AsyncSession = Depends(get_db)):
    order = await OrderService.update_status(db, order_id, payload)
    return UpdatedOrderResponse(order=OrderResponse.model_validate(order))
