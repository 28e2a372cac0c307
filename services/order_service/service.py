import time
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import structlog
from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.settings import settings
from shared.errors import (
    Conflict,
    InsufficientStock,
    InvalidSignature,
    NotFound,
    PaymentGatewayError,
    ValidationError,
)
from shared.observability import (
    ecomm_order_creation_duration_seconds,
    ecomm_orders_created_total,
    ecomm_payment_gateway_errors_total,
    ecomm_payment_verifications_total,
    ecomm_stock_rejections_total,
    ecomm_webhooks_total,
)
from services.auth_service.models import User
from services.auth_service.repository import UserRepository
from services.notification_service.notifier import EmailNotifier
from services.payment_service.gateway import PaymentGateway
from services.payment_service.schemas import Buyer
from services.payment_service.transitions import check_operator_changes
from services.product_service.repository import ProductRepository

from .models import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from .repository import OrderRepository
from .schemas import (
    AdminOrderListResponse,
    AdminOrderResponse,
    CreatedOrder,
    CreateOrderResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStats,
    OrderStatusUpdate,
    Pagination,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

TWO_PLACES = Decimal("0.01")


class OrderService:

    @staticmethod
    async def _recipient(db: AsyncSession, order: Order) -> Optional[str]:
        email = (order.shipping_address or {}).get("email")
        if email:
            return email
        if order.user_id:
            user = await UserRepository.get_by_id(db, order.user_id)
            if user is not None:
                return user.email
        return None

    @staticmethod
    async def _notify(send, order: Order, recipient: Optional[str]) -> None:
        # Runs after the response is sent; a failure is only logged
        try:
            await send(order, recipient)
        except Exception:
            logger.exception("order_notification_failed", order_id=order.id)

    @staticmethod
    async def create_order(
        db: AsyncSession,
        data: OrderCreate,
        user: Optional[User],
        gateway: PaymentGateway,
        notifier: EmailNotifier,
        background_tasks: BackgroundTasks,
    ) -> CreateOrderResponse:
        started = time.perf_counter()
        address = data.shipping_address
        contact_email = address.email or (user.email if user else None)
        online = data.payment_method == PaymentMethod.INSTAMOJO

        if online and not contact_email:
            raise ValidationError("An email address is required for online payment")

        # Pre-check against current stock, summing repeated lines per product
        requested: Dict[str, int] = {}
        for item in data.items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        products = {}
        for product_id, quantity in requested.items():
            product = await ProductRepository.get_active_product(db, product_id)
            if product is None:
                raise NotFound(f"Product not found: {product_id}")
            if quantity > product.stock_quantity:
                ecomm_stock_rejections_total.inc()
                raise InsufficientStock(product.name, product.stock_quantity)
            products[product_id] = product

        total = sum(
            (products[item.product_id].price * item.quantity for item in data.items),
            Decimal("0"),
        ).quantize(TWO_PLACES)

        order = Order(
            user_id=user.id if user else None,
            total_amount=total,
            status=OrderStatus.PENDING.value,
            payment_method=data.payment_method.value,
            payment_status=PaymentStatus.PENDING.value,
            shipping_address=address.model_dump(mode="json", exclude_none=True),
            order_notes=data.order_notes,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    product_name=products[item.product_id].name,
                    quantity=item.quantity,
                    price=products[item.product_id].price,
                )
                for item in data.items
            ],
        )

        try:
            for item in data.items:
                taken = await ProductRepository.decrement_stock(db, item.product_id, item.quantity)
                if not taken:
                    # Lost a race with a concurrent order since the pre-check
                    ecomm_stock_rejections_total.inc()
                    available = await ProductRepository.get_stock(db, item.product_id)
                    raise InsufficientStock(products[item.product_id].name, available)
            await OrderRepository.add_order(db, order)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "order_created",
            order_id=order.id,
            user_id=order.user_id,
            total_amount=str(order.total_amount),
            payment_method=order.payment_method,
            items=len(order.items),
        )

        payment_payload: Optional[Dict[str, Any]] = None
        if online:
            try:
                result = await gateway.create_payment_request(
                    amount=order.total_amount,
                    purpose=f"Order #{order.id}",
                    buyer=Buyer(name=address.name, email=contact_email, phone=address.phone),
                    redirect_url=f"{settings.frontend_url}/order/success?order_id={order.id}",
                    webhook_url=f"{settings.backend_url}{settings.api_prefix}/orders/instamojo/webhook",
                )
            except PaymentGatewayError as exc:
                ecomm_payment_gateway_errors_total.labels(operation="create_payment_request").inc()
                logger.error("payment_request_failed", order_id=order.id, error=exc.message)
                await OrderRepository.mark_payment_failed(db, order)
            else:
                await OrderRepository.set_payment_request(db, order, result.request_id)
                payment_payload = result.raw

        ecomm_orders_created_total.labels(
            payment_method=order.payment_method, payment_status=order.payment_status
        ).inc()
        ecomm_order_creation_duration_seconds.observe(time.perf_counter() - started)

        background_tasks.add_task(OrderService._notify, notifier.order_placed, order, contact_email)

        created = CreatedOrder.model_validate(order)
        created.instamojo_payment = payment_payload
        return CreateOrderResponse(order=created)

    @staticmethod
    async def handle_webhook(
        db: AsyncSession,
        payload: Mapping[str, Any],
        gateway: PaymentGateway,
        notifier: EmailNotifier,
        background_tasks: BackgroundTasks,
    ) -> WebhookResponse:
        try:
            event = gateway.process_webhook(payload)
        except InvalidSignature:
            ecomm_webhooks_total.labels(outcome="invalid_signature").inc()
            raise

        log = logger.bind(
            payment_request_id=event.payment_request_id,
            payment_id=event.payment_id,
            payment_status=event.raw_status,
        )

        order = await OrderRepository.get_by_payment_request_id(db, event.payment_request_id)
        if order is None:
            # Acknowledge so the gateway stops retrying a delivery we can never match
            ecomm_webhooks_total.labels(outcome="unmatched").inc()
            log.warning("webhook_unmatched")
            return WebhookResponse(message="No order found for this payment request")

        if event.amount is not None and event.amount != order.total_amount:
            log.warning("webhook_amount_mismatch", order_id=order.id,
                        expected=str(order.total_amount), received=str(event.amount))

        applied = await OrderRepository.transition_payment(
            db, order.id, event.is_successful, event.payment_id
        )
        if not applied:
            ecomm_webhooks_total.labels(outcome="duplicate").inc()
            log.info("webhook_duplicate", order_id=order.id)
            return WebhookResponse(message="Webhook already processed")

        ecomm_webhooks_total.labels(outcome="applied").inc()
        order = await OrderRepository.get_order(db, order.id)
        log.info("webhook_applied", order_id=order.id, status=order.status,
                 order_payment_status=order.payment_status)

        if event.is_successful:
            recipient = await OrderService._recipient(db, order)
            background_tasks.add_task(OrderService._notify, notifier.payment_confirmed, order, recipient)

        return WebhookResponse(message="Webhook processed successfully")

    @staticmethod
    async def verify_payment_status(
        db: AsyncSession,
        data: VerifyPaymentRequest,
        gateway: PaymentGateway,
        notifier: EmailNotifier,
        background_tasks: BackgroundTasks,
    ) -> VerifyPaymentResponse:
        if not data.order_id or not data.payment_request_id:
            raise ValidationError("Order ID and payment request ID are required")

        order = await OrderRepository.get_order(db, data.order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.instamojo_payment_request_id != data.payment_request_id:
            raise ValidationError("Payment request does not belong to this order")

        if order.payment_status == PaymentStatus.COMPLETED.value:
            ecomm_payment_verifications_total.labels(outcome="already_completed").inc()
            return VerifyPaymentResponse(
                success=True,
                message="Payment verified successfully",
                order=OrderResponse.model_validate(order),
            )

        try:
            result = await gateway.get_payment_status(data.payment_request_id, data.payment_id)
        except PaymentGatewayError:
            ecomm_payment_gateway_errors_total.labels(operation="get_payment_status").inc()
            raise

        if not result.is_successful:
            # A negative poll is not authoritative; leave the order for the webhook
            ecomm_payment_verifications_total.labels(outcome="not_completed").inc()
            reported = result.payment.status if result.payment else result.request_status
            return VerifyPaymentResponse(
                success=False,
                message="Payment not completed",
                payment_status=reported,
            )

        payment_id = data.payment_id or (result.payment.payment_id if result.payment else None)
        applied = await OrderRepository.transition_payment(db, order.id, True, payment_id)
        order = await OrderRepository.get_order(db, order.id)

        if applied:
            ecomm_payment_verifications_total.labels(outcome="applied").inc()
            logger.info("payment_verified", order_id=order.id, payment_id=payment_id)
            recipient = await OrderService._recipient(db, order)
            background_tasks.add_task(OrderService._notify, notifier.payment_confirmed, order, recipient)
        else:
            ecomm_payment_verifications_total.labels(outcome="already_completed").inc()

        return VerifyPaymentResponse(
            success=True,
            message="Payment verified successfully",
            order=OrderResponse.model_validate(order),
        )

    @staticmethod
    async def get_order_for(db: AsyncSession, order_id: str, user: Optional[User]) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise NotFound("Order not found")
        # TODO: confirm with the product owner whether anonymous lookups by id
        # should stay open; the order success page relies on it for guest checkout.
        if user is not None and not user.is_admin and order.user_id != user.id:
            raise NotFound("Order not found")
        return order

    @staticmethod
    async def list_my_orders(db: AsyncSession, user: User, limit: int, offset: int) -> OrderListResponse:
        orders, total = await OrderRepository.list_user_orders(db, user.id, limit, offset)
        return OrderListResponse(
            orders=[OrderResponse.model_validate(o) for o in orders],
            pagination=Pagination(total=total, limit=limit, offset=offset),
        )

    @staticmethod
    async def list_all(
        db: AsyncSession,
        status: Optional[str],
        payment_status: Optional[str],
        payment_method: Optional[str],
        search: Optional[str],
        limit: int,
        offset: int,
    ) -> AdminOrderListResponse:
        rows, total = await OrderRepository.list_orders(
            db, status, payment_status, payment_method, search, limit, offset
        )
        orders = []
        for order, user_name in rows:
            entry = AdminOrderResponse.model_validate(order)
            entry.user_name = user_name
            orders.append(entry)
        return AdminOrderListResponse(
            orders=orders,
            pagination=Pagination(total=total, limit=limit, offset=offset),
        )

    @staticmethod
    async def update_status(db: AsyncSession, order_id: str, data: OrderStatusUpdate) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise NotFound("Order not found")

        # Omitted fields keep their current value
        changes = data.model_dump(mode="json", exclude_none=True)
        if not changes:
            return order
        check_operator_changes(order, changes)

        if not await OrderRepository.update_fields(db, order_id, changes):
            # A webhook or poll committed between the read above and the write
            current = await OrderRepository.get_order(db, order_id)
            if current is None:
                raise NotFound("Order not found")
            check_operator_changes(current, changes)
            raise Conflict("Order changed while it was being updated, please retry")

        order = await OrderRepository.get_order(db, order_id)
        logger.info("order_status_updated", order_id=order.id, changes=changes)
        return order

    @staticmethod
    async def stats(db: AsyncSession) -> OrderStats:
        row = await OrderRepository.stats(db)
        paid_orders = int(row.paid_orders)
        revenue = Decimal(str(row.total_revenue)).quantize(TWO_PLACES)
        average = (revenue / paid_orders).quantize(TWO_PLACES) if paid_orders else None
        return OrderStats(
            total_orders=int(row.total_orders),
            pending_orders=int(row.pending_orders),
            confirmed_orders=int(row.confirmed_orders),
            shipped_orders=int(row.shipped_orders),
            delivered_orders=int(row.delivered_orders),
            cancelled_orders=int(row.cancelled_orders),
            paid_orders=paid_orders,
            total_revenue=revenue,
            average_order_value=average,
        )
