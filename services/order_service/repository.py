from datetime import timedelta
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import utcnow
from services.auth_service.models import User
from services.payment_service.transitions import apply_operator_changes, apply_payment_outcome

from .models import Order, OrderStatus, PaymentStatus


class OrderRepository:

    @staticmethod
    async def add_order(db: AsyncSession, order: Order) -> Order:
        """Stage an order and its items. The caller commits or rolls back."""
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str) -> Optional[Order]:
        # populate_existing: conditional UPDATEs bypass the identity map
        result = await db.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_by_payment_request_id(db: AsyncSession, request_id: str) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.instamojo_payment_request_id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def set_payment_request(db: AsyncSession, order: Order, request_id: str) -> Order:
        order.instamojo_payment_request_id = request_id
        await db.commit()
        return order

    @staticmethod
    async def mark_payment_failed(db: AsyncSession, order: Order) -> Order:
        order.payment_status = PaymentStatus.FAILED.value
        await db.commit()
        return order

    @staticmethod
    async def transition_payment(
        db: AsyncSession,
        order_id: str,
        successful: bool,
        payment_id: Optional[str] = None,
    ) -> bool:
        """Apply a gateway outcome with a single conditional UPDATE; see apply_payment_outcome."""
        return await apply_payment_outcome(db, Order, order_id, successful, payment_id)

    @staticmethod
    async def list_user_orders(
        db: AsyncSession, user_id: str, limit: int, offset: int
    ) -> tuple[Sequence[Order], int]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        orders = (await db.execute(stmt)).scalars().all()
        total = (
            await db.execute(select(func.count(Order.id)).where(Order.user_id == user_id))
        ).scalar_one()
        return orders, total

    @staticmethod
    def _admin_filters(
        stmt,
        status: Optional[str],
        payment_status: Optional[str],
        payment_method: Optional[str],
        search: Optional[str],
    ):
        stmt = stmt.outerjoin(User, Order.user_id == User.id)
        if status:
            stmt = stmt.where(Order.status == status)
        if payment_status:
            stmt = stmt.where(Order.payment_status == payment_status)
        if payment_method:
            stmt = stmt.where(Order.payment_method == payment_method)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Order.id.ilike(pattern), User.name.ilike(pattern)))
        return stmt

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        payment_method: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[tuple[Order, Optional[str]]], int]:
        """Orders with the customer's name (None for guest checkouts), newest first."""
        stmt = OrderRepository._admin_filters(
            select(Order, User.name), status, payment_status, payment_method, search
        )
        stmt = stmt.order_by(Order.created_at.desc()).limit(limit).offset(offset)
        rows = [(order, user_name) for order, user_name in (await db.execute(stmt)).all()]

        count_stmt = OrderRepository._admin_filters(
            select(func.count(Order.id)), status, payment_status, payment_method, search
        )
        total = (await db.execute(count_stmt)).scalar_one()
        return rows, total

    @staticmethod
    async def update_fields(db: AsyncSession, order_id: str, changes: Mapping[str, Any]) -> bool:
        """False when the row no longer allows the change (see apply_operator_changes)."""
        return await apply_operator_changes(db, Order, order_id, changes)

    @staticmethod
    async def stats(db: AsyncSession, days: int = 30):
        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        paid = Order.payment_status == PaymentStatus.COMPLETED.value
        stmt = select(
            func.count(Order.id).label("total_orders"),
            count_where(Order.status == OrderStatus.PENDING.value).label("pending_orders"),
            count_where(Order.status == OrderStatus.CONFIRMED.value).label("confirmed_orders"),
            count_where(Order.status == OrderStatus.SHIPPED.value).label("shipped_orders"),
            count_where(Order.status == OrderStatus.DELIVERED.value).label("delivered_orders"),
            count_where(Order.status == OrderStatus.CANCELLED.value).label("cancelled_orders"),
            count_where(paid).label("paid_orders"),
            func.coalesce(func.sum(case((paid, Order.total_amount), else_=0)), 0).label("total_revenue"),
        ).where(Order.created_at >= utcnow() - timedelta(days=days))
        return (await db.execute(stmt)).one()

