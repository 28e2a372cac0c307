from datetime import timedelta
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import utcnow
from services.auth_service.models import User
from services.order_service.models import PaymentStatus
from services.payment_service.transitions import apply_operator_changes, apply_payment_outcome

from .models import SessionStatus, SessionType, TherapySession


class SessionRepository:

    @staticmethod
    async def add_session(db: AsyncSession, session: TherapySession) -> TherapySession:
        db.add(session)
        await db.commit()
        return session

    @staticmethod
    async def get_session(db: AsyncSession, session_id: str) -> Optional[TherapySession]:
        result = await db.execute(
            select(TherapySession)
            .where(TherapySession.id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_by_payment_request_id(db: AsyncSession, request_id: str) -> Optional[TherapySession]:
        result = await db.execute(
            select(TherapySession)
            .where(TherapySession.instamojo_payment_request_id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def set_payment_request(db: AsyncSession, session: TherapySession, request_id: str) -> TherapySession:
        session.instamojo_payment_request_id = request_id
        await db.commit()
        return session

    @staticmethod
    async def mark_payment_failed(db: AsyncSession, session: TherapySession) -> TherapySession:
        session.payment_status = PaymentStatus.FAILED.value
        await db.commit()
        return session

    @staticmethod
    async def transition_payment(
        db: AsyncSession,
        session_id: str,
        successful: bool,
        payment_id: Optional[str] = None,
    ) -> bool:
        return await apply_payment_outcome(db, TherapySession, session_id, successful, payment_id)

    @staticmethod
    async def update_fields(db: AsyncSession, session_id: str, changes: Mapping[str, Any]) -> bool:
        return await apply_operator_changes(db, TherapySession, session_id, changes)

    @staticmethod
    async def list_user_sessions(
        db: AsyncSession, user_id: str, limit: int, offset: int
    ) -> tuple[Sequence[TherapySession], int]:
        stmt = (
            select(TherapySession)
            .where(TherapySession.user_id == user_id)
            .order_by(TherapySession.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        sessions = (await db.execute(stmt)).scalars().all()
        total = (
            await db.execute(
                select(func.count(TherapySession.id)).where(TherapySession.user_id == user_id)
            )
        ).scalar_one()
        return sessions, total

    @staticmethod
    def _admin_filters(
        stmt,
        status: Optional[str],
        session_type: Optional[str],
        payment_status: Optional[str],
        search: Optional[str],
    ):
        stmt = stmt.outerjoin(User, TherapySession.user_id == User.id)
        if status:
            stmt = stmt.where(TherapySession.status == status)
        if session_type:
            stmt = stmt.where(TherapySession.session_type == session_type)
        if payment_status:
            stmt = stmt.where(TherapySession.payment_status == payment_status)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(
                TherapySession.name.ilike(pattern),
                TherapySession.email.ilike(pattern),
                TherapySession.contact.ilike(pattern),
            ))
        return stmt

    @staticmethod
    async def list_sessions(
        db: AsyncSession,
        status: Optional[str] = None,
        session_type: Optional[str] = None,
        payment_status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[tuple[TherapySession, Optional[str]]], int]:
        """Bookings with the account holder's name (None for guests), newest first."""
        stmt = SessionRepository._admin_filters(
            select(TherapySession, User.name), status, session_type, payment_status, search
        )
        stmt = stmt.order_by(TherapySession.created_at.desc()).limit(limit).offset(offset)
        rows = [(session, user_name) for session, user_name in (await db.execute(stmt)).all()]

        count_stmt = SessionRepository._admin_filters(
            select(func.count(TherapySession.id)), status, session_type, payment_status, search
        )
        total = (await db.execute(count_stmt)).scalar_one()
        return rows, total

    @staticmethod
    async def stats(db: AsyncSession, days: int = 30):
        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        paid = TherapySession.payment_status == PaymentStatus.COMPLETED.value
        stmt = select(
            func.count(TherapySession.id).label("total_sessions"),
            count_where(TherapySession.status == SessionStatus.PENDING.value).label("pending_sessions"),
            count_where(TherapySession.status == SessionStatus.CONFIRMED.value).label("confirmed_sessions"),
            count_where(TherapySession.status == SessionStatus.COMPLETED.value).label("completed_sessions"),
            count_where(TherapySession.status == SessionStatus.CANCELLED.value).label("cancelled_sessions"),
            count_where(paid).label("paid_sessions"),
            func.coalesce(func.sum(case((paid, TherapySession.amount), else_=0)), 0).label("total_revenue"),
            count_where(TherapySession.session_type == SessionType.HOME_VISIT.value).label("home_visits"),
            count_where(
                TherapySession.session_type == SessionType.ONLINE_CONSULTATION.value
            ).label("online_consultations"),
        ).where(TherapySession.created_at >= utcnow() - timedelta(days=days))
        return (await db.execute(stmt)).one()
