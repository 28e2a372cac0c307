from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import structlog
from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.settings import settings
from shared.errors import Conflict, InvalidSignature, NotFound, PaymentGatewayError, ValidationError
from shared.observability import (
    ecomm_payment_gateway_errors_total,
    ecomm_payment_verifications_total,
    ecomm_sessions_booked_total,
    ecomm_webhooks_total,
)
from services.auth_service.models import User
from services.auth_service.repository import UserRepository
from services.notification_service.notifier import EmailNotifier
from services.order_service.models import PaymentMethod, PaymentStatus
from services.order_service.schemas import Pagination, WebhookResponse
from services.payment_service.gateway import PaymentGateway
from services.payment_service.schemas import Buyer
from services.payment_service.transitions import check_operator_changes

from .models import SessionStatus, SessionType, TherapySession
from .repository import SessionRepository
from .schemas import (
    AdminSessionListResponse,
    AdminSessionResponse,
    BookedSession,
    BookSessionResponse,
    SessionBook,
    SessionListResponse,
    SessionResponse,
    SessionStats,
    SessionStatusUpdate,
    VerifySessionPaymentRequest,
    VerifySessionPaymentResponse,
)

logger = structlog.get_logger(__name__)

TWO_PLACES = Decimal("0.01")


def session_price(session_type: SessionType) -> Decimal:
    prices = {
        SessionType.HOME_VISIT: settings.home_visit_price,
        SessionType.ONLINE_CONSULTATION: settings.online_consultation_price,
    }
    return prices[session_type].quantize(TWO_PLACES)


class SessionService:

    @staticmethod
    async def _recipient(db: AsyncSession, session: TherapySession) -> Optional[str]:
        if session.email:
            return session.email
        if session.user_id:
            user = await UserRepository.get_by_id(db, session.user_id)
            if user is not None:
                return user.email
        return None

    @staticmethod
    async def _notify(send, session: TherapySession, recipient: Optional[str]) -> None:
        try:
            await send(session, recipient)
        except Exception:
            logger.exception("session_notification_failed", session_id=session.id)

    @staticmethod
    async def book(
        db: AsyncSession,
        data: SessionBook,
        user: Optional[User],
        gateway: PaymentGateway,
        notifier: EmailNotifier,
        background_tasks: BackgroundTasks,
    ) -> BookSessionResponse:
        contact_email = data.email or (user.email if user else None)
        online = data.payment_method == PaymentMethod.INSTAMOJO

        if online and not contact_email:
            raise ValidationError("An email address is required for online payment")
        if data.session_type == SessionType.HOME_VISIT and not (data.address or "").strip():
            raise ValidationError("An address is required for a home visit")

        session = TherapySession(
            user_id=user.id if user else None,
            name=data.name,
            age=data.age,
            contact=data.contact,
            email=contact_email,
            address=data.address,
            condition_description=data.condition_description,
            preferred_time=data.preferred_time,
            session_type=data.session_type.value,
            amount=session_price(data.session_type),
            status=SessionStatus.PENDING.value,
            payment_method=data.payment_method.value,
            payment_status=PaymentStatus.PENDING.value,
        )
        session = await SessionRepository.add_session(db, session)
        logger.info(
            "session_booked",
            session_id=session.id,
            user_id=session.user_id,
            session_type=session.session_type,
            amount=str(session.amount),
            payment_method=session.payment_method,
        )

        payment_payload: Optional[Dict[str, Any]] = None
        if online:
            try:
                result = await gateway.create_payment_request(
                    amount=session.amount,
                    purpose=f"Session #{session.id}",
                    buyer=Buyer(name=session.name, email=contact_email, phone=session.contact),
                    redirect_url=f"{settings.frontend_url}/booking/success?session_id={session.id}",
                    webhook_url=f"{settings.backend_url}{settings.api_prefix}/sessions/instamojo/webhook",
                )
            except PaymentGatewayError as exc:
                # The booking stands; the patient can still pay on the visit
                ecomm_payment_gateway_errors_total.labels(operation="create_payment_request").inc()
                logger.error("payment_request_failed", session_id=session.id, error=exc.message)
                await SessionRepository.mark_payment_failed(db, session)
            else:
                await SessionRepository.set_payment_request(db, session, result.request_id)
                payment_payload = result.raw

        ecomm_sessions_booked_total.labels(
            session_type=session.session_type,
            payment_method=session.payment_method,
            payment_status=session.payment_status,
        ).inc()

        background_tasks.add_task(SessionService._notify, notifier.session_booked, session, contact_email)

        booked = BookedSession.model_validate(session)
        booked.instamojo_payment = payment_payload
        return BookSessionResponse(session=booked)

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

        session = await SessionRepository.get_by_payment_request_id(db, event.payment_request_id)
        if session is None:
            ecomm_webhooks_total.labels(outcome="unmatched").inc()
            log.warning("session_webhook_unmatched")
            return WebhookResponse(message="No session found for this payment request")

        if event.amount is not None and event.amount != session.amount:
            log.warning("session_webhook_amount_mismatch", session_id=session.id,
                        expected=str(session.amount), received=str(event.amount))

        applied = await SessionRepository.transition_payment(
            db, session.id, event.is_successful, event.payment_id
        )
        if not applied:
            ecomm_webhooks_total.labels(outcome="duplicate").inc()
            log.info("session_webhook_duplicate", session_id=session.id)
            return WebhookResponse(message="Webhook already processed")

        ecomm_webhooks_total.labels(outcome="applied").inc()
        session = await SessionRepository.get_session(db, session.id)
        log.info("session_webhook_applied", session_id=session.id, status=session.status,
                 session_payment_status=session.payment_status)

        if event.is_successful:
            recipient = await SessionService._recipient(db, session)
            background_tasks.add_task(
                SessionService._notify, notifier.session_payment_confirmed, session, recipient
            )

        return WebhookResponse(message="Webhook processed successfully")

    @staticmethod
    async def verify_payment_status(
        db: AsyncSession,
        data: VerifySessionPaymentRequest,
        gateway: PaymentGateway,
        notifier: EmailNotifier,
        background_tasks: BackgroundTasks,
    ) -> VerifySessionPaymentResponse:
        if not data.session_id or not data.payment_request_id:
            raise ValidationError("Session ID and payment request ID are required")

        session = await SessionRepository.get_session(db, data.session_id)
        if session is None:
            raise NotFound("Session not found")
        if session.instamojo_payment_request_id != data.payment_request_id:
            raise ValidationError("Payment request does not belong to this session")

        if session.payment_status == PaymentStatus.COMPLETED.value:
            ecomm_payment_verifications_total.labels(outcome="already_completed").inc()
            return VerifySessionPaymentResponse(
                success=True,
                message="Payment verified successfully",
                session=SessionResponse.model_validate(session),
            )

        try:
            result = await gateway.get_payment_status(data.payment_request_id, data.payment_id)
        except PaymentGatewayError:
            ecomm_payment_gateway_errors_total.labels(operation="get_payment_status").inc()
            raise

        if not result.is_successful:
            ecomm_payment_verifications_total.labels(outcome="not_completed").inc()
            reported = result.payment.status if result.payment else result.request_status
            return VerifySessionPaymentResponse(
                success=False,
                message="Payment not completed",
                payment_status=reported,
            )

        payment_id = data.payment_id or (result.payment.payment_id if result.payment else None)
        applied = await SessionRepository.transition_payment(db, session.id, True, payment_id)
        session = await SessionRepository.get_session(db, session.id)

        if applied:
            ecomm_payment_verifications_total.labels(outcome="applied").inc()
            logger.info("session_payment_verified", session_id=session.id, payment_id=payment_id)
            recipient = await SessionService._recipient(db, session)
            background_tasks.add_task(
                SessionService._notify, notifier.session_payment_confirmed, session, recipient
            )
        else:
            ecomm_payment_verifications_total.labels(outcome="already_completed").inc()

        return VerifySessionPaymentResponse(
            success=True,
            message="Payment verified successfully",
            session=SessionResponse.model_validate(session),
        )

    @staticmethod
    async def get_session_for(db: AsyncSession, session_id: str, user: Optional[User]) -> TherapySession:
        session = await SessionRepository.get_session(db, session_id)
        # Signed-in customers only see their own bookings; the booking
        # confirmation page reads guest bookings by id
        if session is None or (user is not None and not user.is_admin and session.user_id != user.id):
            raise NotFound("Session not found")
        return session

    @staticmethod
    async def list_my_sessions(db: AsyncSession, user: User, limit: int, offset: int) -> SessionListResponse:
        sessions, total = await SessionRepository.list_user_sessions(db, user.id, limit, offset)
        return SessionListResponse(
            sessions=[SessionResponse.model_validate(s) for s in sessions],
            pagination=Pagination(total=total, limit=limit, offset=offset),
        )

    @staticmethod
    async def list_all(
        db: AsyncSession,
        status: Optional[str],
        session_type: Optional[str],
        payment_status: Optional[str],
        search: Optional[str],
        limit: int,
        offset: int,
    ) -> AdminSessionListResponse:
        rows, total = await SessionRepository.list_sessions(
            db, status, session_type, payment_status, search, limit, offset
        )
        sessions = []
        for session, user_name in rows:
            entry = AdminSessionResponse.model_validate(session)
            entry.user_name = user_name
            sessions.append(entry)
        return AdminSessionListResponse(
            sessions=sessions,
            pagination=Pagination(total=total, limit=limit, offset=offset),
        )

    @staticmethod
    async def update_status(db: AsyncSession, session_id: str, data: SessionStatusUpdate) -> TherapySession:
        session = await SessionRepository.get_session(db, session_id)
        if session is None:
            raise NotFound("Session not found")

        changes = data.model_dump(mode="json", exclude_none=True)
        if not changes:
            return session
        check_operator_changes(session, changes)

        if not await SessionRepository.update_fields(db, session_id, changes):
            current = await SessionRepository.get_session(db, session_id)
            if current is None:
                raise NotFound("Session not found")
            check_operator_changes(current, changes)
            raise Conflict("Session changed while it was being updated, please retry")

        session = await SessionRepository.get_session(db, session_id)
        logger.info("session_status_updated", session_id=session.id, changes=changes)
        return session

    @staticmethod
    async def stats(db: AsyncSession) -> SessionStats:
        row = await SessionRepository.stats(db)
        return SessionStats(
            total_sessions=int(row.total_sessions),
            pending_sessions=int(row.pending_sessions),
            confirmed_sessions=int(row.confirmed_sessions),
            completed_sessions=int(row.completed_sessions),
            cancelled_sessions=int(row.cancelled_sessions),
            paid_sessions=int(row.paid_sessions),
            total_revenue=Decimal(str(row.total_revenue)).quantize(TWO_PLACES),
            home_visits=int(row.home_visits),
            online_consultations=int(row.online_consultations),
        )
