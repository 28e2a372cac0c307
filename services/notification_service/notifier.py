"""
Order and session e-mails.

Delivery is best effort: every recipient is attempted independently and a
failure is logged and counted, never raised to the booking or order flow.
"""
import asyncio
import smtplib
from email.message import EmailMessage
from typing import List, Optional

import structlog

from shared.config.settings import Settings, settings
from shared.observability import ecomm_notifications_failed_total
from services.order_service.models import Order
from services.session_service.models import TherapySession

from . import templates

logger = structlog.get_logger(__name__)


class EmailNotifier:

    def __init__(self, config: Settings):
        self.config = config

    def _send_sync(self, to_email: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"Ergiva <{self.config.email_from}>"
        msg["To"] = to_email
        msg.set_content(body)

        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port,
                          timeout=self.config.smtp_timeout_seconds) as server:
            server.starttls()
            if self.config.smtp_user:
                server.login(self.config.smtp_user, self.config.smtp_password)
            server.send_message(msg)

    async def send(self, kind: str, to_email: Optional[str], subject: str, body: str) -> bool:
        if not self.config.email_enabled or not to_email:
            return False
        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._send_sync, to_email, subject, body)
        except Exception:
            ecomm_notifications_failed_total.labels(kind=kind).inc()
            logger.exception("email_send_failed", kind=kind, to=to_email)
            return False
        logger.info("email_sent", kind=kind, to=to_email)
        return True

    async def _send_pair(self, kind: str, record, recipient: Optional[str], render) -> List[bool]:
        subject, body = render(record)
        admin_subject, admin_body = render(record, for_admin=True)
        return [
            await self.send(kind, recipient, subject, body),
            await self.send(f"{kind}_admin", self.config.admin_email, admin_subject, admin_body),
        ]

    async def order_placed(self, order: Order, recipient: Optional[str]) -> None:
        await self._send_pair("order_placed", order, recipient, templates.order_placed)

    async def payment_confirmed(self, order: Order, recipient: Optional[str]) -> None:
        await self._send_pair("payment_confirmed", order, recipient, templates.payment_received)

    async def session_booked(self, session: TherapySession, recipient: Optional[str]) -> None:
        await self._send_pair("session_booked", session, recipient, templates.session_booked)

    async def session_payment_confirmed(self, session: TherapySession, recipient: Optional[str]) -> None:
        await self._send_pair("session_payment_confirmed", session, recipient, templates.session_payment_received)


_notifier = EmailNotifier(settings)


def get_notifier() -> EmailNotifier:
    return _notifier
