from typing import Iterable

from services.order_service.models import Order, OrderItem
from services.session_service.models import TherapySession

PAYMENT_METHOD_LABELS = {
    "instamojo": "Online payment (Instamojo)",
    "pay_on_visit": "Pay on visit",
}


def _item_lines(items: Iterable[OrderItem]) -> str:
    return "\n".join(
        f"  - {item.product_name} x {item.quantity} @ Rs. {item.price}" for item in items
    )


def order_placed(order: Order, for_admin: bool = False) -> tuple[str, str]:
    address = order.shipping_address or {}
    if for_admin:
        subject = f"New order #{order.id} - Rs. {order.total_amount}"
        greeting = f"A new order was placed by {address.get('name', 'a guest')}."
    else:
        subject = f"Order confirmation #{order.id}"
        greeting = f"Hi {address.get('name', 'there')}, thank you for your order with Ergiva."

    body = (
        f"{greeting}\n\n"
        f"Order: {order.id}\n"
        f"Items:\n{_item_lines(order.items)}\n"
        f"Total: Rs. {order.total_amount}\n"
        f"Payment: {PAYMENT_METHOD_LABELS.get(order.payment_method, order.payment_method)}"
        f" ({order.payment_status})\n\n"
        f"Ship to:\n  {address.get('name', '')}\n  {address.get('address', '')}\n"
        f"  {address.get('city', '')}, {address.get('state', '')} {address.get('pincode', '')}\n"
        f"  Phone: {address.get('phone', '')}\n"
    )
    if order.order_notes:
        body += f"\nNotes: {order.order_notes}\n"
    return subject, body


def payment_received(order: Order, for_admin: bool = False) -> tuple[str, str]:
    address = order.shipping_address or {}
    if for_admin:
        subject = f"Payment received for order #{order.id}"
        body = (
            f"Instamojo payment {order.instamojo_payment_id} completed for order {order.id}.\n"
            f"Amount: Rs. {order.total_amount}\n"
        )
    else:
        subject = f"Payment received - order #{order.id}"
        body = (
            f"Hi {address.get('name', 'there')},\n\n"
            f"We have received your payment of Rs. {order.total_amount} for order {order.id}.\n"
            f"Your order is confirmed and will be dispatched soon.\n"
        )
    return subject, body


SESSION_TYPE_LABELS = {
    "home_visit": "Home visit",
    "online_consultation": "Online consultation",
}


def _when(session: TherapySession) -> str:
    return session.preferred_time.strftime("%d %b %Y, %I:%M %p")


def session_booked(session: TherapySession, for_admin: bool = False) -> tuple[str, str]:
    kind = SESSION_TYPE_LABELS.get(session.session_type, session.session_type)
    payment = PAYMENT_METHOD_LABELS.get(session.payment_method, session.payment_method)
    if for_admin:
        subject = f"New session booking - {session.name}"
        body = (
            f"A new physiotherapy session has been booked.\n\n"
            f"Booking: {session.id}\n"
            f"Patient: {session.name}\n"
            f"Contact: {session.contact}\n"
            f"Email: {session.email or '-'}\n"
            f"Address: {session.address or '-'}\n"
        )
        if session.condition_description:
            body += f"Condition: {session.condition_description}\n"
    else:
        subject = "Session booking confirmed - Ergiva"
        body = (
            f"Hi {session.name},\n\n"
            f"Your physiotherapy session has been booked.\n\n"
            f"Booking: {session.id}\n"
        )
    body += (
        f"Preferred time: {_when(session)}\n"
        f"Session type: {kind}\n"
        f"Amount: Rs. {session.amount}\n"
        f"Payment: {payment} ({session.payment_status})\n"
    )
    return subject, body


def session_payment_received(session: TherapySession, for_admin: bool = False) -> tuple[str, str]:
    if for_admin:
        subject = f"Payment received for session #{session.id}"
        body = (
            f"Instamojo payment {session.instamojo_payment_id} completed for session {session.id}.\n"
            f"Amount: Rs. {session.amount}\n"
        )
    else:
        subject = f"Payment received - session #{session.id}"
        body = (
            f"Hi {session.name},\n\n"
            f"We have received your payment of Rs. {session.amount}.\n"
            f"Your session on {_when(session)} is confirmed.\n"
        )
    return subject, body
