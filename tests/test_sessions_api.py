# tests/test_sessions_api.py

import asyncio
from decimal import Decimal

from sqlalchemy import func, select

from conftest import RecordingNotifier, auth_headers, post_until_response, signed_webhook
from main import app
from services.notification_service.notifier import get_notifier
from services.payment_service.dependencies import get_payment_gateway
from services.payment_service.mock import MockGateway
from services.session_service.models import TherapySession
from services.session_service.repository import SessionRepository
from shared.errors import PaymentGatewayError

SESSIONS = "/api/sessions"


async def session_count(session_factory):
    async with session_factory() as db:
        return (await db.execute(select(func.count(TherapySession.id)))).scalar_one()


async def load_session(session_factory, session_id):
    async with session_factory() as db:
        return await db.get(TherapySession, session_id)


def booking(payment_method="pay_on_visit", **overrides):
    body = {
        "name": "Asha Rao",
        "age": 54,
        "contact": "9876543210",
        "email": "asha@example.com",
        "address": "12 MG Road, Bengaluru",
        "condition_description": "Lower back pain after a fall",
        "preferred_time": "2026-11-02T10:30:00",
        "session_type": "home_visit",
        "payment_method": payment_method,
    }
    body.update(overrides)
    return body


async def book_online(client, headers=None, **overrides):
    response = await client.post(f"{SESSIONS}/book", json=booking("instamojo", **overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["session"]


# --- Booking ---

async def test_home_visit_is_priced_by_the_server(client, notifier):
    body = booking(amount="1.00")  # client-supplied amounts are ignored

    response = await client.post(f"{SESSIONS}/book", json=body)

    assert response.status_code == 201
    session = response.json()["session"]
    assert response.json()["success"] is True
    assert Decimal(session["amount"]) == Decimal("1500.00")
    assert session["status"] == "pending"
    assert session["payment_status"] == "pending"
    assert session["payment_method"] == "pay_on_visit"
    assert session["instamojo_payment"] is None
    assert session["user_id"] is None
    assert notifier.sent("session_booked") == [("session_booked", session["id"], "asha@example.com")]


async def test_online_consultation_price(client):
    response = await client.post(
        f"{SESSIONS}/book", json=booking(session_type="online_consultation", address=None)
    )

    assert response.status_code == 201
    assert Decimal(response.json()["session"]["amount"]) == Decimal("800.00")


async def test_session_type_defaults_to_home_visit(client):
    body = booking()
    del body["session_type"]

    response = await client.post(f"{SESSIONS}/book", json=body)

    assert response.json()["session"]["session_type"] == "home_visit"


async def test_invalid_bookings_are_rejected(client, session_factory):
    unknown_type = await client.post(f"{SESSIONS}/book", json=booking(session_type="clinic"))
    no_contact = await client.post(f"{SESSIONS}/book", json=booking(contact=""))
    no_time = await client.post(f"{SESSIONS}/book", json=booking(preferred_time=None))
    home_visit_without_address = await client.post(f"{SESSIONS}/book", json=booking(address="  "))

    assert unknown_type.status_code == 400
    assert no_contact.status_code == 400
    assert no_time.status_code == 400
    assert home_visit_without_address.status_code == 400
    assert home_visit_without_address.json() == {"error": "An address is required for a home visit"}
    assert await session_count(session_factory) == 0


async def test_online_booking_creates_payment_request(client, gateway):
    session = await book_online(client)

    assert session["instamojo_payment_request_id"]
    assert session["instamojo_payment"]["id"] == session["instamojo_payment_request_id"]
    request = gateway.requests[session["instamojo_payment_request_id"]]
    assert request["amount"] == "1500.00"
    assert request["purpose"] == f"Session #{session['id']}"
    assert request["redirect_url"] == f"https://shop.example.com/booking/success?session_id={session['id']}"
    assert request["webhook"] == "https://api.example.com/api/sessions/instamojo/webhook"


async def test_online_booking_needs_an_email(client, session_factory):
    response = await client.post(f"{SESSIONS}/book", json=booking("instamojo", email=None))

    assert response.status_code == 400
    assert await session_count(session_factory) == 0


async def test_signed_in_booking_uses_account_email(client, make_user):
    user = await make_user(email="meera@example.com")

    session = await book_online(client, headers=auth_headers(user), email=None)

    assert session["user_id"] == user
    assert session["email"] == "meera@example.com"


async def test_gateway_failure_keeps_booking_with_failed_payment(client, session_factory):
    class BrokenGateway(MockGateway):
        async def create_payment_request(self, *args, **kwargs):
            raise PaymentGatewayError("Instamojo unavailable")

    app.dependency_overrides[get_payment_gateway] = lambda: BrokenGateway(webhook_secret="test-private-salt")

    response = await client.post(f"{SESSIONS}/book", json=booking("instamojo"))

    assert response.status_code == 201
    session = response.json()["session"]
    assert session["payment_status"] == "failed"
    assert session["instamojo_payment"] is None
    assert (await load_session(session_factory, session["id"])).payment_status == "failed"


async def test_slow_email_does_not_hold_the_booking_response(client):
    class SlowNotifier(RecordingNotifier):
        def __init__(self):
            super().__init__()
            self.release = asyncio.Event()

        async def session_booked(self, session, recipient):
            await self.release.wait()
            await super().session_booked(session, recipient)

    slow = SlowNotifier()
    app.dependency_overrides[get_notifier] = lambda: slow

    status, body, task = await post_until_response(f"{SESSIONS}/book", booking())

    assert status == 201
    assert slow.calls == []
    slow.release.set()
    await asyncio.wait_for(task, timeout=5)
    assert slow.sent("session_booked") == [("session_booked", body["session"]["id"], "asha@example.com")]


async def test_notification_failure_does_not_fail_the_booking(client, notifier, session_factory):
    notifier.fail = True

    response = await client.post(f"{SESSIONS}/book", json=booking())

    assert response.status_code == 201
    assert await session_count(session_factory) == 1


# --- Webhook and verification ---

async def test_credit_webhook_confirms_session(client, session_factory, notifier):
    session = await book_online(client)

    response = await client.post(
        f"{SESSIONS}/instamojo/webhook",
        json=signed_webhook(session["instamojo_payment_request_id"], amount="1500.00"),
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Webhook processed successfully"}
    stored = await load_session(session_factory, session["id"])
    assert stored.status == "confirmed"
    assert stored.payment_status == "completed"
    assert notifier.sent("session_payment_confirmed") == [
        ("session_payment_confirmed", session["id"], "asha@example.com")
    ]


async def test_duplicate_session_webhook_is_idempotent(client, notifier):
    session = await book_online(client)
    payload = signed_webhook(session["instamojo_payment_request_id"], amount="1500.00")

    await client.post(f"{SESSIONS}/instamojo/webhook", json=payload)
    second = await client.post(f"{SESSIONS}/instamojo/webhook", json=payload)

    assert second.json()["message"] == "Webhook already processed"
    assert len(notifier.sent("session_payment_confirmed")) == 1


async def test_tampered_session_webhook_is_rejected(client, session_factory):
    session = await book_online(client)
    payload = signed_webhook(session["instamojo_payment_request_id"], payment_status="Failed")
    payload["payment_status"] = "Credit"

    response = await client.post(f"{SESSIONS}/instamojo/webhook", json=payload)

    assert response.status_code == 400
    assert (await load_session(session_factory, session["id"])).payment_status == "pending"


async def test_failed_webhook_never_regresses_paid_session(client, session_factory):
    session = await book_online(client)
    request_id = session["instamojo_payment_request_id"]
    await client.post(f"{SESSIONS}/instamojo/webhook", json=signed_webhook(request_id, amount="1500.00"))

    response = await client.post(
        f"{SESSIONS}/instamojo/webhook", json=signed_webhook(request_id, payment_status="Failed")
    )

    assert response.json()["message"] == "Webhook already processed"
    stored = await load_session(session_factory, session["id"])
    assert stored.payment_status == "completed"
    assert stored.status == "confirmed"


async def test_order_webhook_does_not_match_sessions(client):
    session = await book_online(client)

    response = await client.post(
        "/api/orders/instamojo/webhook", json=signed_webhook(session["instamojo_payment_request_id"])
    )

    assert response.json()["message"] == "No order found for this payment request"


async def test_verify_session_payment(client, gateway, session_factory, notifier):
    session = await book_online(client)
    request_id = session["instamojo_payment_request_id"]

    pending = await client.post(
        f"{SESSIONS}/verify-payment", json={"session_id": session["id"], "payment_request_id": request_id}
    )
    payment_id = gateway.complete(request_id)
    verified = await client.post(
        f"{SESSIONS}/verify-payment",
        json={"session_id": session["id"], "payment_request_id": request_id, "payment_id": payment_id},
    )

    assert pending.json()["success"] is False
    assert verified.status_code == 200
    assert verified.json()["success"] is True
    assert verified.json()["session"]["payment_status"] == "completed"
    stored = await load_session(session_factory, session["id"])
    assert stored.instamojo_payment_id == payment_id
    assert len(notifier.sent("session_payment_confirmed")) == 1


async def test_verify_session_payment_checks_ownership_of_request(client):
    first = await book_online(client)
    second = await book_online(client)

    missing = await client.post(f"{SESSIONS}/verify-payment", json={"session_id": first["id"]})
    foreign = await client.post(
        f"{SESSIONS}/verify-payment",
        json={"session_id": first["id"], "payment_request_id": second["instamojo_payment_request_id"]},
    )

    assert missing.status_code == 400
    assert foreign.status_code == 400


# --- Reading ---

async def test_get_session_visibility(client, make_user):
    owner = await make_user(email="owner@example.com")
    other = await make_user(email="other@example.com")
    session = await book_online(client, headers=auth_headers(owner))

    anonymous = await client.get(f"{SESSIONS}/{session['id']}")
    as_owner = await client.get(f"{SESSIONS}/{session['id']}", headers=auth_headers(owner))
    as_other = await client.get(f"{SESSIONS}/{session['id']}", headers=auth_headers(other))
    unknown = await client.get(f"{SESSIONS}/missing")

    assert anonymous.status_code == 200
    assert as_owner.json()["session"]["id"] == session["id"]
    assert as_other.status_code == 404
    assert unknown.status_code == 404


async def test_my_sessions_lists_only_own_bookings(client, make_user):
    user = await make_user()
    other = await make_user(email="other@example.com")
    await book_online(client, headers=auth_headers(user))
    await book_online(client, headers=auth_headers(user), session_type="online_consultation")
    await book_online(client, headers=auth_headers(other))

    response = await client.get(f"{SESSIONS}/my-sessions?limit=1", headers=auth_headers(user))
    anonymous = await client.get(f"{SESSIONS}/my-sessions")

    assert response.status_code == 200
    assert len(response.json()["sessions"]) == 1
    assert response.json()["pagination"] == {"total": 2, "limit": 1, "offset": 0}
    assert anonymous.status_code == 401


# --- Admin ---

async def test_session_admin_routes_require_admin(client, make_user):
    customer = await make_user()

    listing = await client.get(f"{SESSIONS}/admin/all", headers=auth_headers(customer))
    stats = await client.get(f"{SESSIONS}/admin/stats")
    update = await client.put(f"{SESSIONS}/any/status", json={"status": "confirmed"}, headers=auth_headers(customer))

    assert listing.status_code == 403
    assert stats.status_code == 401
    assert update.status_code == 403


async def test_admin_lists_and_filters_sessions(client, make_user):
    admin = await make_user(email="admin@example.com", is_admin=True)
    member = await make_user(email="meera@example.com", name="Meera Iyer")
    await client.post(f"{SESSIONS}/book", json=booking(name="Ravi Kumar", contact="9000000001"))
    await book_online(client, headers=auth_headers(member), session_type="online_consultation")
    headers = auth_headers(admin, is_admin=True)

    everything = await client.get(f"{SESSIONS}/admin/all", headers=headers)
    online = await client.get(f"{SESSIONS}/admin/all?session_type=online_consultation", headers=headers)
    by_phone = await client.get(f"{SESSIONS}/admin/all?search=9000000001", headers=headers)

    assert everything.json()["pagination"]["total"] == 2
    assert online.json()["pagination"]["total"] == 1
    assert online.json()["sessions"][0]["user_name"] == "Meera Iyer"
    assert [s["name"] for s in by_phone.json()["sessions"]] == ["Ravi Kumar"]


async def test_admin_assigns_and_completes_session(client, make_user):
    admin = await make_user(email="admin@example.com", is_admin=True)
    session = (await client.post(f"{SESSIONS}/book", json=booking())).json()["session"]
    headers = auth_headers(admin, is_admin=True)

    assigned = await client.put(
        f"{SESSIONS}/{session['id']}/status",
        json={"status": "confirmed", "assigned_physio_id": "physio-7", "session_notes": "Bring TENS unit"},
        headers=headers,
    )
    completed = await client.put(
        f"{SESSIONS}/{session['id']}/status",
        json={"status": "completed", "payment_status": "completed"},
        headers=headers,
    )

    assert assigned.status_code == 200
    assert assigned.json()["session"]["assigned_physio_id"] == "physio-7"
    assert completed.status_code == 200
    assert completed.json()["session"]["status"] == "completed"
    assert completed.json()["session"]["payment_status"] == "completed"
    assert completed.json()["session"]["session_notes"] == "Bring TENS unit"


async def test_admin_cannot_undo_paid_session(client, make_user, session_factory, monkeypatch):
    admin = await make_user(email="admin@example.com", is_admin=True)
    session = await book_online(client)
    write = SessionRepository.update_fields

    async def payment_lands_first(db, session_id, changes):
        async with session_factory() as other:
            await SessionRepository.transition_payment(other, session_id, True, "MOJO-RACE")
        return await write(db, session_id, changes)

    monkeypatch.setattr(SessionRepository, "update_fields", payment_lands_first)

    response = await client.put(
        f"{SESSIONS}/{session['id']}/status",
        json={"payment_status": "failed"},
        headers=auth_headers(admin, is_admin=True),
    )

    assert response.status_code == 400
    assert (await load_session(session_factory, session["id"])).payment_status == "completed"


async def test_session_stats(client, make_user):
    admin = await make_user(email="admin@example.com", is_admin=True)
    paid = await book_online(client)
    await book_online(client, session_type="online_consultation")
    await client.post(f"{SESSIONS}/book", json=booking())
    await client.post(
        f"{SESSIONS}/instamojo/webhook",
        json=signed_webhook(paid["instamojo_payment_request_id"], amount="1500.00"),
    )

    response = await client.get(f"{SESSIONS}/admin/stats", headers=auth_headers(admin, is_admin=True))

    assert response.status_code == 200
    assert response.json()["stats"] == {
        "total_sessions": 3,
        "pending_sessions": 2,
        "confirmed_sessions": 1,
        "completed_sessions": 0,
        "cancelled_sessions": 0,
        "paid_sessions": 1,
        "total_revenue": "1500.00",
        "home_visits": 2,
        "online_consultations": 1,
    }
