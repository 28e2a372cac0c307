# tests/conftest.py

import asyncio
import json
import os

# Configure the app for tests before anything reads settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["INSTAMOJO_PRIVATE_SALT"] = "test-private-salt"
os.environ["PAYMENT_GATEWAY"] = "mock"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["OTLP_ENDPOINT"] = ""
os.environ["FRONTEND_URL"] = "https://shop.example.com"
os.environ["BACKEND_URL"] = "https://api.example.com"

from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from main import app
from shared.config.database import Base, build_engine, get_db
from shared.security import create_access_token
from services.auth_service.models import User
from services.notification_service.notifier import get_notifier
from services.payment_service.dependencies import get_payment_gateway
from services.payment_service.mock import MockGateway
from services.payment_service.signature import compute_mac
from services.product_service.models import Product

TEST_SALT = "test-private-salt"


class RecordingNotifier:
    """Stands in for EmailNotifier; records what would have been sent."""

    def __init__(self):
        self.calls = []
        self.fail = False

    def _record(self, kind, record, recipient):
        if self.fail:
            raise RuntimeError("SMTP connection refused")
        self.calls.append((kind, record.id, recipient))

    async def order_placed(self, order, recipient):
        self._record("order_placed", order, recipient)

    async def payment_confirmed(self, order, recipient):
        self._record("payment_confirmed", order, recipient)

    async def session_booked(self, session, recipient):
        self._record("session_booked", session, recipient)

    async def session_payment_confirmed(self, session, recipient):
        self._record("session_payment_confirmed", session, recipient)

    def sent(self, kind):
        return [call for call in self.calls if call[0] == kind]


# File-backed SQLite so concurrent sessions really use separate connections
@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def gateway():
    return MockGateway(webhook_secret=TEST_SALT)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def client(session_factory, gateway, notifier):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_product(session_factory):
    async def _make(name="Knee Brace", price="500.00", stock=5, is_active=True, **extra):
        async with session_factory() as session:
            product = Product(
                name=name,
                price=Decimal(price),
                stock_quantity=stock,
                is_active=is_active,
                **extra,
            )
            session.add(product)
            await session.commit()
            return product.id
    return _make


@pytest.fixture
def make_user(session_factory):
    async def _make(email="buyer@example.com", name="Asha Rao", is_admin=False):
        async with session_factory() as session:
            user = User(email=email, name=name, phone="9876543210",
                        hashed_password="not-a-real-hash", is_admin=is_admin)
            session.add(user)
            await session.commit()
            return user.id
    return _make


@pytest.fixture
def stock_of(session_factory):
    async def _stock(product_id):
        async with session_factory() as session:
            product = await session.get(Product, product_id)
            return product.stock_quantity
    return _stock


def auth_headers(user_id, is_admin=False):
    token = create_access_token({"sub": user_id, "is_admin": is_admin})
    return {"Authorization": f"Bearer {token}"}


def shipping_address(**overrides):
    address = {
        "name": "Asha Rao",
        "email": "asha@example.com",
        "phone": "9876543210",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
    }
    address.update(overrides)
    return address


def signed_webhook(payment_request_id, payment_status="Credit", amount="1000.00", **fields):
    payload = {
        "payment_id": "MOJO5a06005J21512197",
        "payment_request_id": payment_request_id,
        "payment_status": payment_status,
        "buyer_name": "Asha Rao",
        "buyer_email": "asha@example.com",
        "buyer_phone": "9876543210",
        "amount": amount,
        "currency": "INR",
        "fees": "19.00",
    }
    payload.update(fields)
    payload["mac"] = compute_mac(payload, TEST_SALT)
    return payload


async def post_until_response(path, body):
    """
    POST straight to the ASGI app and return as soon as the response has been
    sent, while the app task may still be running background work.

    httpx's ASGITransport only returns once the app call finishes, which hides
    whether the client was kept waiting on tasks that run after the response.
    """
    payload = json.dumps(body).encode()
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [
            (b"host", b"test"),
            (b"content-type", b"application/json"),
            (b"content-length", str(len(payload)).encode()),
        ],
        "client": ("127.0.0.1", 50000),
        "server": ("test", 80),
    }
    pending = [{"type": "http.request", "body": payload, "more_body": False}]
    response = {"status": None, "body": b""}
    sent = asyncio.Event()

    async def receive():
        if pending:
            return pending.pop(0)
        await sent.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        if message["type"] == "http.response.start":
            response["status"] = message["status"]
        elif message["type"] == "http.response.body":
            response["body"] += message.get("body", b"")
            if not message.get("more_body", False):
                sent.set()

    task = asyncio.create_task(app(scope, receive, send))
    await asyncio.wait_for(sent.wait(), timeout=5)
    return response["status"], json.loads(response["body"]), task
