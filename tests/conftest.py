from decimal import Decimal

import pytest

from storefront.app import create_app
from storefront.common import database
from storefront.common.config import settings
from storefront.payments.gateway import PaymentCheck, PaymentInit


class FakeGateway:
    """Stands in for CinetPayClient; records calls and replays canned answers."""

    def __init__(self):
        self.init_result = PaymentInit(
            ok=True,
            code="201",
            message="CREATED",
            payment_url="https://checkout.cinetpay.com/payment/abc123",
            payment_token="abc123",
        )
        self.check_result = PaymentCheck(ok=True, code="00", status="ACCEPTED", amount="3500", currency="XOF")
        self.init_error = None
        self.check_error = None
        self.init_calls = []
        self.check_calls = []
        self.closed = False

    async def create_payment(self, **kwargs):
        self.init_calls.append(kwargs)
        if self.init_error is not None:
            raise self.init_error
        return self.init_result

    async def check_payment(self, transaction_id):
        self.check_calls.append(transaction_id)
        if self.check_error is not None:
            raise self.check_error
        return self.check_result

    async def close(self):
        self.closed = True


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
async def app(tmp_path, monkeypatch, gateway):
    monkeypatch.setattr(settings, "DB_URL", f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    monkeypatch.setattr(settings, "SESSION_BACKEND", "memory")
    monkeypatch.setattr(settings, "SEED_SAMPLE_DATA", False)
    monkeypatch.setattr(settings, "KAFKA_ENABLED", False)
    monkeypatch.setattr(settings, "CINETPAY_SECRET_KEY", "")
    monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "https://shop.example")
    quart_app = create_app()
    quart_app.extensions["payment_gateway"] = gateway
    async with quart_app.test_app() as test_app:
        yield test_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_product():
    async def _make(name="Beurre de Karité", price="10.00", stock=20, **extra):
        fields = {"name": name, "description": "", "price": Decimal(price), "stock": stock, "images": []}
        fields.update(extra)
        return await database.create_product(**fields)

    return _make


async def register(client, email="awa@example.com", name="Awa Traoré", password="secret123"):
    return await client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": password, "password_confirmation": password},
    )


async def login(client, email="awa@example.com", password="secret123"):
    return await client.post("/api/auth/login", json={"email": email, "password": password})
