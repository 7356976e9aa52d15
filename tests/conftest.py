from types import SimpleNamespace

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from errors import PaymentError
from main import create_app
from payment import MidtransGateway, PaymentTransaction, notification_signature
from rate_limit import RateLimiter, SlidingWindowRateLimiter
from schemas import Product, User, Variant
from security import hash_password

SERVER_KEY = "test-server-key"

SHIPPING = {
    "name": "Budi Santoso",
    "email": "budi@example.com",
    "phone": "081234567890",
    "address": "Jl. Merdeka No. 10, Menteng",
    "city": "Jakarta",
    "postalCode": "10110",
}


class FakeGateway(MidtransGateway):
    def __init__(self, settings):
        super().__init__(settings)
        self.requests = []
        self.fail = False

    def create_transaction(self, order):
        if self.fail:
            raise PaymentError("Payment creation failed")
        self.requests.append(self.transaction_params(order))
        return PaymentTransaction(
            token=f"snap-{order['id']}",
            redirect_url=f"https://app.sandbox.midtrans.com/snap/v4/redirection/{order['id']}",
        )


def make_settings(**overrides):
    values = dict(
        environment="test",
        jwt_access_secret="test-access",
        jwt_refresh_secret="test-refresh",
        admin_secret_key="let-me-in",
        midtrans_server_key=SERVER_KEY,
        midtrans_client_key="test-client-key",
        rate_limit_requests=100,
    )
    values.update(overrides)
    return Settings(**values)


def build_client(settings, db, gateway=None, limiter=None):
    app = create_app(
        settings,
        database=db,
        payment_gateway=gateway or FakeGateway(settings),
        rate_limiter=limiter or RateLimiter(SlidingWindowRateLimiter(settings.rate_limit_requests, 60)),
    )
    return TestClient(app)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def db():
    return Database(mongomock.MongoClient(), "storefront_test")


@pytest.fixture
def gateway(settings):
    return FakeGateway(settings)


@pytest.fixture
def client(settings, db, gateway):
    with build_client(settings, db, gateway) as c:
        yield c


@pytest.fixture
def catalog(db):
    product_id = db.create_document(
        "product", Product(name="Basic Tee", price=150000, stock=3, category="shirts")
    )
    variant_id = db.create_document(
        "variant", Variant(product_id=product_id, name="L", price=175000, stock=1)
    )
    other_id = db.create_document("product", Product(name="Canvas Tote", price=90000, stock=10))
    return SimpleNamespace(product_id=product_id, variant_id=variant_id, other_id=other_id)


def create_user(db, email="buyer@example.com", password="secret123", role="USER", name="Buyer"):
    user = User(name=name, email=email, password_hash=hash_password(password), role=role)
    return db.create_document("user", user)


def auth_header(client, user_id, role="USER"):
    access_token, _ = client.app.state.tokens.issue(user_id, role)
    return {"Authorization": f"Bearer {access_token}"}


def order_payload(*items):
    return {"items": list(items), "shippingDetails": dict(SHIPPING), "paymentMethod": "bank_transfer"}


def signed_notification(order_id, transaction_status, gross_amount="150000.00", **extra):
    body = {
        "order_id": order_id,
        "status_code": "200",
        "gross_amount": gross_amount,
        "transaction_status": transaction_status,
        "transaction_id": f"tx-{order_id}",
    }
    body.update(extra)
    body["signature_key"] = notification_signature(order_id, "200", gross_amount, SERVER_KEY)
    return body
