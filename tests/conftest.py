import os

# Settings are read at import time, so the test environment has to be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PAYMONGO_SECRET_KEY"] = "sk_test_dummy"
os.environ["PAYMONGO_WEBHOOK_SECRET"] = "whsk_test_dummy"
os.environ["FRONTEND_URL"] = "http://shop.test"

from decimal import Decimal
from typing import Callable, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dentalshop.database import Base, get_db
from dentalshop.main import app as fastapi_app
from dentalshop.models.product import Product, ProductInclusion
from dentalshop.models.users import User
from dentalshop.schemas.cart import CartLine, SelectedInclusion
from dentalshop.schemas.order import CustomerInfo
from dentalshop.schemas.payment import CheckoutSessionInfo, PaymentVerification
from dentalshop.utils.hashing import get_password_hash
from dentalshop.utils.paymongo_client import get_payment_provider
from dentalshop.utils.tokenJWT import create_access_token

PASSWORD = "secret-pass-123"


class FakeProvider:
    """Stand-in for PaymongoClient that records calls and returns canned answers."""

    def __init__(self):
        self.checkout_calls: List[dict] = []
        self.retrieve_calls: List[str] = []
        self.checkout_error: Optional[Exception] = None
        self.retrieve_error: Optional[Exception] = None
        self.status = "succeeded"
        self.amount_minor: Optional[int] = None
        self.metadata: dict = {}
        # Runs while the provider is "thinking", e.g. to let a competing request settle the order
        self.on_retrieve: Optional[Callable[[str], None]] = None

    async def create_checkout_session(self, attributes: dict) -> CheckoutSessionInfo:
        self.checkout_calls.append(attributes)
        if self.checkout_error:
            raise self.checkout_error
        return CheckoutSessionInfo(
            id=f"cs_test_{len(self.checkout_calls)}",
            checkout_url=f"https://checkout.paymongo.test/cs_test_{len(self.checkout_calls)}",
            status="active",
        )

    async def retrieve_payment(self, identifier: str) -> PaymentVerification:
        self.retrieve_calls.append(identifier)
        if self.retrieve_error:
            raise self.retrieve_error
        if self.on_retrieve:
            self.on_retrieve(identifier)
        return PaymentVerification(
            reference_id=identifier,
            status=self.status,
            succeeded=self.status in {"succeeded", "paid"},
            payment_intent_id="pi_test_1",
            amount_minor=self.amount_minor,
            metadata=self.metadata,
        )


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def app(db_session, fake_provider):
    def _override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[get_payment_provider] = lambda: fake_provider
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


def _make_user(db, email: str, role: str, name: str) -> User:
    user = User(email=email, password_hash=get_password_hash(PASSWORD), role=role, name=name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def customer(db_session) -> User:
    return _make_user(db_session, "maria@clinic.ph", "customer", "Maria Santos")


@pytest.fixture()
def other_customer(db_session) -> User:
    return _make_user(db_session, "jose@clinic.ph", "customer", "Jose Cruz")


@pytest.fixture()
def admin(db_session) -> User:
    return _make_user(db_session, "admin@dentalshop.ph", "admin", "Admin")


def _headers(user: User) -> dict:
    token = create_access_token({"sub": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def customer_headers(customer) -> dict:
    return _headers(customer)


@pytest.fixture()
def other_headers(other_customer) -> dict:
    return _headers(other_customer)


@pytest.fixture()
def admin_headers(admin) -> dict:
    return _headers(admin)


@pytest.fixture()
def make_product(db_session):
    def _make(name="Dental Chair DC-500", price="150000.00", stock=5, category="Dental Chairs",
              inclusions=(), image_url="/images/dc-500.jpg", featured=False) -> Product:
        product = Product(
            name=name,
            price=Decimal(price),
            stock=stock,
            category=category,
            image_url=image_url,
            featured=featured,
            inclusions=[ProductInclusion(name=n, price=Decimal(p)) for n, p in inclusions],
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make


@pytest.fixture()
def customer_info() -> CustomerInfo:
    return CustomerInfo(name="Maria Santos", address="12 Rizal St, Makati", mobile="09171234567", zip_code="1200")


def line_for(product: Product, quantity: int = 1, inclusions=None) -> CartLine:
    """Cart line quoting the product's current catalog price."""
    chosen = product.inclusions if inclusions is None else inclusions
    return CartLine(
        product_id=product.id,
        name=product.name,
        unit_price=Decimal(product.price),
        quantity=quantity,
        image=product.image_url,
        selected_inclusions=[
            SelectedInclusion(inclusion_id=inc.id, name=inc.name, description=inc.description, price=Decimal(inc.price))
            for inc in chosen
        ],
    )


@pytest.fixture()
def cart_line():
    return line_for


@pytest.fixture()
def user_password() -> str:
    return PASSWORD
