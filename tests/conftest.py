import itertools
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.actors import build_actor
from core.db import Base, get_db
from core import config as core_config
from models.order import Order, OrderStatus
from models.order_item import OrderItem
from models.product import Product
from models.rider import Rider
from models.user import User, UserRole
from security.password import hash_password
from security import jwt as jwt_utils
from services import notifications as notification_service

# bcrypt is slow, hash once for every fixture user
PASSWORD = "testpass123"
PASSWORD_HASH = hash_password(PASSWORD)

_phones = itertools.count(100000)


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.REFRESH_SECRET = "test-refresh"
    core_config.settings.TESTING = True
    core_config.settings.TWILIO_ACCOUNT_SID = ""
    core_config.settings.TWILIO_AUTH_TOKEN = ""
    core_config.settings.TWILIO_PHONE_NUMBER = ""
    core_config.settings.AI_GATEWAY_API_KEY = ""
    yield


@pytest.fixture()
def db_session_override():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


@pytest.fixture()
def db(db_session_override):
    return db_session_override


@pytest.fixture(autouse=True)
def sent_sms(monkeypatch):
    """Capture every SMS handed to the dispatcher instead of queueing it."""
    sent = []

    def _fake_dispatch(to, message, event_type, order_id=None):
        sent.append({"to": to, "message": message, "event_type": event_type, "order_id": order_id})

    monkeypatch.setattr(notification_service, "dispatch_sms", _fake_dispatch)
    return sent


@pytest.fixture()
def client(db_session_override):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_user(db):
    def _make(role=UserRole.BUYER, name="Test User", **kwargs):
        role = role.value if isinstance(role, UserRole) else role
        user = User(
            name=name,
            phone=kwargs.pop("phone", f"+255712{next(_phones)}"),
            password_hash=PASSWORD_HASH,
            role=role,
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def buyer(make_user):
    return make_user(UserRole.BUYER, name="Asha Buyer")


@pytest.fixture()
def seller(make_user):
    return make_user(
        UserRole.RETAIL,
        name="Juma",
        business_name="Afya Pharmacy",
        address="Kariakoo, Dar es Salaam",
        latitude=-6.8190,
        longitude=39.2800,
    )


@pytest.fixture()
def other_seller(make_user):
    return make_user(UserRole.WHOLESALE, name="Neema", business_name="Neema Wholesale", address="Mbezi")


@pytest.fixture()
def admin(make_user):
    return make_user(UserRole.ADMIN, name="Admin")


@pytest.fixture()
def make_rider(db, make_user):
    def _make(name="Baraka Rider", is_available=True):
        user = make_user(UserRole.RIDER, name=name)
        rider = Rider(user_id=user.id, name=user.name, phone=user.phone, is_available=is_available)
        db.add(rider)
        db.commit()
        db.refresh(rider)
        return rider

    return _make


@pytest.fixture()
def rider(make_rider):
    return make_rider()


@pytest.fixture()
def product(db, seller):
    product = Product(seller_id=seller.id, name="Paracetamol 500mg", price=Decimal("10000.00"), stock=10)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture()
def make_order(db, buyer, seller, product):
    """Insert an order the way checkout leaves it, optionally already advanced to ``status``."""
    counter = itertools.count(1001)

    def _make(status=OrderStatus.PENDING_PHARMACY_CONFIRMATION, quantity=2, rider=None, delivery_fee="1000"):
        product.stock -= quantity
        unit_price = Decimal(str(product.price))
        order = Order(
            order_number=f"ORD-{next(counter)}",
            buyer_id=buyer.id,
            seller_id=seller.id,
            rider_id=rider.id if rider else None,
            status=status.value if isinstance(status, OrderStatus) else status,
            total_amount=unit_price * quantity,
            delivery_fee=Decimal(delivery_fee),
            delivery_address="Sinza, Dar es Salaam",
            delivery_phone=buyer.phone,
        )
        db.add(order)
        db.flush()
        db.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            unit_price=unit_price,
            total=unit_price * quantity,
        ))
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture()
def actor_for(db):
    def _actor(user):
        return build_actor(db, user)

    return _actor


@pytest.fixture()
def headers_for():
    def _headers(user):
        token = jwt_utils.create_access_token(str(user.id), user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
