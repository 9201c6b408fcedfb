import os

# Keep the module-level engine away from any real database
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_delivery.db")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-secret")
os.environ.setdefault("RETRY_DELAY", "0")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from delivery_service.api.admin import get_session_factory
from delivery_service.api.deps import get_fanout
from delivery_service.database import build_engine, get_db, init_db
from delivery_service.main import app
from delivery_service.models import Coupon, Courier, OptionChoice, OptionGroup, Product
from delivery_service.models.order import PaymentMethod
from delivery_service.schemas.order import LineItemCreate, OrderCreate
from delivery_service.security import Principal, Role
from delivery_service.services.notification_fanout import AuditLogBackfill, NotificationFanout, NotificationHub
from delivery_service.services.order_service import OrderService

MERCHANT_ID = "merchant-1"
OTHER_MERCHANT_ID = "merchant-2"


class RecordingPushDispatcher:
    """Collects events handed to push instead of sending them"""

    def __init__(self):
        self.events = []

    def dispatch(self, event):
        self.events.append(event)

    def shutdown(self, wait=True):
        pass

    def types_for(self, order_id):
        return [e.event_type.value for e in self.events if e.order_id == order_id]


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'delivery.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def push():
    return RecordingPushDispatcher()


@pytest.fixture
def hub(session_factory):
    return NotificationHub(backfill=AuditLogBackfill(session_factory))


@pytest.fixture
def fanout(hub, push):
    return NotificationFanout(hub, push)


@pytest.fixture
def client(session_factory, fanout):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fanout] = lambda: fanout
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


# Principals

def merchant_principal(merchant_id=MERCHANT_ID):
    return Principal(id=f"owner-{merchant_id}", roles=frozenset({Role.MERCHANT_OWNER}), merchant_id=merchant_id)


def courier_principal_for(courier):
    return Principal(id=courier.principal_id, roles=frozenset({Role.COURIER}), courier_id=courier.id)


def merchant_headers(merchant_id=MERCHANT_ID):
    return {
        "X-Principal-Id": f"owner-{merchant_id}",
        "X-Principal-Roles": "merchant_owner",
        "X-Merchant-Id": merchant_id,
    }


def courier_headers(courier_id, principal_id=None):
    return {
        "X-Principal-Id": principal_id or f"user-{courier_id}",
        "X-Principal-Roles": "courier",
        "X-Courier-Id": courier_id,
    }


def admin_headers():
    return {"X-Principal-Id": "admin-1", "X-Principal-Roles": "super_admin"}


# Seed data

@pytest.fixture
def make_product(db):
    def _make(price="20.00", merchant_id=MERCHANT_ID, groups=()):
        """groups: (name, selection_type, is_required, min, max, [(choice_name, delta), ...])"""
        product = Product(merchant_id=merchant_id, name="Pizza", price=Decimal(price))
        for position, (name, selection_type, is_required, min_sel, max_sel, choices) in enumerate(groups):
            group = OptionGroup(
                name=name,
                selection_type=selection_type,
                is_required=is_required,
                min_selections=min_sel,
                max_selections=max_sel,
                position=position,
            )
            group.choices = [
                OptionChoice(name=choice_name, price_delta=Decimal(delta), position=index)
                for index, (choice_name, delta) in enumerate(choices)
            ]
            product.option_groups.append(group)
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def make_courier(db):
    def _make(merchant_id=MERCHANT_ID, name="Rider", **overrides):
        courier = Courier(merchant_id=merchant_id, name=name, **overrides)
        db.add(courier)
        db.flush()
        if courier.principal_id is None:
            courier.principal_id = f"user-{courier.id}"
        db.commit()
        return courier
    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", merchant_id=MERCHANT_ID, discount_type="percentage", discount_value="10",
              **overrides):
        coupon = Coupon(
            merchant_id=merchant_id,
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            **overrides,
        )
        db.add(coupon)
        db.commit()
        return coupon
    return _make


@pytest.fixture
def checkout(db, fanout, make_product):
    """Create a pending order through the checkout service"""
    def _checkout(product=None, quantity=1, payment_method=PaymentMethod.CASH, delivery_fee="5.00",
                  coupon_code=None, principal=None, **overrides):
        product = product or make_product()
        order_data = OrderCreate(
            merchant_id=product.merchant_id,
            customer_name="Ana",
            customer_phone="+5511999990000",
            payment_method=payment_method,
            delivery_fee=Decimal(delivery_fee),
            coupon_code=coupon_code,
            items=[LineItemCreate(product_id=product.id, quantity=quantity)],
            **overrides,
        )
        return OrderService(db, fanout).create_order(order_data, principal)
    return _checkout
