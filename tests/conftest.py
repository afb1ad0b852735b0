# tests/conftest.py
# Общие фикстуры: отдельная SQLite база на каждый тест, фабрики данных,
# TestClient с подменой сессии и уведомлений.
import base64
import os

# переменные окружения нужны до первого импорта marketplace.core.config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault(
    "PAYMENT_WEBHOOK_SECRET",
    "whsec_" + base64.b64encode(b"marketplace-test-webhook-secret!").decode(),
)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from marketplace.core import security
from marketplace.core.rate_limit import limiter
from marketplace.db.base import Base
from marketplace.db.session import make_engine
from marketplace.main import app
from marketplace.models.driver import DriverProfile
from marketplace.models.order import OrderStatus, PaymentStatus
from marketplace.models.product import Product, Store
from marketplace.models.user import RoleEnum, User
from marketplace.services import orders as order_service
from marketplace.services.notifications import get_notifier


class RecordingNotifier:
    """Запоминает события вместо отправки SMS."""

    def __init__(self):
        self.calls = []

    def _record(self, name, order):
        self.calls.append((name, order.id))

    def order_created(self, order):
        self._record("order_created", order)

    def order_confirmed(self, order):
        self._record("order_confirmed", order)

    def driver_assigned(self, order):
        self._record("driver_assigned", order)

    def out_for_delivery(self, order):
        self._record("out_for_delivery", order)

    def order_delivered(self, order):
        self._record("order_delivered", order)

    def driver_approved(self, profile):
        self._record("driver_approved", profile)

    def names(self):
        return [name for name, _ in self.calls]


class Factory:
    """Быстрое создание пользователей, магазинов, товаров и заказов."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, role=RoleEnum.customer, full_name=None, password=None, approved=True):
        """Курьер по умолчанию сразу получает одобренную анкету."""
        n = self._next()
        user = User(
            phone=f"+2782000{n:04d}",
            full_name=full_name or f"{role.value.capitalize()} {n}",
            role=role,
            hashed_password=security.get_password_hash(password) if password else None,
        )
        self.db.add(user)
        self.db.commit()
        if role == RoleEnum.driver:
            self.driver_profile(user, approved=approved)
        return user

    def driver_profile(self, user, approved=True, is_active=True):
        n = self._next()
        profile = DriverProfile(
            user_id=user.id,
            name=user.full_name or f"Driver {n}",
            id_number=f"{9001015000000 + n}",
            license_number=f"DL{n:06d}",
            vehicle_type="motorbike",
            vehicle_reg=f"GP {n:03d}-123",
            bank_name="FNB",
            account_number=f"62{n:08d}",
            branch_code="250655",
            is_approved=approved,
            is_active=is_active,
        )
        self.db.add(profile)
        self.db.commit()
        return profile

    def store(self, vendor=None, latitude=-26.2041, longitude=28.0473):
        vendor = vendor or self.user(RoleEnum.vendor)
        n = self._next()
        store = Store(
            vendor_id=vendor.id,
            name=f"Store {n}",
            address=f"{n} Main Road, Johannesburg",
            phone=f"+2711000{n:04d}",
            latitude=latitude,
            longitude=longitude,
        )
        self.db.add(store)
        self.db.commit()
        return store

    def product(self, store=None, price=100.0, stock=10, is_active=True):
        store = store or self.store()
        product = Product(
            store_id=store.id,
            name=f"Product {self._next()}",
            price=price,
            stock=stock,
            is_active=is_active,
        )
        self.db.add(product)
        self.db.commit()
        return product

    def order(self, customer=None, products=None, quantity=1, province="GAUTENG",
              delivery_lat=-26.1076, delivery_lng=28.0567):
        customer = customer or self.user(RoleEnum.customer)
        products = products or [self.product()]
        lines = [order_service.CartLine(product_id=p.id, quantity=quantity) for p in products]
        created = order_service.create_orders(
            self.db,
            customer,
            lines,
            delivery_address="12 Jan Smuts Ave, Rosebank",
            customer_phone=customer.phone,
            province=province,
            delivery_lat=delivery_lat,
            delivery_lng=delivery_lng,
        )
        return created[0]

    def set_state(self, order, status, payment_status=None, driver=None, checkout_id=None):
        """Переводит заказ в нужное состояние напрямую, в обход машины состояний."""
        order.status = status
        if payment_status is not None:
            order.payment_status = payment_status
        if driver is not None:
            order.driver_id = driver.id
        if checkout_id is not None:
            order.checkout_id = checkout_id
        self.db.commit()
        self.db.refresh(order)
        return order

    def ready_order(self, **kwargs):
        """Оплаченный заказ в статусе READY без курьера."""
        order = self.order(**kwargs)
        return self.set_state(order, OrderStatus.READY, PaymentStatus.PAID)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'marketplace.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(session_factory, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[security.get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.reset()


def auth_headers(user):
    token = security.create_access_token(subject=str(user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers


@pytest.fixture
def fetch(db):
    """Свежая копия строки из БД (после изменений из других сессий)."""
    def _fetch(model, pk):
        db.expire_all()
        return db.get(model, pk)
    return _fetch
