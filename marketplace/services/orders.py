# marketplace/services/orders.py
# Разбиение корзины по магазинам и создание заказов.
# Все заказы корзины и все списания остатков идут одной транзакцией:
# если любой магазин не прошёл, откатываются и заказы, и списания.

import logging
import secrets
import string
import time
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.errors import NotFoundError, PermissionDenied, ValidationError
from marketplace.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from marketplace.models.product import Product, Store
from marketplace.models.user import RoleEnum, User
from marketplace.services import stock
from marketplace.services.shipping import calculate_shipping_fee

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class CartLine:
    product_id: int
    quantity: int
    # цена от клиента не используется, берётся из карточки товара
    price: float | None = None


def _to_base36(value: int) -> str:
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = _BASE36[rem] + out
    return out or "0"


def generate_order_number() -> str:
    """Номер вида BM-<время base36>-<5 случайных символов>, в верхнем регистре."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"{settings.ORDER_NUMBER_PREFIX}-{timestamp}-{suffix}".upper()


def validate_coordinates(lat: float | None, lng: float | None) -> None:
    if lat is not None and not -90 <= lat <= 90:
        raise ValidationError("Invalid coordinates")
    if lng is not None and not -180 <= lng <= 180:
        raise ValidationError("Invalid coordinates")


def _merge_lines(lines: list[CartLine]) -> dict[int, int]:
    """Одинаковые товары в корзине суммируются, порядок первого появления сохраняется."""
    merged: dict[int, int] = {}
    for line in lines:
        if line.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return merged


def create_orders(
    db: Session,
    customer: User,
    lines: list[CartLine],
    delivery_address: str,
    customer_phone: str,
    province: str | None = None,
    delivery_lat: float | None = None,
    delivery_lng: float | None = None,
    notes: str | None = None,
    notifier=None,
) -> list[Order]:
    """Создаёт по одному заказу на каждый магазин корзины и резервирует остатки."""
    if not delivery_address or not customer_phone or not lines:
        raise ValidationError("Missing required fields")
    validate_coordinates(delivery_lat, delivery_lng)

    quantities = _merge_lines(lines)

    # Проверяем всё до первой мутации
    by_store: dict[int, list[tuple[Product, int]]] = {}
    for product_id, qty in quantities.items():
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if not product.is_active:
            raise ValidationError(f"Product {product.name} is not available")
        if product.stock < qty:
            raise ValidationError(f"Insufficient stock for {product.name}")
        by_store.setdefault(product.store_id, []).append((product, qty))

    orders: list[Order] = []
    try:
        for store_id, store_items in by_store.items():
            subtotal = round(sum(product.price * qty for product, qty in store_items), 2)
            shipping_fee = calculate_shipping_fee(province, subtotal)
            order = Order(
                order_number=generate_order_number(),
                customer_id=customer.id,
                store_id=store_id,
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                payment_method="YOCO",
                customer_phone=customer_phone,
                delivery_address=delivery_address,
                delivery_lat=delivery_lat,
                delivery_lng=delivery_lng,
                province=province,
                notes=notes,
                subtotal=subtotal,
                shipping_fee=shipping_fee,
                total=round(subtotal + shipping_fee, 2),
                items=[
                    OrderItem(product_id=product.id, quantity=qty, price=product.price)
                    for product, qty in store_items
                ],
            )
            db.add(order)
            for product, qty in store_items:
                stock.reserve(db, product.id, qty)
            orders.append(order)
        db.commit()
    except Exception:
        db.rollback()
        logger.warning(f"Order creation rolled back for customer {customer.id}")
        raise

    logger.info(
        f"Created {len(orders)} order(s) for customer {customer.id}: "
        f"{', '.join(o.order_number for o in orders)}"
    )
    if notifier is not None:
        for order in orders:
            notifier.order_created(order)
    return orders


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_for_user(db: Session, order_id: int, user: User) -> Order:
    """Заказ виден покупателю, продавцу магазина, назначенному курьеру и админу."""
    order = get_order(db, order_id)
    has_access = (
        order.customer_id == user.id
        or order.store.vendor_id == user.id
        or order.driver_id == user.id
        or user.role == RoleEnum.admin
    )
    if not has_access:
        raise PermissionDenied("Access denied")
    return order


def customer_orders(db: Session, customer: User) -> list[Order]:
    stmt = (
        select(Order)
        .where(Order.customer_id == customer.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(db.scalars(stmt))


def vendor_orders(db: Session, vendor: User) -> list[Order]:
    stmt = (
        select(Order)
        .join(Store, Store.id == Order.store_id)
        .where(Store.vendor_id == vendor.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(db.scalars(stmt))
