# marketplace/services/delivery.py
# Назначение курьера на заказ. Захват заказа делается одним условным
# UPDATE "назначить, если ещё никто не назначен", без отдельного чтения.

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.errors import ConflictError, NotFoundError
from marketplace.db.base import utcnow
from marketplace.models.order import Order, OrderStatus, PaymentStatus
from marketplace.models.user import User
from marketplace.services import drivers

logger = logging.getLogger(__name__)


def list_available(db: Session) -> list[Order]:
    """Готовые, оплаченные и никем не взятые заказы, старые первыми."""
    stmt = (
        select(Order)
        .where(
            Order.status == OrderStatus.READY,
            Order.driver_id.is_(None),
            Order.payment_status == PaymentStatus.PAID,
        )
        .order_by(Order.created_at.asc(), Order.id.asc())
    )
    return list(db.scalars(stmt))


def accept(db: Session, order_id: int, driver: User, notifier=None) -> Order:
    drivers.ensure_can_deliver(db, driver)
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    result = db.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.status == OrderStatus.READY,
            Order.payment_status == PaymentStatus.PAID,
            Order.driver_id.is_(None),
        )
        .values(
            driver_id=driver.id,
            estimated_time=settings.DEFAULT_DELIVERY_MINUTES,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(order)
        if order.driver_id is not None:
            raise ConflictError("Order already assigned to another driver")
        raise ConflictError("Order is not ready for delivery")
    db.commit()

    db.refresh(order)
    logger.info(f"Order {order.order_number} accepted by driver {driver.id}")
    if notifier is not None:
        notifier.driver_assigned(order)
    return order


def my_deliveries(db: Session, driver: User) -> list[Order]:
    stmt = (
        select(Order)
        .where(Order.driver_id == driver.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(db.scalars(stmt))
