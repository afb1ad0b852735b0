# marketplace/services/order_state.py
# Машина состояний заказа.
#
# PENDING -> CONFIRMED -> PREPARING -> READY -> OUT_FOR_DELIVERY -> DELIVERED
# PENDING -> CANCELLED
#
# Каждый переход проверяет: кто его делает, из какого статуса, и для
# DELIVERED наличие подтверждения доставки. Запись идёт условным UPDATE
# по текущему статусу, так что два параллельных перехода из одного
# состояния не пройдут оба.

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.core.errors import ConflictError, PermissionDenied, ValidationError
from marketplace.db.base import utcnow
from marketplace.models.order import (
    DeliveryProof,
    Order,
    OrderStatus,
    PaymentStatus,
    TERMINAL_STATUSES,
)
from marketplace.models.user import RoleEnum, User
from marketplace.services import stock

logger = logging.getLogger(__name__)


class ActorKind(str, enum.Enum):
    SYSTEM = "system"
    VENDOR = "vendor"
    DRIVER = "driver"
    ADMIN = "admin"
    CUSTOMER = "customer"


_ROLE_TO_ACTOR = {
    RoleEnum.vendor: ActorKind.VENDOR,
    RoleEnum.driver: ActorKind.DRIVER,
    RoleEnum.admin: ActorKind.ADMIN,
    RoleEnum.customer: ActorKind.CUSTOMER,
}


@dataclass(frozen=True)
class Actor:
    kind: ActorKind
    user_id: int | None = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(ActorKind.SYSTEM)

    @classmethod
    def for_user(cls, user: User) -> "Actor":
        return cls(_ROLE_TO_ACTOR[user.role], user.id)


@dataclass
class DeliveryProofData:
    photo_url: str
    notes: str | None = None


# (из, в) -> единственный тип участника, которому разрешён переход.
# Админ может переводить заказ из любого нетерминального статуса.
TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED): ActorKind.SYSTEM,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): ActorKind.SYSTEM,
    (OrderStatus.CONFIRMED, OrderStatus.PREPARING): ActorKind.VENDOR,
    (OrderStatus.PREPARING, OrderStatus.READY): ActorKind.VENDOR,
    (OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY): ActorKind.DRIVER,
    (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED): ActorKind.DRIVER,
}


def authorize(order: Order, target: OrderStatus, actor: Actor, proof: DeliveryProofData | None = None) -> None:
    """Бросает ошибку, если actor не может перевести order в target."""
    current = order.status
    if current in TERMINAL_STATUSES:
        raise ConflictError(f"Order is already {current.value}")
    if target == current:
        raise ConflictError(f"Order is already {current.value}")

    if actor.kind != ActorKind.ADMIN:
        required = TRANSITIONS.get((current, target))
        if required is None:
            raise ConflictError(f"Cannot change order status from {current.value} to {target.value}")
        if actor.kind != required:
            raise PermissionDenied(f"Only {required.value} can move an order to {target.value}")
        if actor.kind == ActorKind.VENDOR and order.store.vendor_id != actor.user_id:
            raise PermissionDenied("Access denied")
        if actor.kind == ActorKind.DRIVER and order.driver_id != actor.user_id:
            raise PermissionDenied("This order is not assigned to you")

    if target == OrderStatus.DELIVERED and (proof is None or not proof.photo_url):
        raise ValidationError("Delivery proof photo is required")


def _require_admin_for_payment(actor: Actor) -> None:
    if actor.kind != ActorKind.ADMIN:
        raise PermissionDenied("Only admin can change payment status")


def transition(
    db: Session,
    order: Order,
    target: OrderStatus,
    actor: Actor,
    proof: DeliveryProofData | None = None,
    notifier=None,
    payment_status: PaymentStatus | None = None,
) -> Order:
    """Переводит заказ в target.

    payment_status (только админ) пишется тем же UPDATE, что и статус:
    либо применяются оба изменения, либо ни одного.
    """
    if payment_status is not None:
        _require_admin_for_payment(actor)
    authorize(order, target, actor, proof)

    current = order.status
    now = utcnow()
    values = {"status": target, "updated_at": now}
    if payment_status is not None:
        values["payment_status"] = payment_status
    if target == OrderStatus.CONFIRMED:
        values["confirmed_at"] = now
    elif target == OrderStatus.DELIVERED:
        values["completed_at"] = now

    try:
        if target == OrderStatus.DELIVERED:
            # подтверждение пишется до перехода, в той же транзакции
            db.add(DeliveryProof(order_id=order.id, photo_url=proof.photo_url, notes=proof.notes))
            db.flush()
        result = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("Order status was changed by another request")
        if target == OrderStatus.CANCELLED:
            stock.release_order(db, order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(f"Order {order.order_number}: {current.value} -> {target.value} by {actor.kind.value}")
    if payment_status is not None:
        logger.warning(f"Order {order.order_number}: payment status set to {payment_status.value} by admin {actor.user_id}")

    if notifier is not None:
        if target == OrderStatus.OUT_FOR_DELIVERY:
            notifier.out_for_delivery(order)
        elif target == OrderStatus.DELIVERED:
            notifier.order_delivered(order)
    return order


def override_payment_status(db: Session, order: Order, payment_status: PaymentStatus, actor: Actor) -> Order:
    """Ручная правка статуса оплаты, только для админа. Остатки не трогает."""
    _require_admin_for_payment(actor)
    previous = order.payment_status
    order.payment_status = payment_status
    order.updated_at = utcnow()
    db.commit()
    db.refresh(order)
    logger.warning(
        f"Order {order.order_number}: payment status overridden "
        f"{previous.value} -> {payment_status.value} by admin {actor.user_id}"
    )
    return order
