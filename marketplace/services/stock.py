# marketplace/services/stock.py
# Учёт остатков. Резерв и возврат выполняются одним условным UPDATE,
# без пары "прочитать, потом записать", поэтому параллельные заказы
# не могут вместе увести остаток в минус.
# Функции не делают commit: транзакцией владеет вызывающий код.

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.core.errors import NotFoundError, ValidationError
from marketplace.models.order import Order
from marketplace.models.product import Product

logger = logging.getLogger(__name__)


def reserve(db: Session, product_id: int, qty: int) -> None:
    """Списывает qty единиц, только если остатка хватает."""
    if qty <= 0:
        raise ValidationError("Quantity must be positive")
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= qty, Product.is_active.is_(True))
        .values(stock=Product.stock - qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info(f"Reserve rejected: product={product_id} qty={qty}")
        raise ValidationError(f"Insufficient stock for product {product_id}")


def restore(db: Session, product_id: int, qty: int) -> None:
    """Возвращает qty единиц на склад."""
    if qty <= 0:
        raise ValidationError("Quantity must be positive")
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError(f"Product {product_id} not found")


def release_order(db: Session, order: Order) -> bool:
    """Возвращает на склад все позиции заказа, но не больше одного раза.

    Флаг stock_restored ставится условным UPDATE до возврата остатков:
    отмена и неуспешная оплата одного заказа не вернут товар дважды.
    """
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.stock_restored.is_(False))
        .values(stock_restored=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info(f"Stock for order {order.order_number} already released")
        return False
    for item in order.items:
        restore(db, item.product_id, item.quantity)
    return True
