# marketplace/api/orders.py
# Роуты заказов: создание из корзины, просмотр, смена статуса, трекинг.
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core import security
from marketplace.core.errors import ValidationError
from marketplace.core.rate_limit import RateLimitPresets, rate_limit
from marketplace.models.user import User, RoleEnum
from marketplace.schemas.requests import OrderCreateIn, OrderUpdateIn
from marketplace.schemas.serializers import delivery_proof_to_dict, order_to_dict
from marketplace.services import orders as order_service
from marketplace.services import order_state, tracking
from marketplace.services.notifications import Notifier, get_notifier

router = APIRouter()

@router.post("", dependencies=[Depends(rate_limit(RateLimitPresets.standard, "orders"))])
def create_orders(
    body: OrderCreateIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(security.require_role(RoleEnum.customer)),
    notifier: Notifier = Depends(get_notifier),
):
    """Создаёт по заказу на каждый магазин из корзины."""
    lines = [
        order_service.CartLine(product_id=item.product_id, quantity=item.quantity, price=item.price)
        for item in body.items
    ]
    orders = order_service.create_orders(
        db,
        current_user,
        lines,
        delivery_address=body.delivery_address,
        customer_phone=body.customer_phone,
        province=body.province,
        delivery_lat=body.delivery_lat,
        delivery_lng=body.delivery_lng,
        notes=body.notes,
        notifier=notifier,
    )
    return {
        "success": True,
        "orders": [order_to_dict(o) for o in orders],
        "ordersCreated": len(orders),
    }

@router.get("")
def list_my_orders(
    db: Session = Depends(security.get_db),
    current_user: User = Depends(security.get_current_user),
):
    orders = order_service.customer_orders(db, current_user)
    return {"success": True, "orders": [order_to_dict(o) for o in orders]}

@router.get("/{order_id}")
def get_order(
    order_id: int,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(security.get_current_user),
):
    order = order_service.get_order_for_user(db, order_id, current_user)
    data = order_to_dict(order)
    data["deliveryProof"] = delivery_proof_to_dict(order.delivery_proof)
    return {"success": True, "order": data}

@router.patch("/{order_id}")
def update_order(
    order_id: int,
    body: OrderUpdateIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(security.require_role(RoleEnum.vendor, RoleEnum.driver)),
    notifier: Notifier = Depends(get_notifier),
):
    """Смена статуса продавцом/курьером; админ может править и статус оплаты."""
    if body.status is None and body.payment_status is None:
        raise ValidationError("Nothing to update")
    order = order_service.get_order_for_user(db, order_id, current_user)
    actor = order_state.Actor.for_user(current_user)
    if body.status is not None:
        # статус и оплата меняются одной транзакцией
        order = order_state.transition(
            db, order, body.status, actor, notifier=notifier, payment_status=body.payment_status
        )
    else:
        order = order_state.override_payment_status(db, order, body.payment_status, actor)
    return {"success": True, "order": order_to_dict(order)}

@router.get("/{order_id}/track")
def track_order(
    order_id: int,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(security.get_current_user),
):
    """Данные для карты трекинга; клиент опрашивает раз в 10-30 секунд."""
    return {"success": True, "tracking": tracking.tracking_view(db, order_id, current_user)}
