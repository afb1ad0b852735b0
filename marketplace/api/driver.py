# marketplace/api/driver.py
# Роуты курьера: заявка и анкета, доступные заказы, захват, координаты,
# завершение доставки.
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core import security
from marketplace.core.errors import NotFoundError
from marketplace.models.order import OrderStatus
from marketplace.models.user import User, RoleEnum
from marketplace.schemas.requests import DeliveryCompleteIn, DriverRegisterIn, LocationUpdateIn, OrderRefIn
from marketplace.schemas.serializers import delivery_proof_to_dict, driver_profile_to_dict, order_to_dict
from marketplace.services import delivery, drivers, order_state, tracking
from marketplace.services.notifications import Notifier, get_notifier
from marketplace.services.orders import get_order

router = APIRouter()

require_driver = security.require_role(RoleEnum.driver)

@router.post("/register")
def register_driver(
    body: DriverRegisterIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(security.get_current_user),
):
    """Заявка в курьеры; брать заказы можно после одобрения админом."""
    application = drivers.DriverApplication(**body.model_dump())
    profile = drivers.register(db, current_user, application)
    return {
        "success": True,
        "message": "Driver application submitted. Awaiting admin approval.",
        "driverProfile": driver_profile_to_dict(profile),
    }

@router.get("/profile")
def driver_profile(
    db: Session = Depends(security.get_db),
    current_user: User = Depends(security.get_current_user),
):
    profile = drivers.get_profile(db, current_user.id)
    if profile is None:
        raise NotFoundError("Driver profile not found")
    return {"success": True, "driverProfile": driver_profile_to_dict(profile)}

@router.get("/available-orders")
def available_orders(
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_driver),
):
    orders = delivery.list_available(db)
    return {"success": True, "orders": [order_to_dict(o) for o in orders]}

@router.get("/my-deliveries")
def my_deliveries(
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_driver),
):
    orders = delivery.my_deliveries(db, current_user)
    return {"success": True, "orders": [order_to_dict(o) for o in orders]}

@router.post("/accept-order")
def accept_order(
    body: OrderRefIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_driver),
    notifier: Notifier = Depends(get_notifier),
):
    order = delivery.accept(db, body.order_id, current_user, notifier=notifier)
    return {"success": True, "message": "Order accepted successfully", "order": order_to_dict(order)}

@router.post("/start-delivery")
def start_delivery(
    body: OrderRefIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_driver),
    notifier: Notifier = Depends(get_notifier),
):
    """Курьер забрал заказ: READY -> OUT_FOR_DELIVERY."""
    order = get_order(db, body.order_id)
    order = order_state.transition(
        db, order, OrderStatus.OUT_FOR_DELIVERY, order_state.Actor.for_user(current_user), notifier=notifier
    )
    return {"success": True, "order": order_to_dict(order)}

@router.post("/update-location")
def update_location(
    body: LocationUpdateIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_driver),
):
    return tracking.update_location(db, body.order_id, current_user, body.latitude, body.longitude)

@router.post("/complete-delivery")
def complete_delivery(
    body: DeliveryCompleteIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_driver),
    notifier: Notifier = Depends(get_notifier),
):
    order = get_order(db, body.order_id)
    proof = order_state.DeliveryProofData(photo_url=body.photo_url, notes=body.notes)
    order = order_state.transition(
        db, order, OrderStatus.DELIVERED, order_state.Actor.for_user(current_user), proof=proof, notifier=notifier
    )
    return {
        "success": True,
        "message": "Delivery completed successfully",
        "order": order_to_dict(order),
        "deliveryProof": delivery_proof_to_dict(order.delivery_proof),
    }
