# marketplace/api/vendor.py
# Роуты продавца: заказы его магазинов и его выплаты.
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core import security
from marketplace.models.user import User, RoleEnum
from marketplace.schemas.serializers import order_to_dict, payout_to_dict
from marketplace.services import payouts
from marketplace.services.orders import vendor_orders

router = APIRouter()

require_vendor = security.require_role(RoleEnum.vendor)

@router.get("/orders")
def list_orders(
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_vendor),
):
    orders = vendor_orders(db, current_user)
    return {"success": True, "orders": [order_to_dict(o) for o in orders]}

@router.get("/payouts")
def list_payouts(
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_vendor),
):
    items = payouts.list_payouts(db, vendor=current_user)
    return {"success": True, "payouts": [payout_to_dict(p) for p in items]}
