# marketplace/api/admin.py
# Админские роуты: модерация курьеров, генерация выплат продавцам и смена их статуса.
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core import security
from marketplace.models.payout import PayoutStatus
from marketplace.models.user import User, RoleEnum
from marketplace.schemas.requests import DriverRefIn, DriverStatusIn, PayoutGenerateIn, PayoutUpdateIn
from marketplace.schemas.serializers import driver_profile_to_dict, payout_to_dict
from marketplace.services import drivers, payouts
from marketplace.services.notifications import Notifier, get_notifier

router = APIRouter()

require_admin = security.require_role(RoleEnum.admin)

@router.get("/payouts")
def list_payouts(
    status: PayoutStatus | None = None,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_admin),
):
    items = payouts.list_payouts(db, status=status)
    return {"success": True, "payouts": [payout_to_dict(p) for p in items]}

@router.post("/payouts")
def generate_payouts(
    body: PayoutGenerateIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_admin),
):
    created = payouts.generate_payouts(db, body.period_start, body.period_end, body.platform_fee_percent)
    return {
        "success": True,
        "message": f"Generated {len(created)} payouts",
        "payouts": [payout_to_dict(p) for p in created],
    }

@router.patch("/payouts/{payout_id}")
def update_payout(
    payout_id: int,
    body: PayoutUpdateIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_admin),
):
    payout = payouts.update_payout_status(
        db, payout_id, body.status, body.payment_method, body.payment_reference
    )
    return {"success": True, "message": "Payout updated successfully", "payout": payout_to_dict(payout)}

@router.get("/drivers")
def list_drivers(
    approved: bool | None = None,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_admin),
):
    profiles = drivers.list_profiles(db, approved=approved)
    return {"success": True, "drivers": [driver_profile_to_dict(p) for p in profiles]}

@router.post("/approve-driver")
def approve_driver(
    body: DriverRefIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    profile = drivers.approve(db, body.driver_id, notifier=notifier)
    return {"success": True, "message": "Driver approved successfully", "driverProfile": driver_profile_to_dict(profile)}

@router.post("/reject-driver")
def reject_driver(
    body: DriverRefIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_admin),
):
    drivers.reject(db, body.driver_id)
    return {"success": True, "message": "Driver application rejected"}

@router.post("/toggle-driver-status")
def toggle_driver_status(
    body: DriverStatusIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(require_admin),
):
    profile = drivers.set_active(db, body.driver_id, body.is_active)
    state = "activated" if profile.is_active else "deactivated"
    return {"success": True, "message": f"Driver {state} successfully", "driverProfile": driver_profile_to_dict(profile)}
