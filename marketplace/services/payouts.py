# marketplace/services/payouts.py
# Периодический расчёт выплат продавцам по доставленным и оплаченным заказам.
# Заказ привязывается к выплате условным UPDATE (payout_id IS NULL),
# поэтому повторный запуск за пересекающийся период не рассчитает его дважды.

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.errors import ConflictError, NotFoundError, ValidationError
from marketplace.db.base import utcnow
from marketplace.models.order import Order, OrderStatus, PaymentStatus
from marketplace.models.payout import PayoutStatus, VendorPayout
from marketplace.models.product import Store
from marketplace.models.user import User

logger = logging.getLogger(__name__)

# разрешённые переходы статуса выплаты (только вперёд);
# PENDING -> PAID напрямую для выплат, проведённых вручную
PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING: (PayoutStatus.PROCESSING, PayoutStatus.PAID),
    PayoutStatus.PROCESSING: (PayoutStatus.PAID,),
    PayoutStatus.PAID: (),
}


def qualifying_orders(db: Session, period_start: datetime, period_end: datetime) -> list[tuple[Order, int]]:
    """(заказ, id продавца) для оплаченных и доставленных заказов периода, ещё не рассчитанных."""
    stmt = (
        select(Order, Store.vendor_id)
        .join(Store, Store.id == Order.store_id)
        .where(
            Order.payment_status == PaymentStatus.PAID,
            Order.status == OrderStatus.DELIVERED,
            Order.completed_at >= period_start,
            Order.completed_at <= period_end,
            Order.payout_id.is_(None),
        )
        .order_by(Order.completed_at.asc(), Order.id.asc())
    )
    return [(order, vendor_id) for order, vendor_id in db.execute(stmt)]


def _naive_utc(value: datetime) -> datetime:
    """Колонки хранят UTC без tzinfo."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def generate_payouts(
    db: Session,
    period_start: datetime,
    period_end: datetime,
    fee_percent: float | None = None,
) -> list[VendorPayout]:
    fee_percent = settings.PLATFORM_FEE_PERCENT if fee_percent is None else fee_percent
    period_start = _naive_utc(period_start)
    period_end = _naive_utc(period_end)
    if period_start > period_end:
        raise ValidationError("Period start must be before period end")
    if not 0 <= fee_percent <= 100:
        raise ValidationError("Platform fee percent must be between 0 and 100")

    by_vendor: dict[int, list[Order]] = {}
    for order, vendor_id in qualifying_orders(db, period_start, period_end):
        by_vendor.setdefault(vendor_id, []).append(order)

    payouts: list[VendorPayout] = []
    try:
        for vendor_id, orders in by_vendor.items():
            total_sales = round(sum(o.total for o in orders), 2)
            platform_fee = round(total_sales * fee_percent / 100, 2)
            payout = VendorPayout(
                vendor_id=vendor_id,
                period_start=period_start,
                period_end=period_end,
                total_sales=total_sales,
                platform_fee=platform_fee,
                net_amount=round(total_sales - platform_fee, 2),
                order_count=len(orders),
                status=PayoutStatus.PENDING,
            )
            db.add(payout)
            db.flush()

            order_ids = [o.id for o in orders]
            result = db.execute(
                update(Order)
                .where(Order.id.in_(order_ids), Order.payout_id.is_(None))
                .values(payout_id=payout.id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(order_ids):
                raise ConflictError("Orders were settled by another payout run")
            payouts.append(payout)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Generated {len(payouts)} payouts for {period_start.isoformat()} - {period_end.isoformat()} "
        f"(fee {fee_percent}%)"
    )
    return payouts


def list_payouts(db: Session, status: PayoutStatus | None = None, vendor: User | None = None) -> list[VendorPayout]:
    stmt = select(VendorPayout).order_by(VendorPayout.created_at.desc(), VendorPayout.id.desc())
    if status is not None:
        stmt = stmt.where(VendorPayout.status == status)
    if vendor is not None:
        stmt = stmt.where(VendorPayout.vendor_id == vendor.id)
    return list(db.scalars(stmt))


def update_payout_status(
    db: Session,
    payout_id: int,
    status: PayoutStatus,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> VendorPayout:
    payout = db.get(VendorPayout, payout_id)
    if payout is None:
        raise NotFoundError("Payout not found")
    if status not in PAYOUT_TRANSITIONS[payout.status]:
        raise ConflictError(f"Cannot change payout status from {payout.status.value} to {status.value}")

    payout.status = status
    if payment_method:
        payout.payment_method = payment_method
    if payment_reference:
        payout.payment_reference = payment_reference
    if status == PayoutStatus.PAID:
        payout.paid_at = utcnow()
    db.commit()
    db.refresh(payout)
    logger.info(f"Payout {payout.id} -> {status.value}")
    return payout
