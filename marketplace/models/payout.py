# marketplace/models/payout.py
# Выплата продавцу за период. Суммы фиксируются при создании,
# дальше меняются только статус и платёжные поля.
from sqlalchemy import Column, Integer, String, ForeignKey, Float, DateTime, Enum
from sqlalchemy.orm import relationship
from marketplace.db.base import Base, utcnow
import enum

class PayoutStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"

class VendorPayout(Base):
    __tablename__ = "vendor_payouts"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    total_sales = Column(Float, nullable=False)
    platform_fee = Column(Float, nullable=False)
    net_amount = Column(Float, nullable=False)
    order_count = Column(Integer, nullable=False)
    status = Column(Enum(PayoutStatus), default=PayoutStatus.PENDING, nullable=False)
    payment_method = Column(String, nullable=True)
    payment_reference = Column(String, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    vendor = relationship("User")
