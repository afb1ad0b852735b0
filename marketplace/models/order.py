# marketplace/models/order.py
# Модели Order и OrderItem для фиксации сумм и статусов заказа,
# плюс подтверждение доставки и история координат курьера.
from sqlalchemy import Boolean, Column, Integer, String, ForeignKey, Float, DateTime, Enum, Text
from sqlalchemy.orm import relationship
from marketplace.db.base import Base, utcnow
import enum

class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"

TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    payment_method = Column(String, nullable=True)

    customer_phone = Column(String, nullable=False)
    delivery_address = Column(String, nullable=False)
    delivery_lat = Column(Float, nullable=True)
    delivery_lng = Column(Float, nullable=True)
    province = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    subtotal = Column(Float, default=0.0, nullable=False)
    shipping_fee = Column(Float, default=0.0, nullable=False)
    total = Column(Float, default=0.0, nullable=False)

    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    driver_lat = Column(Float, nullable=True)
    driver_lng = Column(Float, nullable=True)
    last_location_at = Column(DateTime, nullable=True)
    estimated_time = Column(Integer, nullable=True)  # минуты

    # id сессии hosted checkout, очищается когда оплата разрешилась
    checkout_id = Column(String, nullable=True, index=True)
    # выплата, в которую вошёл заказ; не NULL = уже рассчитан с продавцом
    payout_id = Column(Integer, ForeignKey("vendor_payouts.id"), nullable=True, index=True)
    # резерв товара уже возвращён на склад (отмена или неуспешная оплата)
    stock_restored = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    customer = relationship("User", foreign_keys=[customer_id])
    driver = relationship("User", foreign_keys=[driver_id])
    store = relationship("Store")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    delivery_proof = relationship("DeliveryProof", back_populates="order", uselist=False)

class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Float, nullable=False)  # цена на момент заказа, не меняется

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

class DeliveryProof(Base):
    __tablename__ = "delivery_proofs"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    photo_url = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    order = relationship("Order", back_populates="delivery_proof")

class DriverLocationHistory(Base):
    """Только добавление и чтение, строки никогда не изменяются."""

    __tablename__ = "driver_location_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)
