# marketplace/schemas/requests.py
# Тела запросов API. Поля снаружи в camelCase, внутри snake_case.
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models.order import OrderStatus, PaymentStatus
from marketplace.models.payout import PayoutStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CartItemIn(CamelModel):
    product_id: int = Field(alias="productId")
    quantity: int = Field(ge=1)
    price: float | None = None


class OrderCreateIn(CamelModel):
    delivery_address: str = Field(alias="deliveryAddress", min_length=1)
    customer_phone: str = Field(alias="customerPhone", min_length=1)
    items: list[CartItemIn] = Field(min_length=1)
    province: str | None = None
    delivery_lat: float | None = Field(default=None, alias="deliveryLat")
    delivery_lng: float | None = Field(default=None, alias="deliveryLng")
    notes: str | None = None


class OrderUpdateIn(CamelModel):
    status: OrderStatus | None = None
    payment_status: PaymentStatus | None = Field(default=None, alias="paymentStatus")


class PaymentInitiateIn(CamelModel):
    order_id: int = Field(alias="orderId")
    amount: float = Field(gt=0)


class OrderRefIn(CamelModel):
    order_id: int = Field(alias="orderId")


class LocationUpdateIn(CamelModel):
    order_id: int = Field(alias="orderId")
    latitude: float
    longitude: float


class DeliveryCompleteIn(CamelModel):
    order_id: int = Field(alias="orderId")
    photo_url: str = Field(alias="photoUrl", min_length=1)
    notes: str | None = None


class PayoutGenerateIn(CamelModel):
    period_start: datetime = Field(alias="periodStart")
    period_end: datetime = Field(alias="periodEnd")
    platform_fee_percent: float | None = Field(default=None, alias="platformFeePercent")


class PayoutUpdateIn(CamelModel):
    status: PayoutStatus
    payment_method: str | None = Field(default=None, alias="paymentMethod")
    payment_reference: str | None = Field(default=None, alias="paymentReference")


class DriverRegisterIn(CamelModel):
    name: str = Field(min_length=1)
    id_number: str = Field(alias="idNumber", min_length=1)
    license_number: str = Field(alias="licenseNumber", min_length=1)
    vehicle_type: str = Field(alias="vehicleType", min_length=1)
    vehicle_reg: str = Field(alias="vehicleReg", min_length=1)
    bank_name: str = Field(alias="bankName", min_length=1)
    account_number: str = Field(alias="accountNumber", min_length=1)
    branch_code: str = Field(alias="branchCode", min_length=1)


class DriverRefIn(CamelModel):
    driver_id: int = Field(alias="driverId")


class DriverStatusIn(CamelModel):
    driver_id: int = Field(alias="driverId")
    is_active: bool = Field(alias="isActive")
