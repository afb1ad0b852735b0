# marketplace/services/tracking.py
# Координаты курьера, расстояние и ETA до точки доставки.

import logging
import math

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.errors import NotFoundError, PermissionDenied, ValidationError
from marketplace.db.base import utcnow
from marketplace.models.order import DriverLocationHistory, Order, OrderStatus
from marketplace.models.user import User
from marketplace.services.orders import validate_coordinates

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

TRACKABLE_STATUSES = (
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Расстояние по большому кругу, км."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def estimate_minutes(distance_km: float) -> int:
    return math.ceil(distance_km / settings.AVERAGE_SPEED_KMH * 60)


def update_location(db: Session, order_id: int, driver: User, latitude: float, longitude: float) -> dict:
    if latitude is None or longitude is None:
        raise ValidationError("orderId, latitude, and longitude are required")
    validate_coordinates(latitude, longitude)

    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.driver_id != driver.id:
        raise PermissionDenied("This order is not assigned to you")
    if order.status != OrderStatus.OUT_FOR_DELIVERY:
        raise ValidationError("Order is not out for delivery")

    now = utcnow()
    order.driver_lat = latitude
    order.driver_lng = longitude
    order.last_location_at = now
    db.add(DriverLocationHistory(order_id=order.id, latitude=latitude, longitude=longitude, created_at=now))

    distance = None
    eta = None
    if order.delivery_lat is not None and order.delivery_lng is not None:
        distance = haversine_km(latitude, longitude, order.delivery_lat, order.delivery_lng)
        eta = estimate_minutes(distance)
        # мелкие колебания ETA не пишем, чтобы не дёргать БД на каждой точке
        if abs(eta - (order.estimated_time or 0)) > settings.ETA_UPDATE_THRESHOLD_MINUTES:
            order.estimated_time = eta
    else:
        logger.warning(f"Order {order.order_number} has no delivery coordinates, ETA not computed")

    db.commit()
    return {
        "success": True,
        "distanceToDestination": round(distance, 2) if distance is not None else None,
        "estimatedTime": eta,
    }


def recent_route(db: Session, order_id: int, limit: int | None = None) -> list[DriverLocationHistory]:
    """Последние limit точек маршрута в хронологическом порядке."""
    limit = settings.ROUTE_HISTORY_LIMIT if limit is None else limit
    stmt = (
        select(DriverLocationHistory)
        .where(DriverLocationHistory.order_id == order_id)
        .order_by(DriverLocationHistory.created_at.desc(), DriverLocationHistory.id.desc())
        .limit(limit)
    )
    return list(reversed(list(db.scalars(stmt))))


def tracking_view(db: Session, order_id: int, customer: User) -> dict:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.customer_id != customer.id:
        raise PermissionDenied("Access denied - You can only track your own orders")
    if order.status not in TRACKABLE_STATUSES:
        raise ValidationError("Tracking not available for this order status")

    distance = None
    has_driver_position = order.driver_lat is not None and order.driver_lng is not None
    if has_driver_position and order.delivery_lat is not None and order.delivery_lng is not None:
        distance = haversine_km(order.driver_lat, order.driver_lng, order.delivery_lat, order.delivery_lng)

    store = order.store
    driver = order.driver
    return {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "status": order.status.value,
        "estimatedTime": order.estimated_time,
        "storeLocation": {
            "name": store.name,
            "address": store.address,
            "latitude": store.latitude,
            "longitude": store.longitude,
        },
        "deliveryLocation": {
            "address": order.delivery_address,
            "latitude": order.delivery_lat,
            "longitude": order.delivery_lng,
        },
        "driver": {
            "name": driver.full_name or "Driver",
            "phone": driver.phone,
            "currentLocation": {
                "latitude": order.driver_lat,
                "longitude": order.driver_lng,
                "lastUpdate": order.last_location_at.isoformat() if order.last_location_at else None,
            } if has_driver_position else None,
        } if driver is not None else None,
        "metrics": {
            "distanceToDelivery": round(distance, 2) if distance is not None else None,
            "estimatedArrival": f"{order.estimated_time} minutes" if order.estimated_time else None,
        },
        "route": [
            {"latitude": p.latitude, "longitude": p.longitude, "timestamp": p.created_at.isoformat()}
            for p in recent_route(db, order.id)
        ],
    }
