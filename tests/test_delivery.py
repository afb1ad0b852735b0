import threading

import pytest

from marketplace.core.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from marketplace.models.order import DriverLocationHistory, Order, OrderStatus, PaymentStatus
from marketplace.models.user import RoleEnum
from marketplace.services import delivery, tracking


def test_available_orders_are_ready_paid_and_unassigned(db, factory):
    driver = factory.user(RoleEnum.driver)
    first = factory.ready_order()
    second = factory.ready_order()
    factory.set_state(factory.order(), OrderStatus.PREPARING, PaymentStatus.PAID)
    factory.set_state(factory.order(), OrderStatus.READY, PaymentStatus.PENDING)
    factory.set_state(factory.ready_order(), OrderStatus.READY, driver=driver)
    factory.set_state(factory.order(), OrderStatus.CANCELLED, PaymentStatus.PAID)

    assert [o.id for o in delivery.list_available(db)] == [first.id, second.id]


def test_accept_assigns_driver(db, factory, notifier):
    driver = factory.user(RoleEnum.driver)
    order = factory.ready_order()

    order = delivery.accept(db, order.id, driver, notifier=notifier)

    assert order.driver_id == driver.id
    assert order.estimated_time == 45
    assert order.status == OrderStatus.READY
    assert notifier.calls == [("driver_assigned", order.id)]
    assert [o.id for o in delivery.my_deliveries(db, driver)] == [order.id]


def test_accept_rejects_taken_or_unready(db, factory):
    first = factory.user(RoleEnum.driver)
    second = factory.user(RoleEnum.driver)
    order = factory.ready_order()
    delivery.accept(db, order.id, first)

    with pytest.raises(ConflictError, match="already assigned"):
        delivery.accept(db, order.id, second)

    preparing = factory.set_state(factory.order(), OrderStatus.PREPARING, PaymentStatus.PAID)
    with pytest.raises(ConflictError, match="not ready"):
        delivery.accept(db, preparing.id, second)

    with pytest.raises(NotFoundError):
        delivery.accept(db, 4242, second)


def test_concurrent_accept_has_single_winner(session_factory, factory, fetch):
    drivers = [factory.user(RoleEnum.driver) for _ in range(6)]
    order = factory.ready_order()
    barrier = threading.Barrier(len(drivers))
    winners = []
    losers = []
    lock = threading.Lock()

    def grab(driver):
        session = session_factory()
        try:
            barrier.wait()
            try:
                delivery.accept(session, order.id, driver)
                outcome = winners
            except ConflictError:
                outcome = losers
            with lock:
                outcome.append(driver.id)
        finally:
            session.close()

    threads = [threading.Thread(target=grab, args=(d,)) for d in drivers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert len(losers) == len(drivers) - 1
    assert fetch(Order, order.id).driver_id == winners[0]


# --- трекинг ------------------------------------------------------------------

def test_haversine_and_eta():
    # 0.045 градуса широты ~ 5 км
    km = tracking.haversine_km(-26.0, 28.0, -26.045, 28.0)
    assert km == pytest.approx(5.0, abs=0.01)
    assert tracking.estimate_minutes(km) == 8
    assert tracking.haversine_km(-26.0, 28.0, -26.0, 28.0) == 0


def _out_for_delivery(factory, driver, **kwargs):
    order = factory.ready_order(**kwargs)
    return factory.set_state(order, OrderStatus.OUT_FOR_DELIVERY, driver=driver)


def test_location_update_records_history_and_eta(db, factory, fetch):
    driver = factory.user(RoleEnum.driver)
    order = _out_for_delivery(factory, driver, delivery_lat=-26.045, delivery_lng=28.0)

    result = tracking.update_location(db, order.id, driver, -26.0, 28.0)

    assert result["success"] is True
    assert result["distanceToDestination"] == pytest.approx(5.0, abs=0.01)
    assert result["estimatedTime"] == 8
    stored = fetch(Order, order.id)
    assert (stored.driver_lat, stored.driver_lng) == (-26.0, 28.0)
    assert stored.last_location_at is not None
    assert stored.estimated_time == 8
    assert db.query(DriverLocationHistory).filter_by(order_id=order.id).count() == 1


def test_small_eta_changes_are_not_written(db, factory, fetch):
    driver = factory.user(RoleEnum.driver)
    order = _out_for_delivery(factory, driver, delivery_lat=-26.045, delivery_lng=28.0)
    order.estimated_time = 10
    db.commit()

    result = tracking.update_location(db, order.id, driver, -26.0, 28.0)

    assert result["estimatedTime"] == 8
    assert fetch(Order, order.id).estimated_time == 10


def test_location_without_delivery_coordinates(db, factory):
    driver = factory.user(RoleEnum.driver)
    order = _out_for_delivery(factory, driver, delivery_lat=None, delivery_lng=None)

    result = tracking.update_location(db, order.id, driver, -26.0, 28.0)

    assert result == {"success": True, "distanceToDestination": None, "estimatedTime": None}


def test_location_update_guards(db, factory):
    driver = factory.user(RoleEnum.driver)
    other = factory.user(RoleEnum.driver)
    order = _out_for_delivery(factory, driver)

    with pytest.raises(ValidationError):
        tracking.update_location(db, order.id, driver, 91.0, 28.0)
    with pytest.raises(ValidationError):
        tracking.update_location(db, order.id, driver, -26.0, 181.0)
    with pytest.raises(NotFoundError):
        tracking.update_location(db, 777, driver, -26.0, 28.0)
    with pytest.raises(PermissionDenied):
        tracking.update_location(db, order.id, other, -26.0, 28.0)

    factory.set_state(order, OrderStatus.READY)
    with pytest.raises(ValidationError, match="not out for delivery"):
        tracking.update_location(db, order.id, driver, -26.0, 28.0)


def test_route_keeps_latest_points_in_order(db, factory):
    driver = factory.user(RoleEnum.driver)
    order = _out_for_delivery(factory, driver)
    for i in range(5):
        tracking.update_location(db, order.id, driver, -26.0 + i * 0.001, 28.0)

    route = tracking.recent_route(db, order.id, limit=3)

    assert [round(p.latitude, 3) for p in route] == [-25.998, -25.997, -25.996]


def test_tracking_view(db, factory):
    driver = factory.user(RoleEnum.driver, full_name="Sipho")
    order = _out_for_delivery(factory, driver)
    tracking.update_location(db, order.id, driver, -26.15, 28.05)

    view = tracking.tracking_view(db, order.id, order.customer)

    assert view["orderNumber"] == order.order_number
    assert view["status"] == "OUT_FOR_DELIVERY"
    assert view["driver"]["name"] == "Sipho"
    assert view["driver"]["currentLocation"]["latitude"] == -26.15
    assert view["storeLocation"]["name"] == order.store.name
    assert view["metrics"]["distanceToDelivery"] is not None
    assert len(view["route"]) == 1


def test_tracking_is_owner_and_status_gated(db, factory):
    order = factory.order()
    stranger = factory.user(RoleEnum.customer)

    with pytest.raises(ValidationError):
        tracking.tracking_view(db, order.id, order.customer)

    factory.set_state(order, OrderStatus.CONFIRMED, PaymentStatus.PAID)
    view = tracking.tracking_view(db, order.id, order.customer)
    assert view["driver"] is None
    with pytest.raises(PermissionDenied):
        tracking.tracking_view(db, order.id, stranger)

    factory.set_state(order, OrderStatus.DELIVERED)
    with pytest.raises(ValidationError):
        tracking.tracking_view(db, order.id, order.customer)
