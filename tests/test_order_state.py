import pytest

from marketplace.core.errors import ConflictError, PermissionDenied, ValidationError
from marketplace.models.order import DeliveryProof, OrderStatus, PaymentStatus
from marketplace.models.product import Product
from marketplace.models.user import RoleEnum
from marketplace.services.order_state import (
    Actor,
    DeliveryProofData,
    authorize,
    override_payment_status,
    transition,
)

PROOF = DeliveryProofData(photo_url="https://cdn.example.com/proof/1.jpg", notes="Left at gate")


def test_system_confirms_pending_order(db, factory):
    order = factory.order()
    order = transition(db, order, OrderStatus.CONFIRMED, Actor.system())
    assert order.status == OrderStatus.CONFIRMED
    assert order.confirmed_at is not None


def test_vendor_cannot_confirm(db, factory):
    order = factory.order()
    with pytest.raises(PermissionDenied):
        transition(db, order, OrderStatus.CONFIRMED, Actor.for_user(order.store.vendor))


def test_pending_straight_to_delivered_is_rejected(db, factory):
    driver = factory.user(RoleEnum.driver)
    order = factory.order()
    factory.set_state(order, OrderStatus.PENDING, driver=driver)
    with pytest.raises(ConflictError):
        transition(db, order, OrderStatus.DELIVERED, Actor.for_user(driver), proof=PROOF)
    assert order.status == OrderStatus.PENDING


def test_vendor_moves_own_order_forward(db, factory):
    order = factory.order()
    factory.set_state(order, OrderStatus.CONFIRMED, PaymentStatus.PAID)
    vendor = Actor.for_user(order.store.vendor)

    order = transition(db, order, OrderStatus.PREPARING, vendor)
    order = transition(db, order, OrderStatus.READY, vendor)
    assert order.status == OrderStatus.READY


def test_other_vendor_is_denied(db, factory):
    order = factory.order()
    factory.set_state(order, OrderStatus.CONFIRMED, PaymentStatus.PAID)
    other_vendor = factory.user(RoleEnum.vendor)
    with pytest.raises(PermissionDenied):
        transition(db, order, OrderStatus.PREPARING, Actor.for_user(other_vendor))


def test_unassigned_driver_is_denied(db, factory):
    assigned = factory.user(RoleEnum.driver)
    other = factory.user(RoleEnum.driver)
    order = factory.ready_order()
    factory.set_state(order, OrderStatus.READY, driver=assigned)
    with pytest.raises(PermissionDenied):
        transition(db, order, OrderStatus.OUT_FOR_DELIVERY, Actor.for_user(other))


def test_delivery_requires_proof_for_everyone(db, factory):
    driver = factory.user(RoleEnum.driver)
    admin = factory.user(RoleEnum.admin)
    order = factory.ready_order()
    factory.set_state(order, OrderStatus.OUT_FOR_DELIVERY, driver=driver)

    with pytest.raises(ValidationError):
        transition(db, order, OrderStatus.DELIVERED, Actor.for_user(driver))
    with pytest.raises(ValidationError):
        authorize(order, OrderStatus.DELIVERED, Actor.for_user(admin), DeliveryProofData(photo_url=""))


def test_driver_delivers_with_proof(db, factory, notifier):
    driver = factory.user(RoleEnum.driver)
    order = factory.ready_order()
    factory.set_state(order, OrderStatus.READY, driver=driver)
    actor = Actor.for_user(driver)

    order = transition(db, order, OrderStatus.OUT_FOR_DELIVERY, actor, notifier=notifier)
    order = transition(db, order, OrderStatus.DELIVERED, actor, proof=PROOF, notifier=notifier)

    assert order.status == OrderStatus.DELIVERED
    assert order.completed_at is not None
    proof = db.query(DeliveryProof).filter_by(order_id=order.id).one()
    assert proof.photo_url == PROOF.photo_url
    assert proof.notes == "Left at gate"
    assert notifier.names() == ["out_for_delivery", "order_delivered"]


def test_terminal_states_are_final(db, factory):
    admin = factory.user(RoleEnum.admin)
    order = factory.order()
    factory.set_state(order, OrderStatus.DELIVERED, PaymentStatus.PAID)
    with pytest.raises(ConflictError):
        transition(db, order, OrderStatus.PREPARING, Actor.for_user(admin))

    cancelled = factory.set_state(factory.order(), OrderStatus.CANCELLED)
    with pytest.raises(ConflictError):
        transition(db, cancelled, OrderStatus.CONFIRMED, Actor.system())


def test_same_status_is_rejected(db, factory):
    order = factory.order()
    with pytest.raises(ConflictError):
        transition(db, order, OrderStatus.PENDING, Actor.system())


def test_admin_can_skip_steps(db, factory):
    admin = factory.user(RoleEnum.admin)
    order = factory.order()
    factory.set_state(order, OrderStatus.CONFIRMED, PaymentStatus.PAID)
    order = transition(db, order, OrderStatus.READY, Actor.for_user(admin))
    assert order.status == OrderStatus.READY


def test_cancel_restores_stock(db, factory, fetch):
    product = factory.product(stock=4)
    order = factory.order(products=[product], quantity=3)
    assert fetch(Product, product.id).stock == 1

    order = transition(db, order, OrderStatus.CANCELLED, Actor.system())

    assert order.status == OrderStatus.CANCELLED
    assert fetch(Product, product.id).stock == 4


def test_stale_status_loses(db, session_factory, factory):
    order = factory.order()
    other = session_factory()
    try:
        stale = other.get(type(order), order.id)
        transition(db, order, OrderStatus.CONFIRMED, Actor.system())
        with pytest.raises(ConflictError):
            transition(other, stale, OrderStatus.CANCELLED, Actor.system())
    finally:
        other.close()


def test_payment_override_is_admin_only(db, factory):
    admin = factory.user(RoleEnum.admin)
    order = factory.order()
    with pytest.raises(PermissionDenied):
        override_payment_status(db, order, PaymentStatus.PAID, Actor.for_user(order.store.vendor))

    order = override_payment_status(db, order, PaymentStatus.PAID, Actor.for_user(admin))
    assert order.payment_status == PaymentStatus.PAID


def test_cancel_after_admin_marks_payment_failed_restores_stock(db, factory, fetch):
    admin = Actor.for_user(factory.user(RoleEnum.admin))
    product = factory.product(stock=5)
    order = factory.order(products=[product], quantity=2)

    order = override_payment_status(db, order, PaymentStatus.FAILED, admin)
    assert fetch(Product, product.id).stock == 3

    order = transition(db, order, OrderStatus.CANCELLED, admin)

    assert order.stock_restored is True
    assert fetch(Product, product.id).stock == 5


def test_status_and_payment_change_together(db, factory, fetch):
    admin = Actor.for_user(factory.user(RoleEnum.admin))
    product = factory.product(stock=5)
    order = factory.order(products=[product], quantity=2)

    order = transition(db, order, OrderStatus.CANCELLED, admin, payment_status=PaymentStatus.FAILED)

    assert (order.status, order.payment_status) == (OrderStatus.CANCELLED, PaymentStatus.FAILED)
    assert fetch(Product, product.id).stock == 5


def test_rejected_transition_leaves_payment_untouched(db, factory, fetch):
    admin = Actor.for_user(factory.user(RoleEnum.admin))
    order = factory.order()

    with pytest.raises(ConflictError):
        transition(db, order, OrderStatus.PENDING, admin, payment_status=PaymentStatus.PAID)
    with pytest.raises(PermissionDenied):
        transition(
            db, order, OrderStatus.CANCELLED, Actor.for_user(order.store.vendor),
            payment_status=PaymentStatus.FAILED,
        )

    stored = fetch(type(order), order.id)
    assert (stored.status, stored.payment_status) == (OrderStatus.PENDING, PaymentStatus.PENDING)
