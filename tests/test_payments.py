import json
import time

import httpx
import pytest

from marketplace.core.config import settings
from marketplace.core.errors import (
    ConflictError,
    ExternalServiceError,
    IntegrityError,
    NotFoundError,
    PermissionDenied,
    ServiceUnavailable,
    ValidationError,
)
from marketplace.models.order import Order, OrderStatus, PaymentStatus
from marketplace.models.payment import WebhookEvent
from marketplace.models.product import Product
from marketplace.models.user import RoleEnum
from marketplace.services import payments
from marketplace.services.order_state import Actor, transition

SECRET = settings.PAYMENT_WEBHOOK_SECRET


def _event(event_type, checkout_id):
    return json.dumps({
        "type": event_type,
        "payload": {"id": "p_1", "metadata": {"checkoutId": checkout_id}},
    }).encode()


def _headers(body, webhook_id="msg_1", timestamp=None):
    timestamp = str(int(time.time()) if timestamp is None else timestamp)
    signature = payments.sign_payload(SECRET, webhook_id, timestamp, body)
    return webhook_id, timestamp, f"v1,{signature}"


def _deliver(db, body, notifier=None, webhook_id="msg_1", timestamp=None):
    return payments.handle_webhook(db, body, *_headers(body, webhook_id, timestamp), notifier=notifier)


@pytest.fixture
def awaiting(factory):
    """Заказ, ожидающий оплаты, с выданным checkout."""
    product = factory.product(price=100.0, stock=5)
    order = factory.order(products=[product], quantity=2)
    return factory.set_state(order, OrderStatus.PENDING, checkout_id="ch_123")


# --- подпись -----------------------------------------------------------------

def test_valid_signature_passes():
    body = b'{"type":"payment.succeeded"}'
    now = time.time()
    webhook_id, ts, sig = _headers(body, timestamp=int(now))
    payments.verify_signature(SECRET, webhook_id, ts, sig, body, now=now)


def test_signature_without_prefix_in_secret():
    raw = SECRET[len("whsec_"):]
    body = b"{}"
    assert payments.sign_payload(raw, "a", "1", body) == payments.sign_payload(SECRET, "a", "1", body)


def test_any_matching_token_is_enough():
    body = b"{}"
    now = time.time()
    webhook_id, ts, sig = _headers(body, timestamp=int(now))
    header = f"v1,bm90LXRoZS1zaWduYXR1cmU= {sig}"
    payments.verify_signature(SECRET, webhook_id, ts, header, body, now=now)


def test_tampered_body_is_rejected():
    body = b'{"amount": 100}'
    now = time.time()
    webhook_id, ts, sig = _headers(body, timestamp=int(now))
    with pytest.raises(IntegrityError):
        payments.verify_signature(SECRET, webhook_id, ts, sig, b'{"amount": 1}', now=now)


@pytest.mark.parametrize("age, accepted", [(60, True), (-60, True), (400, False), (-400, False)])
def test_timestamp_tolerance(age, accepted):
    body = b"{}"
    now = time.time()
    webhook_id, ts, sig = _headers(body, timestamp=int(now) - age)
    if accepted:
        payments.verify_signature(SECRET, webhook_id, ts, sig, body, now=now)
    else:
        with pytest.raises(IntegrityError):
            payments.verify_signature(SECRET, webhook_id, ts, sig, body, now=now)


def test_missing_headers_and_bad_timestamp():
    with pytest.raises(IntegrityError):
        payments.verify_signature(SECRET, None, "1", "v1,x", b"{}")
    with pytest.raises(IntegrityError):
        payments.verify_signature(SECRET, "id", "yesterday", "v1,x", b"{}")


def test_integrity_failure_goes_to_security_log(caplog):
    with caplog.at_level("WARNING", logger="marketplace.security"):
        with pytest.raises(IntegrityError):
            payments.verify_signature(SECRET, "id", "1", "v1,x", b"{}", now=1_000_000)
    assert any(r.name == "marketplace.security" for r in caplog.records)


# --- разбор события -----------------------------------------------------------

@pytest.mark.parametrize("body", [
    b"not json",
    b"[]",
    json.dumps({"type": "payment.succeeded"}).encode(),
    json.dumps({"type": "payment.succeeded", "payload": {"metadata": {}}}).encode(),
])
def test_parse_event_rejects_malformed(body):
    with pytest.raises(ValidationError):
        payments.parse_event(body)


def test_parse_event():
    assert payments.parse_event(_event("payment.failed", "ch_9")) == ("payment.failed", "ch_9")


# --- обработка webhook -------------------------------------------------------

def test_success_confirms_order(db, awaiting, notifier, fetch):
    result = _deliver(db, _event("payment.succeeded", "ch_123"), notifier)

    assert result.as_dict() == {
        "success": True,
        "status": "processed",
        "duplicate": False,
        "orderNumber": awaiting.order_number,
    }
    order = fetch(Order, awaiting.id)
    assert order.payment_status == PaymentStatus.PAID
    assert order.status == OrderStatus.CONFIRMED
    assert order.confirmed_at is not None
    assert order.checkout_id is None
    assert notifier.calls == [("order_confirmed", awaiting.id)]


def test_replayed_webhook_has_single_effect(db, awaiting, notifier, fetch):
    body = _event("payment.succeeded", "ch_123")
    first = _deliver(db, body, notifier, webhook_id="msg_42")
    second = _deliver(db, body, notifier, webhook_id="msg_42")

    assert first.status == "processed"
    assert second.as_dict()["duplicate"] is True
    assert notifier.calls == [("order_confirmed", awaiting.id)]
    assert fetch(WebhookEvent, "msg_42") is not None
    assert fetch(Order, awaiting.id).status == OrderStatus.CONFIRMED


def test_failure_cancels_and_restores_stock_once(db, awaiting, notifier, fetch):
    product_id = awaiting.items[0].product_id
    assert fetch(Product, product_id).stock == 3

    body = _event("payment.failed", "ch_123")
    assert _deliver(db, body, notifier, webhook_id="msg_f").status == "processed"
    assert _deliver(db, body, notifier, webhook_id="msg_f").status == "duplicate"

    order = fetch(Order, awaiting.id)
    assert order.payment_status == PaymentStatus.FAILED
    assert order.status == OrderStatus.CANCELLED
    assert fetch(Product, product_id).stock == 5
    assert notifier.calls == []


def test_already_resolved_order_is_left_alone(db, factory, awaiting, notifier, fetch):
    factory.set_state(awaiting, OrderStatus.CONFIRMED, PaymentStatus.PAID)

    result = _deliver(db, _event("payment.failed", "ch_123"), notifier, webhook_id="msg_late")

    assert result.status == "duplicate"
    order = fetch(Order, awaiting.id)
    assert order.payment_status == PaymentStatus.PAID
    assert order.status == OrderStatus.CONFIRMED
    assert notifier.calls == []


def test_failure_after_admin_cancel_does_not_restore_twice(db, factory, awaiting, notifier, fetch):
    admin = Actor.for_user(factory.user(RoleEnum.admin))
    product_id = awaiting.items[0].product_id
    transition(db, awaiting, OrderStatus.CANCELLED, admin)
    assert fetch(Product, product_id).stock == 5

    result = _deliver(db, _event("payment.failed", "ch_123"), notifier, webhook_id="msg_after_cancel")

    assert result.status == "processed"
    assert fetch(Order, awaiting.id).payment_status == PaymentStatus.FAILED
    assert fetch(Product, product_id).stock == 5


def test_unknown_event_type_is_ignored(db, awaiting, fetch):
    result = _deliver(db, _event("payment.refunded", "ch_123"))
    assert result.status == "ignored"
    assert fetch(Order, awaiting.id).payment_status == PaymentStatus.PENDING


def test_unknown_checkout_is_not_found(db, awaiting):
    with pytest.raises(NotFoundError):
        _deliver(db, _event("payment.succeeded", "ch_missing"))


def test_bad_signature_leaves_order_untouched(db, awaiting, fetch):
    body = _event("payment.succeeded", "ch_123")
    webhook_id, ts, _ = _headers(body)
    with pytest.raises(IntegrityError):
        payments.handle_webhook(db, body, webhook_id, ts, "v1,Zm9yZ2Vk")
    assert fetch(Order, awaiting.id).payment_status == PaymentStatus.PENDING


def test_no_secret_skips_verification(db, awaiting, monkeypatch, fetch, caplog):
    monkeypatch.setattr(settings, "PAYMENT_WEBHOOK_SECRET", "")
    with caplog.at_level("WARNING", logger="marketplace.security"):
        result = payments.handle_webhook(db, _event("payment.succeeded", "ch_123"), None, None, None)
    assert result.status == "processed"
    assert fetch(Order, awaiting.id).payment_status == PaymentStatus.PAID
    assert "NOT verified" in caplog.text


# --- создание checkout ----------------------------------------------------------

def _client(handler):
    return payments.CheckoutClient(http=httpx.Client(transport=httpx.MockTransport(handler)))


def test_initiate_payment(db, factory, monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_SECRET_KEY", "sk_test_123")
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "ch_new", "redirectUrl": "https://pay.example/ch_new"})

    order = factory.order()
    result = payments.initiate_payment(db, order.id, order.total, order.customer, _client(handler))

    assert result == {"paymentUrl": "https://pay.example/ch_new", "orderNumber": order.order_number}
    assert seen["auth"] == "Bearer sk_test_123"
    assert seen["body"]["amount"] == int(round(order.total * 100))
    assert seen["body"]["currency"] == "ZAR"
    assert seen["body"]["metadata"] == {"orderId": str(order.id), "orderNumber": order.order_number}
    assert db.get(Order, order.id).checkout_id == "ch_new"


def test_initiate_payment_guards(db, factory, monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_SECRET_KEY", "sk_test_123")
    client = _client(lambda request: httpx.Response(200, json={"id": "x", "redirectUrl": "u"}))
    order = factory.order()
    stranger = factory.user(RoleEnum.customer)

    with pytest.raises(NotFoundError):
        payments.initiate_payment(db, 999, 10.0, order.customer, client)
    with pytest.raises(PermissionDenied):
        payments.initiate_payment(db, order.id, order.total, stranger, client)
    with pytest.raises(ValidationError):
        payments.initiate_payment(db, order.id, order.total + 1, order.customer, client)

    factory.set_state(order, OrderStatus.CONFIRMED, PaymentStatus.PAID)
    with pytest.raises(ConflictError):
        payments.initiate_payment(db, order.id, order.total, order.customer, client)


def test_gateway_errors(monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_SECRET_KEY", "sk_test_123")

    with pytest.raises(ExternalServiceError):
        _client(lambda request: httpx.Response(500, text="boom")).create_checkout({})
    with pytest.raises(ExternalServiceError):
        _client(lambda request: httpx.Response(200, json={"id": "x"})).create_checkout({})

    def broken(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(ExternalServiceError):
        _client(broken).create_checkout({})


def test_gateway_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_SECRET_KEY", "")
    with pytest.raises(ServiceUnavailable):
        payments.CheckoutClient().create_checkout({})
