# marketplace/services/payments.py
# Мост к платёжному шлюзу: создание hosted checkout и обработка webhook.
#
# Подпись webhook (схема Standard Webhooks):
#   base64(HMAC-SHA256(secret, f"{id}.{timestamp}.{raw_body}"))
# Секрет приходит как "whsec_<base64>", заголовок подписи содержит
# несколько токенов "v1,<подпись>" через пробел.

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass

import httpx
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.errors import (
    ConflictError,
    ExternalServiceError,
    IntegrityError,
    NotFoundError,
    PermissionDenied,
    ServiceUnavailable,
    ValidationError,
    security_logger,
)
from marketplace.db.base import utcnow
from marketplace.models.order import Order, OrderStatus, PaymentStatus, TERMINAL_STATUSES
from marketplace.models.payment import WebhookEvent
from marketplace.models.user import User
from marketplace.services import stock
from marketplace.services.order_state import Actor, authorize

logger = logging.getLogger(__name__)

SECRET_PREFIX = "whsec_"

EVENT_PAYMENT_SUCCEEDED = "payment.succeeded"
EVENT_PAYMENT_FAILED = "payment.failed"


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

class CheckoutClient:
    """Создание сессии hosted checkout у платёжного шлюза."""

    def __init__(self, http: httpx.Client | None = None):
        self._http = http

    def create_checkout(self, payload: dict) -> dict:
        if not settings.PAYMENT_SECRET_KEY:
            logger.error("PAYMENT_SECRET_KEY not configured")
            raise ServiceUnavailable("Payment gateway not configured")

        headers = {"Authorization": f"Bearer {settings.PAYMENT_SECRET_KEY}"}
        try:
            if self._http is not None:
                response = self._http.post(settings.PAYMENT_API_URL, json=payload, headers=headers)
            else:
                with httpx.Client(timeout=settings.HTTP_TIMEOUT) as client:
                    response = client.post(settings.PAYMENT_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Payment gateway request failed: {e}", exc_info=True)
            raise ExternalServiceError("Failed to create payment session") from e

        if response.status_code >= 400:
            logger.error(f"Payment gateway error: {response.status_code} {response.text}")
            raise ExternalServiceError("Failed to create payment session")
        data = response.json()
        if not data.get("redirectUrl") or not data.get("id"):
            logger.error(f"No redirectUrl in payment gateway response: {data}")
            raise ExternalServiceError("Invalid payment gateway response")
        return data


def get_checkout_client() -> CheckoutClient:
    return CheckoutClient()


def initiate_payment(db: Session, order_id: int, amount: float, customer: User, client: CheckoutClient) -> dict:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.customer_id != customer.id:
        raise PermissionDenied("Access denied")
    if order.status != OrderStatus.PENDING or order.payment_status != PaymentStatus.PENDING:
        raise ConflictError("Order is not awaiting payment")
    if round(amount, 2) != round(order.total, 2):
        raise ValidationError("Amount does not match order total")

    base_url = settings.BASE_URL
    data = client.create_checkout({
        # сумма в центах: R790 = 79000
        "amount": int(round(order.total * 100)),
        "currency": "ZAR",
        "successUrl": f"{base_url}/payment/success?order_id={order.id}",
        "cancelUrl": f"{base_url}/payment/cancel?order_id={order.id}",
        "failureUrl": f"{base_url}/payment/cancel?order_id={order.id}",
        "metadata": {"orderId": str(order.id), "orderNumber": order.order_number},
    })

    order.checkout_id = data["id"]
    order.payment_method = "YOCO"
    db.commit()
    logger.info(f"Checkout {data['id']} created for order {order.order_number}")
    return {"paymentUrl": data["redirectUrl"], "orderNumber": order.order_number}


# ---------------------------------------------------------------------------
# Webhook signature
# ---------------------------------------------------------------------------

def _decode_secret(secret: str) -> bytes:
    if secret.startswith(SECRET_PREFIX):
        secret = secret[len(SECRET_PREFIX):]
    try:
        return base64.b64decode(secret)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Webhook secret is not valid base64") from e


def sign_payload(secret: str, webhook_id: str, timestamp: str, body: bytes) -> str:
    """Подпись без префикса версии, base64."""
    signed = f"{webhook_id}.{timestamp}.".encode() + body
    digest = hmac.new(_decode_secret(secret), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_signature(
    secret: str,
    webhook_id: str | None,
    timestamp: str | None,
    signature_header: str | None,
    body: bytes,
    now: float | None = None,
    tolerance: int | None = None,
) -> None:
    """Проверяет подпись и свежесть timestamp; при несовпадении бросает IntegrityError."""
    if not webhook_id or not timestamp or not signature_header:
        raise IntegrityError("Missing webhook signature headers")
    try:
        ts = int(timestamp)
    except ValueError:
        raise IntegrityError("Invalid webhook timestamp")

    now = time.time() if now is None else now
    tolerance = settings.WEBHOOK_TOLERANCE_SECONDS if tolerance is None else tolerance
    if abs(now - ts) > tolerance:
        raise IntegrityError("Webhook timestamp outside tolerance")

    expected = sign_payload(secret, webhook_id, timestamp, body)
    for token in signature_header.split():
        # "v1,<подпись>": версия отбрасывается
        candidate = token.split(",", 1)[1] if "," in token else token
        if hmac.compare_digest(candidate.encode(), expected.encode()):
            return
    raise IntegrityError("Invalid webhook signature")


# ---------------------------------------------------------------------------
# Webhook processing
# ---------------------------------------------------------------------------

@dataclass
class WebhookResult:
    status: str  # processed | duplicate | ignored
    order_number: str | None = None

    def as_dict(self) -> dict:
        return {
            "success": True,
            "status": self.status,
            "duplicate": self.status == "duplicate",
            "orderNumber": self.order_number,
        }


def parse_event(body: bytes) -> tuple[str, str]:
    """Возвращает (type, checkoutId) из тела события."""
    try:
        event = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON payload")
    if not isinstance(event, dict):
        raise ValidationError("Invalid JSON payload")
    payload = event.get("payload")
    if not isinstance(payload, dict):
        raise ValidationError("Missing payload")
    metadata = payload.get("metadata") or {}
    checkout_id = metadata.get("checkoutId") if isinstance(metadata, dict) else None
    if not checkout_id:
        raise ValidationError("Missing checkoutId")
    return str(event.get("type") or ""), str(checkout_id)


def handle_webhook(
    db: Session,
    body: bytes,
    webhook_id: str | None,
    timestamp: str | None,
    signature: str | None,
    notifier=None,
    now: float | None = None,
) -> WebhookResult:
    secret = settings.PAYMENT_WEBHOOK_SECRET
    if secret:
        verify_signature(secret, webhook_id, timestamp, signature, body, now=now)
    else:
        security_logger.warning("PAYMENT_WEBHOOK_SECRET not configured, webhook signature NOT verified")

    event_type, checkout_id = parse_event(body)

    if webhook_id and db.get(WebhookEvent, webhook_id) is not None:
        logger.info(f"Webhook {webhook_id} already processed, skipping")
        return WebhookResult("duplicate")

    if event_type not in (EVENT_PAYMENT_SUCCEEDED, EVENT_PAYMENT_FAILED):
        logger.info(f"Unhandled webhook event type {event_type!r} for checkout {checkout_id}")
        return WebhookResult("ignored")

    order = db.scalars(select(Order).where(Order.checkout_id == checkout_id)).first()
    if order is None:
        logger.error(f"Order not found for checkout {checkout_id}")
        raise NotFoundError("Order not found")

    try:
        if webhook_id:
            db.add(WebhookEvent(id=webhook_id, event_type=event_type, checkout_id=checkout_id))
            db.flush()
        if event_type == EVENT_PAYMENT_SUCCEEDED:
            changed, confirmed = _apply_success(db, order)
        else:
            changed, confirmed = _apply_failure(db, order), False
        db.commit()
    except DBIntegrityError:
        # тот же webhook-id успел записать параллельный запрос
        db.rollback()
        logger.info(f"Webhook {webhook_id} processed concurrently, skipping")
        return WebhookResult("duplicate")
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    if not changed:
        return WebhookResult("duplicate", order.order_number)

    logger.info(f"Payment {event_type} for order {order.order_number}")
    if confirmed and notifier is not None:
        notifier.order_confirmed(order)
    return WebhookResult("processed", order.order_number)


def _cas_payment(db: Session, order: Order, prev_status: OrderStatus, values: dict) -> bool:
    result = db.execute(
        update(Order)
        .where(
            Order.id == order.id,
            Order.payment_status == PaymentStatus.PENDING,
            Order.status == prev_status,
        )
        .values(**values, checkout_id=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _apply_success(db: Session, order: Order) -> tuple[bool, bool]:
    """Возвращает (изменён ли заказ, переведён ли в CONFIRMED)."""
    for _ in range(3):
        db.refresh(order)
        if order.payment_status != PaymentStatus.PENDING:
            return False, False
        prev = order.status
        if prev == OrderStatus.PENDING:
            authorize(order, OrderStatus.CONFIRMED, Actor.system())
            values = {
                "payment_status": PaymentStatus.PAID,
                "status": OrderStatus.CONFIRMED,
                "confirmed_at": utcnow(),
            }
            if _cas_payment(db, order, prev, values):
                return True, True
        else:
            # статус уже сменил админ; фиксируем только оплату
            if prev == OrderStatus.CANCELLED:
                logger.warning(f"Payment received for cancelled order {order.order_number}, refund required")
            if _cas_payment(db, order, prev, {"payment_status": PaymentStatus.PAID}):
                return True, False
    raise ConflictError("Order was modified concurrently")


def _apply_failure(db: Session, order: Order) -> bool:
    for _ in range(3):
        db.refresh(order)
        if order.payment_status != PaymentStatus.PENDING:
            return False
        prev = order.status
        if prev in TERMINAL_STATUSES:
            # отменён админом (товар уже возвращён) или доставлен
            if _cas_payment(db, order, prev, {"payment_status": PaymentStatus.FAILED}):
                return True
            continue
        values = {"payment_status": PaymentStatus.FAILED, "status": OrderStatus.CANCELLED}
        if _cas_payment(db, order, prev, values):
            stock.release_order(db, order)
            return True
    raise ConflictError("Order was modified concurrently")
