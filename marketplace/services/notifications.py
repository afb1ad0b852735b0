# marketplace/services/notifications.py
# SMS уведомления по событиям заказа.
# Текст собирается сразу (пока открыта сессия БД), а отправка уходит в
# BackgroundTasks и не блокирует ответ. Ошибки шлюза только логируются.

import logging

import httpx
from fastapi import BackgroundTasks

from marketplace.core.config import settings
from marketplace.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

BRAND = "BLAQMART"


def format_currency(amount: float) -> str:
    return f"R{amount:,.2f}"


def format_phone_number(phone: str) -> str:
    """Приводит номер к E.164; локальные номера считаются южноафриканскими."""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if phone.strip().startswith("+"):
        return f"+{digits}"
    if digits.startswith("27"):
        return f"+{digits}"
    if digits.startswith("0"):
        return f"+27{digits[1:]}"
    return f"+27{digits}"


class SmsClient:
    """Отправка SMS через REST API шлюза (Twilio совместимый)."""

    def __init__(self, http: httpx.Client | None = None):
        self._http = http

    @property
    def configured(self) -> bool:
        return bool(settings.SMS_ACCOUNT_SID and settings.SMS_AUTH_TOKEN and settings.SMS_FROM_NUMBER)

    def send(self, to: str, message: str) -> bool:
        to = format_phone_number(to)
        if not self.configured:
            logger.info(f"[SMS Mock] to={to}: {message}")
            return True

        url = f"{settings.SMS_API_URL}/Accounts/{settings.SMS_ACCOUNT_SID}/Messages.json"
        data = {"To": to, "From": settings.SMS_FROM_NUMBER, "Body": message}
        auth = (settings.SMS_ACCOUNT_SID, settings.SMS_AUTH_TOKEN)
        try:
            if self._http is not None:
                response = self._http.post(url, data=data, auth=auth)
            else:
                with httpx.Client(timeout=settings.HTTP_TIMEOUT) as client:
                    response = client.post(url, data=data, auth=auth)
            response.raise_for_status()
        except httpx.HTTPError as e:
            err = ExternalServiceError(f"SMS delivery to {to} failed: {e}")
            logger.error(err.message, exc_info=True)
            return False
        logger.info(f"SMS sent to {to}")
        return True


class Notifier:
    """Уведомления участников заказа.

    schedule: функция вида BackgroundTasks.add_task; без неё отправка синхронная.
    """

    def __init__(self, schedule=None, sms: SmsClient | None = None):
        self._schedule = schedule
        self._sms = sms or SmsClient()

    def _send(self, phone: str | None, message: str) -> None:
        if not phone:
            return
        if self._schedule is not None:
            self._schedule(self._sms.send, phone, message)
        else:
            self._sms.send(phone, message)

    def order_created(self, order) -> None:
        customer_name = order.customer.full_name or "Customer"
        self._send(
            order.customer_phone,
            f"Hi {customer_name}! Your {BRAND} order {order.order_number} has been placed. "
            f"Total: {format_currency(order.total)}. From: {order.store.name}. "
            f"We'll notify you when it's confirmed.",
        )
        self._send(
            order.store.phone,
            f"New order received! Order {order.order_number} from {customer_name}. "
            f"Total: {format_currency(order.total)}. Please confirm and prepare the order.",
        )

    def order_confirmed(self, order) -> None:
        minutes = order.estimated_time or settings.DEFAULT_DELIVERY_MINUTES
        self._send(
            order.customer_phone,
            f"Great news! Your order {order.order_number} has been confirmed by {order.store.name}. "
            f"Your order will be delivered in approximately {minutes} minutes.",
        )

    def driver_assigned(self, order) -> None:
        driver = order.driver
        minutes = order.estimated_time or settings.DEFAULT_DELIVERY_MINUTES
        self._send(
            order.customer_phone,
            f"Your order {order.order_number} is on the way! Driver: {driver.full_name or 'Driver'} "
            f"({driver.phone}). ETA: {minutes} minutes.",
        )
        self._send(
            driver.phone,
            f"New delivery assigned! Order {order.order_number} from {order.store.name}. "
            f"Deliver to: {order.delivery_address}. Check your dashboard for details.",
        )

    def out_for_delivery(self, order) -> None:
        self._send(
            order.customer_phone,
            f"Your {BRAND} order {order.order_number} is out for delivery! "
            f"Your driver is on the way. Please be available to receive your order.",
        )

    def order_delivered(self, order) -> None:
        customer_name = order.customer.full_name or "Customer"
        self._send(
            order.customer_phone,
            f"Hi {customer_name}! Your order {order.order_number} has been delivered. "
            f"Thank you for using {BRAND}!",
        )

    def driver_approved(self, profile) -> None:
        self._send(
            profile.user.phone,
            f"Congratulations {profile.name}! Your {BRAND} driver application has been approved. "
            f"You can now start accepting deliveries.",
        )


def get_notifier(background_tasks: BackgroundTasks) -> Notifier:
    """Зависимость FastAPI: уведомления уходят после отправки ответа."""
    return Notifier(schedule=background_tasks.add_task)
