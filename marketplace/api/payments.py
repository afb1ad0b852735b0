# marketplace/api/payments.py
# Роуты оплаты: создание hosted checkout и webhook от платёжного шлюза.
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from marketplace.core import security
from marketplace.models.user import User, RoleEnum
from marketplace.schemas.requests import PaymentInitiateIn
from marketplace.services import payments
from marketplace.services.notifications import Notifier, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/initiate")
def initiate(
    body: PaymentInitiateIn,
    db: Session = Depends(security.get_db),
    current_user: User = Depends(security.require_role(RoleEnum.customer)),
    client: payments.CheckoutClient = Depends(payments.get_checkout_client),
):
    """Создаёт checkout и возвращает URL для редиректа покупателя."""
    result = payments.initiate_payment(db, body.order_id, body.amount, current_user, client)
    return {"success": True, **result}

@router.post("/notify")
async def notify(
    request: Request,
    db: Session = Depends(security.get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Webhook платёжного шлюза. Подпись проверяется по сырому телу,
    поэтому тело читается до разбора JSON.
    """
    body = await request.body()
    result = await run_in_threadpool(
        payments.handle_webhook,
        db,
        body,
        request.headers.get("webhook-id"),
        request.headers.get("webhook-timestamp"),
        request.headers.get("webhook-signature"),
        notifier,
    )
    return result.as_dict()
