import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as SchemaError
from sqlmodel import Session

from voucher_store.core.config import settings
from voucher_store.core.database import get_db
from voucher_store.errors import AuthError, OrderNotFound, ValidationError
from voucher_store.models import Order, OrderStatus
from voucher_store.schemas import GatewayNotification, OrderSnapshot
from voucher_store.services import invoicing
from voucher_store.services.email_sender import PaidOrderNotifier, get_notifier
from voucher_store.services.gateway import PaymentGateway, get_gateway
from voucher_store.services.orders import get_order
from voucher_store.services.reconciler import handle_notification, poll_order

log = logging.getLogger("vouchers.payment")

router = APIRouter(prefix="/api", tags=["payment"])

_VIEW_STATES = {
    OrderStatus.PAID: "paid",
    OrderStatus.PENDING: "processing",
    OrderStatus.CANCELLED: "payment_failed",
    OrderStatus.REFUNDED: "refunded",
}


async def raw_body(request: Request) -> bytes:
    return await request.body()


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, (signature or "").strip().lower())


def _parse_notification(body: bytes) -> GatewayNotification:
    try:
        data = json.loads(body or b"")
    except ValueError:
        raise ValidationError("Body must be JSON", "يجب أن يكون المحتوى بصيغة JSON")
    if not isinstance(data, dict):
        raise ValidationError("Body must be a JSON object", "يجب أن يكون المحتوى كائن JSON")
    try:
        return GatewayNotification.model_validate(data)
    except SchemaError:
        raise ValidationError("Malformed charge notification", "إشعار الدفع غير صالح")


@router.post("/payment/webhook")
def payment_webhook(
    request: Request,
    body: bytes = Depends(raw_body),
    db: Session = Depends(get_db),
    notifier: PaidOrderNotifier = Depends(get_notifier),
):
    """
    Tap charge notification. Answers 200 for everything it could attribute to an
    order, including duplicates and settlement failures, so Tap stops redelivering.
    """
    if settings.tap_webhook_secret:
        if not verify_signature(body, request.headers.get("x-tap-signature"), settings.tap_webhook_secret):
            log.warning("Webhook signature mismatch")
            raise AuthError("Invalid webhook signature", "توقيع الإشعار غير صالح")
    notification = _parse_notification(body)
    try:
        result = handle_notification(db, notification, notifier)
    except (ValidationError, OrderNotFound):
        raise
    except Exception:
        db.rollback()
        log.exception("Webhook settlement failed: charge_id=%s", notification.id)
        return {"received": True}
    return {"received": True, "result": result.value}


@router.get("/payment/webhook")
def payment_webhook_status():
    return {"status": "Webhook endpoint active"}


def order_snapshot(order: Order, invoice_number: str | None) -> OrderSnapshot:
    return OrderSnapshot(
        id=order.id,
        order_number=order.order_number,
        status=order.status.value,
        state=_VIEW_STATES[order.status],
        customer_name=order.customer_name,
        contact_name=order.contact_name,
        quantity=order.quantity,
        total_amount=order.total_amount,
        paid_at=order.paid_at,
        invoice_number=invoice_number,
    )


@router.get("/orders/{order_id}", response_model=OrderSnapshot, response_model_by_alias=True)
def order_status(
    order_id: int,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: PaidOrderNotifier = Depends(get_notifier),
):
    """Success page: polls Tap when the webhook has not arrived yet."""
    order = poll_order(db, get_order(db, order_id), gateway, notifier)
    invoice = invoicing.ensure_invoice(db, order)
    return order_snapshot(order, invoice.invoice_number if invoice else None)
