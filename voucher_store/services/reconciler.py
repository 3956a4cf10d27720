"""
Payment reconciler. Two signals report a charge's outcome: the Tap webhook (push,
at-least-once, possibly out of order) and the success-page poll (pull). Both go
through settle(), whose conditional UPDATE lets exactly one caller observe APPLIED;
only that caller runs the post-payment effects.
"""
import logging
from enum import Enum

from sqlmodel import Session

from voucher_store.errors import OrderNotFound, ValidationError
from voucher_store.models import Invoice, Order, OrderStatus
from voucher_store.schemas.payment import GatewayNotification
from voucher_store.services import discount as ledger
from voucher_store.services import invoicing
from voucher_store.services.email_sender import PaidOrderNotifier
from voucher_store.services.gateway import ChargeStatus, PaymentGateway, terminal_outcome
from voucher_store.services.orders import SettleOutcome, find_by_charge_id, settle
from voucher_store.services.pricing import get_store_settings

log = logging.getLogger("vouchers.reconciler")


class ReconcileResult(str, Enum):
    SETTLED = "SETTLED"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    NOT_TERMINAL = "NOT_TERMINAL"


def _after_paid(db: Session, order_id: int, notifier: PaidOrderNotifier) -> None:
    """Runs once per order, right after the PAID transition. No step may undo the payment."""
    order = db.get(Order, order_id)
    db.refresh(order)

    if order.discount_code_used:
        try:
            ledger.commit_usage(db, order.discount_code_used)
        except Exception:
            db.rollback()
            log.warning("Discount usage not recorded: order_id=%s code=%s", order_id, order.discount_code_used, exc_info=True)

    invoice: Invoice | None = None
    try:
        invoice = invoicing.issue(db, order)
    except Exception:
        db.rollback()
        log.warning("Invoice not issued at settlement, will retry on view: order_id=%s", order_id, exc_info=True)

    try:
        notifier(order, invoice, get_store_settings(db))
    except Exception:
        log.warning("Paid-order email failed: order_id=%s", order_id, exc_info=True)


def apply_charge_status(
    db: Session,
    order: Order,
    status: ChargeStatus,
    notifier: PaidOrderNotifier,
    transaction_id: str | None = None,
    payment_method: str | None = None,
) -> ReconcileResult:
    """Shared tail of both paths: map, settle, and run effects if this caller won."""
    target = terminal_outcome(status)
    if target is None:
        log.info("Charge not terminal yet: order_id=%s status=%s", order.id, status.value)
        return ReconcileResult.NOT_TERMINAL
    outcome = settle(db, order.id, target, gateway_txn_id=transaction_id, payment_method=payment_method)
    if outcome is SettleOutcome.ALREADY_SETTLED:
        return ReconcileResult.ALREADY_SETTLED
    if target is OrderStatus.PAID:
        _after_paid(db, order.id, notifier)
    return ReconcileResult.SETTLED


def handle_notification(db: Session, notification: GatewayNotification, notifier: PaidOrderNotifier) -> ReconcileResult:
    if not notification.id or not notification.status:
        raise ValidationError("Missing charge id or status", "معرف العملية أو الحالة مفقود")
    order = find_by_charge_id(db, notification.id)
    if not order:
        log.warning("Webhook for unknown charge: charge_id=%s", notification.id)
        raise OrderNotFound()
    status = ChargeStatus.parse(notification.status)
    log.info("Webhook received: charge_id=%s status=%s order_id=%s", notification.id, status.value, order.id)
    return apply_charge_status(
        db,
        order,
        status,
        notifier,
        transaction_id=notification.transaction_id,
        payment_method=notification.payment_method,
    )


def poll_order(db: Session, order: Order, gateway: PaymentGateway, notifier: PaidOrderNotifier) -> Order:
    """
    Success-page fallback for a missed or late webhook. Gateway errors and timeouts
    are logged and the order is returned unchanged.
    """
    if order.status != OrderStatus.PENDING or not order.gateway_charge_id:
        return order
    try:
        charge = gateway.get_charge(order.gateway_charge_id)
    except Exception:
        log.warning("Charge poll failed: order_id=%s charge_id=%s", order.id, order.gateway_charge_id, exc_info=True)
        return order
    apply_charge_status(
        db,
        order,
        charge.status,
        notifier,
        transaction_id=charge.transaction_reference,
        payment_method=charge.payment_method,
    )
    db.refresh(order)
    return order
