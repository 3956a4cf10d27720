"""
Order state machine: PENDING -> PAID | CANCELLED, both terminal.

create_order() is the only writer of new orders; settle() is the only writer of
status. settle() is a single conditional UPDATE, so among concurrent callers for
the same order exactly one observes APPLIED.
"""
import logging
import secrets
import string
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from voucher_store.core.config import settings
from voucher_store.core.security import Caller
from voucher_store.errors import NotFoundError, OrderNotFound, StateError, UpstreamError, ValidationError
from voucher_store.models import Certificate, CustomerType, Order, OrderStatus
from voucher_store.models.base import utcnow
from voucher_store.schemas.checkout import CheckoutRequest
from voucher_store.services import discount as ledger
from voucher_store.services.gateway import ChargeRequest, PaymentGateway
from voucher_store.services.pricing import StoreSettings, calculate_pricing, get_store_settings

log = logging.getLogger("vouchers.orders")

ORDER_PREFIX = "ORD-"
_ALPHABET = string.ascii_uppercase + string.digits
_ORDER_NUMBER_ATTEMPTS = 3
MAX_QUANTITY = 1000


class SettleOutcome(str, Enum):
    APPLIED = "APPLIED"
    ALREADY_SETTLED = "ALREADY_SETTLED"


@dataclass
class CheckoutResult:
    order: Order
    redirect_url: str


def generate_order_number() -> str:
    now = utcnow()
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{ORDER_PREFIX}{now:%Y%m}-{suffix}"


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise OrderNotFound()
    return order


def find_by_charge_id(db: Session, charge_id: str) -> Order | None:
    return db.exec(select(Order).where(Order.gateway_charge_id == charge_id)).first()


def _require(value: str | None, field: str, en: str, ar: str) -> str:
    v = (value or "").strip()
    if not v:
        raise ValidationError(en, ar, reason=field)
    return v


def _check_checkout(checkout: CheckoutRequest) -> None:
    if checkout.quantity is None or checkout.quantity < 1:
        raise ValidationError("Quantity must be at least 1", "يجب أن تكون الكمية 1 على الأقل", reason="quantity")
    if checkout.quantity > MAX_QUANTITY:
        raise ValidationError(
            f"Quantity cannot exceed {MAX_QUANTITY}", f"لا يمكن أن تتجاوز الكمية {MAX_QUANTITY}", reason="quantity"
        )
    _require(checkout.contact_name, "contactName", "Contact name is required", "اسم جهة الاتصال مطلوب")
    email = _require(checkout.email, "email", "Email is required", "البريد الإلكتروني مطلوب")
    if "@" not in email:
        raise ValidationError("Enter a valid email address", "أدخل بريداً إلكترونياً صالحاً", reason="email")
    _require(checkout.phone, "phone", "Phone number is required", "رقم الجوال مطلوب")


def unit_price_for(certificate: Certificate | None, customer_type: CustomerType, store: StoreSettings) -> float:
    if certificate is None:
        return store.voucher_base_price
    if customer_type is CustomerType.INSTITUTION:
        return certificate.institution_base_price
    return certificate.retail_price


class ConflictOnOrderNumber(UpstreamError):
    status_code = 503
    default_en = "Could not create the order, please try again"
    default_ar = "تعذر إنشاء الطلب، يرجى المحاولة مرة أخرى"


def _insert_with_unique_number(db: Session, order: Order) -> Order:
    for attempt in range(_ORDER_NUMBER_ATTEMPTS):
        order.order_number = generate_order_number()
        db.add(order)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            log.warning("Order number collision, retrying: attempt=%s", attempt + 1)
            continue
        db.refresh(order)
        return order
    raise ConflictOnOrderNumber()


def create_order(db: Session, gateway: PaymentGateway, caller: Caller, checkout: CheckoutRequest) -> CheckoutResult:
    """
    Prices the order, persists it as PENDING and opens one gateway charge.
    Every call creates a new order; a failed charge leaves a PENDING order without
    charge id that no reconciliation path will ever touch.
    """
    _check_checkout(checkout)
    customer_type = CustomerType.INSTITUTION if caller.is_institution else CustomerType.INDIVIDUAL
    customer_name = (checkout.customer_name or "").strip()
    if customer_type is CustomerType.INSTITUTION and caller.institution_name:
        customer_name = caller.institution_name
    if not customer_name:
        if customer_type is CustomerType.INSTITUTION:
            raise ValidationError("Institution name is required", "اسم الجهة مطلوب", reason="universityName")
        customer_name = checkout.contact_name.strip()

    certificate = None
    if checkout.certificate_id is not None:
        certificate = db.get(Certificate, checkout.certificate_id)
        if not certificate or not certificate.is_active:
            raise NotFoundError("Certificate not found", "الشهادة غير موجودة")

    store = get_store_settings(db)
    unit_price = unit_price_for(certificate, customer_type, store)

    discount_code = None
    discount_type = None
    discount_value = 0.0
    if checkout.discount_code and checkout.discount_code.strip():
        validation = ledger.validate(
            db,
            checkout.discount_code,
            checkout.quantity,
            customer_name=customer_name,
            subtotal=round(unit_price * checkout.quantity, 2),
        )
        validation.raise_for_rejection()
        discount_code = validation.discount.code
        discount_type = validation.discount.discount_type
        discount_value = validation.discount.discount_value

    pricing = calculate_pricing(unit_price, checkout.quantity, store.vat_percentage, discount_type, discount_value)
    order = Order(
        order_number="",
        customer_type=customer_type,
        customer_name=customer_name,
        contact_name=checkout.contact_name.strip(),
        email=checkout.email.strip().lower(),
        phone=checkout.phone.strip(),
        customer_vat_number=(checkout.customer_vat_number or "").strip() or None,
        certificate_id=certificate.id if certificate else None,
        quantity=checkout.quantity,
        unit_price=pricing.unit_price,
        subtotal=pricing.subtotal,
        discount_code_used=discount_code,
        discount_amount=pricing.discount_amount,
        vat_amount=pricing.vat_amount,
        total_amount=pricing.total,
    )
    order = _insert_with_unique_number(db, order)
    log.info(
        "Order created: order_number=%s customer_type=%s quantity=%s total=%.2f discount=%s",
        order.order_number,
        customer_type.value,
        order.quantity,
        order.total_amount,
        discount_code or "-",
    )

    product = certificate.name_en if certificate else "Exam voucher"
    locale = checkout.locale if checkout.locale in ("en", "ar") else "en"
    charge = gateway.create_charge(
        ChargeRequest(
            amount=order.total_amount,
            currency=settings.tap_currency,
            customer_name=order.contact_name,
            customer_email=order.email,
            customer_phone=order.phone,
            description=f"{product} x{order.quantity} - {customer_name}",
            order_id=order.id,
            redirect_url=f"{settings.app_url}/{locale}/success/{order.id}",
            metadata={
                "order_number": order.order_number,
                "customer": customer_name,
                "quantity": str(order.quantity),
            },
        )
    )
    order.gateway_charge_id = charge.id
    order.updated_at = utcnow()
    db.add(order)
    db.commit()
    db.refresh(order)
    return CheckoutResult(order=order, redirect_url=charge.redirect_url or "")


def settle(
    db: Session,
    order_id: int,
    terminal_status: OrderStatus,
    gateway_txn_id: str | None = None,
    payment_method: str | None = None,
) -> SettleOutcome:
    """Moves a PENDING order to PAID or CANCELLED. No-op once any terminal state is reached."""
    if terminal_status not in (OrderStatus.PAID, OrderStatus.CANCELLED):
        raise StateError(f"settle() cannot move an order to {terminal_status.value}")
    now = utcnow()
    values: dict = {"status": terminal_status, "updated_at": now}
    if terminal_status is OrderStatus.PAID:
        values["paid_at"] = now
    if gateway_txn_id:
        values["gateway_transaction_id"] = gateway_txn_id
    if payment_method:
        values["payment_method"] = payment_method
    stmt = (
        update(Order)
        .where(Order.id == order_id)
        .where(Order.status == OrderStatus.PENDING)
        .values(**values)
    )
    result = db.execute(stmt)
    db.commit()
    if result.rowcount == 1:
        log.info("Order settled: order_id=%s status=%s", order_id, terminal_status.value)
        return SettleOutcome.APPLIED
    if db.get(Order, order_id) is None:
        raise OrderNotFound()
    log.info("Order already settled, ignoring %s: order_id=%s", terminal_status.value, order_id)
    return SettleOutcome.ALREADY_SETTLED
