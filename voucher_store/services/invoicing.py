"""
Invoice issuer. Invoice numbers are derived from order numbers
(ORD-202610-7KQ2ZD -> INV-202610-7KQ2ZD), and invoice.order_id is unique, so two
racing issuers produce one row: the loser's insert fails and it returns the winner's.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from voucher_store.errors import StateError
from voucher_store.models import Certificate, Invoice, Order, OrderStatus
from voucher_store.services.orders import ORDER_PREFIX
from voucher_store.services.pricing import StoreSettings
from voucher_store.services.zatca_qr import ZatcaInvoiceData, encode_payload, qr_svg_data_uri, validate_zatca_data

log = logging.getLogger("vouchers.invoice")

INVOICE_PREFIX = "INV-"


def invoice_number_for(order_number: str) -> str:
    suffix = order_number[len(ORDER_PREFIX):] if order_number.startswith(ORDER_PREFIX) else order_number
    return f"{INVOICE_PREFIX}{suffix}"


def find_invoice(db: Session, order_id: int) -> Invoice | None:
    return db.exec(select(Invoice).where(Invoice.order_id == order_id)).first()


def issue(db: Session, order: Order) -> Invoice:
    """Returns the order's invoice, creating it on first call. Only PAID orders are invoiced."""
    if order.status != OrderStatus.PAID:
        raise StateError("Only paid orders can be invoiced", "لا يمكن إصدار فاتورة إلا للطلبات المدفوعة")
    existing = find_invoice(db, order.id)
    if existing:
        return existing
    invoice = Invoice(invoice_number=invoice_number_for(order.order_number), order_id=order.id)
    db.add(invoice)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = find_invoice(db, order.id)
        if winner is None:
            raise
        log.info("Invoice already issued by a concurrent request: order_id=%s", order.id)
        return winner
    db.refresh(invoice)
    log.info("Invoice issued: invoice_number=%s order_id=%s", invoice.invoice_number, order.id)
    return invoice


def ensure_invoice(db: Session, order: Order) -> Invoice | None:
    """
    Lazy retry for PAID orders whose invoice was not created at settlement time.
    Failures are logged; the caller shows the order without an invoice number.
    """
    if order.status != OrderStatus.PAID:
        return find_invoice(db, order.id)
    try:
        return issue(db, order)
    except Exception:
        log.warning("Invoice retry failed: order_id=%s", order.id, exc_info=True)
        db.rollback()
        return None


def invoice_timestamp(order: Order) -> datetime:
    return order.paid_at or order.created_at


def build_zatca_data(order: Order, store: StoreSettings) -> ZatcaInvoiceData:
    return ZatcaInvoiceData(
        seller_name=store.company_name_ar or store.company_name_en,
        vat_number=store.company_vat_number,
        timestamp=invoice_timestamp(order),
        total_amount=order.total_amount,
        vat_amount=order.vat_amount,
    )


def build_invoice_context(
    order: Order,
    invoice: Invoice,
    store: StoreSettings,
    certificate: Certificate | None = None,
) -> dict:
    """Structured input for the PDF renderer."""
    zatca = build_zatca_data(order, store)
    problems = validate_zatca_data(zatca)
    qr_payload = None
    qr_image = None
    if problems:
        log.warning("Invoice without ZATCA QR: invoice_number=%s problems=%s", invoice.invoice_number, problems)
    else:
        qr_payload = encode_payload(zatca)
        qr_image = qr_svg_data_uri(qr_payload)
    issued_at = invoice_timestamp(order)
    item_en = certificate.name_en if certificate else "Exam voucher"
    item_ar = certificate.name_ar if certificate else "قسيمة اختبار"
    return {
        "invoice_number": invoice.invoice_number,
        "issue_date": issued_at.strftime("%Y-%m-%d"),
        "issue_time": issued_at.strftime("%H:%M"),
        "order_number": order.order_number,
        "company": {
            "name_en": store.company_name_en,
            "name_ar": store.company_name_ar,
            "vat_number": store.company_vat_number,
            "cr_number": store.company_cr_number,
        },
        "customer": {
            "name": order.customer_name,
            "contact_name": order.contact_name,
            "email": order.email,
            "phone": order.phone,
            "vat_number": order.customer_vat_number,
        },
        "items": [
            {
                "description_en": item_en,
                "description_ar": item_ar,
                "quantity": order.quantity,
                "unit_price": order.unit_price,
                "amount": order.subtotal,
            }
        ],
        "subtotal": order.subtotal,
        "discount_code": order.discount_code_used,
        "discount_amount": order.discount_amount,
        "vat_percentage": store.vat_percentage,
        "vat_amount": order.vat_amount,
        "total_amount": order.total_amount,
        "currency": "SAR",
        "status": order.status.value,
        "qr_payload": qr_payload,
        "qr_image": qr_image,
    }
