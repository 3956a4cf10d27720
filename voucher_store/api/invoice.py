import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlmodel import Session

from voucher_store.core.database import get_db
from voucher_store.errors import NotFoundError
from voucher_store.models import Certificate
from voucher_store.services import invoicing
from voucher_store.services.invoice_pdf import InvoiceRenderer, get_renderer
from voucher_store.services.orders import get_order
from voucher_store.services.pricing import get_store_settings

log = logging.getLogger("vouchers.invoice")

router = APIRouter(prefix="/api/invoice", tags=["invoice"])


@router.get("/{order_id}/pdf")
def invoice_pdf(
    order_id: int,
    db: Session = Depends(get_db),
    render: InvoiceRenderer = Depends(get_renderer),
):
    order = get_order(db, order_id)
    invoice = invoicing.ensure_invoice(db, order)
    if not invoice:
        raise NotFoundError("Invoice not found", "الفاتورة غير موجودة")
    certificate = db.get(Certificate, order.certificate_id) if order.certificate_id else None
    context = invoicing.build_invoice_context(order, invoice, get_store_settings(db), certificate)
    pdf = render(context)
    log.info("Invoice PDF rendered: invoice_number=%s bytes=%s", invoice.invoice_number, len(pdf))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="invoice-{invoice.invoice_number}.pdf"'},
    )
