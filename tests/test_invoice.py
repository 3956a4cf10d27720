"""Invoice numbering, exactly-once issuing, ZATCA QR payload and the PDF endpoint."""
import base64
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from voucher_store.errors import StateError
from voucher_store.models import Invoice, OrderStatus
from voucher_store.services import invoicing
from voucher_store.services.invoice_pdf import render_invoice_html
from voucher_store.services.pricing import get_store_settings, update_store_settings
from voucher_store.services.zatca_qr import (
    ZatcaInvoiceData,
    decode_payload,
    encode_payload,
    format_timestamp,
    make_qr,
    qr_svg_data_uri,
    tlv,
    validate_zatca_data,
)

SAMPLE = ZatcaInvoiceData(
    seller_name="Bobs Records",
    vat_number="310122393500003",
    timestamp=datetime(2022, 4, 25, 15, 30, 0),
    total_amount=1000.0,
    vat_amount=150.0,
)


def test_invoice_number_derived_from_order_number():
    assert invoicing.invoice_number_for("ORD-202610-7KQ2ZD") == "INV-202610-7KQ2ZD"
    assert invoicing.invoice_number_for("LEGACY-1") == "INV-LEGACY-1"


def test_issue_requires_paid(db, make_order):
    order = make_order()
    with pytest.raises(StateError):
        invoicing.issue(db, order)


def test_issue_is_idempotent(db, make_order):
    order = make_order(status=OrderStatus.PAID)
    first = invoicing.issue(db, order)
    second = invoicing.issue(db, order)
    assert first.id == second.id
    assert first.invoice_number == "INV-202610-TEST01"
    assert len(db.exec(select(Invoice)).all()) == 1


def test_issue_returns_winner_after_unique_violation(db, make_order, monkeypatch):
    order = make_order(status=OrderStatus.PAID)
    db.add(Invoice(invoice_number=invoicing.invoice_number_for(order.order_number), order_id=order.id))
    db.commit()

    # Simulate the race window: the existence check misses the concurrent insert
    real_find = invoicing.find_invoice
    calls = {"n": 0}

    def racy_find(session, order_id):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_find(session, order_id)

    monkeypatch.setattr(invoicing, "find_invoice", racy_find)
    invoice = invoicing.issue(db, order)
    assert invoice.invoice_number == "INV-202610-TEST01"
    assert len(db.exec(select(Invoice)).all()) == 1


def test_ensure_invoice_leaves_unpaid_orders_alone(db, make_order):
    order = make_order(status=OrderStatus.CANCELLED)
    assert invoicing.ensure_invoice(db, order) is None
    assert db.exec(select(Invoice)).all() == []


def test_tlv_layout():
    raw = base64.b64decode(encode_payload(SAMPLE))
    assert raw[:14] == b"\x01\x0cBobs Records"
    assert raw[14:31] == b"\x02\x0f310122393500003"


def test_qr_payload_round_trip():
    assert decode_payload(encode_payload(SAMPLE)) == [
        (1, "Bobs Records"),
        (2, "310122393500003"),
        (3, "2022-04-25T15:30:00Z"),
        (4, "1000.00"),
        (5, "150.00"),
    ]


def test_qr_payload_arabic_seller_name_counts_bytes():
    data = ZatcaInvoiceData("كوزيل", "310122393500003", datetime(2026, 1, 1), 4082.5, 532.5)
    raw = base64.b64decode(encode_payload(data))
    assert raw[0] == 1
    assert raw[1] == len("كوزيل".encode("utf-8"))
    assert decode_payload(encode_payload(data))[0] == (1, "كوزيل")
    assert decode_payload(encode_payload(data))[3:] == [(4, "4082.50"), (5, "532.50")]


def test_tlv_value_too_long():
    with pytest.raises(ValueError):
        tlv(1, "x" * 256)
    assert len(tlv(1, "x" * 255)) == 257


def test_timestamp_is_utc():
    riyadh = timezone(timedelta(hours=3))
    assert format_timestamp(datetime(2026, 10, 19, 12, 0, 0, tzinfo=riyadh)) == "2026-10-19T09:00:00Z"
    assert format_timestamp(datetime(2026, 10, 19, 9, 0, 0)) == "2026-10-19T09:00:00Z"


def test_decode_rejects_truncated_payload():
    raw = base64.b64decode(encode_payload(SAMPLE))[:-3]
    with pytest.raises(ValueError):
        decode_payload(base64.b64encode(raw).decode())


def test_qr_symbol_uses_error_level_m():
    payload = encode_payload(SAMPLE)
    assert make_qr(payload).error == "M"
    assert qr_svg_data_uri(payload).startswith("data:image/svg+xml")


def test_invoice_context_and_html(db, make_order, certificate):
    order = make_order(status=OrderStatus.PAID, certificate_id=certificate.id, quantity=3)
    invoice = invoicing.issue(db, order)
    ctx = invoicing.build_invoice_context(order, invoice, get_store_settings(db), certificate)
    assert ctx["invoice_number"] == invoice.invoice_number
    assert ctx["items"][0]["description_en"] == "CompTIA Security+"
    assert ctx["items"][0]["quantity"] == 3
    assert ctx["total_amount"] == order.total_amount
    fields = dict(decode_payload(ctx["qr_payload"]))
    assert fields[2] == "310122393500003"
    assert fields[3] == format_timestamp(order.paid_at)
    assert fields[4] == f"{order.total_amount:.2f}"
    assert fields[5] == f"{order.vat_amount:.2f}"

    html = render_invoice_html(ctx)
    assert invoice.invoice_number in html
    assert "CompTIA Security+" in html
    assert ctx["qr_image"][:20] in html


def test_invoice_context_without_seller_vat_has_no_qr(db, make_order, monkeypatch):
    from voucher_store.core.config import settings

    monkeypatch.setattr(settings, "company_vat_number", "")
    order = make_order(status=OrderStatus.PAID)
    invoice = invoicing.issue(db, order)
    ctx = invoicing.build_invoice_context(order, invoice, get_store_settings(db))
    assert ctx["qr_payload"] is None
    assert "QR code unavailable" in render_invoice_html(ctx)


def test_pdf_endpoint(client: TestClient, renderer, make_order):
    order = make_order(status=OrderStatus.PAID)
    r = client.get(f"/api/invoice/{order.id}/pdf")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.headers["content-disposition"] == 'attachment; filename="invoice-INV-202610-TEST01.pdf"'
    assert r.content.startswith(b"%PDF")
    assert renderer.contexts[0]["order_number"] == order.order_number


def test_pdf_endpoint_missing(client: TestClient, make_order):
    assert client.get("/api/invoice/4242/pdf").status_code == 404
    pending = make_order()
    r = client.get(f"/api/invoice/{pending.id}/pdf")
    assert r.status_code == 404
    assert r.json()["error"]["en"] == "Invoice not found"


def test_seller_name_over_qr_field_limit_is_reported():
    data = ZatcaInvoiceData("شركة " * 60, "310122393500003", datetime(2026, 1, 1), 100.0, 15.0)
    assert validate_zatca_data(data) == ["Seller name exceeds 255 bytes"]


def test_pdf_endpoint_with_oversized_seller_name_renders_without_qr(client: TestClient, renderer, make_order, db):
    update_store_settings(db, {"company_name_ar": "شركة " * 60})
    order = make_order(status=OrderStatus.PAID)
    r = client.get(f"/api/invoice/{order.id}/pdf")
    assert r.status_code == 200
    assert renderer.contexts[0]["qr_payload"] is None
    assert renderer.contexts[0]["qr_image"] is None
