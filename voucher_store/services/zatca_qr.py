"""
ZATCA (Saudi tax authority) e-invoice QR payload.

Five TLV records, in this order: 1 seller name, 2 seller VAT number,
3 timestamp (YYYY-MM-DDTHH:MM:SSZ, UTC), 4 invoice total, 5 VAT total.
Each record is tag (1 byte), length (1 byte), UTF-8 value; the concatenation
is Base64 encoded. An external verifier reads these bytes; the layout is fixed.
"""
import base64
from dataclasses import dataclass
from datetime import datetime, timezone

import segno

TAG_SELLER_NAME = 1
TAG_VAT_NUMBER = 2
TAG_TIMESTAMP = 3
TAG_TOTAL = 4
TAG_VAT_TOTAL = 5

MAX_VALUE_BYTES = 255
QR_ERROR_LEVEL = "m"


@dataclass(frozen=True)
class ZatcaInvoiceData:
    seller_name: str
    vat_number: str
    timestamp: datetime
    total_amount: float
    vat_amount: float


def tlv(tag: int, value: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > MAX_VALUE_BYTES:
        raise ValueError(f"TLV value for tag {tag} is {len(raw)} bytes; the limit is {MAX_VALUE_BYTES}")
    return bytes([tag, len(raw)]) + raw


def format_timestamp(ts: datetime) -> str:
    """Naive datetimes are taken as UTC."""
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


def format_amount(amount: float) -> str:
    return f"{amount:.2f}"


def validate_zatca_data(data: ZatcaInvoiceData) -> list[str]:
    errors = []
    if not (data.seller_name or "").strip():
        errors.append("Seller name is required")
    if not (data.vat_number or "").strip():
        errors.append("VAT number is required")
    if not isinstance(data.timestamp, datetime):
        errors.append("Valid timestamp is required")
    if data.total_amount is None or data.total_amount < 0:
        errors.append("Valid total amount is required")
    if data.vat_amount is None or data.vat_amount < 0:
        errors.append("Valid VAT amount is required")
    for label, value in (("Seller name", data.seller_name), ("VAT number", data.vat_number)):
        if value and len(value.encode("utf-8")) > MAX_VALUE_BYTES:
            errors.append(f"{label} exceeds {MAX_VALUE_BYTES} bytes")
    return errors


def encode_payload(data: ZatcaInvoiceData) -> str:
    records = b"".join(
        (
            tlv(TAG_SELLER_NAME, data.seller_name),
            tlv(TAG_VAT_NUMBER, data.vat_number),
            tlv(TAG_TIMESTAMP, format_timestamp(data.timestamp)),
            tlv(TAG_TOTAL, format_amount(data.total_amount)),
            tlv(TAG_VAT_TOTAL, format_amount(data.vat_amount)),
        )
    )
    return base64.b64encode(records).decode("ascii")


def decode_payload(payload: str) -> list[tuple[int, str]]:
    """Inverse of encode_payload: [(tag, value), ...] in payload order."""
    raw = base64.b64decode(payload, validate=True)
    out: list[tuple[int, str]] = []
    i = 0
    while i < len(raw):
        if i + 2 > len(raw):
            raise ValueError("Truncated TLV header")
        tag, length = raw[i], raw[i + 1]
        start, end = i + 2, i + 2 + length
        if end > len(raw):
            raise ValueError(f"Truncated TLV value for tag {tag}")
        out.append((tag, raw[start:end].decode("utf-8")))
        i = end
    return out


def make_qr(payload: str) -> segno.QRCode:
    # boost_error=False keeps the symbol at level M even when a higher level would fit
    return segno.make_qr(payload, error=QR_ERROR_LEVEL, boost_error=False)


def qr_svg_data_uri(payload: str, scale: int = 4) -> str:
    """SVG data URI for embedding in the invoice template."""
    return make_qr(payload).svg_data_uri(scale=scale, border=2)
