from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from .base import utcnow


class VoucherStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    ASSIGNED = "ASSIGNED"
    DELIVERED = "DELIVERED"
    USED = "USED"
    EXPIRED = "EXPIRED"


# Forward-only lifecycle. RESERVED -> AVAILABLE is the reservation release.
VOUCHER_TRANSITIONS: dict[VoucherStatus, frozenset[VoucherStatus]] = {
    VoucherStatus.AVAILABLE: frozenset({VoucherStatus.RESERVED, VoucherStatus.ASSIGNED, VoucherStatus.EXPIRED}),
    VoucherStatus.RESERVED: frozenset({VoucherStatus.ASSIGNED, VoucherStatus.AVAILABLE, VoucherStatus.EXPIRED}),
    VoucherStatus.ASSIGNED: frozenset({VoucherStatus.DELIVERED, VoucherStatus.EXPIRED}),
    VoucherStatus.DELIVERED: frozenset({VoucherStatus.USED, VoucherStatus.EXPIRED}),
    VoucherStatus.USED: frozenset(),
    VoucherStatus.EXPIRED: frozenset(),
}

PRE_USED_STATUSES = (
    VoucherStatus.AVAILABLE,
    VoucherStatus.RESERVED,
    VoucherStatus.ASSIGNED,
    VoucherStatus.DELIVERED,
)


class Voucher(SQLModel, table=True):
    """A single exam voucher code. The code itself is confidential; never log it."""

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True, max_length=128)
    certificate_id: int = Field(foreign_key="certificate.id", index=True)
    status: VoucherStatus = Field(default=VoucherStatus.AVAILABLE, index=True)
    purchase_price: float = 0.0
    purchased_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(index=True)
    batch_id: str | None = Field(default=None, index=True, max_length=32)
    imported_at: datetime = Field(default_factory=utcnow)
    assigned_at: datetime | None = None
    assigned_to_order_id: int | None = Field(default=None, foreign_key="orders.id", index=True)
    assigned_by: str | None = Field(default=None, max_length=128)
    recipient_email: str | None = Field(default=None, max_length=254)
    recipient_name: str | None = Field(default=None, max_length=200)
    delivered_at: datetime | None = None
    used_at: datetime | None = None
    notes: str | None = None
    updated_at: datetime = Field(default_factory=utcnow)


class VoucherBatch(SQLModel, table=True):
    """One bulk import from the exam vendor."""

    id: int | None = Field(default=None, primary_key=True)
    batch_id: str = Field(unique=True, index=True, max_length=32)  # BATCH-20261019-X7Q2LM
    certificate_id: int = Field(foreign_key="certificate.id", index=True)
    total_count: int
    purchase_price_per_unit: float = 0.0
    expires_at: datetime
    supplier_order_ref: str | None = Field(default=None, max_length=128)
    notes: str | None = None
    imported_by: str | None = Field(default=None, max_length=128)
    imported_at: datetime = Field(default_factory=utcnow)
