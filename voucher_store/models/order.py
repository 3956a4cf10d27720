from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from .base import utcnow


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class CustomerType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    INSTITUTION = "INSTITUTION"


class Order(SQLModel, table=True):
    """One checkout attempt. Mutated only by settle(); never deleted."""

    __tablename__ = "orders"

    id: int | None = Field(default=None, primary_key=True)
    order_number: str = Field(unique=True, index=True, max_length=32)  # ORD-202610-7KQ2ZD
    customer_type: CustomerType = Field(default=CustomerType.INDIVIDUAL)
    customer_name: str = Field(max_length=200)  # individual or institution name
    contact_name: str = Field(max_length=200)
    email: str = Field(max_length=254)
    phone: str = Field(max_length=32)
    customer_vat_number: str | None = Field(default=None, max_length=32)
    certificate_id: int | None = Field(default=None, foreign_key="certificate.id", index=True)
    quantity: int
    unit_price: float
    subtotal: float
    discount_code_used: str | None = Field(default=None, max_length=64)
    discount_amount: float = 0.0
    vat_amount: float
    total_amount: float
    status: OrderStatus = Field(default=OrderStatus.PENDING, index=True)
    gateway_charge_id: str | None = Field(default=None, unique=True, index=True, max_length=64)
    gateway_transaction_id: str | None = Field(default=None, max_length=128)
    payment_method: str | None = Field(default=None, max_length=64)
    vouchers_assigned: int = 0  # reserved before any voucher row is claimed
    paid_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
