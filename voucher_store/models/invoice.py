from datetime import datetime

from sqlmodel import Field, SQLModel

from .base import utcnow


class Invoice(SQLModel, table=True):
    """One per PAID order. The unique order_id is what makes issuing exactly-once."""

    id: int | None = Field(default=None, primary_key=True)
    invoice_number: str = Field(unique=True, index=True, max_length=32)
    order_id: int = Field(foreign_key="orders.id", unique=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
