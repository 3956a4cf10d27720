"""Discount code: percentage or fixed amount, validity window, usage cap, optional customer restriction."""
from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from .base import utcnow


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class DiscountCode(SQLModel, table=True):
    """Created by admin; used_count moves only when an order referencing it is PAID."""

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True, max_length=64)  # stored upper-case
    discount_type: DiscountType
    discount_value: float  # PERCENTAGE: (0, 100], FIXED: SAR
    description_en: str = ""
    description_ar: str = ""
    min_quantity: int | None = None
    max_uses: int | None = None  # null = unlimited
    used_count: int = 0
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    # Institution/customer name this code is reserved for; null = anyone
    customer_restriction: str | None = Field(default=None, max_length=200)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
