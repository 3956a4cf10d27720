from datetime import datetime

from sqlmodel import Field, SQLModel

from .base import utcnow


class StoreSetting(SQLModel, table=True):
    """Admin-editable override of a configured default (voucher_base_price, vat_percentage, ...)."""

    key: str = Field(primary_key=True, max_length=64)
    value: str
    updated_at: datetime = Field(default_factory=utcnow)
