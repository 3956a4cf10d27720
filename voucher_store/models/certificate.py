from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from .base import utcnow


class CertificateCategory(str, Enum):
    CORE = "CORE"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    CYBERSECURITY = "CYBERSECURITY"
    DATA = "DATA"
    PROFESSIONAL = "PROFESSIONAL"


class Certificate(SQLModel, table=True):
    """Catalog product (one exam type). Read-mostly."""

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True, max_length=64)  # SECURITY_PLUS
    slug: str = Field(unique=True, index=True, max_length=64)  # security-plus
    category: CertificateCategory = Field(default=CertificateCategory.CORE)
    name_en: str
    name_ar: str
    description_en: str = ""
    description_ar: str = ""
    exam_code: str = Field(default="", max_length=32)  # SY0-701
    retail_price: float  # individual buyers, SAR
    institution_base_price: float
    validity_months: int = 12
    is_active: bool = True
    sort_order: int = 0
    created_at: datetime = Field(default_factory=utcnow)
