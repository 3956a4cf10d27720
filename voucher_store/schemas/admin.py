from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from voucher_store.models import DiscountType, VoucherStatus

from .checkout import CamelModel


class AdminTokenRequest(BaseModel):
    secret: str


class InstitutionTokenRequest(BaseModel):
    institution_name: str
    subject: str | None = None
    expires_minutes: int | None = Field(default=None, gt=0)

    @field_validator("institution_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("institution_name is required")
        return v


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class DiscountCreate(CamelModel):
    code: str
    discount_type: DiscountType
    discount_value: float
    description_en: str = ""
    description_ar: str = ""
    min_quantity: int | None = Field(default=None, ge=1)
    max_uses: int | None = Field(default=None, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    customer_restriction: str | None = None
    is_active: bool = True


class DiscountPatch(CamelModel):
    is_active: bool


class DiscountOut(CamelModel):
    id: int
    code: str
    discount_type: DiscountType
    discount_value: float
    description_en: str
    description_ar: str
    min_quantity: int | None = None
    max_uses: int | None = None
    used_count: int
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    customer_restriction: str | None = None
    is_active: bool


class VoucherImportRequest(CamelModel):
    certificate_id: int
    codes: list[str]
    expires_at: datetime
    purchase_price: float = Field(default=0.0, ge=0)
    supplier_order_ref: str | None = None
    notes: str | None = None


class VoucherStatusChange(CamelModel):
    status: VoucherStatus
    notes: str | None = None


class VoucherOut(CamelModel):
    """Admin view, voucher code included."""

    id: int
    code: str
    certificate_id: int
    status: VoucherStatus
    expires_at: datetime
    batch_id: str | None = None
    assigned_to_order_id: int | None = None
    recipient_email: str | None = None
    recipient_name: str | None = None
    assigned_at: datetime | None = None
    delivered_at: datetime | None = None


class RecipientIn(CamelModel):
    name: str
    email: EmailStr


class AssignVouchersRequest(CamelModel):
    recipients: list[RecipientIn] = Field(default_factory=list)


class StoreSettingsUpdate(CamelModel):
    voucher_base_price: float | None = Field(default=None, gt=0)
    vat_percentage: float | None = Field(default=None, ge=0, le=100)
    # Arabic letters take two bytes; 120 characters stays inside the 255-byte QR field
    company_name_en: str | None = Field(default=None, max_length=120)
    company_name_ar: str | None = Field(default=None, max_length=120)
    company_vat_number: str | None = Field(default=None, max_length=32)
    company_cr_number: str | None = Field(default=None, max_length=32)
