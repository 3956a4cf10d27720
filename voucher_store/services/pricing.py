"""Store settings (config defaults + StoreSetting overrides) and order pricing."""
import logging
from dataclasses import dataclass

from sqlmodel import Session, select

from voucher_store.core.config import settings
from voucher_store.models import DiscountType, StoreSetting
from voucher_store.models.base import utcnow

log = logging.getLogger("vouchers.pricing")

NUMERIC_KEYS = ("voucher_base_price", "vat_percentage")
TEXT_KEYS = ("company_name_en", "company_name_ar", "company_vat_number", "company_cr_number")
SETTING_KEYS = NUMERIC_KEYS + TEXT_KEYS


@dataclass(frozen=True)
class StoreSettings:
    voucher_base_price: float
    vat_percentage: float
    company_name_en: str
    company_name_ar: str
    company_vat_number: str
    company_cr_number: str

    @property
    def vat_rate(self) -> float:
        return self.vat_percentage / 100


@dataclass(frozen=True)
class Pricing:
    unit_price: float
    quantity: int
    subtotal: float
    discount_amount: float
    vat_percentage: float
    vat_amount: float
    total: float

    @property
    def after_discount(self) -> float:
        return round(self.subtotal - self.discount_amount, 2)


def get_store_settings(db: Session) -> StoreSettings:
    rows = {s.key: s.value for s in db.exec(select(StoreSetting)).all()}
    values: dict[str, object] = {}
    for key in NUMERIC_KEYS:
        default = float(getattr(settings, key))
        raw = rows.get(key)
        try:
            values[key] = float(raw) if raw not in (None, "") else default
        except ValueError:
            log.warning("Ignoring non-numeric store setting %s=%r", key, raw)
            values[key] = default
    for key in TEXT_KEYS:
        values[key] = rows.get(key) or getattr(settings, key)
    return StoreSettings(**values)


def compute_discount_amount(discount_type: DiscountType, value: float, subtotal: float) -> float:
    """PERCENTAGE: subtotal * value / 100; FIXED: value. Both capped at subtotal."""
    if subtotal <= 0 or value <= 0:
        return 0.0
    if discount_type is DiscountType.PERCENTAGE:
        amount = subtotal * value / 100
    else:
        amount = value
    return round(min(amount, subtotal), 2)


def calculate_pricing(
    unit_price: float,
    quantity: int,
    vat_percentage: float,
    discount_type: DiscountType | None = None,
    discount_value: float = 0.0,
) -> Pricing:
    subtotal = round(unit_price * quantity, 2)
    discount_amount = 0.0
    if discount_type is not None:
        discount_amount = compute_discount_amount(discount_type, discount_value, subtotal)
    after_discount = subtotal - discount_amount
    vat_amount = round(after_discount * vat_percentage / 100, 2)
    return Pricing(
        unit_price=unit_price,
        quantity=quantity,
        subtotal=subtotal,
        discount_amount=discount_amount,
        vat_percentage=vat_percentage,
        vat_amount=vat_amount,
        total=round(after_discount + vat_amount, 2),
    )


def update_store_settings(db: Session, changes: dict[str, str | float]) -> StoreSettings:
    """Upserts the given keys; unknown keys are rejected by the caller's schema."""
    for key, value in changes.items():
        if key not in SETTING_KEYS:
            continue
        row = db.get(StoreSetting, key)
        if row is None:
            row = StoreSetting(key=key, value=str(value))
        else:
            row.value = str(value)
            row.updated_at = utcnow()
        db.add(row)
    db.commit()
    return get_store_settings(db)
