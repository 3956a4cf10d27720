"""Discount ledger: read-only validation at checkout, conditional usage increment at payment."""
import logging
from datetime import datetime
from enum import Enum
from typing import NamedTuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from voucher_store.errors import ConflictError, NotFoundError, ValidationError
from voucher_store.models import DiscountCode, DiscountType
from voucher_store.models.base import to_naive_utc, utcnow
from voucher_store.services.pricing import compute_discount_amount

log = logging.getLogger("vouchers.discount")


class DiscountRejection(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_ACTIVE = "NOT_YET_ACTIVE"
    EXPIRED = "EXPIRED"
    MIN_QUANTITY_NOT_MET = "MIN_QUANTITY_NOT_MET"
    MAX_USES_REACHED = "MAX_USES_REACHED"
    RESTRICTED_TO_OTHER_CUSTOMER = "RESTRICTED_TO_OTHER_CUSTOMER"


_MESSAGES = {
    DiscountRejection.NOT_FOUND: ("Invalid discount code", "كود الخصم غير صالح"),
    DiscountRejection.INACTIVE: ("This discount code is no longer active", "كود الخصم لم يعد فعالاً"),
    DiscountRejection.NOT_YET_ACTIVE: ("This discount code is not yet active", "كود الخصم لم يبدأ بعد"),
    DiscountRejection.EXPIRED: ("This discount code has expired", "كود الخصم منتهي الصلاحية"),
    DiscountRejection.MAX_USES_REACHED: (
        "This discount code has reached its usage limit",
        "تم استنفاد الحد الأقصى لاستخدام كود الخصم",
    ),
    DiscountRejection.RESTRICTED_TO_OTHER_CUSTOMER: (
        "This code is restricted to a specific university",
        "هذا الكود مخصص لجامعة محددة",
    ),
}


class DiscountValidation(NamedTuple):
    valid: bool
    discount: DiscountCode | None = None
    amount: float = 0.0
    reason: DiscountRejection | None = None
    message_en: str = ""
    message_ar: str = ""

    def error(self) -> dict:
        return {"en": self.message_en, "ar": self.message_ar}

    def raise_for_rejection(self) -> None:
        if not self.valid:
            raise ValidationError(self.message_en, self.message_ar, reason=self.reason.value if self.reason else None)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _reject(reason: DiscountRejection, min_quantity: int | None = None) -> DiscountValidation:
    if reason is DiscountRejection.MIN_QUANTITY_NOT_MET:
        en = f"Minimum {min_quantity} vouchers required for this code"
        ar = f"يتطلب هذا الكود حد أدنى {min_quantity} قسيمة"
    else:
        en, ar = _MESSAGES[reason]
    return DiscountValidation(valid=False, reason=reason, message_en=en, message_ar=ar)


def _restriction_matches(restriction: str, customer_name: str | None) -> bool:
    if not customer_name or not customer_name.strip():
        return False
    r = restriction.strip().lower()
    c = customer_name.strip().lower()
    return r in c or c in r


def validate(
    db: Session,
    code: str,
    quantity: int,
    customer_name: str | None = None,
    subtotal: float | None = None,
    now: datetime | None = None,
) -> DiscountValidation:
    """
    Checks a code without touching its usage counter. Order of checks decides
    which reason the shopper sees: existence, active flag, window, usage cap,
    minimum quantity, customer restriction.
    """
    normalized = normalize_code(code)
    if not normalized:
        return _reject(DiscountRejection.NOT_FOUND)
    discount = db.exec(select(DiscountCode).where(DiscountCode.code == normalized)).first()
    if not discount:
        return _reject(DiscountRejection.NOT_FOUND)
    if not discount.is_active:
        return _reject(DiscountRejection.INACTIVE)

    now = now or utcnow()
    if discount.valid_from and now < discount.valid_from:
        return _reject(DiscountRejection.NOT_YET_ACTIVE)
    if discount.valid_until and now > discount.valid_until:
        return _reject(DiscountRejection.EXPIRED)

    if discount.max_uses is not None and discount.used_count >= discount.max_uses:
        return _reject(DiscountRejection.MAX_USES_REACHED)
    if discount.min_quantity and quantity < discount.min_quantity:
        return _reject(DiscountRejection.MIN_QUANTITY_NOT_MET, discount.min_quantity)
    if discount.customer_restriction and not _restriction_matches(discount.customer_restriction, customer_name):
        return _reject(DiscountRejection.RESTRICTED_TO_OTHER_CUSTOMER)

    amount = 0.0
    if subtotal is not None:
        amount = compute_discount_amount(discount.discount_type, discount.discount_value, subtotal)
    return DiscountValidation(valid=True, discount=discount, amount=amount)


def commit_usage(db: Session, code: str) -> bool:
    """
    Increments used_count by one, only while still under max_uses. Returns False
    when the quota was already full; the order keeps the price it was charged.
    """
    normalized = normalize_code(code)
    stmt = (
        update(DiscountCode)
        .where(DiscountCode.code == normalized)
        .where(or_(DiscountCode.max_uses.is_(None), DiscountCode.used_count < DiscountCode.max_uses))
        .values(used_count=DiscountCode.used_count + 1)
    )
    result = db.execute(stmt)
    db.commit()
    if result.rowcount != 1:
        log.warning("Discount usage not counted (quota full or code removed): code=%s", normalized)
        return False
    log.info("Discount usage counted: code=%s", normalized)
    return True


def check_discount_value(discount_type: DiscountType, value: float) -> None:
    if discount_type is DiscountType.PERCENTAGE and not (0 < value <= 100):
        raise ValidationError(
            "Percentage discount must be between 0 and 100",
            "يجب أن تكون نسبة الخصم بين 0 و 100",
        )
    if discount_type is DiscountType.FIXED and value <= 0:
        raise ValidationError("Fixed discount must be positive", "يجب أن يكون مبلغ الخصم موجباً")


def create_discount(db: Session, **fields) -> DiscountCode:
    code = normalize_code(fields.pop("code", ""))
    if not code:
        raise ValidationError("Code is required", "الكود مطلوب")
    for key in ("valid_from", "valid_until"):
        if key in fields:
            fields[key] = to_naive_utc(fields[key])
    discount = DiscountCode(code=code, **fields)
    check_discount_value(discount.discount_type, discount.discount_value)
    if discount.valid_from and discount.valid_until and discount.valid_until < discount.valid_from:
        raise ValidationError("Validity window ends before it starts", "تاريخ الانتهاء قبل تاريخ البدء")
    db.add(discount)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("This discount code already exists", "كود الخصم موجود مسبقاً")
    db.refresh(discount)
    log.info("Discount created: code=%s type=%s value=%s", code, discount.discount_type.value, discount.discount_value)
    return discount


def list_discounts(db: Session) -> list[DiscountCode]:
    return list(db.exec(select(DiscountCode).order_by(DiscountCode.id.desc())).all())


def set_discount_active(db: Session, code: str, is_active: bool) -> DiscountCode:
    discount = db.exec(select(DiscountCode).where(DiscountCode.code == normalize_code(code))).first()
    if not discount:
        raise NotFoundError("Discount code not found", "كود الخصم غير موجود")
    discount.is_active = is_active
    db.add(discount)
    db.commit()
    db.refresh(discount)
    return discount
