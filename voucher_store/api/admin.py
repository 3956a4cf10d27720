"""Admin API. Every route except the token exchange needs an admin capability token."""
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from voucher_store.api.deps import require_admin
from voucher_store.core.config import settings
from voucher_store.core.database import get_db
from voucher_store.core.rate_limit import limiter
from voucher_store.core.security import Caller, Role, constant_time_equals, create_access_token
from voucher_store.errors import AuthError, NotConfiguredError
from voucher_store.models import VoucherStatus
from voucher_store.schemas import (
    AdminTokenRequest,
    AssignVouchersRequest,
    DiscountCreate,
    DiscountOut,
    DiscountPatch,
    InstitutionTokenRequest,
    StoreSettingsUpdate,
    Token,
    VoucherImportRequest,
    VoucherOut,
    VoucherStatusChange,
)
from voucher_store.services import discount as ledger
from voucher_store.services import inventory
from voucher_store.services.email_sender import VoucherMailer, get_voucher_mailer
from voucher_store.services.orders import get_order
from voucher_store.services.pricing import get_store_settings, update_store_settings

log = logging.getLogger("vouchers.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/token", response_model=Token)
@limiter.limit("5/minute;20/hour")
def admin_token(request: Request, body: AdminTokenRequest):
    if not settings.admin_secret:
        raise NotConfiguredError("Admin access is not configured (ADMIN_SECRET)", "لم يتم إعداد صلاحية المسؤول")
    if not constant_time_equals(body.secret, settings.admin_secret):
        log.warning("Admin token refused")
        raise AuthError("Invalid admin secret", "كلمة سر المسؤول غير صحيحة")
    return Token(access_token=create_access_token(Caller(role=Role.ADMIN, subject="admin")))


@router.post("/institutions/token", response_model=Token)
def institution_token(body: InstitutionTokenRequest, admin: Caller = Depends(require_admin)):
    """Mints a checkout token for an approved institution; its name is fixed into the token."""
    caller = Caller(role=Role.INSTITUTION, subject=body.subject or body.institution_name, institution_name=body.institution_name)
    log.info("Institution token issued: institution=%s by=%s", body.institution_name, admin.subject)
    return Token(access_token=create_access_token(caller, body.expires_minutes))


@router.get("/discounts", response_model=list[DiscountOut], response_model_by_alias=True)
def list_discounts(db: Session = Depends(get_db), _: Caller = Depends(require_admin)):
    return ledger.list_discounts(db)


@router.post("/discounts", response_model=DiscountOut, response_model_by_alias=True, status_code=201)
def create_discount(body: DiscountCreate, db: Session = Depends(get_db), _: Caller = Depends(require_admin)):
    return ledger.create_discount(db, **body.model_dump())


@router.patch("/discounts/{code}", response_model=DiscountOut, response_model_by_alias=True)
def patch_discount(code: str, body: DiscountPatch, db: Session = Depends(get_db), _: Caller = Depends(require_admin)):
    return ledger.set_discount_active(db, code, body.is_active)


@router.get("/vouchers/stats")
def voucher_stats(db: Session = Depends(get_db), _: Caller = Depends(require_admin)):
    return inventory.inventory_stats(db)


@router.post("/vouchers/import")
def import_vouchers(body: VoucherImportRequest, db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    result = inventory.import_vouchers(
        db,
        body.certificate_id,
        body.codes,
        body.expires_at,
        purchase_price=body.purchase_price,
        supplier_order_ref=body.supplier_order_ref,
        notes=body.notes,
        imported_by=admin.subject,
    )
    return {
        "success": True,
        "imported": result.imported,
        "duplicates": len(result.duplicates),
        "duplicateCodes": result.duplicates,
        "batchId": result.batch_id,
    }


@router.post("/vouchers/expire")
def expire_vouchers(db: Session = Depends(get_db), _: Caller = Depends(require_admin)):
    return {"expired": inventory.expire_vouchers(db)}


@router.post("/vouchers/{voucher_id}/status", response_model=VoucherOut, response_model_by_alias=True)
def change_voucher_status(
    voucher_id: int,
    body: VoucherStatusChange,
    db: Session = Depends(get_db),
    _: Caller = Depends(require_admin),
):
    return inventory.transition_voucher(db, voucher_id, body.status, notes=body.notes)


@router.post("/orders/{order_id}/assign-vouchers")
def assign_vouchers(
    order_id: int,
    body: AssignVouchersRequest,
    db: Session = Depends(get_db),
    mailer: VoucherMailer = Depends(get_voucher_mailer),
    admin: Caller = Depends(require_admin),
):
    """Claims vouchers for a paid order, then emails each code to its recipient."""
    order = get_order(db, order_id)
    recipients = [inventory.Recipient(name=r.name, email=r.email) for r in body.recipients]
    vouchers = inventory.claim_vouchers_for_order(db, order, recipients or None, assigned_by=admin.subject)
    vouchers = inventory.deliver_vouchers(db, order, vouchers, mailer)
    delivered = sum(1 for v in vouchers if v.status == VoucherStatus.DELIVERED)
    return {
        "success": True,
        "assigned": len(vouchers),
        "delivered": delivered,
        "vouchers": [VoucherOut.model_validate(v).model_dump(by_alias=True, mode="json") for v in vouchers],
    }


@router.get("/settings")
def read_settings(db: Session = Depends(get_db), _: Caller = Depends(require_admin)):
    return asdict(get_store_settings(db))


@router.put("/settings")
def write_settings(body: StoreSettingsUpdate, db: Session = Depends(get_db), _: Caller = Depends(require_admin)):
    changes = body.model_dump(exclude_none=True)
    store = update_store_settings(db, changes)
    log.info("Store settings updated: keys=%s", sorted(changes))
    return asdict(store)
