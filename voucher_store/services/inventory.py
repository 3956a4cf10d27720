"""
Voucher inventory: bulk import, forward-only status transitions, allocation to
paid orders, delivery by email and reporting counts.

Every status change is a compare-and-set UPDATE (WHERE id = X AND status = <expected>);
a voucher seen as AVAILABLE by two allocators is assigned to exactly one of them.
Voucher codes are confidential and never logged.
"""
import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from voucher_store.core.config import settings
from voucher_store.errors import ConflictError, NotFoundError, StateError, ValidationError
from voucher_store.models import Certificate, Order, OrderStatus, Voucher, VoucherBatch, VoucherStatus
from voucher_store.models.base import to_naive_utc, utcnow
from voucher_store.models.voucher import PRE_USED_STATUSES, VOUCHER_TRANSITIONS
from voucher_store.services.email_sender import VoucherMailer
from voucher_store.services.pricing import get_store_settings

log = logging.getLogger("vouchers.inventory")

_ALPHABET = string.ascii_uppercase + string.digits
RECENT_BATCHES = 5


@dataclass
class ImportResult:
    imported: int
    duplicates: list[str] = field(default_factory=list)
    batch_id: str | None = None


@dataclass
class Recipient:
    name: str
    email: str


def generate_batch_id(now: datetime | None = None) -> str:
    now = now or utcnow()
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"BATCH-{now:%Y%m%d}-{suffix}"


def import_vouchers(
    db: Session,
    certificate_id: int,
    codes: list[str],
    expires_at: datetime,
    purchase_price: float = 0.0,
    supplier_order_ref: str | None = None,
    notes: str | None = None,
    imported_by: str | None = None,
) -> ImportResult:
    """
    Inserts new AVAILABLE vouchers under one batch. Blank lines are skipped; codes
    already in stock or repeated in the same list are reported back, not inserted.
    """
    if not db.get(Certificate, certificate_id):
        raise NotFoundError("Certificate not found", "الشهادة غير موجودة")
    cleaned = [c.strip() for c in codes if c and c.strip()]
    if not cleaned:
        raise ValidationError("At least one voucher code is required", "مطلوب كود قسيمة واحد على الأقل")
    expires_at = to_naive_utc(expires_at)

    existing = set(db.exec(select(Voucher.code).where(Voucher.code.in_(cleaned))).all())
    duplicates: list[str] = []
    fresh: list[str] = []
    seen: set[str] = set()
    for code in cleaned:
        if code in existing or code in seen:
            duplicates.append(code)
            continue
        seen.add(code)
        fresh.append(code)

    if not fresh:
        log.info("Voucher import skipped, all codes already known: certificate_id=%s count=%s", certificate_id, len(cleaned))
        return ImportResult(imported=0, duplicates=duplicates)

    now = utcnow()
    batch_id = generate_batch_id(now)
    for code in fresh:
        db.add(
            Voucher(
                code=code,
                certificate_id=certificate_id,
                status=VoucherStatus.AVAILABLE,
                purchase_price=purchase_price,
                purchased_at=now,
                expires_at=expires_at,
                batch_id=batch_id,
                imported_at=now,
                updated_at=now,
            )
        )
    db.add(
        VoucherBatch(
            batch_id=batch_id,
            certificate_id=certificate_id,
            total_count=len(fresh),
            purchase_price_per_unit=purchase_price,
            expires_at=expires_at,
            supplier_order_ref=supplier_order_ref,
            notes=notes,
            imported_by=imported_by,
            imported_at=now,
        )
    )
    try:
        db.commit()
    except IntegrityError:
        # A concurrent import inserted one of the codes between the check and the commit
        db.rollback()
        raise ConflictError(
            "Some voucher codes were imported concurrently, please retry",
            "تم استيراد بعض الأكواد بالتزامن، يرجى المحاولة مرة أخرى",
        )
    log.info(
        "Vouchers imported: batch_id=%s certificate_id=%s imported=%s duplicates=%s",
        batch_id,
        certificate_id,
        len(fresh),
        len(duplicates),
    )
    return ImportResult(imported=len(fresh), duplicates=duplicates, batch_id=batch_id)


def _transition_values(target: VoucherStatus, now: datetime) -> dict:
    values: dict = {"status": target, "updated_at": now}
    if target is VoucherStatus.ASSIGNED:
        values["assigned_at"] = now
    elif target is VoucherStatus.DELIVERED:
        values["delivered_at"] = now
    elif target is VoucherStatus.USED:
        values["used_at"] = now
    elif target is VoucherStatus.AVAILABLE:
        # reservation release
        values.update(assigned_to_order_id=None, recipient_email=None, recipient_name=None)
    return values


def transition_voucher(
    db: Session,
    voucher_id: int,
    target: VoucherStatus,
    notes: str | None = None,
    now: datetime | None = None,
) -> Voucher:
    voucher = db.get(Voucher, voucher_id)
    if not voucher:
        raise NotFoundError("Voucher not found", "القسيمة غير موجودة")
    now = now or utcnow()
    current = voucher.status
    if target not in VOUCHER_TRANSITIONS[current]:
        raise StateError(
            f"Voucher cannot move from {current.value} to {target.value}",
            f"لا يمكن نقل القسيمة من {current.value} إلى {target.value}",
        )
    if target is VoucherStatus.EXPIRED and voucher.expires_at > now:
        raise StateError("Voucher has not reached its expiry date", "لم تصل القسيمة إلى تاريخ انتهائها")
    values = _transition_values(target, now)
    if notes:
        values["notes"] = notes
    result = db.execute(
        update(Voucher).where(Voucher.id == voucher_id).where(Voucher.status == current).values(**values)
    )
    db.commit()
    if result.rowcount != 1:
        raise StateError("Voucher status changed concurrently", "تغيرت حالة القسيمة بالتزامن")
    db.refresh(voucher)
    log.info("Voucher transition: voucher_id=%s %s -> %s", voucher_id, current.value, target.value)
    return voucher


def expire_vouchers(db: Session, now: datetime | None = None) -> int:
    """Marks every pre-USED voucher past its expiry as EXPIRED. Returns the count."""
    now = now or utcnow()
    result = db.execute(
        update(Voucher)
        .where(Voucher.status.in_(PRE_USED_STATUSES))
        .where(Voucher.expires_at <= now)
        .values(status=VoucherStatus.EXPIRED, updated_at=now)
    )
    db.commit()
    if result.rowcount:
        log.info("Vouchers expired: count=%s", result.rowcount)
    return result.rowcount


def claim_vouchers_for_order(
    db: Session,
    order: Order,
    recipients: list[Recipient] | None = None,
    assigned_by: str | None = None,
    now: datetime | None = None,
) -> list[Voucher]:
    """
    Assigns unexpired AVAILABLE vouchers (soonest expiry first) to a PAID order:
    one per recipient when given, otherwise enough to cover the order quantity.

    The order's quota (orders.vouchers_assigned) is reserved first with a
    conditional UPDATE, so concurrent claims for one order cannot exceed its
    quantity. All or nothing: if stock runs out mid-way the reservation and the
    claims are rolled back together.
    """
    if order.status != OrderStatus.PAID:
        raise StateError("Order must be paid before assigning vouchers", "يجب دفع الطلب قبل تخصيص القسائم")
    if order.certificate_id is None:
        raise ValidationError("Order has no certificate", "الطلب لا يحتوي على شهادة")
    now = now or utcnow()

    db.refresh(order)
    already = order.vouchers_assigned
    if recipients:
        needed = len(recipients)
        if already + needed > order.quantity:
            raise ValidationError(
                f"Order covers {order.quantity} vouchers, {already} already assigned",
                f"الطلب يغطي {order.quantity} قسيمة، تم تخصيص {already} منها",
            )
    else:
        needed = order.quantity - already
    if needed <= 0:
        raise ConflictError("All vouchers for this order are already assigned", "تم تخصيص جميع القسائم لهذا الطلب")

    reserved = db.execute(
        update(Order)
        .where(Order.id == order.id)
        .where(Order.status == OrderStatus.PAID)
        .where(Order.vouchers_assigned + needed <= Order.quantity)
        .values(vouchers_assigned=Order.vouchers_assigned + needed, updated_at=now)
    )
    if reserved.rowcount != 1:
        db.rollback()
        log.warning("Voucher claim lost the quota race: order_id=%s needed=%s", order.id, needed)
        raise ConflictError(
            "Vouchers for this order were assigned by another request",
            "تم تخصيص قسائم هذا الطلب بواسطة طلب آخر",
        )

    claimed_ids: list[int] = []
    exhausted = False
    while len(claimed_ids) < needed and not exhausted:
        candidates = db.exec(
            select(Voucher.id)
            .where(Voucher.certificate_id == order.certificate_id)
            .where(Voucher.status == VoucherStatus.AVAILABLE)
            .where(Voucher.expires_at > now)
            .order_by(Voucher.expires_at, Voucher.id)
            .limit(needed - len(claimed_ids))
        ).all()
        exhausted = not candidates
        for voucher_id in candidates:
            recipient = recipients[len(claimed_ids)] if recipients else None
            values = _transition_values(VoucherStatus.ASSIGNED, now)
            values.update(
                assigned_to_order_id=order.id,
                assigned_by=assigned_by,
                recipient_email=recipient.email if recipient else order.email,
                recipient_name=recipient.name if recipient else order.contact_name,
            )
            result = db.execute(
                update(Voucher)
                .where(Voucher.id == voucher_id)
                .where(Voucher.status == VoucherStatus.AVAILABLE)
                .values(**values)
            )
            if result.rowcount == 1:
                claimed_ids.append(voucher_id)

    if len(claimed_ids) < needed:
        db.rollback()
        log.warning("Voucher claim failed, not enough stock: order_id=%s needed=%s", order.id, needed)
        raise ConflictError(
            f"Not enough vouchers available. Need {needed}",
            f"لا توجد قسائم كافية. المطلوب {needed}",
        )
    db.commit()
    log.info("Vouchers assigned: order_id=%s count=%s", order.id, len(claimed_ids))
    return list(db.exec(select(Voucher).where(Voucher.id.in_(claimed_ids)).order_by(Voucher.id)).all())


def deliver_vouchers(db: Session, order: Order, vouchers: list[Voucher], send: VoucherMailer) -> list[Voucher]:
    """
    Emails each assigned voucher to its recipient and moves the sent ones to
    DELIVERED. A failed send leaves the voucher ASSIGNED.
    """
    certificate = db.get(Certificate, order.certificate_id) if order.certificate_id else None
    store = get_store_settings(db)
    out: list[Voucher] = []
    for voucher in vouchers:
        try:
            sent = send(voucher, order, certificate, store)
        except Exception:
            log.warning("Voucher email failed: voucher_id=%s order_id=%s", voucher.id, order.id, exc_info=True)
            sent = False
        if sent:
            try:
                voucher = transition_voucher(db, voucher.id, VoucherStatus.DELIVERED)
            except StateError:
                log.warning("Voucher emailed but not marked delivered: voucher_id=%s", voucher.id, exc_info=True)
                db.refresh(voucher)
        out.append(voucher)
    return out


def inventory_stats(db: Session, now: datetime | None = None) -> dict:
    """Per-certificate status counts with low-stock and expiring-soon alerts, plus totals."""
    now = now or utcnow()
    horizon = now + timedelta(days=settings.expiry_warning_days)
    certificates = db.exec(
        select(Certificate).where(Certificate.is_active == True).order_by(Certificate.sort_order)  # noqa: E712
    ).all()

    counts: dict[tuple[int, VoucherStatus], int] = {}
    for certificate_id, status, n in db.exec(
        select(Voucher.certificate_id, Voucher.status, func.count()).group_by(Voucher.certificate_id, Voucher.status)
    ).all():
        counts[(certificate_id, VoucherStatus(status))] = n

    expiring: dict[int, int] = dict(
        db.exec(
            select(Voucher.certificate_id, func.count())
            .where(Voucher.status == VoucherStatus.AVAILABLE)
            .where(Voucher.expires_at > now)
            .where(Voucher.expires_at <= horizon)
            .group_by(Voucher.certificate_id)
        ).all()
    )

    totals = {s.value.lower(): 0 for s in VoucherStatus}
    totals["total"] = 0
    stats = []
    for cert in certificates:
        per_status = {s.value.lower(): counts.get((cert.id, s), 0) for s in VoucherStatus}
        per_status["total"] = sum(per_status.values())
        for key, n in per_status.items():
            totals[key] += n
        stats.append(
            {
                "certificate": {"id": cert.id, "code": cert.code, "name_en": cert.name_en, "name_ar": cert.name_ar},
                "counts": per_status,
                "alerts": {
                    "low_stock": per_status["available"] < settings.low_stock_threshold,
                    "expiring_soon": expiring.get(cert.id, 0),
                },
            }
        )

    batches = db.exec(select(VoucherBatch).order_by(VoucherBatch.imported_at.desc(), VoucherBatch.id.desc()).limit(RECENT_BATCHES)).all()
    recent = [
        {
            "batch_id": b.batch_id,
            "certificate_id": b.certificate_id,
            "count": b.total_count,
            "imported_at": b.imported_at.isoformat(),
        }
        for b in batches
    ]
    return {"stats": stats, "totals": totals, "recent_batches": recent}
