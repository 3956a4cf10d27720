"""
Races between sessions on a file-backed SQLite database (the shared in-memory
connection used elsewhere cannot run two transactions at once).
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlmodel import Session, SQLModel, select

from voucher_store.core.database import build_engine
from voucher_store.errors import ConflictError
from voucher_store.models import Certificate, DiscountCode, DiscountType, Invoice, Order, OrderStatus, Voucher, VoucherStatus
from voucher_store.models.base import utcnow
from voucher_store.schemas import GatewayNotification
from voucher_store.services import discount as ledger
from voucher_store.services import inventory, invoicing
from voucher_store.services.gateway import ChargeStatus
from voucher_store.services.orders import SettleOutcome, settle
from voucher_store.services.reconciler import handle_notification, poll_order

THREADS = 8


@pytest.fixture
def file_engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


def _race(n, fn):
    barrier = threading.Barrier(n)

    def worker(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(worker, range(n)))


def _add(eng, *objs):
    with Session(eng) as s:
        for obj in objs:
            s.add(obj)
        s.commit()
        for obj in objs:
            s.refresh(obj)
            s.expunge(obj)
    return objs


def _order(n, status=OrderStatus.PENDING, **fields):
    values = dict(
        order_number=f"ORD-202610-RACE{n:02d}",
        customer_name="Race",
        contact_name="Race",
        email="race@example.com",
        phone="0550000000",
        quantity=1,
        unit_price=1350.0,
        subtotal=1350.0,
        vat_amount=202.5,
        total_amount=1552.5,
        status=status,
        gateway_charge_id=f"chg_race_{n}",
    )
    if status is OrderStatus.PAID:
        values["paid_at"] = utcnow()
    values.update(fields)
    return Order(**values)


def test_concurrent_commit_usage_never_exceeds_max_uses(file_engine):
    _add(file_engine, DiscountCode(code="RACE", discount_type=DiscountType.FIXED, discount_value=100, max_uses=3))

    def use(_):
        with Session(file_engine) as s:
            return ledger.commit_usage(s, "RACE")

    results = _race(THREADS * 2, use)
    assert results.count(True) == 3
    with Session(file_engine) as s:
        assert s.exec(select(DiscountCode)).one().used_count == 3


def test_concurrent_issue_produces_one_invoice(file_engine):
    (order,) = _add(file_engine, _order(1, OrderStatus.PAID))

    def issue(_):
        with Session(file_engine) as s:
            return invoicing.issue(s, s.get(Order, order.id)).invoice_number

    numbers = _race(THREADS, issue)
    assert set(numbers) == {"INV-202610-RACE01"}
    with Session(file_engine) as s:
        assert len(s.exec(select(Invoice)).all()) == 1


def test_concurrent_settle_has_one_winner(file_engine):
    (order,) = _add(file_engine, _order(1))
    targets = [OrderStatus.PAID if i % 2 else OrderStatus.CANCELLED for i in range(THREADS)]

    def go(i):
        with Session(file_engine) as s:
            return targets[i], settle(s, order.id, targets[i])

    results = _race(THREADS, go)
    winners = [target for target, outcome in results if outcome is SettleOutcome.APPLIED]
    assert len(winners) == 1
    with Session(file_engine) as s:
        final = s.get(Order, order.id)
        assert final.status is winners[0]
        assert (final.paid_at is not None) == (winners[0] is OrderStatus.PAID)


def test_webhook_and_poll_race_runs_effects_once(file_engine, gateway, notifier):
    _add(file_engine, DiscountCode(code="RACE", discount_type=DiscountType.FIXED, discount_value=100))
    (order,) = _add(file_engine, _order(1, discount_code_used="RACE"))
    gateway.statuses[order.gateway_charge_id] = ChargeStatus.CAPTURED

    def signal(i):
        with Session(file_engine) as s:
            if i % 2:
                handle_notification(s, GatewayNotification(id=order.gateway_charge_id, status="CAPTURED"), notifier)
            else:
                poll_order(s, s.get(Order, order.id), gateway, notifier)

    _race(THREADS, signal)
    with Session(file_engine) as s:
        assert s.get(Order, order.id).status is OrderStatus.PAID
        assert len(s.exec(select(Invoice)).all()) == 1
        assert s.exec(select(DiscountCode)).one().used_count == 1
    assert len(notifier.sent) == 1


def _network_plus(eng):
    (cert,) = _add(
        eng,
        Certificate(code="NET_PLUS", slug="network-plus", name_en="Network+", name_ar="نتورك+",
                    retail_price=1200, institution_base_price=1000),
    )
    return cert


def test_concurrent_claims_never_share_a_voucher(file_engine):
    cert = _network_plus(file_engine)
    expires = utcnow() + timedelta(days=90)
    _add(file_engine, *[Voucher(code=f"NET-{i}", certificate_id=cert.id, expires_at=expires) for i in range(5)])
    orders = _add(
        file_engine,
        *[_order(i, OrderStatus.PAID, quantity=2, certificate_id=cert.id) for i in range(4)],
    )

    def claim(i):
        with Session(file_engine) as s:
            try:
                return [v.id for v in inventory.claim_vouchers_for_order(s, s.get(Order, orders[i].id))]
            except ConflictError:
                return None

    results = _race(len(orders), claim)
    granted = [ids for ids in results if ids is not None]
    assert len(granted) == 2
    all_ids = [vid for ids in granted for vid in ids]
    assert len(all_ids) == len(set(all_ids)) == 4
    with Session(file_engine) as s:
        assigned = s.exec(select(Voucher).where(Voucher.assigned_to_order_id.is_not(None))).all()
        assert len(assigned) == 4


def test_concurrent_claims_for_one_order_respect_its_quantity(file_engine):
    cert = _network_plus(file_engine)
    expires = utcnow() + timedelta(days=90)
    _add(file_engine, *[Voucher(code=f"NET-{i}", certificate_id=cert.id, expires_at=expires) for i in range(8)])
    (order,) = _add(file_engine, _order(1, OrderStatus.PAID, quantity=2, certificate_id=cert.id))

    def claim(_):
        with Session(file_engine) as s:
            try:
                return len(inventory.claim_vouchers_for_order(s, s.get(Order, order.id)))
            except ConflictError:
                return 0

    assert sorted(_race(4, claim)) == [0, 0, 0, 2]
    with Session(file_engine) as s:
        assert s.get(Order, order.id).vouchers_assigned == 2
        assigned = s.exec(select(Voucher).where(Voucher.assigned_to_order_id == order.id)).all()
        assert len(assigned) == 2
        assert len(s.exec(select(Voucher).where(Voucher.status == VoucherStatus.AVAILABLE)).all()) == 6
