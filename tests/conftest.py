"""Pytest fixtures: test client, in-memory SQLite, fake Tap gateway, recording notifier, mailer and renderer."""
import os
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

# In-memory SQLite for tests (must be set before the app is imported)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
os.environ.setdefault("COMPANY_VAT_NUMBER", "310122393500003")
os.environ.setdefault("TAP_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("TAP_WEBHOOK_SECRET", "")
os.environ.setdefault("SMTP_HOST", "")
# High enough that only the dedicated rate limit test trips it
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

from sqlmodel import Session, SQLModel

from voucher_store.core.database import engine
from voucher_store.core.rate_limit import limiter
from voucher_store.core.security import Caller, Role, create_access_token
from voucher_store.errors import UpstreamError
from voucher_store.main import app
from voucher_store.models import Certificate, DiscountCode, DiscountType, Order, OrderStatus
from voucher_store.models.base import utcnow
from voucher_store.services.email_sender import get_notifier, get_voucher_mailer
from voucher_store.services.gateway import Charge, ChargeStatus, get_gateway
from voucher_store.services.invoice_pdf import get_renderer


class FakeGateway:
    """In-process stand-in for Tap. Charge statuses are set by the test."""

    def __init__(self):
        self.created = []
        self.statuses: dict[str, ChargeStatus] = {}
        self.fail_create = False
        self.fail_get = False
        self.get_calls = 0

    def create_charge(self, request):
        if self.fail_create:
            raise UpstreamError()
        self.created.append(request)
        charge_id = f"chg_test_{len(self.created)}"
        self.statuses[charge_id] = ChargeStatus.INITIATED
        return Charge(id=charge_id, status=ChargeStatus.INITIATED, redirect_url=f"https://tap.test/pay/{charge_id}")

    def get_charge(self, charge_id):
        self.get_calls += 1
        if self.fail_get:
            raise UpstreamError()
        return Charge(
            id=charge_id,
            status=self.statuses.get(charge_id, ChargeStatus.UNKNOWN),
            transaction_reference=f"txn_{charge_id}",
            payment_method="VISA",
        )


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.stores = []
        self.fail = fail

    def __call__(self, order, invoice, store):
        if self.fail:
            raise RuntimeError("smtp down")
        self.stores.append(store)
        self.sent.append((order.order_number, invoice.invoice_number if invoice else None))
        return True


class RecordingMailer:
    """Voucher emails by recipient; addresses in `refuse` fail like an SMTP rejection."""

    def __init__(self):
        self.sent = []
        self.refuse: set[str] = set()

    def __call__(self, voucher, order, certificate, store):
        if voucher.recipient_email in self.refuse:
            return False
        self.sent.append((voucher.recipient_email, voucher.code))
        return True


class RecordingRenderer:
    def __init__(self):
        self.contexts = []

    def __call__(self, context):
        self.contexts.append(context)
        return b"%PDF-1.4 test invoice"


@pytest.fixture(autouse=True)
def _fresh_state():
    """Every test starts with empty tables, fresh rate limit counters and no overrides."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    limiter.reset()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_gateway] = lambda: fake
    return fake


@pytest.fixture
def notifier():
    rec = RecordingNotifier()
    app.dependency_overrides[get_notifier] = lambda: rec
    return rec


@pytest.fixture
def mailer():
    rec = RecordingMailer()
    app.dependency_overrides[get_voucher_mailer] = lambda: rec
    return rec


@pytest.fixture
def renderer():
    rec = RecordingRenderer()
    app.dependency_overrides[get_renderer] = lambda: rec
    return rec


@pytest.fixture(scope="function")
def client(gateway, notifier, renderer, mailer):
    """TestClient with the fake collaborators wired in; lifespan creates the tables."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers():
    token = create_access_token(Caller(role=Role.ADMIN, subject="admin"))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def institution_headers():
    token = create_access_token(
        Caller(role=Role.INSTITUTION, subject="inst-1", institution_name="King Saud University")
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def certificate(db):
    cert = Certificate(
        code="SECURITY_PLUS",
        slug="security-plus",
        name_en="CompTIA Security+",
        name_ar="كومبتيا سكيوريتي+",
        exam_code="SY0-701",
        retail_price=1350.0,
        institution_base_price=1100.0,
        sort_order=1,
    )
    db.add(cert)
    db.commit()
    db.refresh(cert)
    return cert


@pytest.fixture
def make_discount(db):
    def _make(code="SAVE500", discount_type=DiscountType.FIXED, value=500.0, **fields):
        discount = DiscountCode(code=code, discount_type=discount_type, discount_value=value, **fields)
        db.add(discount)
        db.commit()
        db.refresh(discount)
        return discount

    return _make


@pytest.fixture
def make_order(db):
    """PENDING order inserted directly, bypassing checkout."""
    counter = {"n": 0}

    def _make(status=OrderStatus.PENDING, quantity=1, discount_code=None, certificate_id=None, **fields):
        counter["n"] += 1
        n = counter["n"]
        values = dict(
            order_number=f"ORD-202610-TEST{n:02d}",
            customer_name="Sara Alqahtani",
            contact_name="Sara Alqahtani",
            email="sara@example.com",
            phone="0551234567",
            certificate_id=certificate_id,
            quantity=quantity,
            unit_price=1350.0,
            subtotal=1350.0 * quantity,
            discount_code_used=discount_code,
            vat_amount=round(1350.0 * quantity * 0.15, 2),
            total_amount=round(1350.0 * quantity * 1.15, 2),
            status=status,
            gateway_charge_id=f"chg_order_{n}",
        )
        if status is OrderStatus.PAID:
            values["paid_at"] = utcnow() - timedelta(minutes=5)
        values.update(fields)
        order = Order(**values)
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make
