"""
Tap payments client (card gateway). A charge is created at checkout; the gateway
later reports its status by webhook, and can be queried by id for the success page.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request as UrlRequest
from urllib.request import urlopen

from voucher_store.core.config import settings
from voucher_store.errors import UpstreamError
from voucher_store.models import OrderStatus

log = logging.getLogger("vouchers.gateway")


class ChargeStatus(str, Enum):
    INITIATED = "INITIATED"
    IN_PROGRESS = "IN_PROGRESS"
    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    ABANDONED = "ABANDONED"
    RESTRICTED = "RESTRICTED"
    VOID = "VOID"
    TIMEDOUT = "TIMEDOUT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: str | None) -> "ChargeStatus":
        try:
            return cls((raw or "").strip().upper())
        except ValueError:
            return cls.UNKNOWN


_TERMINAL_OUTCOMES: dict[ChargeStatus, OrderStatus] = {
    ChargeStatus.CAPTURED: OrderStatus.PAID,
    ChargeStatus.DECLINED: OrderStatus.CANCELLED,
    ChargeStatus.CANCELLED: OrderStatus.CANCELLED,
    ChargeStatus.FAILED: OrderStatus.CANCELLED,
    ChargeStatus.ABANDONED: OrderStatus.CANCELLED,
    ChargeStatus.RESTRICTED: OrderStatus.CANCELLED,
    ChargeStatus.VOID: OrderStatus.CANCELLED,
    ChargeStatus.TIMEDOUT: OrderStatus.CANCELLED,
}


def terminal_outcome(status: ChargeStatus) -> OrderStatus | None:
    """Order status a charge status settles to; None while the charge is still open."""
    return _TERMINAL_OUTCOMES.get(status)


@dataclass
class ChargeRequest:
    amount: float
    currency: str
    customer_name: str
    customer_email: str
    customer_phone: str
    description: str
    order_id: int
    redirect_url: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class Charge:
    id: str
    status: ChargeStatus
    redirect_url: str | None = None
    transaction_reference: str | None = None
    payment_method: str | None = None


class PaymentGateway(Protocol):
    def create_charge(self, request: ChargeRequest) -> Charge: ...

    def get_charge(self, charge_id: str) -> Charge: ...


def _local_phone(phone: str) -> str:
    p = (phone or "").strip().replace(" ", "")
    prefix = "+" + settings.tap_phone_country_code
    if p.startswith(prefix):
        p = p[len(prefix):]
    return p[1:] if p.startswith("0") else p


def charge_from_payload(data: dict) -> Charge:
    """Builds a Charge from a Tap charge object (API response or webhook body)."""
    redirect = (data.get("transaction") or {}).get("url") or (data.get("redirect") or {}).get("url")
    return Charge(
        id=str(data.get("id") or ""),
        status=ChargeStatus.parse(data.get("status")),
        redirect_url=redirect,
        transaction_reference=(data.get("reference") or {}).get("transaction"),
        payment_method=(data.get("source") or {}).get("payment_method"),
    )


class TapGateway:
    def __init__(self, secret_key: str | None = None, api_url: str | None = None, timeout: float | None = None):
        self.secret_key = secret_key if secret_key is not None else settings.tap_secret_key
        self.api_url = api_url or settings.tap_api_url
        self.timeout = timeout or settings.tap_timeout_seconds

    def _call(self, method: str, path: str, body: dict | None = None) -> dict:
        if not self.secret_key:
            raise UpstreamError("Payment is not configured", "الدفع غير مهيأ")
        headers = {"Authorization": f"Bearer {self.secret_key}", "Accept": "application/json"}
        data = None
        if body is not None:
            data = json.dumps(body).encode()
            headers["Content-Type"] = "application/json"
        req = UrlRequest(f"{self.api_url}{path}", data=data, method=method, headers=headers)
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode())
        except HTTPError as e:
            detail = e.read().decode(errors="replace")[:300]
            log.error("Tap API error: %s %s status=%s body=%s", method, path, e.code, detail)
            raise UpstreamError() from e
        except (URLError, TimeoutError, ValueError) as e:
            log.error("Tap API unreachable: %s %s error=%s", method, path, e)
            raise UpstreamError() from e

    def create_charge(self, request: ChargeRequest) -> Charge:
        first_name, _, last_name = request.customer_name.strip().partition(" ")
        payload = {
            "amount": round(request.amount, 2),
            "currency": request.currency,
            "customer_initiated": True,
            "threeDSecure": True,
            "save_card": False,
            "description": request.description,
            "metadata": {"order_id": str(request.order_id), **request.metadata},
            "receipt": {"email": True, "sms": False},
            "customer": {
                "first_name": first_name,
                "last_name": last_name,
                "email": request.customer_email,
                "phone": {
                    "country_code": settings.tap_phone_country_code,
                    "number": _local_phone(request.customer_phone),
                },
            },
            "source": {"id": "src_all"},
            "redirect": {"url": request.redirect_url},
        }
        charge = charge_from_payload(self._call("POST", "/charges", payload))
        if not charge.id or not charge.redirect_url:
            log.error("Tap charge missing id or payment URL: order_id=%s", request.order_id)
            raise UpstreamError()
        return charge

    def get_charge(self, charge_id: str) -> Charge:
        return charge_from_payload(self._call("GET", f"/charges/{charge_id}"))


def get_gateway() -> PaymentGateway:
    """FastAPI dependency; tests override it with a fake."""
    return TapGateway()
