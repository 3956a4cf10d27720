from datetime import datetime

from pydantic import BaseModel

from .checkout import CamelModel


class GatewayReference(BaseModel):
    transaction: str | None = None


class GatewaySource(BaseModel):
    payment_method: str | None = None


class GatewayNotification(BaseModel):
    """Tap webhook body; only the fields reconciliation needs. Unknown keys are ignored."""

    id: str | None = None
    status: str | None = None
    reference: GatewayReference | None = None
    source: GatewaySource | None = None

    @property
    def transaction_id(self) -> str | None:
        return self.reference.transaction if self.reference else None

    @property
    def payment_method(self) -> str | None:
        return self.source.payment_method if self.source else None


class OrderSnapshot(CamelModel):
    """Success page view of an order after reconciliation."""

    id: int
    order_number: str
    status: str
    state: str  # paid | processing | payment_failed | refunded
    customer_name: str
    contact_name: str
    quantity: int
    total_amount: float
    paid_at: datetime | None = None
    invoice_number: str | None = None
