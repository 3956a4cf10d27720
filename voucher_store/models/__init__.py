from .certificate import Certificate, CertificateCategory
from .discount import DiscountCode, DiscountType
from .invoice import Invoice
from .order import CustomerType, Order, OrderStatus
from .setting import StoreSetting
from .voucher import Voucher, VoucherBatch, VoucherStatus

__all__ = [
    "Certificate",
    "CertificateCategory",
    "CustomerType",
    "DiscountCode",
    "DiscountType",
    "Invoice",
    "Order",
    "OrderStatus",
    "StoreSetting",
    "Voucher",
    "VoucherBatch",
    "VoucherStatus",
]
