from .admin import (
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
from .catalog import CertificateOut
from .checkout import CheckoutRequest, CheckoutResponse, DiscountValidateRequest
from .payment import GatewayNotification, OrderSnapshot

__all__ = [
    "AdminTokenRequest",
    "AssignVouchersRequest",
    "CertificateOut",
    "CheckoutRequest",
    "CheckoutResponse",
    "DiscountCreate",
    "DiscountOut",
    "DiscountPatch",
    "DiscountValidateRequest",
    "GatewayNotification",
    "InstitutionTokenRequest",
    "OrderSnapshot",
    "StoreSettingsUpdate",
    "Token",
    "VoucherImportRequest",
    "VoucherOut",
    "VoucherStatusChange",
]
