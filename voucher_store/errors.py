"""
Error taxonomy. Every error carries an HTTP status and an English/Arabic message
pair; the FastAPI handler in main.py renders them as {"error": {"en", "ar"}}.
"""


class StoreError(Exception):
    status_code = 500
    default_en = "Unexpected server error"
    default_ar = "خطأ غير متوقع في الخادم"

    def __init__(self, en: str | None = None, ar: str | None = None, *, reason: str | None = None):
        self.en = en or self.default_en
        self.ar = ar or self.default_ar
        self.reason = reason
        super().__init__(self.en)

    def to_dict(self) -> dict:
        return {"en": self.en, "ar": self.ar}


class ValidationError(StoreError):
    """Bad input the caller can correct."""

    status_code = 400
    default_en = "Invalid request"
    default_ar = "طلب غير صالح"


class AuthError(StoreError):
    status_code = 401
    default_en = "Unauthorized"
    default_ar = "غير مصرح"


class ForbiddenError(AuthError):
    status_code = 403
    default_en = "Forbidden"
    default_ar = "ممنوع"


class NotFoundError(StoreError):
    status_code = 404
    default_en = "Not found"
    default_ar = "غير موجود"


class OrderNotFound(NotFoundError):
    default_en = "Order not found"
    default_ar = "الطلب غير موجود"


class ConflictError(StoreError):
    status_code = 409
    default_en = "Already exists"
    default_ar = "موجود مسبقاً"


class StateError(StoreError):
    """Transition not allowed from the current state."""

    status_code = 409
    default_en = "Invalid state transition"
    default_ar = "انتقال حالة غير صالح"


class UpstreamError(StoreError):
    """Payment gateway or notifier failure."""

    status_code = 502
    default_en = "Payment provider unavailable, please try again"
    default_ar = "مزود الدفع غير متاح، يرجى المحاولة مرة أخرى"


class NotConfiguredError(StoreError):
    status_code = 503
    default_en = "Service not configured"
    default_ar = "الخدمة غير مهيأة"
