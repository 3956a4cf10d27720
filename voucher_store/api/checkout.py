from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from voucher_store.api.deps import get_caller
from voucher_store.core.database import get_db
from voucher_store.core.rate_limit import RATE_LIMIT_STR, limiter
from voucher_store.core.security import Caller
from voucher_store.schemas import CheckoutRequest, CheckoutResponse, DiscountValidateRequest
from voucher_store.services import discount as ledger
from voucher_store.services.gateway import PaymentGateway, get_gateway
from voucher_store.services.orders import create_order

router = APIRouter(prefix="/api", tags=["checkout"])


@router.post("/payment/create-charge", response_model=CheckoutResponse, response_model_by_alias=True)
@limiter.limit(RATE_LIMIT_STR)
def create_charge(
    request: Request,
    body: CheckoutRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    caller: Caller = Depends(get_caller),
):
    result = create_order(db, gateway, caller, body)
    return CheckoutResponse(
        order_id=result.order.id,
        order_number=result.order.order_number,
        redirect_url=result.redirect_url,
    )


@router.post("/discount/validate")
@limiter.limit(RATE_LIMIT_STR)
def validate_discount(
    request: Request,
    body: DiscountValidateRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    """Checkout preview; never changes the code's usage counter."""
    if not (body.code or "").strip():
        return JSONResponse(
            status_code=400,
            content={"valid": False, "error": {"en": "Discount code is required", "ar": "كود الخصم مطلوب"}},
        )
    customer_name = caller.institution_name if caller.is_institution and caller.institution_name else body.university_name
    validation = ledger.validate(db, body.code, body.quantity or 1, customer_name=customer_name)
    if not validation.valid:
        return {"valid": False, "reason": validation.reason.value, "error": validation.error()}
    d = validation.discount
    return {
        "valid": True,
        "discount": {
            "code": d.code,
            "type": d.discount_type.value,
            "value": d.discount_value,
            "descriptionEn": d.description_en,
            "descriptionAr": d.description_ar,
        },
    }
