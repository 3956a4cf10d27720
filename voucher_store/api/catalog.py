from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from voucher_store.core.database import get_db
from voucher_store.models import Certificate
from voucher_store.schemas import CertificateOut

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/certificates", response_model=list[CertificateOut], response_model_by_alias=True)
def list_certificates(db: Session = Depends(get_db)):
    return db.exec(
        select(Certificate).where(Certificate.is_active == True).order_by(Certificate.sort_order, Certificate.id)  # noqa: E712
    ).all()
