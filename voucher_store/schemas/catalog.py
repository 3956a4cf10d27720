from voucher_store.models import CertificateCategory

from .checkout import CamelModel


class CertificateOut(CamelModel):
    id: int
    code: str
    slug: str
    category: CertificateCategory
    name_en: str
    name_ar: str
    description_en: str
    description_ar: str
    exam_code: str
    retail_price: float
    validity_months: int
