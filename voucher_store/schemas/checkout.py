from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Storefront JSON uses camelCase keys; snake_case is accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class CheckoutRequest(CamelModel):
    """
    Checkout form. Field presence is checked by the order service so the shopper
    gets bilingual 400 messages instead of a 422 schema error.
    """

    # Institutions send it as universityName
    customer_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("universityName", "customerName", "customer_name"),
    )
    contact_name: str = ""
    email: str = ""
    phone: str = ""
    customer_vat_number: str | None = None
    quantity: int = 0
    certificate_id: int | None = None
    discount_code: str | None = None
    locale: str = "en"


class CheckoutResponse(CamelModel):
    success: bool = True
    order_id: int
    order_number: str
    redirect_url: str


class DiscountValidateRequest(CamelModel):
    code: str | None = None
    quantity: int | None = None
    university_name: str | None = None
