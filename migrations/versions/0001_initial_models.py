"""initial models

Catalog, orders, discount codes, invoices, voucher inventory and store settings.
The unique indexes on orders.gateway_charge_id, invoice.order_id and
discountcode.code back the exactly-once guarantees of settlement and invoicing.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel  # noqa: F401


revision: str = "0001_initial_models"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_certificate_category = sa.Enum(
    "CORE", "INFRASTRUCTURE", "CYBERSECURITY", "DATA", "PROFESSIONAL", name="certificatecategory"
)
_customer_type = sa.Enum("INDIVIDUAL", "INSTITUTION", name="customertype")
_order_status = sa.Enum("PENDING", "PAID", "CANCELLED", "REFUNDED", name="orderstatus")
_discount_type = sa.Enum("PERCENTAGE", "FIXED", name="discounttype")
_voucher_status = sa.Enum("AVAILABLE", "RESERVED", "ASSIGNED", "DELIVERED", "USED", "EXPIRED", name="voucherstatus")


def _str(length: int | None = None):
    return sqlmodel.sql.sqltypes.AutoString(length=length)


def upgrade() -> None:
    op.create_table(
        "certificate",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", _str(64), nullable=False),
        sa.Column("slug", _str(64), nullable=False),
        sa.Column("category", _certificate_category, nullable=False),
        sa.Column("name_en", _str(), nullable=False),
        sa.Column("name_ar", _str(), nullable=False),
        sa.Column("description_en", _str(), nullable=False),
        sa.Column("description_ar", _str(), nullable=False),
        sa.Column("exam_code", _str(32), nullable=False),
        sa.Column("retail_price", sa.Float(), nullable=False),
        sa.Column("institution_base_price", sa.Float(), nullable=False),
        sa.Column("validity_months", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_certificate_code", "certificate", ["code"], unique=True)
    op.create_index("ix_certificate_slug", "certificate", ["slug"], unique=True)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", _str(32), nullable=False),
        sa.Column("customer_type", _customer_type, nullable=False),
        sa.Column("customer_name", _str(200), nullable=False),
        sa.Column("contact_name", _str(200), nullable=False),
        sa.Column("email", _str(254), nullable=False),
        sa.Column("phone", _str(32), nullable=False),
        sa.Column("customer_vat_number", _str(32), nullable=True),
        sa.Column("certificate_id", sa.Integer(), sa.ForeignKey("certificate.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("subtotal", sa.Float(), nullable=False),
        sa.Column("discount_code_used", _str(64), nullable=True),
        sa.Column("discount_amount", sa.Float(), nullable=False),
        sa.Column("vat_amount", sa.Float(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("status", _order_status, nullable=False),
        sa.Column("gateway_charge_id", _str(64), nullable=True),
        sa.Column("gateway_transaction_id", _str(128), nullable=True),
        sa.Column("payment_method", _str(64), nullable=True),
        sa.Column("vouchers_assigned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_gateway_charge_id", "orders", ["gateway_charge_id"], unique=True)
    op.create_index("ix_orders_certificate_id", "orders", ["certificate_id"])
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "discountcode",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", _str(64), nullable=False),
        sa.Column("discount_type", _discount_type, nullable=False),
        sa.Column("discount_value", sa.Float(), nullable=False),
        sa.Column("description_en", _str(), nullable=False),
        sa.Column("description_ar", _str(), nullable=False),
        sa.Column("min_quantity", sa.Integer(), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False),
        sa.Column("valid_from", sa.DateTime(), nullable=True),
        sa.Column("valid_until", sa.DateTime(), nullable=True),
        sa.Column("customer_restriction", _str(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_discountcode_code", "discountcode", ["code"], unique=True)

    op.create_table(
        "invoice",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", _str(32), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_invoice_invoice_number", "invoice", ["invoice_number"], unique=True)
    op.create_index("ix_invoice_order_id", "invoice", ["order_id"], unique=True)

    op.create_table(
        "voucher",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", _str(128), nullable=False),
        sa.Column("certificate_id", sa.Integer(), sa.ForeignKey("certificate.id"), nullable=False),
        sa.Column("status", _voucher_status, nullable=False),
        sa.Column("purchase_price", sa.Float(), nullable=False),
        sa.Column("purchased_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("batch_id", _str(32), nullable=True),
        sa.Column("imported_at", sa.DateTime(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(), nullable=True),
        sa.Column("assigned_to_order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=True),
        sa.Column("assigned_by", _str(128), nullable=True),
        sa.Column("recipient_email", _str(254), nullable=True),
        sa.Column("recipient_name", _str(200), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("notes", _str(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_voucher_code", "voucher", ["code"], unique=True)
    op.create_index("ix_voucher_certificate_id", "voucher", ["certificate_id"])
    op.create_index("ix_voucher_status", "voucher", ["status"])
    op.create_index("ix_voucher_expires_at", "voucher", ["expires_at"])
    op.create_index("ix_voucher_batch_id", "voucher", ["batch_id"])
    op.create_index("ix_voucher_assigned_to_order_id", "voucher", ["assigned_to_order_id"])

    op.create_table(
        "voucherbatch",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("batch_id", _str(32), nullable=False),
        sa.Column("certificate_id", sa.Integer(), sa.ForeignKey("certificate.id"), nullable=False),
        sa.Column("total_count", sa.Integer(), nullable=False),
        sa.Column("purchase_price_per_unit", sa.Float(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("supplier_order_ref", _str(128), nullable=True),
        sa.Column("notes", _str(), nullable=True),
        sa.Column("imported_by", _str(128), nullable=True),
        sa.Column("imported_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_voucherbatch_batch_id", "voucherbatch", ["batch_id"], unique=True)
    op.create_index("ix_voucherbatch_certificate_id", "voucherbatch", ["certificate_id"])

    op.create_table(
        "storesetting",
        sa.Column("key", _str(64), primary_key=True),
        sa.Column("value", _str(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("storesetting")
    op.drop_table("voucherbatch")
    op.drop_table("voucher")
    op.drop_table("invoice")
    op.drop_table("discountcode")
    op.drop_table("orders")
    op.drop_table("certificate")
    for enum in (_voucher_status, _discount_type, _order_status, _customer_type, _certificate_category):
        enum.drop(op.get_bind(), checkfirst=True)
