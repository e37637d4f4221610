"""create affiliate tables

Revision ID: 0001_affiliate
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_affiliate"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# SQLAlchemy persists enum member names
PAYMENT_METHODS = ("PAYPAL", "BANK_TRANSFER", "CHECK", "NETWORK")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "partners",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column(
            "commission_type",
            sa.Enum("PERCENTAGE", "FIXED", "TIERED", "HYBRID", name="commissiontype"),
            nullable=False,
        ),
        sa.Column("commission_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("payment_method", sa.Enum(*PAYMENT_METHODS, name="paymentmethod"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "PENDING", "PAUSED", "TERMINATED", name="partnerstatus"),
            nullable=False,
        ),
        sa.Column("min_payout_threshold", sa.Numeric(12, 2), nullable=True),
        sa.Column("cookie_duration_days", sa.Integer(), nullable=True),
        sa.Column("api_key", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_partners_id", "partners", ["id"])
    op.create_index("ix_partners_slug", "partners", ["slug"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("partner_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("affiliate_url", sa.String(2000), nullable=False),
        sa.Column("commission_override", sa.Numeric(10, 2), nullable=True),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "INACTIVE", "OUT_OF_STOCK", name="productstatus"),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_id", "products", ["id"])
    op.create_index("ix_products_partner_id", "products", ["partner_id"])
    op.create_index("ix_products_slug", "products", ["slug"])

    op.create_table(
        "campaigns",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("partner_id", sa.String(36), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "campaign_type",
            sa.Enum(
                "SEASONAL", "PRODUCT_LAUNCH", "PROMOTION", "EVERGREEN", name="campaigntype"
            ),
            nullable=False,
        ),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "ACTIVE", "PAUSED", "COMPLETED", "CANCELLED", name="campaignstatus"),
            nullable=False,
        ),
        sa.Column("bonus_commission_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("discount_code", sa.String(50), nullable=True),
        sa.Column("target_clicks", sa.Integer(), nullable=True),
        sa.Column("target_conversions", sa.Integer(), nullable=True),
        sa.Column("target_revenue", sa.Numeric(12, 2), nullable=True),
        sa.Column("budget", sa.Numeric(12, 2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_campaigns_id", "campaigns", ["id"])
    op.create_index("ix_campaigns_partner_id", "campaigns", ["partner_id"])

    op.create_table(
        "links",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("short_code", sa.String(50), nullable=False),
        sa.Column("partner_id", sa.String(36), nullable=False),
        sa.Column("product_id", sa.String(36), nullable=True),
        sa.Column("original_url", sa.String(2000), nullable=False),
        sa.Column("tracking_url", sa.String(4000), nullable=False),
        sa.Column("short_url", sa.String(500), nullable=False),
        sa.Column(
            "placement_type",
            sa.Enum(
                "CONTENT",
                "BANNER",
                "BUTTON",
                "WIDGET",
                "EMAIL",
                "SIDEBAR",
                name="placementtype",
            ),
            nullable=False,
        ),
        sa.Column("utm_source", sa.String(100), nullable=True),
        sa.Column("utm_medium", sa.String(100), nullable=True),
        sa.Column("utm_campaign", sa.String(100), nullable=True),
        sa.Column(
            "status", sa.Enum("ACTIVE", "PAUSED", "EXPIRED", name="linkstatus"), nullable=False
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_clicks", sa.Integer(), nullable=False),
        sa.Column("total_conversions", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_links_id", "links", ["id"])
    op.create_index("ix_links_short_code", "links", ["short_code"], unique=True)
    op.create_index("ix_links_partner_id", "links", ["partner_id"])
    op.create_index("ix_links_product_id", "links", ["product_id"])

    op.create_table(
        "clicks",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("link_id", sa.String(36), nullable=False),
        sa.Column("partner_id", sa.String(36), nullable=False),
        sa.Column("product_id", sa.String(36), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("referrer", sa.String(1000), nullable=True),
        sa.Column(
            "device_type",
            sa.Enum("DESKTOP", "MOBILE", "TABLET", "UNKNOWN", name="devicetype"),
            nullable=False,
        ),
        sa.Column("browser", sa.String(50), nullable=True),
        sa.Column("os", sa.String(50), nullable=True),
        sa.Column("country_code", sa.String(2), nullable=True),
        sa.Column("is_bot", sa.Boolean(), nullable=False),
        sa.Column("bot_type", sa.String(100), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("conversion_id", sa.String(36), nullable=True),
        sa.ForeignKeyConstraint(["link_id"], ["links.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_clicks_id", "clicks", ["id"])
    op.create_index("ix_clicks_link_id", "clicks", ["link_id"])
    op.create_index("ix_clicks_partner_id", "clicks", ["partner_id"])
    op.create_index("ix_clicks_session_id", "clicks", ["session_id"])
    op.create_index("ix_clicks_ip_address", "clicks", ["ip_address"])
    op.create_index("ix_clicks_clicked_at", "clicks", ["clicked_at"])
    op.create_index(
        "ix_clicks_session_link_time", "clicks", ["session_id", "link_id", "clicked_at"]
    )

    op.create_table(
        "payouts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("partner_id", sa.String(36), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_conversions", sa.Integer(), nullable=False),
        sa.Column("total_commission", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "payout_method",
            postgresql.ENUM(*PAYMENT_METHODS, name="paymentmethod", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("PENDING", "PROCESSING", "COMPLETED", "FAILED", name="payoutstatus"),
            nullable=False,
        ),
        sa.Column("transaction_reference", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("payout_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payouts_id", "payouts", ["id"])
    op.create_index("ix_payouts_partner_id", "payouts", ["partner_id"])

    op.create_table(
        "conversions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("click_id", sa.String(36), nullable=True),
        sa.Column("partner_id", sa.String(36), nullable=False),
        sa.Column("product_id", sa.String(36), nullable=True),
        sa.Column("payout_id", sa.String(36), nullable=True),
        sa.Column("order_id", sa.String(255), nullable=True),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column(
            "conversion_type",
            sa.Enum("SALE", "LEAD", "SIGNUP", "TRIAL", "DOWNLOAD", name="conversiontype"),
            nullable=False,
        ),
        sa.Column("sale_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "conversion_status",
            sa.Enum("PENDING", "APPROVED", "REJECTED", "REVERSED", name="conversionstatus"),
            nullable=False,
        ),
        sa.Column(
            "payout_status",
            sa.Enum(
                "UNPAID",
                "PENDING",
                "PROCESSING",
                "PAID",
                "FAILED",
                name="conversionpayoutstatus",
            ),
            nullable=False,
        ),
        sa.Column(
            "validation_method",
            sa.Enum("POSTBACK", "MANUAL", name="validationmethod"),
            nullable=False,
        ),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["click_id"], ["clicks.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["payout_id"], ["payouts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("partner_id", "order_id", name="uq_conversions_partner_order"),
    )
    op.create_index("ix_conversions_id", "conversions", ["id"])
    op.create_index("ix_conversions_click_id", "conversions", ["click_id"])
    op.create_index("ix_conversions_partner_id", "conversions", ["partner_id"])
    op.create_index("ix_conversions_payout_id", "conversions", ["payout_id"])
    op.create_index("ix_conversions_order_id", "conversions", ["order_id"])
    op.create_index("ix_conversions_conversion_status", "conversions", ["conversion_status"])
    op.create_index("ix_conversions_payout_status", "conversions", ["payout_status"])
    op.create_index("ix_conversions_converted_at", "conversions", ["converted_at"])

    op.create_table(
        "blocked_ips",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("blocked_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_blocked_ips_ip_address", "blocked_ips", ["ip_address"], unique=True)


def downgrade() -> None:
    op.drop_table("blocked_ips")
    op.drop_table("conversions")
    op.drop_table("payouts")
    op.drop_table("clicks")
    op.drop_table("links")
    op.drop_table("campaigns")
    op.drop_table("products")
    op.drop_table("partners")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "validationmethod",
            "conversionpayoutstatus",
            "conversionstatus",
            "conversiontype",
            "payoutstatus",
            "devicetype",
            "linkstatus",
            "placementtype",
            "campaignstatus",
            "campaigntype",
            "productstatus",
            "partnerstatus",
            "paymentmethod",
            "commissiontype",
        ):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
