import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_hub.database import Base
from affiliate_hub.models.partner import PaymentMethod
from affiliate_hub.utils.helpers import utc_now

if TYPE_CHECKING:
    from affiliate_hub.models.link import Click
    from affiliate_hub.models.partner import Partner, Product


def generate_uuid() -> str:
    return str(uuid.uuid4())


class ConversionType(str, Enum):
    SALE = "sale"
    LEAD = "lead"
    SIGNUP = "signup"
    TRIAL = "trial"
    DOWNLOAD = "download"


class ConversionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVERSED = "reversed"


class ConversionPayoutStatus(str, Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


class ValidationMethod(str, Enum):
    POSTBACK = "postback"
    MANUAL = "manual"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Conversion(Base):
    __tablename__ = "conversions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid, index=True)
    click_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("clicks.id", ondelete="SET NULL"), nullable=True, index=True
    )
    partner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    payout_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("payouts.id", ondelete="SET NULL"), nullable=True, index=True
    )

    order_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    conversion_type: Mapped[ConversionType] = mapped_column(
        SQLEnum(ConversionType), default=ConversionType.SALE, nullable=False
    )
    sale_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    conversion_status: Mapped[ConversionStatus] = mapped_column(
        SQLEnum(ConversionStatus), default=ConversionStatus.PENDING, nullable=False, index=True
    )
    payout_status: Mapped[ConversionPayoutStatus] = mapped_column(
        SQLEnum(ConversionPayoutStatus),
        default=ConversionPayoutStatus.UNPAID,
        nullable=False,
        index=True,
    )
    validation_method: Mapped[ValidationMethod] = mapped_column(
        SQLEnum(ValidationMethod), default=ValidationMethod.MANUAL, nullable=False
    )

    converted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    partner: Mapped["Partner"] = relationship("Partner")
    product: Mapped[Optional["Product"]] = relationship("Product")
    click: Mapped[Optional["Click"]] = relationship("Click", foreign_keys=[click_id])
    payout: Mapped[Optional["Payout"]] = relationship("Payout", back_populates="conversions")

    __table_args__ = (
        UniqueConstraint("partner_id", "order_id", name="uq_conversions_partner_order"),
    )

    def __repr__(self) -> str:
        return (
            f"<Conversion(id={self.id}, order_id={self.order_id}, "
            f"status={self.conversion_status}, payout_status={self.payout_status})>"
        )


class Payout(Base):
    __tablename__ = "payouts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid, index=True)
    partner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True
    )

    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    total_conversions: Mapped[int] = mapped_column(Integer, nullable=False)
    total_commission: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payout_method: Mapped[PaymentMethod] = mapped_column(SQLEnum(PaymentMethod), nullable=False)

    status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus), default=PayoutStatus.PENDING, nullable=False
    )

    transaction_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    payout_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    partner: Mapped["Partner"] = relationship("Partner")
    conversions: Mapped[list["Conversion"]] = relationship("Conversion", back_populates="payout")

    def __repr__(self) -> str:
        return (
            f"<Payout(id={self.id}, total_commission={self.total_commission}, "
            f"status={self.status})>"
        )
