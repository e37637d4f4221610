import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_hub.database import Base

if TYPE_CHECKING:
    from affiliate_hub.models.link import Link


def generate_uuid() -> str:
    return str(uuid.uuid4())


class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    TIERED = "tiered"
    HYBRID = "hybrid"


class PartnerStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    PAUSED = "paused"
    TERMINATED = "terminated"


class PaymentMethod(str, Enum):
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    NETWORK = "network"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


class Partner(Base):
    __tablename__ = "partners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid, index=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    commission_type: Mapped[CommissionType] = mapped_column(
        SQLEnum(CommissionType), default=CommissionType.PERCENTAGE, nullable=False
    )
    # Percentage points, or a flat currency amount for fixed commissions
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("10"))

    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod), default=PaymentMethod.PAYPAL, nullable=False
    )
    status: Mapped[PartnerStatus] = mapped_column(
        SQLEnum(PartnerStatus), default=PartnerStatus.PENDING, nullable=False
    )
    min_payout_threshold: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("50"))
    cookie_duration_days: Mapped[int] = mapped_column(Integer, default=30)

    api_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    products: Mapped[list["Product"]] = relationship(
        "Product", back_populates="partner", cascade="all, delete-orphan"
    )
    links: Mapped[list["Link"]] = relationship(
        "Link", back_populates="partner", cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.status == PartnerStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Partner(id={self.id}, slug={self.slug})>"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid, index=True)
    partner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    affiliate_url: Mapped[str] = mapped_column(String(2000), nullable=False)

    commission_override: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    status: Mapped[ProductStatus] = mapped_column(
        SQLEnum(ProductStatus), default=ProductStatus.ACTIVE, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    partner: Mapped["Partner"] = relationship("Partner", back_populates="products")

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, slug={self.slug})>"
