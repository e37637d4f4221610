import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_hub.database import Base
from affiliate_hub.utils.helpers import ensure_utc, utc_now

if TYPE_CHECKING:
    from affiliate_hub.models.partner import Partner


def generate_uuid() -> str:
    return str(uuid.uuid4())


class CampaignType(str, Enum):
    SEASONAL = "seasonal"
    PRODUCT_LAUNCH = "product_launch"
    PROMOTION = "promotion"
    EVERGREEN = "evergreen"


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid, index=True)
    partner_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("partners.id", ondelete="SET NULL"), nullable=True, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    campaign_type: Mapped[CampaignType] = mapped_column(
        SQLEnum(CampaignType), default=CampaignType.EVERGREEN, nullable=False
    )

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[CampaignStatus] = mapped_column(
        SQLEnum(CampaignStatus), default=CampaignStatus.DRAFT, nullable=False
    )

    # Percentage points added on top of the partner/product rate
    bonus_commission_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    discount_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    target_clicks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_conversions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_revenue: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    budget: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    partner: Mapped[Optional["Partner"]] = relationship("Partner")

    def is_running(self, now: datetime | None = None) -> bool:
        """Active and inside [start_date, end_date]; a campaign without an end date never runs."""
        if self.status != CampaignStatus.ACTIVE:
            return False
        now = now or utc_now()
        if now < ensure_utc(self.start_date):
            return False
        return self.end_date is not None and now <= ensure_utc(self.end_date)

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id}, name={self.name}, status={self.status})>"
