import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from affiliate_hub.database import Base
from affiliate_hub.utils.helpers import ensure_utc, utc_now

if TYPE_CHECKING:
    from affiliate_hub.models.partner import Partner, Product


def generate_uuid() -> str:
    return str(uuid.uuid4())


class LinkStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


class PlacementType(str, Enum):
    CONTENT = "content"
    BANNER = "banner"
    BUTTON = "button"
    WIDGET = "widget"
    EMAIL = "email"
    SIDEBAR = "sidebar"


class DeviceType(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    UNKNOWN = "unknown"


class Link(Base):
    __tablename__ = "links"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid, index=True)
    short_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)

    partner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )

    original_url: Mapped[str] = mapped_column(String(2000), nullable=False)
    tracking_url: Mapped[str] = mapped_column(String(4000), nullable=False)
    short_url: Mapped[str] = mapped_column(String(500), nullable=False)

    placement_type: Mapped[PlacementType] = mapped_column(
        SQLEnum(PlacementType), default=PlacementType.CONTENT, nullable=False
    )
    utm_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[LinkStatus] = mapped_column(
        SQLEnum(LinkStatus), default=LinkStatus.ACTIVE, nullable=False
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    total_clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_conversions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    partner: Mapped["Partner"] = relationship("Partner", back_populates="links")
    product: Mapped[Optional["Product"]] = relationship("Product")

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return ensure_utc(self.expires_at) < (now or utc_now())

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, short_code={self.short_code}, status={self.status})>"


class Click(Base):
    __tablename__ = "clicks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid, index=True)
    link_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Denormalized from the link at click time
    partner_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    product_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True, index=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    referrer: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    device_type: Mapped[DeviceType] = mapped_column(
        SQLEnum(DeviceType), default=DeviceType.UNKNOWN, nullable=False
    )
    browser: Mapped[str | None] = mapped_column(String(50), nullable=True)
    os: Mapped[str | None] = mapped_column(String(50), nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)

    is_bot: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bot_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    clicked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )

    conversion_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    link: Mapped["Link"] = relationship("Link")

    __table_args__ = (
        Index("ix_clicks_session_link_time", "session_id", "link_id", "clicked_at"),
    )

    def __repr__(self) -> str:
        return f"<Click(id={self.id}, link_id={self.link_id}, is_bot={self.is_bot})>"
