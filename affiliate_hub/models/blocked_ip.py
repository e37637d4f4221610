import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from affiliate_hub.database import Base
from affiliate_hub.utils.helpers import utc_now


def generate_uuid() -> str:
    return str(uuid.uuid4())


class BlockedIP(Base):
    __tablename__ = "blocked_ips"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    # Stored in anonymized form, the same way clicks store it
    ip_address: Mapped[str] = mapped_column(String(45), unique=True, nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    blocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<BlockedIP(ip_address={self.ip_address})>"
