import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import NotFoundError
from affiliate_hub.models import Click, DeviceType, Link
from affiliate_hub.utils.device import anonymize_ip, parse_user_agent
from affiliate_hub.utils.helpers import truncate, utc_now
from affiliate_hub.workers import dispatch

logger = logging.getLogger(__name__)

MAX_USER_AGENT_LENGTH = 500
MAX_REFERRER_LENGTH = 1000

IncrementScheduler = Callable[[str], None]


@dataclass
class ClickData:
    link_id: str
    session_id: str
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    country_code: str | None = None


@dataclass
class ClickStats:
    total_clicks: int = 0
    unique_sessions: int = 0
    bot_clicks: int = 0
    by_device: dict[str, int] = field(default_factory=dict)
    by_browser: dict[str, int] = field(default_factory=dict)
    by_country: dict[str, int] = field(default_factory=dict)


class ClickTracker:
    def __init__(
        self,
        db: AsyncSession,
        increment_scheduler: IncrementScheduler | None = None,
    ):
        self.db = db
        self.increment_scheduler = increment_scheduler

    async def track_click(self, data: ClickData) -> Click:
        link = await self.db.get(Link, data.link_id)
        if not link:
            raise NotFoundError("Link")

        device = parse_user_agent(data.user_agent)

        click = Click(
            link_id=link.id,
            partner_id=link.partner_id,
            product_id=link.product_id,
            session_id=data.session_id,
            ip_address=anonymize_ip(data.ip_address),
            user_agent=truncate(data.user_agent, MAX_USER_AGENT_LENGTH),
            referrer=truncate(data.referrer, MAX_REFERRER_LENGTH),
            device_type=DeviceType(device.device_type),
            browser=device.browser,
            os=device.os,
            country_code=data.country_code.upper()[:2] if data.country_code else None,
            is_bot=device.is_bot,
            bot_type=device.bot_type,
            clicked_at=utc_now(),
        )

        self.db.add(click)
        await self.db.flush()
        await self.db.refresh(click)

        if click.is_bot:
            logger.info(f"Bot click on link {link.short_code}: {click.bot_type}")

        # Best effort; a lost increment is acceptable
        scheduler = self.increment_scheduler or dispatch.schedule_click_increment
        try:
            scheduler(link.id)
        except Exception as e:
            logger.warning(f"Click counter increment failed for link {link.id}: {e}")

        return click

    async def has_recent_click(
        self,
        session_id: str,
        link_id: str,
        window_minutes: int | None = None,
    ) -> bool:
        window = (
            window_minutes if window_minutes is not None else settings.affiliate_click_dedup_minutes
        )
        since = utc_now() - timedelta(minutes=window)

        result = await self.db.execute(
            select(Click.id)
            .where(
                Click.session_id == session_id,
                Click.link_id == link_id,
                Click.clicked_at >= since,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_session_clicks(
        self,
        session_id: str,
        partner_id: str | None = None,
        days_back: int = 30,
    ) -> list[Click]:
        since = utc_now() - timedelta(days=days_back)
        query = select(Click).where(Click.session_id == session_id, Click.clicked_at >= since)
        if partner_id:
            query = query.where(Click.partner_id == partner_id)

        result = await self.db.execute(query.order_by(Click.clicked_at.desc()))
        return list(result.scalars().all())

    async def get_last_click(
        self,
        session_id: str,
        partner_id: str | None = None,
        days_back: int | None = None,
    ) -> Click | None:
        """Last-click attribution, bounded to the attribution window."""
        days = days_back if days_back is not None else settings.affiliate_attribution_days
        since = utc_now() - timedelta(days=days)

        query = select(Click).where(Click.session_id == session_id, Click.clicked_at >= since)
        if partner_id:
            query = query.where(Click.partner_id == partner_id)

        result = await self.db.execute(query.order_by(Click.clicked_at.desc()).limit(1))
        return result.scalar_one_or_none()

    async def get_click(self, click_id: str) -> Click | None:
        return await self.db.get(Click, click_id)

    async def link_click_to_conversion(self, click_id: str, conversion_id: str) -> None:
        await self.db.execute(
            update(Click).where(Click.id == click_id).values(conversion_id=conversion_id)
        )

    async def get_click_stats(
        self,
        start_date: datetime,
        end_date: datetime,
        partner_id: str | None = None,
        product_id: str | None = None,
    ) -> ClickStats:
        conditions = [Click.clicked_at >= start_date, Click.clicked_at <= end_date]
        if partner_id:
            conditions.append(Click.partner_id == partner_id)
        if product_id:
            conditions.append(Click.product_id == product_id)

        totals = await self.db.execute(
            select(
                func.count(Click.id),
                func.count(func.distinct(Click.session_id)),
            ).where(*conditions)
        )
        total_clicks, unique_sessions = totals.one()

        bot_result = await self.db.execute(
            select(func.count(Click.id)).where(*conditions, Click.is_bot.is_(True))
        )

        stats = ClickStats(
            total_clicks=total_clicks or 0,
            unique_sessions=unique_sessions or 0,
            bot_clicks=bot_result.scalar() or 0,
        )
        stats.by_device = await self._group_counts(Click.device_type, conditions)
        stats.by_browser = await self._group_counts(Click.browser, conditions)
        stats.by_country = await self._group_counts(Click.country_code, conditions)
        return stats

    async def _group_counts(self, column, conditions) -> dict[str, int]:
        result = await self.db.execute(
            select(column, func.count(Click.id))
            .where(*conditions, column.is_not(None))
            .group_by(column)
        )
        counts: dict[str, int] = {}
        for key, count in result.all():
            label = key.value if isinstance(key, DeviceType) else str(key)
            counts[label] = count
        return counts
