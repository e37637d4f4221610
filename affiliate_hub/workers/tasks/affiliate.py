"""
Celery tasks for the affiliate pipeline.

Counter increments are fire-and-forget: they are not retried, and a lost
increment is tolerated. The scheduled jobs (link health, fraud monitoring,
campaign lifecycle, campaign ending and milestone alerts) run from the beat
schedule in ``celery_app``.
"""

import asyncio
import logging
import math
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_hub.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="affiliate.increment_link_clicks")
def increment_link_clicks_task(self, link_id: str) -> None:
    try:
        asyncio.run(_increment_link_counter(link_id, "clicks"))
    except Exception as e:
        logger.warning(f"Click increment dropped for link {link_id}: {e}")


@celery_app.task(bind=True, name="affiliate.increment_link_conversions")
def increment_link_conversions_task(self, link_id: str) -> None:
    try:
        asyncio.run(_increment_link_counter(link_id, "conversions"))
    except Exception as e:
        logger.warning(f"Conversion increment dropped for link {link_id}: {e}")


async def _increment_link_counter(link_id: str, counter: str) -> None:
    from affiliate_hub.services import LinkService
    from affiliate_hub.workers.database import get_worker_db

    async with get_worker_db() as db:
        link_service = LinkService(db)
        if counter == "clicks":
            await link_service.increment_clicks(link_id)
        else:
            await link_service.increment_conversions(link_id)
        await db.commit()


@celery_app.task(bind=True, name="affiliate.run_link_health_check")
def run_link_health_check(self):
    try:
        asyncio.run(_run_link_health_check())
    except Exception as e:
        logger.error(f"Link health check failed: {e}")
        raise


async def _run_link_health_check():
    from affiliate_hub.workers.database import get_worker_db

    async with get_worker_db() as db:
        report = await check_links_and_flag(db)
        await db.commit()

    logger.info(f"Link health check: {report.healthy}/{report.total} healthy")


async def check_links_and_flag(db: AsyncSession, link_service=None):
    """
    Check every active link, take failing ones out of rotation and alert.

    Links answering 404 are marked expired; any other failure pauses the
    link until someone looks at it.
    """
    from affiliate_hub.models import Link, LinkStatus
    from affiliate_hub.services import LinkService
    from affiliate_hub.services.notification_service import notify_link_health

    link_service = link_service or LinkService(db)
    report = await link_service.check_all_links_health()

    for entry in report.unhealthy:
        link = await db.get(Link, entry.id)
        if link is None:
            continue
        status = LinkStatus.EXPIRED if entry.status == 404 else LinkStatus.PAUSED
        await link_service.update_link_status(link, status)

    if report.unhealthy:
        notify_link_health(
            [
                {"short_code": u.short_code, "url": u.url, "status": u.status}
                for u in report.unhealthy
            ],
            total=report.total,
        )

    return report


@celery_app.task(bind=True, name="affiliate.run_fraud_monitoring")
def run_fraud_monitoring(self):
    try:
        asyncio.run(_run_fraud_monitoring())
    except Exception as e:
        logger.error(f"Fraud monitoring failed: {e}")
        raise


async def _run_fraud_monitoring():
    from affiliate_hub.workers.database import get_worker_db

    async with get_worker_db() as db:
        alerts = await find_traffic_spikes(db)

    logger.info(f"Fraud monitoring: {len(alerts)} link(s) over the hourly click limit")


async def find_traffic_spikes(db: AsyncSession) -> list[str]:
    """Alert on links whose trailing-hour click volume exceeds the per-link limit."""
    from affiliate_hub.config import settings
    from affiliate_hub.models import Click, Link
    from affiliate_hub.services.notification_service import notify_fraud_alert
    from affiliate_hub.utils.helpers import utc_now

    hour_ago = utc_now() - timedelta(hours=1)
    limit = settings.fraud_max_clicks_per_link_per_hour

    result = await db.execute(
        select(Link.short_code, func.count(Click.id))
        .join(Click, Click.link_id == Link.id)
        .where(Click.clicked_at >= hour_ago)
        .group_by(Link.short_code)
        .having(func.count(Click.id) > limit)
    )

    alerts = [f"{short_code}: {count} clicks in the last hour" for short_code, count in result.all()]
    if alerts:
        notify_fraud_alert("Unusual click volume", alerts)
    return alerts


@celery_app.task(bind=True, name="affiliate.update_campaign_statuses")
def update_campaign_statuses(self):
    try:
        asyncio.run(_update_campaign_statuses())
    except Exception as e:
        logger.error(f"Campaign status update failed: {e}")
        raise


async def _update_campaign_statuses():
    from affiliate_hub.workers.database import get_worker_db

    async with get_worker_db() as db:
        started, completed = await advance_campaigns(db)
        await db.commit()

    logger.info(f"Campaigns: {started} started, {completed} completed")


async def advance_campaigns(db: AsyncSession) -> tuple[int, int]:
    """Start draft campaigns whose start date has passed and close ended active ones."""
    from affiliate_hub.models import Campaign, CampaignStatus
    from affiliate_hub.utils.helpers import ensure_utc, utc_now

    now = utc_now()
    started = completed = 0

    result = await db.execute(
        select(Campaign).where(
            Campaign.status == CampaignStatus.DRAFT,
            Campaign.start_date <= now,
        )
    )
    for campaign in result.scalars().all():
        if campaign.end_date is not None and ensure_utc(campaign.end_date) <= now:
            continue
        campaign.status = CampaignStatus.ACTIVE
        started += 1

    result = await db.execute(
        select(Campaign).where(
            Campaign.status == CampaignStatus.ACTIVE,
            Campaign.end_date.is_not(None),
            Campaign.end_date < now,
        )
    )
    for campaign in result.scalars().all():
        campaign.status = CampaignStatus.COMPLETED
        completed += 1

    await db.flush()
    return started, completed


@celery_app.task(bind=True, name="affiliate.check_campaigns_ending_soon")
def check_campaigns_ending_soon(self):
    try:
        asyncio.run(_check_campaigns_ending_soon())
    except Exception as e:
        logger.error(f"Campaign ending check failed: {e}")
        raise


async def _check_campaigns_ending_soon():
    from affiliate_hub.workers.database import get_worker_db

    async with get_worker_db() as db:
        names = await find_campaigns_ending_soon(db)

    logger.info(f"Campaigns ending soon: {len(names)}")


async def find_campaigns_ending_soon(db: AsyncSession) -> list[str]:
    """Alert on active campaigns whose end date falls inside the warning window."""
    from affiliate_hub.config import settings
    from affiliate_hub.models import Campaign, CampaignStatus, Click, Conversion
    from affiliate_hub.services.notification_service import notify_campaign_ending_soon
    from affiliate_hub.utils.helpers import ensure_utc, round_money, utc_now

    now = utc_now()
    horizon = now + timedelta(days=settings.campaign_ending_soon_days)

    result = await db.execute(
        select(Campaign)
        .where(
            Campaign.status == CampaignStatus.ACTIVE,
            Campaign.end_date.is_not(None),
            Campaign.end_date >= now,
            Campaign.end_date <= horizon,
        )
        .order_by(Campaign.end_date.asc())
    )

    names = []
    for campaign in result.scalars().all():
        end_date = ensure_utc(campaign.end_date)
        started = ensure_utc(campaign.start_date)
        days_remaining = math.ceil((end_date - now).total_seconds() / 86400)

        clicks = conversions = 0
        revenue = None
        # Campaigns are attributed through their partner's traffic
        if campaign.partner_id:
            clicks = await db.scalar(
                select(func.count(Click.id)).where(
                    Click.partner_id == campaign.partner_id,
                    Click.clicked_at >= started,
                )
            )
            conversions, revenue = (
                await db.execute(
                    select(func.count(Conversion.id), func.sum(Conversion.sale_amount)).where(
                        Conversion.partner_id == campaign.partner_id,
                        Conversion.converted_at >= started,
                    )
                )
            ).one()

        notify_campaign_ending_soon(
            campaign_name=campaign.name,
            end_date=end_date.strftime("%B %d, %Y"),
            days_remaining=days_remaining,
            total_clicks=clicks or 0,
            total_conversions=conversions or 0,
            total_revenue=str(round_money(revenue)),
        )
        names.append(campaign.name)

    return names


@celery_app.task(bind=True, name="affiliate.check_milestones")
def check_milestones(self):
    try:
        asyncio.run(_check_milestones())
    except Exception as e:
        logger.error(f"Milestone check failed: {e}")
        raise


async def _check_milestones():
    from affiliate_hub.workers.database import get_worker_db

    async with get_worker_db() as db:
        reached = await find_milestones(db)

    logger.info(f"Milestones reached: {reached}")


async def find_milestones(db: AsyncSession) -> list[tuple[str, int]]:
    """
    Alert when this month's approved revenue or conversion count crossed a
    milestone during the last day.

    Only the highest milestone crossed is reported for each measure.
    """
    from affiliate_hub.config import settings
    from affiliate_hub.models import Conversion, ConversionStatus
    from affiliate_hub.services.notification_service import notify_milestone
    from affiliate_hub.utils.helpers import start_of_month, to_decimal, utc_now

    now = utc_now()
    month_start = start_of_month(now)

    async def totals(before=None):
        query = select(func.count(Conversion.id), func.sum(Conversion.sale_amount)).where(
            Conversion.conversion_status == ConversionStatus.APPROVED,
            Conversion.converted_at >= month_start,
        )
        if before is not None:
            query = query.where(Conversion.converted_at < before)
        count, revenue = (await db.execute(query)).one()
        return count or 0, to_decimal(revenue)

    count, revenue = await totals()
    previous_count, previous_revenue = await totals(before=now - timedelta(days=1))

    reached = []
    for milestone_type, milestones, current, previous in (
        ("revenue", settings.milestone_revenue, revenue, previous_revenue),
        ("conversions", settings.milestone_conversions, count, previous_count),
    ):
        for milestone in sorted(milestones, reverse=True):
            if previous < milestone <= current:
                reached.append((milestone_type, milestone))
                break

    period = month_start.strftime("%B %Y")
    for milestone_type, milestone in reached:
        notify_milestone(milestone_type, milestone, period)

    return reached
