import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import NotFoundError
from affiliate_hub.models import BlockedIP, Click, Conversion, ConversionStatus
from affiliate_hub.utils.device import anonymize_ip
from affiliate_hub.utils.helpers import ensure_utc, to_decimal, utc_now

logger = logging.getLogger(__name__)

AUTOMATION_SIGNATURES: tuple[str, ...] = (
    "selenium",
    "puppeteer",
    "playwright",
    "phantomjs",
    "headless",
    "python-requests",
    "curl",
    "wget",
    "httpie",
    "postman",
)

MIN_USER_AGENT_LENGTH = 20
MIN_DECIDED_FOR_HISTORY = 10


@dataclass
class ClickFraudCheck:
    is_allowed: bool
    score: int
    reason: str | None = None


@dataclass
class FraudScore:
    score: int
    reasons: list[str] = field(default_factory=list)
    recommendation: str = "allow"


@dataclass
class PartnerReputation:
    score: int
    total_conversions: int
    approved_conversions: int
    rejected_conversions: int
    reversed_conversions: int
    approval_rate: float
    flags: list[str] = field(default_factory=list)


@dataclass
class SuspiciousClick:
    id: str
    link_id: str
    ip_address: str | None
    clicked_at: datetime
    bot_type: str | None
    reason: str


@dataclass
class SuspiciousConversion:
    id: str
    partner_id: str
    order_id: str | None
    sale_amount: Decimal | None
    commission_amount: Decimal
    fraud_score: FraudScore


class FraudService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.max_clicks_per_ip = settings.fraud_max_clicks_per_ip_per_hour
        self.max_clicks_per_session = settings.fraud_max_clicks_per_session_per_hour
        self.max_clicks_per_link = settings.fraud_max_clicks_per_link_per_hour
        self.suspicious_days_gap = settings.fraud_suspicious_conversion_days_gap
        self.high_value_threshold = to_decimal(settings.fraud_high_value_threshold)
        self.max_rejection_rate = settings.fraud_max_rejection_rate
        self.click_block_score = settings.fraud_click_block_score
        self.conversion_block_score = settings.fraud_conversion_block_score
        self.conversion_review_score = settings.fraud_conversion_review_score

    async def _count_clicks_since(self, since: datetime, *conditions) -> int:
        result = await self.db.execute(
            select(func.count(Click.id)).where(Click.clicked_at >= since, *conditions)
        )
        return result.scalar() or 0

    async def check_click_fraud(
        self,
        ip_address: str | None,
        session_id: str,
        link_id: str,
        user_agent: str | None = None,
    ) -> ClickFraudCheck:
        reasons: list[str] = []
        score = 0

        hour_ago = utc_now() - timedelta(hours=1)
        stored_ip = anonymize_ip(ip_address)

        ip_clicks = (
            await self._count_clicks_since(hour_ago, Click.ip_address == stored_ip)
            if stored_ip
            else 0
        )
        session_clicks = await self._count_clicks_since(hour_ago, Click.session_id == session_id)
        link_clicks = await self._count_clicks_since(hour_ago, Click.link_id == link_id)

        if ip_clicks >= self.max_clicks_per_ip:
            reasons.append("IP rate limit exceeded")
            score += 40
        elif ip_clicks >= self.max_clicks_per_ip / 2:
            reasons.append("High click volume from IP")
            score += 20

        if session_clicks >= self.max_clicks_per_session:
            reasons.append("Session rate limit exceeded")
            score += 30

        if link_clicks >= self.max_clicks_per_link:
            reasons.append("Unusual traffic spike on link")
            score += 25

        if user_agent:
            if len(user_agent) < MIN_USER_AGENT_LENGTH:
                reasons.append("Suspicious user agent (too short)")
                score += 15

            ua = user_agent.lower()
            for signature in AUTOMATION_SIGNATURES:
                if signature in ua:
                    reasons.append(f"Automation tool detected: {signature}")
                    score += 50
                    break
        else:
            reasons.append("Missing user agent")
            score += 25

        if score >= self.click_block_score:
            reason = "; ".join(reasons)
            logger.warning(f"Click blocked on link {link_id} (score {score}): {reason}")
            return ClickFraudCheck(is_allowed=False, score=score, reason=reason)

        return ClickFraudCheck(is_allowed=True, score=score)

    async def _decided_counts(self, partner_id: str) -> tuple[int, int]:
        result = await self.db.execute(
            select(Conversion.conversion_status, func.count(Conversion.id))
            .where(
                Conversion.partner_id == partner_id,
                Conversion.conversion_status.in_(
                    [ConversionStatus.APPROVED, ConversionStatus.REJECTED]
                ),
            )
            .group_by(Conversion.conversion_status)
        )
        counts = dict(result.all())
        approved = counts.get(ConversionStatus.APPROVED, 0)
        rejected = counts.get(ConversionStatus.REJECTED, 0)
        return approved, rejected

    def recommend(self, score: int) -> str:
        if score >= self.conversion_block_score:
            return "block"
        if score >= self.conversion_review_score:
            return "review"
        return "allow"

    async def calculate_conversion_fraud_score(self, conversion_id: str) -> FraudScore:
        conversion = await self.db.get(Conversion, conversion_id)
        if not conversion:
            raise NotFoundError("Conversion")

        reasons: list[str] = []
        score = 0

        if not conversion.click_id:
            reasons.append("No associated click")
            score += 30
        else:
            click = await self.db.get(Click, conversion.click_id)
            if click:
                gap = ensure_utc(conversion.converted_at) - ensure_utc(click.clicked_at)
                if gap.days > self.suspicious_days_gap:
                    reasons.append(f"Long delay between click and conversion: {gap.days} days")
                    score += 20

                if click.is_bot:
                    reasons.append("Original click was from a bot")
                    score += 40

        if to_decimal(conversion.commission_amount) > self.high_value_threshold:
            reasons.append("High-value conversion - manual review recommended")
            score += 10

        approved, rejected = await self._decided_counts(conversion.partner_id)
        decided = approved + rejected
        if decided > MIN_DECIDED_FOR_HISTORY:
            rejection_rate = rejected / decided
            if rejection_rate > self.max_rejection_rate:
                reasons.append(f"Partner has high rejection rate: {rejection_rate * 100:.1f}%")
                score += 25

        if conversion.order_id:
            result = await self.db.execute(
                select(func.count(Conversion.id)).where(
                    Conversion.order_id == conversion.order_id,
                    Conversion.id != conversion.id,
                )
            )
            if (result.scalar() or 0) > 0:
                reasons.append("Duplicate order ID detected")
                score += 50

        return FraudScore(score=score, reasons=reasons, recommendation=self.recommend(score))

    async def get_partner_reputation_score(self, partner_id: str) -> PartnerReputation:
        result = await self.db.execute(
            select(Conversion.conversion_status, func.count(Conversion.id))
            .where(Conversion.partner_id == partner_id)
            .group_by(Conversion.conversion_status)
        )
        counts = dict(result.all())
        total = sum(counts.values())
        approved = counts.get(ConversionStatus.APPROVED, 0)
        rejected = counts.get(ConversionStatus.REJECTED, 0)
        reversed_count = counts.get(ConversionStatus.REVERSED, 0)

        decided = approved + rejected
        approval_rate = approved / decided if decided > 0 else 1.0

        score = 100
        flags: list[str] = []
        if total > MIN_DECIDED_FOR_HISTORY:
            if approval_rate < 0.8:
                score -= 30
                flags.append("Low approval rate")
            elif approval_rate < 0.9:
                score -= 15
                flags.append("Below average approval rate")

            if reversed_count / total > 0.1:
                score -= 25
                flags.append("High reversal rate")

        return PartnerReputation(
            score=max(0, score),
            total_conversions=total,
            approved_conversions=approved,
            rejected_conversions=rejected,
            reversed_conversions=reversed_count,
            approval_rate=approval_rate,
            flags=flags,
        )

    async def get_suspicious_clicks(self, limit: int = 50, offset: int = 0) -> list[SuspiciousClick]:
        result = await self.db.execute(
            select(Click)
            .where(Click.is_bot.is_(True))
            .order_by(Click.clicked_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return [
            SuspiciousClick(
                id=click.id,
                link_id=click.link_id,
                ip_address=click.ip_address,
                clicked_at=click.clicked_at,
                bot_type=click.bot_type,
                reason=f"Bot detected: {click.bot_type}" if click.bot_type else "Bot detected",
            )
            for click in result.scalars().all()
        ]

    async def get_suspicious_conversions(
        self, limit: int = 50, offset: int = 0
    ) -> list[SuspiciousConversion]:
        result = await self.db.execute(
            select(Conversion)
            .where(Conversion.conversion_status == ConversionStatus.PENDING)
            .order_by(Conversion.converted_at.desc())
            .offset(offset)
            .limit(limit)
        )

        suspicious = []
        for conversion in result.scalars().all():
            fraud_score = await self.calculate_conversion_fraud_score(conversion.id)
            if fraud_score.score >= self.conversion_review_score:
                suspicious.append(
                    SuspiciousConversion(
                        id=conversion.id,
                        partner_id=conversion.partner_id,
                        order_id=conversion.order_id,
                        sale_amount=conversion.sale_amount,
                        commission_amount=conversion.commission_amount,
                        fraud_score=fraud_score,
                    )
                )
        return suspicious

    async def block_ip(self, ip_address: str, reason: str) -> BlockedIP:
        stored_ip = anonymize_ip(ip_address)
        result = await self.db.execute(select(BlockedIP).where(BlockedIP.ip_address == stored_ip))
        blocked = result.scalar_one_or_none()

        if blocked:
            blocked.reason = reason
            blocked.blocked_at = utc_now()
        else:
            blocked = BlockedIP(ip_address=stored_ip, reason=reason, blocked_at=utc_now())
            self.db.add(blocked)

        await self.db.flush()
        logger.warning(f"Blocked IP {stored_ip}: {reason}")
        return blocked

    async def is_ip_blocked(self, ip_address: str | None) -> bool:
        if not ip_address:
            return False
        result = await self.db.execute(
            select(BlockedIP.id).where(BlockedIP.ip_address == anonymize_ip(ip_address))
        )
        return result.scalar_one_or_none() is not None
