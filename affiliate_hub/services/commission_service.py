import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import (
    AffiliateHubException,
    DuplicateError,
    NotFoundError,
    StateError,
    ValidationError,
)
from affiliate_hub.models import (
    Campaign,
    Click,
    CommissionType,
    Conversion,
    ConversionPayoutStatus,
    ConversionStatus,
    ConversionType,
    Link,
    Partner,
    Payout,
    PayoutStatus,
    Product,
    ValidationMethod,
)
from affiliate_hub.services.fraud_service import FraudScore, FraudService
from affiliate_hub.services.notification_service import (
    notify_new_conversion,
    notify_payout_completed,
    notify_payout_created,
)
from affiliate_hub.services.tracking_service import ClickTracker
from affiliate_hub.utils.helpers import round_money, start_of_month, to_decimal, utc_now
from affiliate_hub.workers import dispatch

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def tier_bonus_for(
    monthly_approved: int,
    tiers: list[tuple[int, float]] | None = None,
) -> Decimal:
    """Bonus points for the highest tier whose exclusive lower bound is exceeded."""
    tiers = tiers if tiers is not None else settings.commission_tiers
    for threshold, bonus in sorted(tiers, key=lambda tier: tier[0], reverse=True):
        if monthly_approved > threshold:
            return to_decimal(bonus)
    return ZERO


@dataclass
class CommissionCalculation:
    base_rate: Decimal
    final_rate: Decimal
    commission_amount: Decimal
    product_override: Decimal | None = None
    campaign_bonus: Decimal | None = None
    tier_adjustment: Decimal | None = None


@dataclass
class ConversionData:
    partner_id: str
    sale_amount: Decimal | float | None = None
    click_id: str | None = None
    product_id: str | None = None
    campaign_id: str | None = None
    order_id: str | None = None
    transaction_id: str | None = None
    conversion_type: ConversionType = ConversionType.SALE
    currency: str = "USD"
    notes: str | None = None


@dataclass
class PostbackData:
    order_id: str
    amount: Decimal | float
    transaction_id: str | None = None
    click_id: str | None = None
    sub_id: str | None = None
    session_id: str | None = None
    partner_id: str | None = None
    product_id: str | None = None
    currency: str | None = None


@dataclass
class PostbackResult:
    success: bool
    conversion_id: str | None = None
    error: str | None = None


@dataclass
class AutoProcessResult:
    conversion: Conversion
    action: str
    fraud_score: FraudScore


class CommissionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_partner(self, partner_id: str) -> Partner:
        partner = await self.db.get(Partner, partner_id)
        if not partner:
            raise NotFoundError("Partner")
        return partner

    async def _get_conversion(self, conversion_id: str) -> Conversion:
        conversion = await self.db.get(Conversion, conversion_id)
        if not conversion:
            raise NotFoundError("Conversion")
        return conversion

    async def _get_payout(self, payout_id: str) -> Payout:
        payout = await self.db.get(Payout, payout_id)
        if not payout:
            raise NotFoundError("Payout")
        return payout

    async def find_conversion_id(
        self, order_id: str, partner_id: str | None = None
    ) -> str | None:
        query = select(Conversion.id).where(Conversion.order_id == order_id)
        if partner_id:
            query = query.where(Conversion.partner_id == partner_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def calculate_tier_bonus(self, partner_id: str) -> Decimal:
        result = await self.db.execute(
            select(func.count(Conversion.id)).where(
                Conversion.partner_id == partner_id,
                Conversion.conversion_status == ConversionStatus.APPROVED,
                Conversion.converted_at >= start_of_month(),
            )
        )
        return tier_bonus_for(result.scalar() or 0)

    async def calculate_commission(
        self,
        partner_id: str,
        sale_amount: Decimal | float | None,
        product_id: str | None = None,
        campaign_id: str | None = None,
    ) -> CommissionCalculation:
        partner = await self._get_partner(partner_id)
        base_rate = to_decimal(partner.commission_rate)

        product_override = None
        if product_id:
            product = await self.db.get(Product, product_id)
            if not product:
                raise NotFoundError("Product")
            if product.commission_override is not None:
                product_override = to_decimal(product.commission_override)

        campaign_bonus = None
        if campaign_id:
            campaign = await self.db.get(Campaign, campaign_id)
            if not campaign:
                raise NotFoundError("Campaign")
            if campaign.bonus_commission_rate and campaign.is_running():
                campaign_bonus = to_decimal(campaign.bonus_commission_rate)

        tier_adjustment = None
        if partner.commission_type == CommissionType.TIERED:
            tier_adjustment = await self.calculate_tier_bonus(partner.id)

        # An override replaces the base rate; bonuses stack on top
        final_rate = product_override if product_override is not None else base_rate
        final_rate += campaign_bonus or ZERO
        final_rate += tier_adjustment or ZERO

        if partner.commission_type == CommissionType.FIXED:
            amount = base_rate
        else:
            amount = to_decimal(sale_amount) * final_rate / 100

        return CommissionCalculation(
            base_rate=base_rate,
            product_override=product_override,
            campaign_bonus=campaign_bonus,
            tier_adjustment=tier_adjustment,
            final_rate=final_rate,
            commission_amount=max(round_money(amount), round_money(ZERO)),
        )

    async def record_conversion(self, data: ConversionData) -> Conversion:
        partner = await self._get_partner(data.partner_id)

        if data.order_id:
            existing_id = await self.find_conversion_id(data.order_id, partner_id=partner.id)
            if existing_id:
                raise DuplicateError("Duplicate conversion", existing_id=existing_id)

        click = None
        if data.click_id:
            click = await self.db.get(Click, data.click_id)
            if not click:
                raise NotFoundError("Click")

        commission = await self.calculate_commission(
            partner.id, data.sale_amount, data.product_id, data.campaign_id
        )

        conversion = Conversion(
            click_id=click.id if click else None,
            partner_id=partner.id,
            product_id=data.product_id,
            order_id=data.order_id,
            transaction_id=data.transaction_id,
            conversion_type=data.conversion_type,
            sale_amount=round_money(data.sale_amount) if data.sale_amount is not None else None,
            currency=(data.currency or "USD").upper(),
            commission_amount=commission.commission_amount,
            commission_rate=commission.final_rate,
            conversion_status=ConversionStatus.PENDING,
            payout_status=ConversionPayoutStatus.UNPAID,
            validation_method=ValidationMethod.POSTBACK if click else ValidationMethod.MANUAL,
            converted_at=utc_now(),
            notes=data.notes,
        )

        self.db.add(conversion)
        await self.db.flush()
        await self.db.refresh(conversion)

        if click:
            await ClickTracker(self.db).link_click_to_conversion(click.id, conversion.id)
            dispatch.on_commit(self.db, dispatch.schedule_conversion_increment, click.link_id)

        logger.info(
            f"Recorded conversion {conversion.id} for partner {partner.slug}: "
            f"commission {conversion.commission_amount}"
        )

        dispatch.on_commit(
            self.db,
            notify_new_conversion,
            partner_name=partner.company_name,
            conversion_id=conversion.id,
            commission_amount=str(conversion.commission_amount),
            sale_amount=str(conversion.sale_amount) if conversion.sale_amount is not None else None,
            order_id=conversion.order_id,
        )

        return conversion

    async def _resolve_postback_click(self, payload: PostbackData) -> tuple[Click | None, Link | None]:
        if payload.click_id:
            return await self.db.get(Click, payload.click_id), None

        if not payload.sub_id:
            return None, None

        # sub_id carries the short code of the link the visitor came through
        result = await self.db.execute(select(Link).where(Link.short_code == payload.sub_id))
        link = result.scalar_one_or_none()
        if link is None or not payload.session_id:
            return None, link

        click = await ClickTracker(self.db).get_last_click(
            payload.session_id, partner_id=link.partner_id
        )
        return click, link

    async def process_postback(self, payload: PostbackData) -> PostbackResult:
        """
        Record a conversion reported by a partner or network.

        Idempotent on ``order_id``: a repeated postback returns the id of the
        conversion already stored for that order instead of creating another.
        """
        try:
            click, link = await self._resolve_postback_click(payload)

            partner_id = payload.partner_id
            if not partner_id and click:
                partner_id = click.partner_id
            if not partner_id and link:
                partner_id = link.partner_id

            if not partner_id:
                return PostbackResult(success=False, error="Unable to determine partner")

            existing_id = await self.find_conversion_id(payload.order_id)
            if existing_id:
                logger.info(f"Duplicate postback for order {payload.order_id}")
                return PostbackResult(
                    success=False, conversion_id=existing_id, error="Duplicate conversion"
                )

            conversion = await self.record_conversion(
                ConversionData(
                    partner_id=partner_id,
                    sale_amount=payload.amount,
                    click_id=click.id if click else None,
                    product_id=payload.product_id or (click.product_id if click else None),
                    order_id=payload.order_id,
                    transaction_id=payload.transaction_id,
                    conversion_type=ConversionType.SALE,
                    currency=payload.currency or "USD",
                )
            )
            return PostbackResult(success=True, conversion_id=conversion.id)

        except DuplicateError as e:
            return PostbackResult(success=False, conversion_id=e.existing_id, error=e.detail)
        except AffiliateHubException as e:
            return PostbackResult(success=False, error=e.detail)
        except IntegrityError:
            # Another request stored the same order between the lookup and the insert
            await self.db.rollback()
            existing_id = await self.find_conversion_id(payload.order_id)
            if existing_id:
                logger.info(f"Concurrent duplicate postback for order {payload.order_id}")
                return PostbackResult(
                    success=False, conversion_id=existing_id, error="Duplicate conversion"
                )
            logger.exception(f"Postback insert failed for order {payload.order_id}")
            return PostbackResult(success=False, error="Failed to record conversion")
        except Exception as e:
            logger.exception(f"Postback processing failed for order {payload.order_id}: {e}")
            await self.db.rollback()
            return PostbackResult(success=False, error="Failed to record conversion")

    async def approve_conversion(
        self,
        conversion_id: str,
        notes: str | None = None,
        force: bool = False,
    ) -> Conversion:
        conversion = await self._get_conversion(conversion_id)

        if conversion.conversion_status != ConversionStatus.PENDING:
            raise StateError(
                f"Cannot approve a conversion in status {conversion.conversion_status.value}"
            )

        if conversion.click_id and not force:
            click = await self.db.get(Click, conversion.click_id)
            if click and click.is_bot:
                raise StateError("Conversion originates from a bot click and needs manual review")

        conversion.conversion_status = ConversionStatus.APPROVED
        conversion.approved_at = utc_now()
        if notes:
            conversion.notes = notes

        await self.db.flush()
        logger.info(f"Approved conversion {conversion.id}")
        return conversion

    async def reject_conversion(self, conversion_id: str, notes: str | None = None) -> Conversion:
        conversion = await self._get_conversion(conversion_id)

        if conversion.conversion_status != ConversionStatus.PENDING:
            raise StateError(
                f"Cannot reject a conversion in status {conversion.conversion_status.value}"
            )

        conversion.conversion_status = ConversionStatus.REJECTED
        if notes:
            conversion.notes = notes

        await self.db.flush()
        logger.info(f"Rejected conversion {conversion.id}")
        return conversion

    async def reverse_conversion(self, conversion_id: str, reason: str | None = None) -> Conversion:
        conversion = await self._get_conversion(conversion_id)

        if conversion.payout_status == ConversionPayoutStatus.PAID:
            raise StateError("Cannot reverse a paid conversion")
        if conversion.payout_status in (
            ConversionPayoutStatus.PENDING,
            ConversionPayoutStatus.PROCESSING,
        ):
            raise StateError("Cannot reverse a conversion included in an open payout")
        if conversion.conversion_status == ConversionStatus.REVERSED:
            raise StateError("Conversion is already reversed")

        conversion.conversion_status = ConversionStatus.REVERSED
        conversion.notes = reason or "Reversed"

        await self.db.flush()
        logger.info(f"Reversed conversion {conversion.id}")
        return conversion

    async def auto_process_conversion(self, conversion_id: str) -> AutoProcessResult:
        """Approve, reject or hold a pending conversion according to its fraud score."""
        conversion = await self._get_conversion(conversion_id)
        if conversion.conversion_status != ConversionStatus.PENDING:
            raise StateError(
                f"Cannot process a conversion in status {conversion.conversion_status.value}"
            )

        fraud_score = await FraudService(self.db).calculate_conversion_fraud_score(conversion.id)

        if fraud_score.recommendation == "block":
            await self.reject_conversion(conversion.id, notes="; ".join(fraud_score.reasons))
            return AutoProcessResult(conversion, "rejected", fraud_score)

        if fraud_score.recommendation == "allow":
            try:
                await self.approve_conversion(conversion.id, notes="Auto-approved")
            except StateError as e:
                logger.info(f"Conversion {conversion.id} held for review: {e.detail}")
                return AutoProcessResult(conversion, "review", fraud_score)
            return AutoProcessResult(conversion, "approved", fraud_score)

        return AutoProcessResult(conversion, "review", fraud_score)

    async def get_pending_conversions(
        self,
        partner_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Conversion]:
        query = (
            select(Conversion)
            .options(selectinload(Conversion.partner), selectinload(Conversion.product))
            .where(Conversion.conversion_status == ConversionStatus.PENDING)
        )
        if partner_id:
            query = query.where(Conversion.partner_id == partner_id)

        result = await self.db.execute(
            query.order_by(Conversion.converted_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    async def get_total_pending_commissions(self, partner_id: str | None = None) -> Decimal:
        """Approved commission not yet included in any payout."""
        query = select(func.sum(Conversion.commission_amount)).where(
            Conversion.conversion_status == ConversionStatus.APPROVED,
            Conversion.payout_status == ConversionPayoutStatus.UNPAID,
        )
        if partner_id:
            query = query.where(Conversion.partner_id == partner_id)

        result = await self.db.execute(query)
        return round_money(result.scalar())

    async def get_unpaid_conversions(self, partner_id: str) -> list[Conversion]:
        result = await self.db.execute(
            select(Conversion)
            .where(
                Conversion.partner_id == partner_id,
                Conversion.conversion_status == ConversionStatus.APPROVED,
                Conversion.payout_status == ConversionPayoutStatus.UNPAID,
            )
            .order_by(Conversion.converted_at.asc())
        )
        return list(result.scalars().all())

    async def create_payout(
        self,
        partner_id: str,
        period_start: datetime,
        period_end: datetime,
    ) -> Payout:
        """
        Batch a partner's approved, unpaid conversions into a pending payout.

        Validation happens before any write, and the payout row and the
        conversion re-links are flushed in the caller's transaction, so a
        failure leaves neither behind.

        Raises:
            NotFoundError: If the partner does not exist.
            ValidationError: If the period is inverted.
            StateError: If nothing is eligible or the total is below the
                partner's minimum payout threshold.
        """
        partner = await self._get_partner(partner_id)

        if period_end < period_start:
            raise ValidationError("Payout period end must not precede its start")

        result = await self.db.execute(
            select(Conversion).where(
                Conversion.partner_id == partner.id,
                Conversion.conversion_status == ConversionStatus.APPROVED,
                Conversion.payout_status == ConversionPayoutStatus.UNPAID,
                Conversion.converted_at >= period_start,
                Conversion.converted_at <= period_end,
            )
        )
        conversions = list(result.scalars().all())

        if not conversions:
            raise StateError("No conversions to pay out")

        total_commission = round_money(sum(to_decimal(c.commission_amount) for c in conversions))
        minimum = round_money(partner.min_payout_threshold)
        if total_commission < minimum:
            raise StateError(
                f"Total commission ({total_commission}) below minimum threshold ({minimum})"
            )

        payout = Payout(
            partner_id=partner.id,
            period_start=period_start,
            period_end=period_end,
            total_conversions=len(conversions),
            total_commission=total_commission,
            payout_method=partner.payment_method,
            status=PayoutStatus.PENDING,
        )
        self.db.add(payout)
        await self.db.flush()

        for conversion in conversions:
            conversion.payout_id = payout.id
            conversion.payout_status = ConversionPayoutStatus.PROCESSING

        await self.db.flush()
        await self.db.refresh(payout)

        logger.info(
            f"Created payout {payout.id} for partner {partner.slug}: "
            f"{payout.total_conversions} conversions, {payout.total_commission}"
        )

        if partner.contact_email:
            dispatch.on_commit(
                self.db,
                notify_payout_created,
                to_email=partner.contact_email,
                partner_name=partner.company_name,
                payout_id=payout.id,
                total_commission=str(payout.total_commission),
                total_conversions=payout.total_conversions,
            )

        return payout

    async def _payout_conversions(self, payout_id: str) -> list[Conversion]:
        result = await self.db.execute(select(Conversion).where(Conversion.payout_id == payout_id))
        return list(result.scalars().all())

    async def start_payout_processing(self, payout_id: str) -> Payout:
        payout = await self._get_payout(payout_id)
        if payout.status != PayoutStatus.PENDING:
            raise StateError(f"Cannot start processing a payout in status {payout.status.value}")

        payout.status = PayoutStatus.PROCESSING
        await self.db.flush()
        return payout

    async def complete_payout(self, payout_id: str, transaction_reference: str) -> Payout:
        payout = await self._get_payout(payout_id)

        if payout.status not in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
            raise StateError(f"Cannot complete a payout in status {payout.status.value}")

        payout.status = PayoutStatus.COMPLETED
        payout.payout_date = utc_now()
        payout.transaction_reference = transaction_reference

        for conversion in await self._payout_conversions(payout.id):
            conversion.payout_status = ConversionPayoutStatus.PAID

        await self.db.flush()
        logger.info(f"Completed payout {payout.id} ({transaction_reference})")

        partner = await self.db.get(Partner, payout.partner_id)
        if partner and partner.contact_email:
            dispatch.on_commit(
                self.db,
                notify_payout_completed,
                to_email=partner.contact_email,
                partner_name=partner.company_name,
                payout_id=payout.id,
                total_commission=str(payout.total_commission),
                transaction_reference=transaction_reference,
            )

        return payout

    async def fail_payout(self, payout_id: str, error_message: str) -> Payout:
        """Mark a payout failed and release its conversions for the next batch."""
        payout = await self._get_payout(payout_id)

        if payout.status not in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
            raise StateError(f"Cannot fail a payout in status {payout.status.value}")

        payout.status = PayoutStatus.FAILED
        payout.error_message = error_message

        for conversion in await self._payout_conversions(payout.id):
            conversion.payout_id = None
            conversion.payout_status = ConversionPayoutStatus.UNPAID

        await self.db.flush()
        logger.warning(f"Payout {payout.id} failed: {error_message}")
        return payout
