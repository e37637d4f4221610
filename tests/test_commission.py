from datetime import timedelta
from decimal import Decimal

import pytest

from affiliate_hub.core.exceptions import DuplicateError, NotFoundError, StateError
from affiliate_hub.models import (
    Campaign,
    CampaignStatus,
    CommissionType,
    ConversionPayoutStatus,
    ConversionStatus,
    ValidationMethod,
)
from affiliate_hub.services import CommissionService, ConversionData, tier_bonus_for
from affiliate_hub.utils.helpers import utc_now


@pytest.mark.parametrize(
    "approved,bonus",
    [(0, "0"), (10, "0"), (11, "2"), (50, "2"), (51, "5"), (100, "5"), (101, "8")],
)
def test_tier_bonus_boundaries(approved, bonus):
    assert tier_bonus_for(approved) == Decimal(bonus)


def test_tier_bonus_custom_table():
    assert tier_bonus_for(3, tiers=[(2, 1.5)]) == Decimal("1.5")
    assert tier_bonus_for(3, tiers=[]) == Decimal("0")


@pytest.mark.asyncio
async def test_percentage_commission_rounds_half_up(db, make_partner):
    partner = await make_partner()

    calc = await CommissionService(db).calculate_commission(partner.id, Decimal("99.999"))

    assert calc.base_rate == Decimal("10")
    assert calc.final_rate == Decimal("10")
    assert calc.commission_amount == Decimal("10.00")


@pytest.mark.asyncio
async def test_fixed_commission_ignores_sale_amount(db, make_partner):
    partner = await make_partner(commission_type=CommissionType.FIXED, commission_rate=Decimal("25"))

    calc = await CommissionService(db).calculate_commission(partner.id, Decimal("5000"))

    assert calc.commission_amount == Decimal("25.00")


@pytest.mark.asyncio
async def test_product_override_replaces_base_rate(db, make_partner, make_product):
    partner = await make_partner()
    premium = await make_product(partner, slug="premium", commission_override=Decimal("15"))
    free = await make_product(partner, slug="free", commission_override=Decimal("0"))
    service = CommissionService(db)

    calc = await service.calculate_commission(partner.id, Decimal("200"), product_id=premium.id)
    assert calc.product_override == Decimal("15")
    assert calc.commission_amount == Decimal("30.00")

    calc = await service.calculate_commission(partner.id, Decimal("200"), product_id=free.id)
    assert calc.final_rate == Decimal("0")
    assert calc.commission_amount == Decimal("0.00")


@pytest.mark.asyncio
async def test_running_campaign_adds_bonus(db, make_partner):
    partner = await make_partner()
    running = Campaign(
        name="Spring",
        partner_id=partner.id,
        start_date=utc_now() - timedelta(days=1),
        end_date=utc_now() + timedelta(days=7),
        status=CampaignStatus.ACTIVE,
        bonus_commission_rate=Decimal("5"),
    )
    ended = Campaign(
        name="Winter",
        partner_id=partner.id,
        start_date=utc_now() - timedelta(days=60),
        end_date=utc_now() - timedelta(days=30),
        status=CampaignStatus.ACTIVE,
        bonus_commission_rate=Decimal("5"),
    )
    open_ended = Campaign(
        name="Always On",
        partner_id=partner.id,
        start_date=utc_now() - timedelta(days=1),
        status=CampaignStatus.ACTIVE,
        bonus_commission_rate=Decimal("5"),
    )
    db.add_all([running, ended, open_ended])
    await db.commit()
    service = CommissionService(db)

    calc = await service.calculate_commission(partner.id, Decimal("100"), campaign_id=running.id)
    assert calc.campaign_bonus == Decimal("5")
    assert calc.commission_amount == Decimal("15.00")

    calc = await service.calculate_commission(partner.id, Decimal("100"), campaign_id=ended.id)
    assert calc.campaign_bonus is None
    assert calc.commission_amount == Decimal("10.00")

    calc = await service.calculate_commission(
        partner.id, Decimal("100"), campaign_id=open_ended.id
    )
    assert calc.campaign_bonus is None


@pytest.mark.asyncio
async def test_tiered_partner_gets_volume_bonus(db, make_partner, make_conversion):
    partner = await make_partner(commission_type=CommissionType.TIERED)
    for _ in range(11):
        await make_conversion(partner, status=ConversionStatus.APPROVED)

    calc = await CommissionService(db).calculate_commission(partner.id, Decimal("100"))

    assert calc.tier_adjustment == Decimal("2")
    assert calc.final_rate == Decimal("12")
    assert calc.commission_amount == Decimal("12.00")


@pytest.mark.asyncio
async def test_calculate_commission_unknown_references(db, make_partner):
    partner = await make_partner()
    service = CommissionService(db)

    with pytest.raises(NotFoundError):
        await service.calculate_commission("missing", Decimal("10"))
    with pytest.raises(NotFoundError):
        await service.calculate_commission(partner.id, Decimal("10"), product_id="missing")
    with pytest.raises(NotFoundError):
        await service.calculate_commission(partner.id, Decimal("10"), campaign_id="missing")


@pytest.mark.asyncio
async def test_record_conversion_links_click(
    db, make_partner, make_link, make_click, dispatched
):
    partner = await make_partner()
    link = await make_link(partner)
    click = await make_click(link)

    conversion = await CommissionService(db).record_conversion(
        ConversionData(
            partner_id=partner.id,
            sale_amount=Decimal("250"),
            click_id=click.id,
            order_id="A-100",
            currency="eur",
        )
    )
    await db.commit()
    await db.refresh(click)

    assert conversion.commission_amount == Decimal("25.00")
    assert conversion.conversion_status == ConversionStatus.PENDING
    assert conversion.payout_status == ConversionPayoutStatus.UNPAID
    assert conversion.validation_method == ValidationMethod.POSTBACK
    assert conversion.currency == "EUR"
    assert click.conversion_id == conversion.id
    assert dispatched.conversion_increments == [link.id]
    assert dispatched.templates() == ["new_conversion"]


@pytest.mark.asyncio
async def test_rolled_back_conversion_dispatches_nothing(
    db, make_partner, make_link, make_click, dispatched
):
    partner = await make_partner()
    click = await make_click(await make_link(partner))

    await CommissionService(db).record_conversion(
        ConversionData(partner_id=partner.id, sale_amount=Decimal("80"), click_id=click.id)
    )
    await db.rollback()

    assert dispatched.conversion_increments == []
    assert dispatched.emails == []


@pytest.mark.asyncio
async def test_record_conversion_rejects_duplicate_order(db, make_partner):
    partner = await make_partner()
    service = CommissionService(db)
    data = ConversionData(partner_id=partner.id, sale_amount=Decimal("10"), order_id="A-1")

    first = await service.record_conversion(data)
    with pytest.raises(DuplicateError) as exc:
        await service.record_conversion(data)

    assert exc.value.existing_id == first.id


@pytest.mark.asyncio
async def test_record_conversion_without_click_is_manual(db, make_partner):
    partner = await make_partner()

    conversion = await CommissionService(db).record_conversion(
        ConversionData(partner_id=partner.id, sale_amount=Decimal("40"))
    )

    assert conversion.validation_method == ValidationMethod.MANUAL
    assert conversion.click_id is None


@pytest.mark.asyncio
async def test_approve_and_reject_only_from_pending(db, make_partner, make_conversion):
    partner = await make_partner()
    first = await make_conversion(partner)
    second = await make_conversion(partner)
    service = CommissionService(db)

    approved = await service.approve_conversion(first.id, notes="looks fine")
    assert approved.conversion_status == ConversionStatus.APPROVED
    assert approved.approved_at is not None
    assert approved.notes == "looks fine"

    rejected = await service.reject_conversion(second.id, notes="refunded")
    assert rejected.conversion_status == ConversionStatus.REJECTED

    with pytest.raises(StateError):
        await service.approve_conversion(second.id)
    with pytest.raises(StateError):
        await service.reject_conversion(first.id)
    with pytest.raises(NotFoundError):
        await service.approve_conversion("missing")


@pytest.mark.asyncio
async def test_bot_click_conversion_needs_force(
    db, make_partner, make_link, make_click, make_conversion
):
    partner = await make_partner()
    click = await make_click(await make_link(partner), is_bot=True)
    conversion = await make_conversion(partner, click=click)
    service = CommissionService(db)

    with pytest.raises(StateError):
        await service.approve_conversion(conversion.id)

    approved = await service.approve_conversion(conversion.id, force=True)
    assert approved.conversion_status == ConversionStatus.APPROVED


@pytest.mark.asyncio
async def test_reverse_rules(db, make_partner, make_conversion):
    partner = await make_partner()
    paid = await make_conversion(
        partner, status=ConversionStatus.APPROVED, payout_status=ConversionPayoutStatus.PAID
    )
    batched = await make_conversion(
        partner, status=ConversionStatus.APPROVED, payout_status=ConversionPayoutStatus.PROCESSING
    )
    approved = await make_conversion(partner, status=ConversionStatus.APPROVED)
    service = CommissionService(db)

    with pytest.raises(StateError, match="paid"):
        await service.reverse_conversion(paid.id)
    with pytest.raises(StateError):
        await service.reverse_conversion(batched.id)

    reversed_conversion = await service.reverse_conversion(approved.id, reason="chargeback")
    assert reversed_conversion.conversion_status == ConversionStatus.REVERSED
    assert reversed_conversion.notes == "chargeback"

    with pytest.raises(StateError):
        await service.reverse_conversion(approved.id)


@pytest.mark.asyncio
async def test_auto_process_follows_fraud_score(
    db, make_partner, make_link, make_click, make_conversion
):
    partner = await make_partner()
    link = await make_link(partner)
    clean = await make_conversion(partner, click=await make_click(link))
    orphan = await make_conversion(partner)
    duplicate = await make_conversion(partner, order_id="SHARED")
    await make_conversion(await make_partner(), order_id="SHARED")
    service = CommissionService(db)

    result = await service.auto_process_conversion(clean.id)
    assert result.action == "approved"
    assert result.conversion.conversion_status == ConversionStatus.APPROVED

    result = await service.auto_process_conversion(orphan.id)
    assert result.action == "review"
    assert result.conversion.conversion_status == ConversionStatus.PENDING

    result = await service.auto_process_conversion(duplicate.id)
    assert result.action == "rejected"
    assert result.conversion.conversion_status == ConversionStatus.REJECTED
    assert "Duplicate order ID detected" in result.conversion.notes

    with pytest.raises(StateError):
        await service.auto_process_conversion(clean.id)


@pytest.mark.asyncio
async def test_pending_listing_and_totals(db, make_partner, make_conversion):
    partner = await make_partner()
    other = await make_partner()
    await make_conversion(partner)
    await make_conversion(other)
    await make_conversion(partner, status=ConversionStatus.APPROVED, commission="12.50")
    await make_conversion(other, status=ConversionStatus.APPROVED, commission="7.25")
    await make_conversion(
        partner,
        status=ConversionStatus.APPROVED,
        commission="99.00",
        payout_status=ConversionPayoutStatus.PAID,
    )
    service = CommissionService(db)

    assert len(await service.get_pending_conversions()) == 2
    assert len(await service.get_pending_conversions(partner_id=partner.id)) == 1
    assert await service.get_total_pending_commissions() == Decimal("19.75")
    assert await service.get_total_pending_commissions(partner.id) == Decimal("12.50")
    assert len(await service.get_unpaid_conversions(partner.id)) == 1
