from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from affiliate_hub.core.exceptions import StateError, ValidationError
from affiliate_hub.models import (
    Conversion,
    ConversionPayoutStatus,
    ConversionStatus,
    Payout,
    PayoutStatus,
)
from affiliate_hub.services import CommissionService, PostbackData
from affiliate_hub.utils.helpers import utc_now


def period():
    return utc_now() - timedelta(days=1), utc_now() + timedelta(minutes=5)


@pytest.mark.asyncio
async def test_payout_lifecycle(db, make_partner, dispatched):
    partner = await make_partner()
    service = CommissionService(db)

    conversion_ids = []
    for order_id, amount in (("ORD-300", "300"), ("ORD-400", "400")):
        result = await service.process_postback(
            PostbackData(order_id=order_id, amount=Decimal(amount), partner_id=partner.id)
        )
        assert result.success
        conversion_ids.append(result.conversion_id)

    for conversion_id in conversion_ids:
        await service.approve_conversion(conversion_id)
    assert await service.get_total_pending_commissions(partner.id) == Decimal("70.00")

    payout = await service.create_payout(partner.id, *period())
    await db.commit()

    assert payout.status == PayoutStatus.PENDING
    assert payout.total_conversions == 2
    assert payout.total_commission == Decimal("70.00")
    assert await service.get_total_pending_commissions(partner.id) == Decimal("0.00")

    result = await db.execute(select(Conversion).where(Conversion.payout_id == payout.id))
    conversions = list(result.scalars().all())
    assert {c.id for c in conversions} == set(conversion_ids)
    assert all(c.payout_status == ConversionPayoutStatus.PROCESSING for c in conversions)

    payout = await service.start_payout_processing(payout.id)
    assert payout.status == PayoutStatus.PROCESSING

    payout = await service.complete_payout(payout.id, "PAYPAL-TX-1")
    await db.commit()

    assert payout.status == PayoutStatus.COMPLETED
    assert payout.transaction_reference == "PAYPAL-TX-1"
    assert payout.payout_date is not None
    assert all(c.payout_status == ConversionPayoutStatus.PAID for c in conversions)
    assert dispatched.templates() == [
        "new_conversion",
        "new_conversion",
        "payout_created",
        "payout_completed",
    ]


@pytest.mark.asyncio
async def test_payout_below_threshold_writes_nothing(db, make_partner, make_conversion):
    partner = await make_partner(min_payout_threshold=Decimal("50"))
    conversion = await make_conversion(
        partner, status=ConversionStatus.APPROVED, commission="10.00"
    )
    service = CommissionService(db)

    with pytest.raises(StateError, match="below minimum threshold"):
        await service.create_payout(partner.id, *period())

    await db.refresh(conversion)
    assert conversion.payout_status == ConversionPayoutStatus.UNPAID
    assert conversion.payout_id is None
    assert await db.scalar(select(func.count(Payout.id))) == 0


@pytest.mark.asyncio
async def test_payout_needs_eligible_conversions(db, make_partner, make_conversion):
    partner = await make_partner()
    await make_conversion(partner, commission="100.00")
    await make_conversion(
        partner,
        status=ConversionStatus.APPROVED,
        commission="100.00",
        converted_at=utc_now() - timedelta(days=10),
    )
    service = CommissionService(db)

    with pytest.raises(StateError, match="No conversions to pay out"):
        await service.create_payout(partner.id, *period())


@pytest.mark.asyncio
async def test_payout_rejects_inverted_period(db, make_partner):
    partner = await make_partner()
    start, end = period()

    with pytest.raises(ValidationError):
        await CommissionService(db).create_payout(partner.id, end, start)


@pytest.mark.asyncio
async def test_failed_payout_releases_conversions(db, make_partner, make_conversion):
    partner = await make_partner()
    first = await make_conversion(partner, status=ConversionStatus.APPROVED, commission="30.00")
    second = await make_conversion(partner, status=ConversionStatus.APPROVED, commission="25.00")
    service = CommissionService(db)

    payout = await service.create_payout(partner.id, *period())
    failed = await service.fail_payout(payout.id, "Bank rejected transfer")
    await db.commit()

    assert failed.status == PayoutStatus.FAILED
    assert failed.error_message == "Bank rejected transfer"
    for conversion in (first, second):
        await db.refresh(conversion)
        assert conversion.payout_status == ConversionPayoutStatus.UNPAID
        assert conversion.payout_id is None

    retry = await service.create_payout(partner.id, *period())
    assert retry.id != payout.id
    assert retry.total_commission == Decimal("55.00")


@pytest.mark.asyncio
async def test_completed_payout_is_final(db, make_partner, make_conversion):
    partner = await make_partner()
    await make_conversion(partner, status=ConversionStatus.APPROVED, commission="60.00")
    service = CommissionService(db)

    payout = await service.create_payout(partner.id, *period())
    await service.complete_payout(payout.id, "TX-9")

    with pytest.raises(StateError):
        await service.fail_payout(payout.id, "too late")
    with pytest.raises(StateError):
        await service.complete_payout(payout.id, "TX-10")
    with pytest.raises(StateError):
        await service.start_payout_processing(payout.id)

    paid = await db.scalar(select(Conversion).where(Conversion.payout_id == payout.id))
    with pytest.raises(StateError, match="paid"):
        await service.reverse_conversion(paid.id)


@pytest.mark.asyncio
async def test_payout_email_waits_for_commit(db, make_partner, make_conversion, dispatched):
    partner = await make_partner()
    await make_conversion(partner, status=ConversionStatus.APPROVED, commission="60.00")
    service = CommissionService(db)

    await service.create_payout(partner.id, *period())
    assert dispatched.emails == []
    await db.rollback()

    assert dispatched.emails == []
    assert await db.scalar(select(func.count(Payout.id))) == 0

    await service.create_payout(partner.id, *period())
    await db.commit()
    assert dispatched.templates() == ["payout_created"]
