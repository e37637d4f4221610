import json
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select

from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import StateError
from affiliate_hub.models import (
    Conversion,
    ConversionPayoutStatus,
    ConversionStatus,
    PaymentMethod,
    PayoutStatus,
)
from affiliate_hub.services import CommissionService, PaymentService, PayPalClient
from affiliate_hub.utils.helpers import utc_now


@pytest.fixture
def paypal_credentials(monkeypatch):
    monkeypatch.setattr(settings, "paypal_client_id", "client-id")
    monkeypatch.setattr(settings, "paypal_client_secret", "client-secret")


def paypal_transport(payout_response: httpx.Response | None = None, timeout: bool = False):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "paypal-token"})
        if timeout:
            raise httpx.ConnectTimeout("timed out", request=request)
        return payout_response or httpx.Response(
            201, json={"batch_header": {"payout_batch_id": "BATCH-1", "batch_status": "PENDING"}}
        )

    return httpx.MockTransport(handler), requests


async def pending_payout(db, make_partner, make_conversion, **partner_overrides):
    partner = await make_partner(**partner_overrides)
    for commission in ("35.00", "25.00"):
        await make_conversion(partner, status=ConversionStatus.APPROVED, commission=commission)
    payout = await CommissionService(db).create_payout(
        partner.id, utc_now() - timedelta(days=1), utc_now() + timedelta(minutes=5)
    )
    await db.commit()
    return partner, payout


async def payout_conversions(db, payout_id):
    result = await db.execute(select(Conversion).where(Conversion.payout_id == payout_id))
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_manual_methods_wait_for_processing(db, make_partner, make_conversion):
    _, payout = await pending_payout(
        db, make_partner, make_conversion, payment_method=PaymentMethod.BANK_TRANSFER
    )
    service = PaymentService(db)

    result = await service.process_payment(payout.id)

    assert result.success
    assert result.provider == "manual"
    assert result.requires_manual_action
    assert result.payout.status == PayoutStatus.PROCESSING
    assert result.transaction_id is None

    again = await service.process_payment(payout.id)
    assert again.payout.status == PayoutStatus.PROCESSING


@pytest.mark.asyncio
async def test_paypal_payout_completes(
    db, make_partner, make_conversion, paypal_credentials, dispatched
):
    partner, payout = await pending_payout(db, make_partner, make_conversion)
    transport, requests = paypal_transport()

    result = await PaymentService(db, PayPalClient(transport=transport)).process_payment(payout.id)
    await db.commit()

    assert result.success
    assert result.provider == "paypal"
    assert result.transaction_id == "BATCH-1"
    assert result.payout.status == PayoutStatus.COMPLETED
    assert result.payout.transaction_reference == "BATCH-1"
    conversions = await payout_conversions(db, payout.id)
    assert all(c.payout_status == ConversionPayoutStatus.PAID for c in conversions)
    assert dispatched.templates()[-1] == "payout_completed"

    token_request, payout_request = requests
    assert token_request.headers["Authorization"].startswith("Basic ")
    assert payout_request.headers["Authorization"] == "Bearer paypal-token"
    item = json.loads(payout_request.content)["items"][0]
    assert item["receiver"] == partner.contact_email
    assert item["amount"] == {"value": "60.00", "currency": "USD"}
    assert item["sender_item_id"] == payout.id


@pytest.mark.asyncio
async def test_rejected_paypal_payout_fails_and_releases(
    db, make_partner, make_conversion, paypal_credentials
):
    _, payout = await pending_payout(db, make_partner, make_conversion)
    transport, _ = paypal_transport(httpx.Response(422, json={"message": "Insufficient funds"}))

    result = await PaymentService(db, PayPalClient(transport=transport)).process_payment(payout.id)
    await db.commit()

    assert not result.success
    assert result.error == "PayPal payout failed: Insufficient funds"
    assert result.payout.status == PayoutStatus.FAILED
    assert result.payout.error_message == result.error
    assert await payout_conversions(db, payout.id) == []
    assert await CommissionService(db).get_total_pending_commissions() == Decimal("60.00")


@pytest.mark.asyncio
async def test_paypal_timeout_is_a_payment_failure(
    db, make_partner, make_conversion, paypal_credentials
):
    _, payout = await pending_payout(db, make_partner, make_conversion)
    transport, _ = paypal_transport(timeout=True)

    result = await PaymentService(db, PayPalClient(transport=transport)).process_payment(payout.id)

    assert not result.success
    assert result.error == "PayPal request timed out"
    assert result.payout.status == PayoutStatus.FAILED


@pytest.mark.asyncio
async def test_paypal_without_credentials_fails(db, make_partner, make_conversion, monkeypatch):
    monkeypatch.setattr(settings, "paypal_client_id", "")
    _, payout = await pending_payout(db, make_partner, make_conversion)
    transport, requests = paypal_transport()

    result = await PaymentService(db, PayPalClient(transport=transport)).process_payment(payout.id)

    assert result.error == "PayPal credentials not configured"
    assert result.payout.status == PayoutStatus.FAILED
    assert requests == []


@pytest.mark.asyncio
async def test_settled_payouts_cannot_be_processed(
    db, make_partner, make_conversion, paypal_credentials
):
    _, payout = await pending_payout(db, make_partner, make_conversion)
    await CommissionService(db).complete_payout(payout.id, "WIRE-9")
    await db.commit()

    with pytest.raises(StateError, match="completed"):
        await PaymentService(db).process_payment(payout.id)


@pytest.mark.asyncio
async def test_process_payout_endpoint(client, db, make_partner, make_conversion, admin_headers):
    _, payout = await pending_payout(
        db, make_partner, make_conversion, payment_method=PaymentMethod.CHECK
    )

    response = await client.post(
        f"/api/v1/admin/payouts/{payout.id}/process", headers=admin_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["provider"] == "manual"
    assert body["requires_manual_action"] is True
    assert body["payout"]["status"] == "processing"

    missing = await client.post("/api/v1/admin/payouts/missing/process", headers=admin_headers)
    assert missing.status_code == 404
