import json

import httpx
import pytest

from affiliate_hub.core.exceptions import EmailError
from affiliate_hub.services import NotificationService
from affiliate_hub.services.notification_service import notify_new_conversion
from affiliate_hub.utils.email import format_currency, get_email_subject, validate_email_address


def capture_client(status_code: int = 200):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"data": []})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def test_render_text_template():
    service = NotificationService()

    text = service.render(
        "new_conversion",
        {
            "name": "admin",
            "app_name": "Affiliate",
            "partner_name": "Genomics Cloud",
            "conversion_id": "c-1",
            "commission_amount": "25.00",
            "sale_amount": "250.00",
            "order_id": "A-100",
        },
        is_html=False,
    )

    assert "Genomics Cloud" in text
    assert "Order: A-100" in text
    assert "Commission: $25.00" in text


def test_render_html_escapes_context():
    service = NotificationService()

    html = service.render(
        "fraud_alert",
        {"name": "admin", "alert_type": "Spike", "details": ["<script>x</script>"]},
    )

    assert "<script>x</script>" not in html
    assert "&lt;script&gt;" in html


def test_render_alert_templates():
    service = NotificationService()

    ending = service.render(
        "campaign_ending_soon",
        {
            "name": "admin",
            "campaign_name": "Spring Sale",
            "end_date": "March 31, 2026",
            "days_remaining": 1,
            "total_clicks": 40,
            "total_conversions": 3,
            "total_revenue": "450.00",
        },
        is_html=False,
    )
    assert "ends on March 31, 2026 (1 day left)" in ending
    assert "Revenue so far: $450.00" in ending

    milestone = service.render(
        "milestone_achieved",
        {"name": "admin", "milestone_type": "conversions", "milestone_value": 50, "period": "May 2026"},
        is_html=False,
    )
    assert "Milestone reached for May 2026: 50 approved conversions." in milestone


def test_render_unknown_template():
    with pytest.raises(EmailError):
        NotificationService().render("does_not_exist", {})


def test_subjects_and_formatting():
    assert get_email_subject("payout_created", total_commission="$70.00") == (
        "Payout of $70.00 scheduled"
    )
    assert get_email_subject("payout_created") == "Payout of {total_commission} scheduled"
    assert format_currency("1234.5") == "$1,234.50"
    assert format_currency(10, "EUR") == "10.00 EUR"


def test_validate_email_address():
    valid, normalized = validate_email_address("Partner@GenomicsCloud.io")
    assert valid
    assert normalized.endswith("@genomicscloud.io")
    assert not validate_email_address("not-an-email")[0]


@pytest.mark.asyncio
async def test_send_email_without_api_key_is_skipped():
    client, requests = capture_client()
    service = NotificationService(http_client=client)
    service.api_key = ""

    assert await service.send_email("a@example.com", "Hi", "<p>Hi</p>") is False
    assert requests == []
    await client.aclose()


@pytest.mark.asyncio
async def test_send_template_email_posts_to_zeptomail():
    client, requests = capture_client()
    service = NotificationService(http_client=client)
    service.api_key = "test-key"

    sent = await service.send_template_email(
        "partner@example.com",
        "payout_completed",
        {
            "partner_name": "Genomics Cloud",
            "payout_id": "p-1",
            "total_commission": "70.00",
            "transaction_reference": "TX-1",
        },
        name="Genomics Cloud",
    )
    await client.aclose()

    assert sent is True
    assert len(requests) == 1
    request = requests[0]
    assert request.headers["authorization"] == "Zoho-enczapikey test-key"
    payload = json.loads(request.content)
    assert payload["to"][0]["email_address"] == {
        "address": "partner@example.com",
        "name": "Genomics Cloud",
    }
    assert payload["subject"] == "Payout of 70.00 sent"
    assert "TX-1" in payload["textbody"]
    assert payload["htmlbody"]


@pytest.mark.asyncio
async def test_send_email_provider_error():
    client, _ = capture_client(status_code=500)
    service = NotificationService(http_client=client)
    service.api_key = "test-key"

    with pytest.raises(EmailError):
        await service.send_email("a@example.com", "Hi", "<p>Hi</p>")
    await client.aclose()


def test_notify_helpers_enqueue(dispatched):
    assert notify_new_conversion("Genomics Cloud", "c-1", "25.00", order_id="A-1")

    assert dispatched.templates() == ["new_conversion"]
    email = dispatched.emails[0]
    assert email["to"] == "admin@bioinformaticshub.io"
    assert email["context"]["order_id"] == "A-1"
