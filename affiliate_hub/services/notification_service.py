"""
Affiliate notification emails.

Templates are rendered with Jinja2 and delivered through the ZeptoMail API.
Delivery runs inside the ``notifications.send_email`` Celery task; the
``notify_*`` helpers only enqueue that task, so a notification failure never
aborts the business operation that triggered it.
"""

import logging
from pathlib import Path
from typing import Any

import httpx
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import EmailError
from affiliate_hub.utils.email import (
    EmailTemplates,
    format_currency,
    format_date,
    format_datetime,
    get_base_email_context,
    get_email_subject,
)
from affiliate_hub.workers import dispatch

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self.api_url = settings.zeptomail_api_url
        self.api_key = settings.zeptomail_api_key
        self.from_name = settings.email_from_name
        self.from_email = settings.email_from_address
        self.http_client = http_client

        template_dir = Path(__file__).parent.parent / "templates" / "email"
        self.template_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.template_env.filters["format_currency"] = format_currency
        self.template_env.filters["format_date"] = format_date
        self.template_env.filters["format_datetime"] = format_datetime

    def render(self, template_name: str, context: dict[str, Any], is_html: bool = True) -> str:
        """
        Render an email template with the given context.

        Raises:
            EmailError: If template cannot be found or rendered.
        """
        extension = "html" if is_html else "txt"
        full_template_name = f"{template_name}.{extension}"

        try:
            template = self.template_env.get_template(full_template_name)
            return template.render(**context)
        except TemplateNotFound as err:
            logger.error(f"Email template not found: {full_template_name}")
            raise EmailError(f"Email template not found: {full_template_name}") from err
        except Exception as e:
            logger.error(f"Failed to render template {full_template_name}: {e}")
            raise EmailError(f"Failed to render email template: {str(e)}") from e

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        to_name: str | None = None,
    ) -> bool:
        if not self.api_key:
            logger.warning(f"ZeptoMail API key not configured, skipping email to {to_email}")
            return False

        payload: dict[str, Any] = {
            "from": {"address": self.from_email, "name": self.from_name},
            "to": [
                {
                    "email_address": {
                        "address": to_email,
                        "name": to_name or to_email.split("@")[0],
                    }
                }
            ],
            "subject": subject,
            "htmlbody": html_content,
        }
        if text_content:
            payload["textbody"] = text_content

        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "authorization": f"Zoho-enczapikey {self.api_key}",
        }

        try:
            if self.http_client is not None:
                response = await self.http_client.post(self.api_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Request error sending email to {to_email}: {e}")
            raise EmailError(f"Email request failed: {str(e)}") from e

        if response.status_code >= 400:
            logger.error(f"ZeptoMail API error ({response.status_code}) for {to_email}")
            raise EmailError(f"ZeptoMail API error: {response.status_code}")

        logger.info(f"Email sent to {to_email}: {subject}")
        return True

    async def send_template_email(
        self,
        to_email: str,
        template_name: str,
        context: dict[str, Any] | None = None,
        subject: str | None = None,
        name: str | None = None,
    ) -> bool:
        full_context = get_base_email_context(to_email, name)
        if context:
            full_context.update(context)

        if subject is None:
            subject = get_email_subject(template_name, **full_context)

        html_content = self.render(template_name, full_context, is_html=True)
        text_content = self.render(template_name, full_context, is_html=False)

        return await self.send_email(to_email, subject, html_content, text_content, name)


def notify_new_conversion(
    partner_name: str,
    conversion_id: str,
    commission_amount: str,
    sale_amount: str | None = None,
    order_id: str | None = None,
) -> bool:
    return dispatch.enqueue_email(
        to_email=settings.affiliate_admin_email,
        template=EmailTemplates.NEW_CONVERSION,
        context={
            "partner_name": partner_name,
            "conversion_id": conversion_id,
            "commission_amount": commission_amount,
            "sale_amount": sale_amount,
            "order_id": order_id,
        },
    )


def notify_payout_created(
    to_email: str,
    partner_name: str,
    payout_id: str,
    total_commission: str,
    total_conversions: int,
) -> bool:
    return dispatch.enqueue_email(
        to_email=to_email,
        template=EmailTemplates.PAYOUT_CREATED,
        context={
            "partner_name": partner_name,
            "payout_id": payout_id,
            "total_commission": total_commission,
            "total_conversions": total_conversions,
        },
        name=partner_name,
    )


def notify_payout_completed(
    to_email: str,
    partner_name: str,
    payout_id: str,
    total_commission: str,
    transaction_reference: str,
) -> bool:
    return dispatch.enqueue_email(
        to_email=to_email,
        template=EmailTemplates.PAYOUT_COMPLETED,
        context={
            "partner_name": partner_name,
            "payout_id": payout_id,
            "total_commission": total_commission,
            "transaction_reference": transaction_reference,
        },
        name=partner_name,
    )


def notify_fraud_alert(alert_type: str, details: list[str]) -> bool:
    return dispatch.enqueue_email(
        to_email=settings.affiliate_admin_email,
        template=EmailTemplates.FRAUD_ALERT,
        context={"alert_type": alert_type, "details": details},
    )


def notify_link_health(unhealthy: list[dict[str, Any]], total: int) -> bool:
    return dispatch.enqueue_email(
        to_email=settings.affiliate_admin_email,
        template=EmailTemplates.LINK_HEALTH_WARNING,
        context={"unhealthy": unhealthy, "unhealthy_count": len(unhealthy), "total": total},
    )


def notify_campaign_ending_soon(
    campaign_name: str,
    end_date: str,
    days_remaining: int,
    total_clicks: int,
    total_conversions: int,
    total_revenue: str,
) -> bool:
    return dispatch.enqueue_email(
        to_email=settings.affiliate_admin_email,
        template=EmailTemplates.CAMPAIGN_ENDING_SOON,
        context={
            "campaign_name": campaign_name,
            "end_date": end_date,
            "days_remaining": days_remaining,
            "total_clicks": total_clicks,
            "total_conversions": total_conversions,
            "total_revenue": total_revenue,
        },
    )


def notify_milestone(milestone_type: str, milestone_value: int, period: str) -> bool:
    if milestone_type == "revenue":
        label = f"{format_currency(milestone_value)} revenue"
    else:
        label = f"{milestone_value} conversions"
    return dispatch.enqueue_email(
        to_email=settings.affiliate_admin_email,
        template=EmailTemplates.MILESTONE_ACHIEVED,
        context={
            "milestone_type": milestone_type,
            "milestone_value": milestone_value,
            "milestone_label": label,
            "period": period,
        },
    )
