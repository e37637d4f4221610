"""
Email utilities for affiliate notifications.

Template names, subject lines, base template context and the formatting
filters registered on the Jinja2 environment.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from email_validator import EmailNotValidError, validate_email

from affiliate_hub.config import settings


def validate_email_address(email: str) -> tuple[bool, str | None]:
    """
    Validate an email address.

    Args:
        email: Email address to validate.

    Returns:
        Tuple of (is_valid, normalized_email or error_message).
    """
    try:
        validation = validate_email(email, check_deliverability=False)
        return True, validation.normalized
    except EmailNotValidError as e:
        return False, str(e)


def get_base_email_context(email: str, name: str | None = None) -> dict[str, Any]:
    return {
        "email": email,
        "name": name or email.split("@")[0],
        "current_year": datetime.now(UTC).year,
        "app_name": settings.app_name,
        "support_email": settings.email_from_address,
        "base_url": settings.public_base_url,
    }


def format_currency(amount: float | Decimal | None, currency: str = "USD") -> str:
    if amount is None:
        amount = 0
    if currency == "USD":
        return f"${float(amount):,.2f}"
    return f"{float(amount):,.2f} {currency}"


def format_date(dt: datetime | None, fmt: str = "%B %d, %Y") -> str:
    if dt is None:
        return ""
    return dt.strftime(fmt)


def format_datetime(dt: datetime | None, fmt: str = "%B %d, %Y at %H:%M UTC") -> str:
    if dt is None:
        return ""
    return dt.strftime(fmt)


class EmailTemplates:
    NEW_CONVERSION = "new_conversion"
    PAYOUT_CREATED = "payout_created"
    PAYOUT_COMPLETED = "payout_completed"
    FRAUD_ALERT = "fraud_alert"
    LINK_HEALTH_WARNING = "link_health_warning"
    CAMPAIGN_ENDING_SOON = "campaign_ending_soon"
    MILESTONE_ACHIEVED = "milestone_achieved"


EMAIL_SUBJECTS: dict[str, str] = {
    EmailTemplates.NEW_CONVERSION: "New conversion from {partner_name}",
    EmailTemplates.PAYOUT_CREATED: "Payout of {total_commission} scheduled",
    EmailTemplates.PAYOUT_COMPLETED: "Payout of {total_commission} sent",
    EmailTemplates.FRAUD_ALERT: "Fraud alert: {alert_type}",
    EmailTemplates.LINK_HEALTH_WARNING: "{unhealthy_count} affiliate links need attention",
    EmailTemplates.CAMPAIGN_ENDING_SOON: "Campaign {campaign_name} ends in {days_remaining} day(s)",
    EmailTemplates.MILESTONE_ACHIEVED: "Affiliate milestone reached: {milestone_label}",
}


def get_email_subject(template_name: str, **kwargs: Any) -> str:
    subject = EMAIL_SUBJECTS.get(template_name, settings.app_name)
    try:
        return subject.format(**kwargs)
    except KeyError:
        return subject
