"""
Celery tasks for sending notifications.

All email sending is done asynchronously through Celery so that API
endpoints remain responsive and email failures don't affect affiliate
operations.
"""

import asyncio
import logging
from typing import Any

from affiliate_hub.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    bind=True,
    name="notifications.send_email",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": 3},
)
def send_email_task(
    self,
    to_email: str,
    template: str,
    context: dict[str, Any] | None = None,
    name: str | None = None,
) -> bool:
    """
    Send an email using a template.

    Args:
        to_email: Recipient email address.
        template: Template name (e.g., 'new_conversion', 'payout_created').
        context: Template context variables.
        name: Recipient name (optional).

    Returns:
        True if email was sent successfully.
    """
    try:
        return run_async(_send_template_email(to_email, template, context or {}, name))
    except Exception as e:
        logger.error(f"Email task failed for {to_email} ({template}): {e}")
        raise


async def _send_template_email(
    to_email: str,
    template: str,
    context: dict[str, Any],
    name: str | None = None,
) -> bool:
    from affiliate_hub.services.notification_service import NotificationService

    service = NotificationService()
    sent = await service.send_template_email(
        to_email=to_email,
        template_name=template,
        context=context,
        name=name,
    )
    if sent:
        logger.info(f"Email sent: {template} to {to_email}")
    return sent
