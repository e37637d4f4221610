"""
Short-link redirect: ``/go/{short_code}``.

Every visit re-checks the link, records the click when the fraud check lets
it through (bot clicks are recorded too, flagged), and answers with a 302 to
the tracking URL. A visitor is never stranded on an error page; failures
send them to the home page.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from affiliate_hub.config import settings
from affiliate_hub.core.middleware import get_client_ip
from affiliate_hub.dependencies import DB
from affiliate_hub.models import Link, LinkStatus, PartnerStatus
from affiliate_hub.services import ClickData, ClickTracker, FraudService, LinkService
from affiliate_hub.utils.crypto import generate_session_id
from affiliate_hub.utils.device import detect_bot

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Redirect"])

DAY_SECONDS = 24 * 60 * 60


def invalid_link_reason(link: Link | None) -> str | None:
    if link is None:
        return "invalid_link"
    if link.status != LinkStatus.ACTIVE or link.is_expired():
        return "expired_link"
    if link.partner is None or link.partner.status != PartnerStatus.ACTIVE:
        return "partner_inactive"
    return None


def partner_cookie_name(partner_id: str) -> str:
    return f"{settings.affiliate_short_code_prefix}_partner_{partner_id}"


def _set_tracking_cookies(response: RedirectResponse, link: Link, session_id: str) -> None:
    secure = settings.is_production
    response.set_cookie(
        settings.affiliate_session_cookie,
        session_id,
        max_age=settings.affiliate_session_cookie_days * DAY_SECONDS,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )
    response.set_cookie(
        partner_cookie_name(link.partner_id),
        session_id,
        max_age=(link.partner.cookie_duration_days or 30) * DAY_SECONDS,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )


@router.get("/go/{short_code}", include_in_schema=False)
async def follow_link(short_code: str, request: Request, db: DB):
    try:
        link = await LinkService(db).resolve_short_code(short_code)

        reason = invalid_link_reason(link)
        if reason:
            logger.info(f"Rejected redirect for {short_code}: {reason}")
            return RedirectResponse(f"/?error={reason}", status_code=302)

        destination = link.tracking_url or link.original_url
        ip_address = get_client_ip(request)
        user_agent = request.headers.get("user-agent") or ""
        referrer = request.headers.get("referer")

        fraud_service = FraudService(db)
        if await fraud_service.is_ip_blocked(ip_address):
            return RedirectResponse(destination, status_code=302)

        session_id = request.cookies.get(settings.affiliate_session_cookie) or generate_session_id()

        bot = detect_bot(user_agent)
        fraud_check = await fraud_service.check_click_fraud(
            ip_address, session_id, link.id, user_agent
        )

        if bot.is_bot or fraud_check.is_allowed:
            try:
                await ClickTracker(db).track_click(
                    ClickData(
                        link_id=link.id,
                        session_id=session_id,
                        ip_address=ip_address,
                        user_agent=user_agent,
                        referrer=referrer,
                    )
                )
                await db.commit()
            except Exception as e:
                logger.error(f"Failed to track click on {short_code}: {e}")
                await db.rollback()

        response = RedirectResponse(destination, status_code=302)
        _set_tracking_cookies(response, link, session_id)
        return response

    except Exception as e:
        logger.exception(f"Redirect failed for {short_code}: {e}")
        return RedirectResponse("/", status_code=302)
