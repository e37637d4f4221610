import logging

from fastapi import APIRouter, Request

from affiliate_hub.core.exceptions import NotFoundError
from affiliate_hub.core.middleware import get_client_ip
from affiliate_hub.dependencies import DB
from affiliate_hub.schemas.affiliate import ClickRequest, ClickResponse
from affiliate_hub.services import ClickData, ClickTracker, FraudService, LinkService
from affiliate_hub.utils.device import detect_bot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clicks", tags=["Tracking"])

BLOCKED_IP_SCORE = 100


@router.post("", response_model=ClickResponse)
async def ingest_click(data: ClickRequest, request: Request, db: DB):
    link_service = LinkService(db)
    if data.link_id:
        link = await link_service.get_link(data.link_id)
    else:
        link = await link_service.resolve_short_code(data.short_code)
        if link is None:
            raise NotFoundError("Link")

    ip_address = data.ip_address or get_client_ip(request)

    fraud_service = FraudService(db)
    if await fraud_service.is_ip_blocked(ip_address):
        return ClickResponse(allowed=False, score=BLOCKED_IP_SCORE, reason="IP address is blocked")

    tracker = ClickTracker(db)
    if await tracker.has_recent_click(data.session_id, link.id):
        return ClickResponse(allowed=True, score=0, reason="Duplicate click within window")

    fraud_check = await fraud_service.check_click_fraud(
        ip_address, data.session_id, link.id, data.user_agent
    )
    bot = detect_bot(data.user_agent)

    click_id = None
    if fraud_check.is_allowed or bot.is_bot:
        click = await tracker.track_click(
            ClickData(
                link_id=link.id,
                session_id=data.session_id,
                ip_address=ip_address,
                user_agent=data.user_agent,
                referrer=data.referrer,
                country_code=data.country_code,
            )
        )
        await db.commit()
        click_id = click.id

    return ClickResponse(
        allowed=fraud_check.is_allowed,
        click_id=click_id,
        score=fraud_check.score,
        reason=fraud_check.reason,
    )
