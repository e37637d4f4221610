"""
Conversion postbacks from partners and affiliate networks.

Networks disagree on field names, so the payload is read leniently: JSON or
form-encoded bodies, with the common aliases for each field. When a partner
has an API key and the request carries ``X-Signature``, the raw body must be
signed with HMAC-SHA256 under that key.
"""

import base64
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse, Response

from affiliate_hub.core.exceptions import AuthenticationError, BadRequestError
from affiliate_hub.core.security import verify_payload_signature
from affiliate_hub.dependencies import DB
from affiliate_hub.models import Partner
from affiliate_hub.schemas.affiliate import PostbackResponse
from affiliate_hub.services import CommissionService, PostbackData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/postback", tags=["Webhooks"])

TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "order_id": ("order_id", "orderId", "transaction_id"),
    "transaction_id": ("transaction_id", "transactionId", "txn_id"),
    "amount": ("amount", "sale_amount", "total"),
    "click_id": ("click_id", "clickId"),
    "sub_id": ("sub_id", "subId", "subid"),
    "session_id": ("session_id", "sessionId"),
    "partner_id": ("partner_id", "partnerId"),
    "product_id": ("product_id", "productId"),
    "currency": ("currency",),
}


def pick(payload: dict[str, Any], field: str) -> str | None:
    for alias in FIELD_ALIASES[field]:
        value = payload.get(alias)
        if value not in (None, ""):
            return str(value)
    return None


def parse_body(body: bytes) -> dict[str, Any]:
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return dict(parse_qsl(text))
    if not isinstance(payload, dict):
        raise BadRequestError("Postback payload must be an object")
    return payload


def build_postback(payload: dict[str, Any], partner_id: str | None = None) -> PostbackData:
    order_id = pick(payload, "order_id")
    if not order_id:
        raise BadRequestError("Order ID required")

    try:
        amount = Decimal(pick(payload, "amount") or "0")
    except InvalidOperation as e:
        raise BadRequestError("Invalid amount") from e
    if not amount.is_finite() or amount <= 0:
        raise BadRequestError("Invalid amount")

    return PostbackData(
        order_id=order_id,
        amount=amount,
        transaction_id=pick(payload, "transaction_id"),
        click_id=pick(payload, "click_id"),
        sub_id=pick(payload, "sub_id"),
        session_id=pick(payload, "session_id"),
        partner_id=partner_id or pick(payload, "partner_id"),
        product_id=pick(payload, "product_id"),
        currency=(pick(payload, "currency") or "USD").upper(),
    )


def _result_response(result) -> JSONResponse:
    body = PostbackResponse(
        success=result.success, conversion_id=result.conversion_id, error=result.error
    )
    return JSONResponse(status_code=200 if result.success else 400, content=body.model_dump())


@router.post("", response_model=PostbackResponse)
async def receive_postback(
    request: Request,
    db: DB,
    x_partner_id: Annotated[str | None, Header()] = None,
    x_signature: Annotated[str | None, Header()] = None,
):
    body = await request.body()
    partner_id = x_partner_id or request.query_params.get("partner_id")
    if not partner_id:
        raise BadRequestError("Partner ID required")

    partner = await db.get(Partner, partner_id)
    if not partner:
        raise AuthenticationError("Invalid partner")

    if partner.api_key and x_signature:
        if not verify_payload_signature(body, x_signature, partner.api_key):
            logger.warning(f"Invalid postback signature from partner {partner.slug}")
            raise AuthenticationError("Invalid signature")

    postback = build_postback(parse_body(body), partner_id=partner.id)

    result = await CommissionService(db).process_postback(postback)
    if result.success:
        await db.commit()
    logger.info(
        f"Postback from {partner.slug} for order {postback.order_id}: "
        f"success={result.success} error={result.error}"
    )
    return _result_response(result)


@router.get("")
async def receive_pixel_postback(request: Request, db: DB):
    postback = build_postback(dict(request.query_params))

    result = await CommissionService(db).process_postback(postback)
    if not result.success:
        return _result_response(result)

    await db.commit()
    return Response(
        content=TRACKING_PIXEL,
        media_type="image/gif",
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )
