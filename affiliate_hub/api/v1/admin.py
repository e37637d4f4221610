from datetime import datetime

from fastapi import APIRouter, Query, status

from affiliate_hub.core.exceptions import NotFoundError
from affiliate_hub.dependencies import DB, AdminUser, Pagination
from affiliate_hub.models import Partner
from affiliate_hub.schemas.affiliate import (
    AutoProcessResponse,
    BlockedIPResponse,
    BlockIPRequest,
    ClickStatsResponse,
    CompletePayoutRequest,
    ConversionActionRequest,
    ConversionResponse,
    CreateLinkRequest,
    CreatePayoutRequest,
    FailPayoutRequest,
    FraudScoreResponse,
    LinkHealthReportResponse,
    LinkResponse,
    PartnerReputationResponse,
    PaymentResultResponse,
    PayoutResponse,
    PendingCommissionsResponse,
    ReverseConversionRequest,
    SuspiciousClickResponse,
    SuspiciousConversionResponse,
)
from affiliate_hub.schemas.common import ErrorResponse, PaginatedResponse
from affiliate_hub.services import (
    ClickTracker,
    CommissionService,
    FraudService,
    LinkService,
    PaymentService,
)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


# Links
@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(data: CreateLinkRequest, current_admin: AdminUser, db: DB):
    link = await LinkService(db).create_link(
        partner_id=data.partner_id,
        original_url=data.original_url,
        placement_type=data.placement_type,
        product_id=data.product_id,
        utm_source=data.utm_source,
        utm_medium=data.utm_medium,
        utm_campaign=data.utm_campaign,
        custom_params=data.custom_params,
        expires_at=data.expires_at,
    )
    await db.commit()
    return LinkResponse.model_validate(link)


@router.get("/links/health", response_model=LinkHealthReportResponse)
async def get_link_health(current_admin: AdminUser, db: DB):
    report = await LinkService(db).check_all_links_health()
    return LinkHealthReportResponse.model_validate(report)


@router.get("/clicks/stats", response_model=ClickStatsResponse)
async def get_click_stats(
    current_admin: AdminUser,
    db: DB,
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    partner_id: str | None = None,
    product_id: str | None = None,
):
    stats = await ClickTracker(db).get_click_stats(start_date, end_date, partner_id, product_id)
    return ClickStatsResponse.model_validate(stats)


# Conversions
@router.get("/conversions/pending", response_model=PaginatedResponse[ConversionResponse])
async def list_pending_conversions(
    current_admin: AdminUser,
    db: DB,
    pagination: Pagination,
    partner_id: str | None = None,
):
    conversions = await CommissionService(db).get_pending_conversions(
        partner_id=partner_id, limit=pagination.limit, offset=pagination.offset
    )
    return PaginatedResponse.create(
        items=[ConversionResponse.model_validate(c) for c in conversions],
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.get("/conversions/pending-total", response_model=PendingCommissionsResponse)
async def get_pending_commission_total(
    current_admin: AdminUser,
    db: DB,
    partner_id: str | None = None,
):
    total = await CommissionService(db).get_total_pending_commissions(partner_id)
    return PendingCommissionsResponse(partner_id=partner_id, total=float(total))


@router.post("/conversions/{conversion_id}/approve", response_model=ConversionResponse)
async def approve_conversion(
    conversion_id: str,
    current_admin: AdminUser,
    db: DB,
    data: ConversionActionRequest | None = None,
):
    data = data or ConversionActionRequest()
    conversion = await CommissionService(db).approve_conversion(
        conversion_id, notes=data.notes, force=data.force
    )
    await db.commit()
    return ConversionResponse.model_validate(conversion)


@router.post("/conversions/{conversion_id}/reject", response_model=ConversionResponse)
async def reject_conversion(
    conversion_id: str,
    current_admin: AdminUser,
    db: DB,
    data: ConversionActionRequest | None = None,
):
    data = data or ConversionActionRequest()
    conversion = await CommissionService(db).reject_conversion(conversion_id, notes=data.notes)
    await db.commit()
    return ConversionResponse.model_validate(conversion)


@router.post("/conversions/{conversion_id}/reverse", response_model=ConversionResponse)
async def reverse_conversion(
    conversion_id: str,
    current_admin: AdminUser,
    db: DB,
    data: ReverseConversionRequest | None = None,
):
    reason = data.reason if data else None
    conversion = await CommissionService(db).reverse_conversion(conversion_id, reason=reason)
    await db.commit()
    return ConversionResponse.model_validate(conversion)


@router.post("/conversions/{conversion_id}/auto-process", response_model=AutoProcessResponse)
async def auto_process_conversion(conversion_id: str, current_admin: AdminUser, db: DB):
    result = await CommissionService(db).auto_process_conversion(conversion_id)
    await db.commit()
    return AutoProcessResponse(
        action=result.action,
        conversion=ConversionResponse.model_validate(result.conversion),
        fraud_score=FraudScoreResponse.model_validate(result.fraud_score),
    )


@router.get("/conversions/{conversion_id}/fraud-score", response_model=FraudScoreResponse)
async def get_conversion_fraud_score(conversion_id: str, current_admin: AdminUser, db: DB):
    fraud_score = await FraudService(db).calculate_conversion_fraud_score(conversion_id)
    return FraudScoreResponse.model_validate(fraud_score)


# Fraud review
@router.get("/partners/{partner_id}/reputation", response_model=PartnerReputationResponse)
async def get_partner_reputation(partner_id: str, current_admin: AdminUser, db: DB):
    if not await db.get(Partner, partner_id):
        raise NotFoundError("Partner")
    reputation = await FraudService(db).get_partner_reputation_score(partner_id)
    return PartnerReputationResponse.model_validate(reputation)


@router.get("/fraud/clicks", response_model=list[SuspiciousClickResponse])
async def list_suspicious_clicks(current_admin: AdminUser, db: DB, pagination: Pagination):
    clicks = await FraudService(db).get_suspicious_clicks(
        limit=pagination.limit, offset=pagination.offset
    )
    return [SuspiciousClickResponse.model_validate(c) for c in clicks]


@router.get("/fraud/conversions", response_model=list[SuspiciousConversionResponse])
async def list_suspicious_conversions(current_admin: AdminUser, db: DB, pagination: Pagination):
    conversions = await FraudService(db).get_suspicious_conversions(
        limit=pagination.limit, offset=pagination.offset
    )
    return [SuspiciousConversionResponse.model_validate(c) for c in conversions]


@router.post(
    "/fraud/blocked-ips", response_model=BlockedIPResponse, status_code=status.HTTP_201_CREATED
)
async def block_ip(data: BlockIPRequest, current_admin: AdminUser, db: DB):
    blocked = await FraudService(db).block_ip(data.ip_address, data.reason)
    await db.commit()
    return BlockedIPResponse.model_validate(blocked)


# Payouts
@router.post("/payouts", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def create_payout(data: CreatePayoutRequest, current_admin: AdminUser, db: DB):
    payout = await CommissionService(db).create_payout(
        data.partner_id, data.period_start, data.period_end
    )
    await db.commit()
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/start", response_model=PayoutResponse)
async def start_payout(payout_id: str, current_admin: AdminUser, db: DB):
    payout = await CommissionService(db).start_payout_processing(payout_id)
    await db.commit()
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/complete", response_model=PayoutResponse)
async def complete_payout(
    payout_id: str,
    data: CompletePayoutRequest,
    current_admin: AdminUser,
    db: DB,
):
    payout = await CommissionService(db).complete_payout(payout_id, data.transaction_reference)
    await db.commit()
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/fail", response_model=PayoutResponse)
async def fail_payout(
    payout_id: str,
    data: FailPayoutRequest,
    current_admin: AdminUser,
    db: DB,
):
    payout = await CommissionService(db).fail_payout(payout_id, data.error_message)
    await db.commit()
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/process", response_model=PaymentResultResponse)
async def process_payout(payout_id: str, current_admin: AdminUser, db: DB):
    result = await PaymentService(db).process_payment(payout_id)
    await db.commit()
    return PaymentResultResponse(
        success=result.success,
        provider=result.provider,
        payout=PayoutResponse.model_validate(result.payout),
        transaction_id=result.transaction_id,
        error=result.error,
        requires_manual_action=result.requires_manual_action,
    )
