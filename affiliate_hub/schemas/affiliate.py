from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from affiliate_hub.models import (
    ConversionPayoutStatus,
    ConversionStatus,
    ConversionType,
    LinkStatus,
    PaymentMethod,
    PayoutStatus,
    PlacementType,
    ValidationMethod,
)
from affiliate_hub.schemas.common import BaseSchema, TimestampMixin


# Clicks
class ClickRequest(BaseModel):
    link_id: str | None = None
    short_code: str | None = Field(None, max_length=50)
    session_id: str = Field(..., min_length=1, max_length=64)
    ip_address: str | None = Field(None, max_length=45)
    user_agent: str | None = None
    referrer: str | None = None
    country_code: str | None = Field(None, max_length=2)

    @model_validator(mode="after")
    def require_link_reference(self) -> "ClickRequest":
        if not self.link_id and not self.short_code:
            raise ValueError("Either link_id or short_code is required")
        return self


class ClickResponse(BaseModel):
    allowed: bool
    click_id: str | None = None
    score: int
    reason: str | None = None


class ClickStatsResponse(BaseSchema):
    total_clicks: int
    unique_sessions: int
    bot_clicks: int
    by_device: dict[str, int]
    by_browser: dict[str, int]
    by_country: dict[str, int]


# Postbacks
class PostbackResponse(BaseModel):
    success: bool
    conversion_id: str | None = None
    error: str | None = None


# Links
class CreateLinkRequest(BaseModel):
    partner_id: str
    original_url: str = Field(..., max_length=2000)
    product_id: str | None = None
    placement_type: PlacementType = PlacementType.CONTENT
    utm_source: str | None = Field(None, max_length=100)
    utm_medium: str | None = Field(None, max_length=100)
    utm_campaign: str | None = Field(None, max_length=100)
    custom_params: dict[str, str] | None = None
    expires_at: datetime | None = None


class LinkResponse(BaseSchema, TimestampMixin):
    id: str
    short_code: str
    partner_id: str
    product_id: str | None = None
    original_url: str
    tracking_url: str
    short_url: str
    placement_type: PlacementType
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    status: LinkStatus
    expires_at: datetime | None = None
    total_clicks: int
    total_conversions: int


class UnhealthyLinkResponse(BaseSchema):
    id: str
    short_code: str
    url: str
    status: int


class LinkHealthReportResponse(BaseSchema):
    total: int
    healthy: int
    unhealthy: list[UnhealthyLinkResponse]


# Conversions
class ConversionResponse(BaseSchema):
    id: str
    click_id: str | None = None
    partner_id: str
    product_id: str | None = None
    payout_id: str | None = None
    order_id: str | None = None
    transaction_id: str | None = None
    conversion_type: ConversionType
    sale_amount: float | None = None
    currency: str
    commission_amount: float
    commission_rate: float
    conversion_status: ConversionStatus
    payout_status: ConversionPayoutStatus
    validation_method: ValidationMethod
    converted_at: datetime
    approved_at: datetime | None = None
    notes: str | None = None


class ConversionActionRequest(BaseModel):
    notes: str | None = Field(None, max_length=2000)
    force: bool = False


class ReverseConversionRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class FraudScoreResponse(BaseSchema):
    score: int
    reasons: list[str]
    recommendation: str


class AutoProcessResponse(BaseModel):
    action: str
    conversion: ConversionResponse
    fraud_score: FraudScoreResponse


class PendingCommissionsResponse(BaseModel):
    partner_id: str | None = None
    total: float


# Fraud review
class PartnerReputationResponse(BaseSchema):
    score: int
    total_conversions: int
    approved_conversions: int
    rejected_conversions: int
    reversed_conversions: int
    approval_rate: float
    flags: list[str]


class SuspiciousClickResponse(BaseSchema):
    id: str
    link_id: str
    ip_address: str | None = None
    clicked_at: datetime
    bot_type: str | None = None
    reason: str


class SuspiciousConversionResponse(BaseSchema):
    id: str
    partner_id: str
    order_id: str | None = None
    sale_amount: float | None = None
    commission_amount: float
    fraud_score: FraudScoreResponse


class BlockIPRequest(BaseModel):
    ip_address: str = Field(..., min_length=2, max_length=45)
    reason: str = Field(..., min_length=1, max_length=500)


class BlockedIPResponse(BaseSchema):
    id: str
    ip_address: str
    reason: str
    blocked_at: datetime


# Payouts
class CreatePayoutRequest(BaseModel):
    partner_id: str
    period_start: datetime
    period_end: datetime


class CompletePayoutRequest(BaseModel):
    transaction_reference: str = Field(..., min_length=1, max_length=255)


class FailPayoutRequest(BaseModel):
    error_message: str = Field(..., min_length=1, max_length=2000)


class PayoutResponse(BaseSchema):
    id: str
    partner_id: str
    period_start: datetime
    period_end: datetime
    total_conversions: int
    total_commission: float
    payout_method: PaymentMethod
    status: PayoutStatus
    transaction_reference: str | None = None
    error_message: str | None = None
    payout_date: datetime | None = None
    created_at: datetime


class PaymentResultResponse(BaseModel):
    success: bool
    provider: str
    payout: PayoutResponse
    transaction_id: str | None = None
    error: str | None = None
    requires_manual_action: bool = False
