from affiliate_hub.models.blocked_ip import BlockedIP
from affiliate_hub.models.campaign import Campaign, CampaignStatus, CampaignType
from affiliate_hub.models.conversion import (
    Conversion,
    ConversionPayoutStatus,
    ConversionStatus,
    ConversionType,
    Payout,
    PayoutStatus,
    ValidationMethod,
)
from affiliate_hub.models.link import Click, DeviceType, Link, LinkStatus, PlacementType
from affiliate_hub.models.partner import (
    CommissionType,
    Partner,
    PartnerStatus,
    PaymentMethod,
    Product,
    ProductStatus,
)

__all__ = [
    # Partner
    "Partner",
    "PartnerStatus",
    "CommissionType",
    "PaymentMethod",
    "Product",
    "ProductStatus",
    # Campaign
    "Campaign",
    "CampaignStatus",
    "CampaignType",
    # Link
    "Link",
    "LinkStatus",
    "PlacementType",
    "Click",
    "DeviceType",
    # Conversion
    "Conversion",
    "ConversionStatus",
    "ConversionPayoutStatus",
    "ConversionType",
    "ValidationMethod",
    "Payout",
    "PayoutStatus",
    # Fraud
    "BlockedIP",
]
