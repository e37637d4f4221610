from affiliate_hub.services.commission_service import (
    CommissionCalculation,
    CommissionService,
    ConversionData,
    PostbackData,
    PostbackResult,
    tier_bonus_for,
)
from affiliate_hub.services.experiment_service import (
    Experiment,
    ExperimentBucketer,
    ExperimentRegistry,
    Variant,
    default_registry,
)
from affiliate_hub.services.fraud_service import ClickFraudCheck, FraudScore, FraudService
from affiliate_hub.services.link_service import LinkHealth, LinkHealthReport, LinkService
from affiliate_hub.services.notification_service import NotificationService
from affiliate_hub.services.payment_service import PaymentResult, PaymentService, PayPalClient
from affiliate_hub.services.tracking_service import ClickData, ClickTracker

__all__ = [
    "LinkService",
    "LinkHealth",
    "LinkHealthReport",
    "ClickTracker",
    "ClickData",
    "FraudService",
    "ClickFraudCheck",
    "FraudScore",
    "CommissionService",
    "CommissionCalculation",
    "ConversionData",
    "PostbackData",
    "PostbackResult",
    "tier_bonus_for",
    "Experiment",
    "ExperimentBucketer",
    "ExperimentRegistry",
    "Variant",
    "default_registry",
    "NotificationService",
    "PaymentService",
    "PaymentResult",
    "PayPalClient",
]
