from affiliate_hub.core.exceptions import (
    AffiliateHubException,
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    ConflictError,
    DuplicateError,
    NotFoundError,
    RateLimitError,
    StateError,
    TransientError,
    ValidationError,
)
from affiliate_hub.core.security import (
    create_admin_token,
    create_signed_token,
    decode_token,
    sign_payload,
    verify_payload_signature,
)

__all__ = [
    "AffiliateHubException",
    "AuthenticationError",
    "AuthorizationError",
    "BadRequestError",
    "ConflictError",
    "DuplicateError",
    "NotFoundError",
    "RateLimitError",
    "StateError",
    "TransientError",
    "ValidationError",
    "create_admin_token",
    "create_signed_token",
    "decode_token",
    "sign_payload",
    "verify_payload_signature",
]
