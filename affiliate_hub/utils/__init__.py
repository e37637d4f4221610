"""
Utility modules for Affiliate Hub.
"""

from affiliate_hub.utils.crypto import (
    generate_readable_short_code,
    generate_session_id,
    generate_short_code,
    hash_assignment,
    hash_percentile,
    hash_string,
)
from affiliate_hub.utils.device import (
    BotDetection,
    DeviceInfo,
    anonymize_ip,
    detect_bot,
    detect_browser,
    detect_device_type,
    detect_os,
    parse_user_agent,
)
from affiliate_hub.utils.helpers import (
    ensure_utc,
    round_money,
    start_of_month,
    to_decimal,
    utc_now,
)

__all__ = [
    # Crypto utilities
    "generate_readable_short_code",
    "generate_session_id",
    "generate_short_code",
    "hash_assignment",
    "hash_percentile",
    "hash_string",
    # Device detection
    "BotDetection",
    "DeviceInfo",
    "anonymize_ip",
    "detect_bot",
    "detect_browser",
    "detect_device_type",
    "detect_os",
    "parse_user_agent",
    # Helpers
    "ensure_utc",
    "round_money",
    "start_of_month",
    "to_decimal",
    "utc_now",
]
