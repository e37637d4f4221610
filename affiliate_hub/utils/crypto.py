import hashlib
import secrets
from collections.abc import Sequence
from typing import TypeVar

from affiliate_hub.config import settings

T = TypeVar("T")

SHORT_CODE_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"


def generate_short_code(length: int = 8) -> str:
    random_bytes = secrets.token_bytes(length)
    return "".join(SHORT_CODE_ALPHABET[b % len(SHORT_CODE_ALPHABET)] for b in random_bytes)


def generate_readable_short_code(partner_slug: str, product_slug: str | None = None) -> str:
    prefix = settings.affiliate_short_code_prefix
    partner_code = partner_slug[:4].lower()
    random_part = generate_short_code(4)

    if product_slug:
        return f"{prefix}-{partner_code}-{product_slug[:4].lower()}-{random_part}"
    return f"{prefix}-{partner_code}-{random_part}"


def generate_session_id() -> str:
    return secrets.token_hex(16)


def hash_string(value: str, algorithm: str = "sha256") -> str:
    hasher = hashlib.new(algorithm)
    hasher.update(value.encode("utf-8"))
    return hasher.hexdigest()


def hash_percentile(*parts: str) -> int:
    """Map the joined parts onto a stable value in [0, 100)."""
    digest = hash_string(":".join(parts))
    return int(digest[:8], 16) % 100


def hash_assignment(
    key: str,
    namespace: str,
    weighted_options: Sequence[tuple[T, int]],
) -> T:
    """
    Pick an option deterministically by cumulative weight.

    Args:
        key: Stable identifier being bucketed (a user id, a partner slug).
        namespace: Separates independent draws for the same key.
        weighted_options: Ordered ``(option, weight)`` pairs.

    Returns:
        The first option whose cumulative weight exceeds the hash value,
        or the last option if the weights sum to less than 100.
    """
    if not weighted_options:
        raise ValueError("weighted_options must not be empty")

    value = hash_percentile(key, namespace)
    cumulative = 0
    for option, weight in weighted_options:
        cumulative += weight
        if value < cumulative:
            return option

    return weighted_options[-1][0]


def secure_compare(a: str, b: str) -> bool:
    return secrets.compare_digest(a, b)


def generate_api_key() -> str:
    return f"ah_{secrets.token_urlsafe(32)}"
