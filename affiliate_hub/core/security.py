import hashlib
import hmac
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from affiliate_hub.config import settings


def create_admin_token(
    subject: str,
    expires_delta: timedelta | None = None,
) -> str:
    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(minutes=settings.admin_token_expire_minutes)

    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "type": "admin",
        "iat": datetime.now(UTC),
    }

    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_signed_token(
    claims: dict[str, Any],
    token_type: str,
    expires_delta: timedelta,
) -> str:
    to_encode = dict(claims)
    to_encode.update(
        {
            "exp": datetime.now(UTC) + expires_delta,
            "type": token_type,
            "iat": datetime.now(UTC),
        }
    )
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, token_type: str | None = None) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    if token_type and payload.get("type") != token_type:
        return None
    return payload


def sign_payload(payload: str | bytes, secret: str) -> str:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_payload_signature(payload: str | bytes, signature: str, secret: str) -> bool:
    if not signature:
        return False
    expected = sign_payload(payload, secret).encode("ascii")
    # Header values may carry arbitrary latin-1 bytes
    return hmac.compare_digest(expected, signature.encode("utf-8"))
