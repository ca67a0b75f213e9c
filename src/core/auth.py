from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import jwt
from passlib.context import CryptContext
from src.core.config import get_settings

# bcrypt at the library's default cost
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class TokenError(Exception):
    """Raised when a token cannot be decoded or validated."""


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verify a password against its hash; a missing or foreign hash never matches."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def create_access_token(
    subject: str,
    *,
    secret: str,
    issuer: str,
    roles: Sequence[str] = (),
    email: str | None = None,
    session_id: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Generate a signed session token for ``subject``."""
    settings = get_settings()

    now = datetime.now(UTC)
    ttl = expires_delta or timedelta(seconds=settings.access_token_ttl_seconds)
    payload = {
        "sub": subject,
        "roles": list(roles),
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
        "iss": issuer,
    }

    if email:
        payload["email"] = email
    if session_id:
        payload["sid"] = session_id

    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, *, secret: str, issuer: str) -> dict:
    """Decode and validate a session token issued by ``issuer``."""
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            issuer=issuer,
            options={"require": ["sub", "exp", "iss"]},
        )
    except jwt.PyJWTError as exc:  # pragma: no cover - third-party raises numerous subclasses
        raise TokenError("Invalid token") from exc

    return payload
