"""HS256 bearer tokens identifying the developer behind a request."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from careerxp.config import get_settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(developer_id: str, expires_minutes: int | None = None) -> str:
    """Issue a token whose subject is the developer id."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or settings.jwt_access_token_expire_minutes)
    claims: dict[str, Any] = {
        "sub": developer_id,
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": now + lifetime,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> dict[str, Any]:
    """Decode a token issued by this service.

    Raises:
        jwt.InvalidTokenError: bad signature, wrong issuer, expired, missing
            subject, or a token of another type.
    """
    settings = get_settings()
    claims: dict[str, Any] = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "iss"]},
    )
    if claims.get("type") != expected_type:
        msg = f"Expected {expected_type} token, got {claims.get('type')!r}"
        raise jwt.InvalidTokenError(msg)
    return claims
