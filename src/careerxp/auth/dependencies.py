"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
import structlog
from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from careerxp.auth.jwt import verify_token
from careerxp.gamification.exceptions import Unauthorized

logger = structlog.get_logger()

_bearer = HTTPBearer(auto_error=False)


async def get_caller_id(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),  # noqa: B008
) -> str:
    """Resolve the bearer token to the calling developer's id.

    Raises Unauthorized (401) when the token is missing or invalid.
    """
    if credentials is None:
        raise Unauthorized()
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        logger.info("token_rejected", reason=str(e))
        raise Unauthorized(str(e)) from e
    subject = payload.get("sub")
    if not subject:
        raise Unauthorized("Token has no subject")
    return str(subject)
